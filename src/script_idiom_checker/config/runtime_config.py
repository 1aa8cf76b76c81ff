"""Settings for a checker run.

A RuntimeConfig is assembled from built-in defaults, an optional YAML or TOML
file, SIC_* environment variables and command-line flags, later sources
overriding earlier ones.
"""

import logging
import os
import sys
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

from script_idiom_checker.config.exceptions import ConfigError
from script_idiom_checker.core.models import Severity

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Environment variables read by RuntimeConfig.from_env, keyed by field name.
ENV_VARS = {
    "rules": "SIC_RULES",
    "output_format": "SIC_FORMAT",
    "apply_fixes": "SIC_FIX",
    "dry_run": "SIC_DRY_RUN",
    "extensions": "SIC_EXTENSIONS",
    "min_severity": "SIC_MIN_SEVERITY",
    "parallel_processing": "SIC_PARALLEL",
    "max_workers": "SIC_MAX_WORKERS",
    "file_timeout": "SIC_FILE_TIMEOUT",
    "max_fix_passes": "SIC_MAX_FIX_PASSES",
    "controls_table": "SIC_CONTROLS_TABLE",
    "log_level": "SIC_LOG_LEVEL",
    "log_file": "SIC_LOG_FILE",
}


class OutputFormat(str, Enum):
    """Report output formats.

    Attributes:
        TEXT: One ``path:line:col: [rule] message`` line per diagnostic.
        JSON: A JSON array of diagnostic records.
    """

    TEXT = "text"
    JSON = "json"

    def __str__(self) -> str:
        """Return string representation of the format."""
        return self.value


def _split_list(value: str) -> tuple[str, ...]:
    """Split a comma-separated setting into a tuple of stripped items."""
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _parse_enum(enum_type: type[Enum], value: Any, source: str) -> Any:  # noqa: ANN401
    """Convert a raw value to ``enum_type``, raising ConfigError on bad input."""
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).lower())
    except ValueError as e:
        valid = [m.value for m in enum_type]
        raise ConfigError(f"Invalid {source}='{value}'. Must be one of {valid}") from e


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    """Runtime configuration for the idiom checker.

    This immutable configuration dataclass manages checker settings from multiple
    sources with proper precedence. All fields are validated during initialization.

    Attributes:
        rules: Names of the rules to run, or None for all registered rules.
        output_format: Report format (text or json).
        apply_fixes: Apply safe suggested fixes to the checked files.
        dry_run: With apply_fixes, show a diff instead of writing files.
        extensions: File extensions collected when scanning directories.
        min_severity: Diagnostics below this severity are not reported.
        parallel_processing: Check files on a thread pool.
        max_workers: Maximum number of worker threads for parallel processing.
        file_timeout: Per-file time budget in seconds (None = unlimited).
        max_fix_passes: Maximum fix/re-check iterations per file.
        controls_table: Name of the global table holding the script's controls.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to log file. If None, logs go to stderr.

    Example:
        >>> config = RuntimeConfig.from_env()
        >>> config = config.merge_with_cli(output_format=OutputFormat.JSON, apply_fixes=True)
        >>> print(f"Format: {config.output_format}, Fix: {config.apply_fixes}")
        Format: json, Fix: True
    """

    rules: tuple[str, ...] | None
    output_format: OutputFormat
    apply_fixes: bool
    dry_run: bool
    extensions: tuple[str, ...]
    min_severity: Severity
    parallel_processing: bool
    max_workers: int
    file_timeout: float | None
    max_fix_passes: int
    controls_table: str
    log_level: str
    log_file: str | None

    def __post_init__(self) -> None:
        """Validate configuration after initialization.

        Raises:
            ConfigError: If any configuration value is invalid.
        """
        if self.log_level not in VALID_LOG_LEVELS:
            raise ConfigError(
                f"Invalid log level: {self.log_level}. Must be one of {VALID_LOG_LEVELS}"
            )

        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.max_workers > 32:
            logger.warning(
                f"max_workers={self.max_workers} is very high. "
                f"Consider using <= 16 for optimal performance."
            )

        if not isinstance(self.output_format, OutputFormat):
            raise ConfigError(
                f"output_format must be OutputFormat enum, got {type(self.output_format).__name__}"
            )
        if not isinstance(self.min_severity, Severity):
            raise ConfigError(
                f"min_severity must be Severity enum, got {type(self.min_severity).__name__}"
            )

        if self.rules is not None and not self.rules:
            raise ConfigError("rules must name at least one rule (or be unset for all rules)")

        if not self.extensions:
            raise ConfigError("extensions must not be empty")
        for extension in self.extensions:
            if not extension.startswith(".") or len(extension) < 2:
                raise ConfigError(f"Invalid extension '{extension}'. Must look like '.lua'")

        if self.file_timeout is not None and self.file_timeout <= 0:
            raise ConfigError(f"file_timeout must be positive, got {self.file_timeout}")

        if self.max_fix_passes < 1:
            raise ConfigError(f"max_fix_passes must be >= 1, got {self.max_fix_passes}")

        if not self.controls_table.isidentifier():
            raise ConfigError(f"controls_table must be an identifier, got '{self.controls_table}'")

        if self.dry_run and not self.apply_fixes:
            logger.warning("dry_run has no effect unless fixes are enabled")

    @classmethod
    def from_defaults(cls) -> "RuntimeConfig":
        """Create configuration with default values.

        Returns:
            RuntimeConfig with safe default values.

        Example:
            >>> config = RuntimeConfig.from_defaults()
            >>> assert config.output_format == OutputFormat.TEXT
            >>> assert config.apply_fixes is False
        """
        return cls(
            rules=None,
            output_format=OutputFormat.TEXT,
            apply_fixes=False,
            dry_run=False,
            extensions=(".lua",),
            min_severity=Severity.INFO,
            parallel_processing=False,
            max_workers=4,
            file_timeout=30.0,
            max_fix_passes=5,
            controls_table="Controls",
            log_level="WARNING",
            log_file=None,
        )

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """Create configuration from environment variables.

        Loads configuration from environment variables with SIC_ prefix:
        - SIC_RULES: Comma-separated rule names (default: all rules)
        - SIC_FORMAT: Output format, text or json (default: "text")
        - SIC_FIX: Apply safe fixes (default: "false")
        - SIC_DRY_RUN: Show fixes as a diff only (default: "false")
        - SIC_EXTENSIONS: Comma-separated extensions (default: ".lua")
        - SIC_MIN_SEVERITY: info, warning or error (default: "info")
        - SIC_PARALLEL: Enable parallel processing (default: "false")
        - SIC_MAX_WORKERS: Max worker threads (default: "4")
        - SIC_FILE_TIMEOUT: Per-file budget in seconds (default: "30")
        - SIC_MAX_FIX_PASSES: Max fix iterations per file (default: "5")
        - SIC_CONTROLS_TABLE: Name of the controls table (default: "Controls")
        - SIC_LOG_LEVEL: Logging level (default: "WARNING")
        - SIC_LOG_FILE: Log file path (default: None)

        Returns:
            RuntimeConfig loaded from environment variables.

        Raises:
            ConfigError: If environment variable has invalid value.

        Example:
            >>> os.environ["SIC_FORMAT"] = "json"
            >>> os.environ["SIC_PARALLEL"] = "true"
            >>> config = RuntimeConfig.from_env()
            >>> assert config.output_format == OutputFormat.JSON
            >>> assert config.parallel_processing is True
        """
        defaults = cls.from_defaults()

        def parse_bool(env_var: str, default: bool) -> bool:
            """Parse boolean environment variable."""
            value = os.getenv(env_var, str(default)).lower()
            if value in ("true", "1", "yes", "on"):
                return True
            if value in ("false", "0", "no", "off"):
                return False
            raise ConfigError(
                f"Invalid {env_var}='{value}'. Must be true/false, 1/0, yes/no, or on/off"
            )

        def parse_int(env_var: str, default: int, min_value: int = 1) -> int:
            """Parse integer environment variable."""
            value_str = os.getenv(env_var, str(default))
            try:
                value = int(value_str)
            except ValueError as e:
                raise ConfigError(f"Invalid {env_var}='{value_str}'. Must be an integer") from e
            if value < min_value:
                raise ConfigError(f"{env_var}={value} must be >= {min_value}")
            return value

        def parse_timeout(env_var: str, default: float | None) -> float | None:
            """Parse optional timeout; "none" or "0" disables the budget."""
            value_str = os.getenv(env_var)
            if value_str is None:
                return default
            if value_str.strip().lower() in ("", "none", "0"):
                return None
            try:
                return float(value_str)
            except ValueError as e:
                raise ConfigError(f"Invalid {env_var}='{value_str}'. Must be a number") from e

        rules_env = os.getenv("SIC_RULES")
        extensions_env = os.getenv("SIC_EXTENSIONS")
        return cls(
            rules=(_split_list(rules_env) or None) if rules_env else defaults.rules,
            output_format=_parse_enum(
                OutputFormat, os.getenv("SIC_FORMAT", defaults.output_format.value), "SIC_FORMAT"
            ),
            apply_fixes=parse_bool("SIC_FIX", defaults.apply_fixes),
            dry_run=parse_bool("SIC_DRY_RUN", defaults.dry_run),
            extensions=_split_list(extensions_env) if extensions_env else defaults.extensions,
            min_severity=_parse_enum(
                Severity,
                os.getenv("SIC_MIN_SEVERITY", defaults.min_severity.value),
                "SIC_MIN_SEVERITY",
            ),
            parallel_processing=parse_bool("SIC_PARALLEL", defaults.parallel_processing),
            max_workers=parse_int("SIC_MAX_WORKERS", defaults.max_workers, min_value=1),
            file_timeout=parse_timeout("SIC_FILE_TIMEOUT", defaults.file_timeout),
            max_fix_passes=parse_int("SIC_MAX_FIX_PASSES", defaults.max_fix_passes, min_value=1),
            controls_table=os.getenv("SIC_CONTROLS_TABLE", defaults.controls_table),
            log_level=os.getenv("SIC_LOG_LEVEL", defaults.log_level).upper(),
            log_file=os.getenv("SIC_LOG_FILE") or defaults.log_file,
        )

    @classmethod
    def from_file(cls, config_path: Path) -> "RuntimeConfig":
        """Read settings from a ``.yaml``, ``.yml`` or ``.toml`` file.

        Settings are grouped in ``output``, ``fix``, ``scan``, ``parallel`` and
        ``logging`` tables next to a top-level ``rules`` list; missing keys keep
        their defaults.

        Raises:
            ConfigError: If the file is missing, unreadable or holds bad values.

        Example:
            >>> config = RuntimeConfig.from_file(Path("script-idioms.yaml"))
        """
        try:
            config_path = Path(config_path).resolve()
        except (OSError, ValueError) as e:
            raise ConfigError(f"Invalid config file path: {e}") from e

        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        if not config_path.is_file():
            raise ConfigError(f"Config path is not a file: {config_path}")

        suffix = config_path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            return cls._load_from_yaml(config_path)
        elif suffix == ".toml":
            return cls._load_from_toml(config_path)
        else:
            raise ConfigError(
                f"Unsupported config file format: {suffix}. Must be .yaml, .yml, or .toml"
            )

    @classmethod
    def _load_from_yaml(cls, config_path: Path) -> "RuntimeConfig":
        """Parse a YAML config file; an empty document means all defaults."""
        import yaml

        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read {config_path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping/dict, got {type(data).__name__}")

        return cls._from_dict(data, config_path)

    @classmethod
    def _load_from_toml(cls, config_path: Path) -> "RuntimeConfig":
        """Parse a TOML config file with tomllib (tomli before 3.11)."""
        if sys.version_info >= (3, 11):  # noqa: UP036
            import tomllib
        else:
            import tomli as tomllib  # type: ignore[no-redef]

        try:
            with config_path.open("rb") as f:
                data = tomllib.load(f)
        except (tomllib.TOMLDecodeError, OSError) as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

        return cls._from_dict(data, config_path)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], source: Path) -> "RuntimeConfig":
        """Map the sections of a parsed config file onto RuntimeConfig fields."""
        defaults = cls.from_defaults()

        def section(name: str) -> dict[str, Any]:
            value = data.get(name, {})
            if not isinstance(value, dict):
                raise ConfigError(f"Invalid {name} type in {source}: {type(value).__name__}")
            return value

        rules = data.get("rules", defaults.rules)
        if isinstance(rules, str):
            rules = _split_list(rules)
        elif rules is not None and not isinstance(rules, list):
            raise ConfigError(f"Invalid rules type in {source}: {type(rules).__name__}")

        output = section("output")
        fix = section("fix")
        scan = section("scan")
        logging_config = section("logging")

        parallel = data.get("parallel", {})
        if isinstance(parallel, dict):
            parallel_processing = parallel.get("enabled", defaults.parallel_processing)
            max_workers = parallel.get("max_workers", defaults.max_workers)
            file_timeout = parallel.get("file_timeout", defaults.file_timeout)
        elif isinstance(parallel, bool):
            parallel_processing = parallel
            max_workers = defaults.max_workers
            file_timeout = defaults.file_timeout
        else:
            raise ConfigError(f"Invalid parallel type in {source}: {type(parallel).__name__}")

        extensions = scan.get("extensions", defaults.extensions)
        if isinstance(extensions, str):
            extensions = _split_list(extensions)

        log_file = logging_config.get("file", defaults.log_file)
        try:
            return cls(
                rules=tuple(str(rule) for rule in rules) if rules is not None else None,
                output_format=_parse_enum(
                    OutputFormat, output.get("format", defaults.output_format), "output.format"
                ),
                apply_fixes=bool(fix.get("enabled", defaults.apply_fixes)),
                dry_run=bool(fix.get("dry_run", defaults.dry_run)),
                extensions=tuple(str(ext) for ext in extensions),
                min_severity=_parse_enum(
                    Severity,
                    output.get("min_severity", defaults.min_severity),
                    "output.min_severity",
                ),
                parallel_processing=bool(parallel_processing),
                max_workers=int(max_workers),
                file_timeout=float(file_timeout) if file_timeout else None,
                max_fix_passes=int(fix.get("max_passes", defaults.max_fix_passes)),
                controls_table=str(scan.get("controls_table", defaults.controls_table)),
                log_level=str(logging_config.get("level", defaults.log_level)).upper(),
                log_file=str(log_file) if log_file else None,
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value in {source}: {e}") from e

    def merge_with_cli(self, **overrides: Any) -> "RuntimeConfig":  # noqa: ANN401
        """Create new config with CLI flag overrides.

        CLI flags take precedence over environment variables and config files.
        Only non-None values are applied.

        Args:
            **overrides: Keyword arguments matching RuntimeConfig fields.
                        None values are ignored (no override).

        Returns:
            New RuntimeConfig with overrides applied.

        Raises:
            ConfigError: If override value is invalid.

        Example:
            >>> config = RuntimeConfig.from_env()
            >>> config = config.merge_with_cli(output_format="json", max_workers=8)
        """
        filtered_overrides = {k: v for k, v in overrides.items() if v is not None}

        if "output_format" in filtered_overrides:
            filtered_overrides["output_format"] = _parse_enum(
                OutputFormat, filtered_overrides["output_format"], "format"
            )
        if "min_severity" in filtered_overrides:
            filtered_overrides["min_severity"] = _parse_enum(
                Severity, filtered_overrides["min_severity"], "min_severity"
            )
        for key in ("rules", "extensions"):
            if key in filtered_overrides:
                filtered_overrides[key] = tuple(filtered_overrides[key]) or None
                if filtered_overrides[key] is None:
                    del filtered_overrides[key]

        try:
            return replace(self, **filtered_overrides)
        except ConfigError:
            raise
        except Exception as e:
            raise ConfigError(f"Failed to apply CLI overrides: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary representation of configuration.

        Example:
            >>> config = RuntimeConfig.from_defaults()
            >>> data = config.to_dict()
            >>> assert data["output_format"] == "text"
            >>> assert data["extensions"] == [".lua"]
        """
        return {
            "rules": list(self.rules) if self.rules is not None else None,
            "output_format": self.output_format.value,
            "apply_fixes": self.apply_fixes,
            "dry_run": self.dry_run,
            "extensions": list(self.extensions),
            "min_severity": self.min_severity.value,
            "parallel_processing": self.parallel_processing,
            "max_workers": self.max_workers,
            "file_timeout": self.file_timeout,
            "max_fix_passes": self.max_fix_passes,
            "controls_table": self.controls_table,
            "log_level": self.log_level,
            "log_file": self.log_file,
        }
