"""Runtime configuration loading for CLI commands.

Combines the configuration sources in precedence order:
CLI flags > environment variables > config file > defaults.
"""

import logging
import os
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

from script_idiom_checker.config.runtime_config import ENV_VARS, RuntimeConfig

logger = logging.getLogger(__name__)


def load_runtime_config(
    config: str | None,
    cli_overrides: dict[str, Any],
    env_var_map: dict[str, str] | None = None,
) -> RuntimeConfig:
    """Build the effective RuntimeConfig for a command invocation.

    Args:
        config: Optional path to a YAML or TOML configuration file.
        cli_overrides: Values from CLI flags; None entries mean "not given".
        env_var_map: Field name -> environment variable. Only variables that are
            actually set override the file/default values.

    Returns:
        RuntimeConfig: The merged configuration.

    Raises:
        ConfigError: If any source contains an invalid value.
    """
    env_var_map = env_var_map or ENV_VARS
    base = RuntimeConfig.from_file(Path(config)) if config else RuntimeConfig.from_defaults()
    if config:
        logger.debug(f"Loaded configuration file {config}")

    set_fields = {name for name, var in env_var_map.items() if os.getenv(var) is not None}
    if set_fields:
        env_config = RuntimeConfig.from_env()
        known = {f.name for f in fields(RuntimeConfig)}
        env_overrides = {name: getattr(env_config, name) for name in set_fields if name in known}
        logger.debug(f"Environment overrides: {sorted(env_overrides)}")
        # Explicit None values (SIC_FILE_TIMEOUT=none) must survive the merge.
        base = replace(base, **env_overrides)

    return base.merge_with_cli(**cli_overrides)
