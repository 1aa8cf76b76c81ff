"""Command-line interface for script-idiom-checker."""

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from script_idiom_checker import __version__
from script_idiom_checker.cli.config_loader import load_runtime_config
from script_idiom_checker.config.runtime_config import ENV_VARS, OutputFormat, RuntimeConfig
from script_idiom_checker.core.checker import IdiomChecker
from script_idiom_checker.core.models import FileReport
from script_idiom_checker.fixes.fixer import FixApplier
from script_idiom_checker.rules import DEFAULT_RULES, RULES_BY_NAME

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)

EXIT_CLEAN = 0
EXIT_DIAGNOSTICS = 1
EXIT_FAILURE = 2


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Check control scripts against the cataloged scripting idioms.

    Defines the top-level `cli` command group with a version option and registers the
    `check` and `rules` subcommands.
    """


def configure_logging(runtime_config: RuntimeConfig) -> None:
    """Configure root logging from the runtime configuration."""
    log_handler = (
        logging.FileHandler(runtime_config.log_file)
        if runtime_config.log_file
        else logging.StreamHandler()
    )
    logging.basicConfig(
        level=getattr(logging, runtime_config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[log_handler],
        force=True,
    )


def exit_code_for(reports: list[FileReport]) -> int:
    """Map file reports to the process exit code.

    Returns:
        int: 2 if any file failed or any rule faulted, else 1 if any
        diagnostic remains, else 0.
    """
    if any(report.failure is not None or report.rule_errors for report in reports):
        return EXIT_FAILURE
    if any(report.diagnostics for report in reports):
        return EXIT_DIAGNOSTICS
    return EXIT_CLEAN


def _normalize_extension(extension: str) -> str:
    extension = extension.strip().lower()
    return extension if extension.startswith(".") else f".{extension}"


def _print_summary(reports: list[FileReport], runtime_config: RuntimeConfig) -> None:
    diagnostics = sum(len(report.diagnostics) for report in reports)
    failures = sum(
        int(report.failure is not None) + len(report.rule_errors) for report in reports
    )
    fixes = sum(report.fixes_applied for report in reports)
    parts = [f"{diagnostics} diagnostic(s)", f"{failures} error(s)", f"{len(reports)} file(s)"]
    if runtime_config.apply_fixes:
        verb = "would apply" if runtime_config.dry_run else "applied"
        parts.append(f"{verb} {fixes} fix(es)")
    style = "red" if failures else "yellow" if diagnostics else "green"
    err_console.print(f"[{style}]{', '.join(parts)}[/{style}]")


@cli.command()
@click.argument(
    "paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path)
)
@click.option("--fix", is_flag=True, help="Apply safe suggested fixes in place")
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show the fixes as a unified diff without writing files (implies --fix)",
)
@click.option(
    "--rule",
    "rule_names",
    multiple=True,
    type=click.Choice(sorted(RULES_BY_NAME), case_sensitive=True),
    help="Only run this rule (repeatable; default: all rules)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice([f.value for f in OutputFormat], case_sensitive=False),
    help="Output format (default: text)",
)
@click.option(
    "--ext",
    "extensions",
    multiple=True,
    help="File extension to collect from directories (repeatable; default: .lua)",
)
@click.option(
    "--min-severity",
    type=click.Choice(["info", "warning", "error"], case_sensitive=False),
    help="Hide diagnostics below this severity (default: info)",
)
@click.option(
    "--parallel/--no-parallel", default=None, help="Check files on a thread pool"
)
@click.option(
    "--max-workers",
    type=int,
    default=None,
    help="Maximum number of worker threads for parallel processing (default: 4)",
)
@click.option(
    "--timeout",
    "file_timeout",
    type=float,
    default=None,
    help="Per-file time budget in seconds (default: 30)",
)
@click.option(
    "--config",
    type=click.Path(dir_okay=False),
    help="Path to configuration file (YAML/TOML)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level (default: WARNING)",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    help="Path to log file (default: stderr)",
)
@click.pass_context
def check(
    ctx: click.Context,
    paths: tuple[Path, ...],
    fix: bool,
    dry_run: bool,
    rule_names: tuple[str, ...],
    output_format: str | None,
    extensions: tuple[str, ...],
    min_severity: str | None,
    parallel: bool | None,
    max_workers: int | None,
    file_timeout: float | None,
    config: str | None,
    log_level: str | None,
    log_file: str | None,
) -> None:
    r"""Check scripts for idiom violations and missed idioms.

    PATHS may be files or directories; directories are scanned recursively for
    the configured extensions.

    Configuration precedence: CLI flags > environment variables > config file > defaults

    Exit codes: 0 no diagnostics, 1 diagnostics found, 2 a file could not be
    read, parsed or analyzed.

    Examples:
        # Check a directory
        $ script-idioms check scripts/

        # Only the ternary rule, JSON output
        $ script-idioms check main.lua --rule ternary-opportunity --format json

        # Preview the safe fixes as a diff
        $ script-idioms check scripts/ --dry-run
    """
    try:
        cli_overrides = {
            "rules": rule_names or None,
            "output_format": output_format.lower() if output_format else None,
            "apply_fixes": True if (fix or dry_run) else None,
            "dry_run": True if dry_run else None,
            "extensions": tuple(_normalize_extension(e) for e in extensions) or None,
            "min_severity": min_severity.lower() if min_severity else None,
            "parallel_processing": parallel,  # None, True, or False
            "max_workers": max_workers,
            "file_timeout": file_timeout,
            "log_level": log_level.upper() if log_level else None,
            "log_file": str(log_file) if log_file else None,
        }

        runtime_config = load_runtime_config(
            config=config,
            cli_overrides=cli_overrides,
            env_var_map=ENV_VARS,
        )
        configure_logging(runtime_config)
        checker = IdiomChecker.from_config(runtime_config)

    except Exception as e:
        err_console.print(f"[red]❌ Configuration error: {e}[/red]")
        raise click.Abort() from e

    processor = None
    if runtime_config.apply_fixes:
        fixer = FixApplier(
            checker,
            max_passes=runtime_config.max_fix_passes,
            dry_run=runtime_config.dry_run,
        )
        processor = fixer.fix_file

    reports = checker.check_paths(
        paths,
        extensions=runtime_config.extensions,
        parallel=runtime_config.parallel_processing,
        max_workers=runtime_config.max_workers,
        file_timeout=runtime_config.file_timeout,
        processor=processor,
    )

    reporter = checker.reporter
    if runtime_config.output_format is OutputFormat.JSON:
        click.echo(reporter.render_json(reports))
        for report in reports:
            if report.fix_diff:
                err_console.print(report.fix_diff, markup=False, highlight=False, end="")
    else:
        for line in reporter.render_text(reports):
            console.print(line, markup=False, highlight=False, soft_wrap=True)
        for report in reports:
            if report.fix_diff:
                console.print(report.fix_diff, markup=False, highlight=False, end="")
        _print_summary(reports, runtime_config)

    ctx.exit(exit_code_for(reports))


@cli.command(name="rules")
def list_rules() -> None:
    """List the registered rules."""
    table = Table(title="Idiom rules")
    table.add_column("Rule", style="cyan", no_wrap=True)
    table.add_column("Specificity", justify="right")
    table.add_column("Severity")
    table.add_column("Description")
    for rule in sorted(DEFAULT_RULES, key=lambda r: (-r.specificity, r.name)):
        table.add_row(rule.name, str(rule.specificity), str(rule.default_severity), rule.description)
    console.print(table)

