"""Core idiom checking functionality.

This module provides the IdiomChecker class that runs the parse, analyze,
match and report pipeline over single sources and over batches of files.
"""

from __future__ import annotations

import concurrent.futures
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from script_idiom_checker.analysis.context import DEFAULT_CONTROLS_TABLE, AnalysisContext
from script_idiom_checker.core.exceptions import ParseError, RuleEvaluationError, SourceReadError
from script_idiom_checker.core.models import (
    CheckFailure,
    Diagnostic,
    FailureKind,
    FileReport,
    MatchResult,
    Severity,
    SourceUnit,
)
from script_idiom_checker.reporting.reporter import Reporter
from script_idiom_checker.rules import DEFAULT_RULES, PatternRule, get_rules
from script_idiom_checker.security.secure_file_handler import SecureFileHandler
from script_idiom_checker.syntax.nodes import NodeKind
from script_idiom_checker.syntax.parser import parse_source

if TYPE_CHECKING:
    from script_idiom_checker.config.runtime_config import RuntimeConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Analysis:
    """Diagnostics of one parsed unit plus the rule faults encountered."""

    diagnostics: tuple[Diagnostic, ...]
    rule_errors: tuple[CheckFailure, ...]


class IdiomChecker:
    """Checks control scripts against the cataloged idioms.

    Each unit is processed by a pure pipeline: parse, build the analysis
    context, evaluate every rule on every node of a matching kind, and let the
    Reporter deduplicate and sort. No state is carried between units, so
    batches can be checked on a thread pool.
    """

    def __init__(
        self,
        rules: Sequence[PatternRule] | None = None,
        controls_table: str = DEFAULT_CONTROLS_TABLE,
        min_severity: Severity = Severity.INFO,
    ) -> None:
        """Initialize the checker.

        Args:
            rules: Rules to evaluate. Defaults to every registered rule.
            controls_table: Name of the global table holding the script's controls.
            min_severity: Diagnostics below this severity are dropped.
        """
        self.rules: tuple[PatternRule, ...] = tuple(rules) if rules is not None else DEFAULT_RULES
        self.controls_table = controls_table
        self.reporter = Reporter(min_severity)
        self._rules_by_kind: dict[NodeKind, list[PatternRule]] = defaultdict(list)
        for rule in self.rules:
            for kind in rule.node_kinds:
                self._rules_by_kind[kind].append(rule)

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> IdiomChecker:
        """Create a checker from runtime configuration.

        Raises:
            ConfigError: If the configuration names an unknown rule.
        """
        return cls(
            rules=get_rules(config.rules),
            controls_table=config.controls_table,
            min_severity=config.min_severity,
        )

    # -- single unit ---------------------------------------------------------

    def analyze(self, unit: SourceUnit) -> Analysis:
        """Run every rule over a unit.

        Args:
            unit: Source unit to analyze.

        Returns:
            Analysis: Sorted, deduplicated diagnostics and rule faults.

        Raises:
            ParseError: If the unit is not syntactically valid.
        """
        chunk = parse_source(unit)
        context = AnalysisContext.build(unit, chunk, self.controls_table)
        matches: list[MatchResult] = []
        rule_errors: list[CheckFailure] = []
        for node in chunk.walk():
            for rule in self._rules_by_kind.get(node.kind, ()):
                try:
                    result = rule.match(node, context)
                except Exception as e:
                    error = RuleEvaluationError(rule.name, node.span, e)
                    logger.warning(f"{unit.path}: {error}")
                    rule_errors.append(
                        CheckFailure(
                            unit.path,
                            FailureKind.RULE_EVALUATION_ERROR,
                            str(error),
                            node.span.start_line,
                            node.span.start_col,
                        )
                    )
                    continue
                if result is not None:
                    matches.append(result)
        diagnostics = self.reporter.build_diagnostics(unit.path, matches)
        return Analysis(tuple(diagnostics), tuple(rule_errors))

    def check_unit(self, unit: SourceUnit) -> FileReport:
        """Check a loaded unit, converting parse errors into a failure report."""
        try:
            analysis = self.analyze(unit)
        except ParseError as e:
            logger.info(f"{unit.path}: parse error: {e}")
            return FileReport(
                path=unit.path,
                failure=CheckFailure(unit.path, FailureKind.PARSE_ERROR, e.message, e.line, e.col),
            )
        except RecursionError:
            logger.error(f"{unit.path}: nesting too deep to analyze")
            return FileReport(
                path=unit.path,
                failure=CheckFailure(
                    unit.path, FailureKind.INTERNAL_ERROR, "Nesting too deep to analyze"
                ),
            )
        return FileReport(
            path=unit.path,
            diagnostics=analysis.diagnostics,
            rule_errors=analysis.rule_errors,
        )

    def check_source(self, text: str, path: str = "<string>") -> FileReport:
        """Check script text that is already in memory."""
        return self.check_unit(SourceUnit(path=path, text=text))

    def check_file(self, path: Path) -> FileReport:
        """Read and check one file, converting read errors into a failure report."""
        try:
            unit = SecureFileHandler.read_source(path)
        except SourceReadError as e:
            logger.error(str(e))
            return FileReport(
                path=str(path),
                failure=CheckFailure(str(path), FailureKind.IO_ERROR, str(e.cause)),
            )
        return self.check_unit(unit)

    # -- batches ---------------------------------------------------------------

    @staticmethod
    def collect_files(paths: Iterable[str | Path], extensions: Sequence[str]) -> list[Path]:
        """Expand paths into the list of files to check.

        Directories are scanned recursively for files with one of the given
        extensions; explicitly named files are always included. Duplicates are
        removed and the result is sorted.
        """
        suffixes = {ext.lower() for ext in extensions}
        files: set[Path] = set()
        for raw in paths:
            path = Path(raw)
            if path.is_dir():
                files.update(
                    p for p in path.rglob("*") if p.is_file() and p.suffix.lower() in suffixes
                )
            else:
                files.add(path)
        return sorted(files, key=str)

    def check_paths(
        self,
        paths: Iterable[str | Path],
        extensions: Sequence[str] = (".lua",),
        parallel: bool = False,
        max_workers: int = 4,
        file_timeout: float | None = None,
        processor: Callable[[Path], FileReport] | None = None,
    ) -> list[FileReport]:
        """Check every file under ``paths``.

        Errors are contained per file: an unreadable, unparsable, timed-out or
        crashing file yields a report with a failure and the batch continues.

        Args:
            paths: Files and directories to check.
            extensions: Extensions collected when scanning directories.
            parallel: Check files on a thread pool.
            max_workers: Maximum number of worker threads.
            file_timeout: Seconds to wait for each file's result, in both
                modes; None waits indefinitely.
            processor: Per-file job; defaults to ``check_file``. The fix applier
                passes its own job here.

        Returns:
            list[FileReport]: One report per file, sorted by path.
        """
        job = processor or self.check_file
        files = self.collect_files(paths, extensions)
        logger.info(f"Checking {len(files)} file(s)")
        if parallel and len(files) > 1:
            reports = self._run_parallel(job, files, max_workers, file_timeout)
        elif file_timeout is not None:
            reports = [self._run_with_timeout(job, path, file_timeout) for path in files]
        else:
            reports = [self._run_contained(job, path) for path in files]
        return sorted(reports, key=lambda report: report.path)

    @staticmethod
    def _run_contained(job: Callable[[Path], FileReport], path: Path) -> FileReport:
        try:
            return job(path)
        except Exception as e:
            logger.exception(f"Unexpected error while checking {path}")
            return FileReport(
                path=str(path),
                failure=CheckFailure(str(path), FailureKind.INTERNAL_ERROR, str(e)),
            )

    @staticmethod
    def _timed_out(path: Path, file_timeout: float | None) -> FileReport:
        logger.warning(f"Timed out after {file_timeout}s: {path}")
        return FileReport(
            path=str(path),
            failure=CheckFailure(
                str(path),
                FailureKind.TIMEOUT,
                f"Analysis exceeded the {file_timeout}s budget",
            ),
        )

    def _run_with_timeout(
        self, job: Callable[[Path], FileReport], path: Path, file_timeout: float
    ) -> FileReport:
        """Run ``job`` for one file on its own worker thread, waiting at most ``file_timeout``.

        Each file gets a fresh worker so a job that overruns cannot delay the
        files after it.
        """
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(self._run_contained, job, path)
            try:
                return future.result(timeout=file_timeout)
            except concurrent.futures.TimeoutError:
                return self._timed_out(path, file_timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _run_parallel(
        self,
        job: Callable[[Path], FileReport],
        files: list[Path],
        max_workers: int,
        file_timeout: float | None,
    ) -> list[FileReport]:
        """Run ``job`` for each file on a thread pool.

        The timeout only limits how long we wait for each result; a worker that
        is still running cannot be stopped and keeps its thread until it ends.
        """
        reports: list[FileReport] = []
        executor = ThreadPoolExecutor(max_workers=max_workers)
        try:
            futures: dict[Future[FileReport], Path] = {
                executor.submit(self._run_contained, job, path): path for path in files
            }
            for future, path in futures.items():
                try:
                    reports.append(future.result(timeout=file_timeout))
                except concurrent.futures.TimeoutError:
                    future.cancel()
                    reports.append(self._timed_out(path, file_timeout))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return reports
