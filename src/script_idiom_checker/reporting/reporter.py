"""Aggregation and rendering of rule matches.

The Reporter turns the unordered match results of any subset of rules into a
deterministic list of Diagnostics and renders file reports as text or JSON.
It has no side effects; printing is left to the caller.
"""

import json
import logging
from collections.abc import Iterable
from typing import Any

from script_idiom_checker.core.models import (
    CheckFailure,
    Diagnostic,
    FileReport,
    MatchResult,
    Severity,
    Span,
)

logger = logging.getLogger(__name__)


class Reporter:
    """Deduplicates, sorts and renders diagnostics."""

    def __init__(self, min_severity: Severity = Severity.INFO) -> None:
        """Initialize the reporter.

        Args:
            min_severity: Diagnostics below this severity are dropped.
        """
        self.min_severity = min_severity

    @staticmethod
    def deduplicate(matches: Iterable[MatchResult]) -> list[MatchResult]:
        """Keep one match per identical span.

        The match with the highest specificity wins; ties are broken by rule
        name so the outcome never depends on the order rules ran in.
        """
        best: dict[Span, MatchResult] = {}
        for match in matches:
            current = best.get(match.span)
            if current is None or (-match.specificity, match.rule_name) < (
                -current.specificity,
                current.rule_name,
            ):
                best[match.span] = match
        return list(best.values())

    def build_diagnostics(self, path: str, matches: Iterable[MatchResult]) -> list[Diagnostic]:
        """Produce sorted, deduplicated diagnostics for one file.

        Args:
            path: Path the diagnostics refer to.
            matches: Match results from any subset of rules, in any order.

        Returns:
            list[Diagnostic]: Diagnostics ordered by (line, col, rule name).
        """
        kept = self.deduplicate(matches)
        diagnostics = [
            Diagnostic(
                path=path,
                rule_name=match.rule_name,
                severity=match.severity,
                span=match.span,
                message=match.message,
                suggested_fix=match.replacement,
            )
            for match in kept
            if match.severity.rank >= self.min_severity.rank
        ]
        diagnostics.sort(key=lambda d: (d.line, d.col, d.rule_name))
        logger.debug(f"{path}: {len(diagnostics)} diagnostic(s) after dedupe")
        return diagnostics

    @staticmethod
    def format_diagnostic(diagnostic: Diagnostic) -> str:
        """Render ``path:line:col: [rule] message``."""
        return (
            f"{diagnostic.path}:{diagnostic.line}:{diagnostic.col}: "
            f"[{diagnostic.rule_name}] {diagnostic.message}"
        )

    @staticmethod
    def format_failure(failure: CheckFailure) -> str:
        """Render ``path:line:col: error: [kind] message``."""
        return (
            f"{failure.path}:{failure.line}:{failure.col}: error: "
            f"[{failure.kind}] {failure.message}"
        )

    def render_text(self, reports: Iterable[FileReport]) -> list[str]:
        """Render file reports as one line per failure, rule error or diagnostic."""
        lines: list[str] = []
        for report in reports:
            if report.failure is not None:
                lines.append(self.format_failure(report.failure))
            lines.extend(self.format_failure(error) for error in report.rule_errors)
            lines.extend(self.format_diagnostic(d) for d in report.diagnostics)
        return lines

    @staticmethod
    def failure_record(failure: CheckFailure) -> dict[str, Any]:
        """Convert a failure or rule error to an error-severity record."""
        return {
            "path": failure.path,
            "line": failure.line,
            "col": failure.col,
            "ruleName": str(failure.kind),
            "message": failure.message,
            "severity": "error",
        }

    @classmethod
    def to_records(cls, reports: Iterable[FileReport]) -> list[dict[str, Any]]:
        """Convert file reports to JSON-serializable records."""
        records: list[dict[str, Any]] = []
        for report in reports:
            if report.failure is not None:
                records.append(cls.failure_record(report.failure))
            records.extend(cls.failure_record(error) for error in report.rule_errors)
            for diagnostic in report.diagnostics:
                record: dict[str, Any] = {
                    "path": diagnostic.path,
                    "line": diagnostic.line,
                    "col": diagnostic.col,
                    "ruleName": diagnostic.rule_name,
                    "message": diagnostic.message,
                    "severity": str(diagnostic.severity),
                }
                if diagnostic.suggested_fix is not None:
                    record["suggestedFix"] = diagnostic.suggested_fix
                records.append(record)
        return records

    def render_json(self, reports: Iterable[FileReport]) -> str:
        """Render file reports as a JSON array."""
        return json.dumps(self.to_records(reports), indent=2)
