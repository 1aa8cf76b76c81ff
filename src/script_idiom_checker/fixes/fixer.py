"""Application of suggested fixes.

The FixApplier collects the diagnostics that carry a suggested replacement,
drops edits that overlap an already-accepted edit, applies the rest back to
front and re-checks the result. Passes repeat until no applicable fixes
remain, since a fix can expose or unblock another one. Files are only written
when the final text still parses.
"""

import difflib
import logging
from dataclasses import dataclass, replace
from pathlib import Path

from script_idiom_checker.core.checker import IdiomChecker
from script_idiom_checker.core.exceptions import (
    FixValidationError,
    ParseError,
    SourceReadError,
    SourceWriteError,
)
from script_idiom_checker.core.models import (
    CheckFailure,
    Diagnostic,
    FailureKind,
    FileReport,
    SourceUnit,
    Span,
)
from script_idiom_checker.security.secure_file_handler import SecureFileHandler

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TextEdit:
    """Replacement of one span of the source text."""

    span: Span
    replacement: str
    rule_name: str


@dataclass(frozen=True, slots=True)
class FixOutcome:
    """Result of fixing one unit in memory.

    Attributes:
        text: The fixed text (the original text if nothing was applied).
        fixes_applied: Number of edits applied across all passes.
        report: Report for the fixed text (diagnostics that remain).
    """

    text: str
    fixes_applied: int
    report: FileReport


class FixApplier:
    """Applies safe suggested fixes produced by an IdiomChecker."""

    def __init__(self, checker: IdiomChecker, max_passes: int = 5, dry_run: bool = False) -> None:
        """Initialize the fix applier.

        Args:
            checker: Checker used to produce and re-check diagnostics.
            max_passes: Maximum number of fix/re-check iterations per unit.
            dry_run: Produce a unified diff instead of writing files.

        Raises:
            ValueError: If max_passes < 1.
        """
        if max_passes < 1:
            raise ValueError(f"max_passes must be >= 1, got {max_passes}")
        self.checker = checker
        self.max_passes = max_passes
        self.dry_run = dry_run

    @staticmethod
    def select_edits(diagnostics: list[Diagnostic] | tuple[Diagnostic, ...]) -> list[TextEdit]:
        """Pick non-overlapping edits from the fixable diagnostics.

        Edits are considered by start offset; an edit overlapping one that was
        already accepted is skipped and left for a later pass.
        """
        candidates = sorted(
            (
                TextEdit(d.span, d.suggested_fix, d.rule_name)
                for d in diagnostics
                if d.suggested_fix is not None
            ),
            key=lambda edit: (edit.span.start, edit.span.end, edit.rule_name),
        )
        accepted: list[TextEdit] = []
        for edit in candidates:
            if any(edit.span.overlaps(other.span) for other in accepted):
                logger.debug(
                    f"Skipping overlapping fix '{edit.rule_name}' at line {edit.span.start_line}"
                )
                continue
            accepted.append(edit)
        return accepted

    @staticmethod
    def apply_edits(text: str, edits: list[TextEdit]) -> str:
        """Apply non-overlapping edits back to front so earlier offsets stay valid."""
        for edit in sorted(edits, key=lambda e: e.span.start, reverse=True):
            text = text[: edit.span.start] + edit.replacement + text[edit.span.end :]
        return text

    def fix_unit(self, unit: SourceUnit) -> FixOutcome:
        """Apply fixes to a unit in memory.

        Args:
            unit: The unit to fix.

        Returns:
            FixOutcome: Fixed text, number of applied edits and the final report.

        Raises:
            ParseError: If the original unit does not parse.
            FixValidationError: If a fixed text no longer parses.
        """
        current = unit
        analysis = self.checker.analyze(current)
        applied = 0
        for pass_number in range(1, self.max_passes + 1):
            edits = self.select_edits(analysis.diagnostics)
            if not edits:
                break
            fixed_text = self.apply_edits(current.text, edits)
            if fixed_text == current.text:
                break
            candidate = SourceUnit(path=unit.path, text=fixed_text)
            try:
                analysis = self.checker.analyze(candidate)
            except ParseError as e:
                raise FixValidationError(unit.path, e) from e
            applied += len(edits)
            current = candidate
            logger.debug(f"{unit.path}: pass {pass_number} applied {len(edits)} fix(es)")

        report = FileReport(
            path=unit.path,
            diagnostics=analysis.diagnostics,
            rule_errors=analysis.rule_errors,
            fixes_applied=applied,
        )
        return FixOutcome(text=current.text, fixes_applied=applied, report=report)

    def fix_file(self, path: Path) -> FileReport:
        """Fix one file in place (or describe the fix as a diff in dry-run mode).

        Read, parse and validation errors are returned as failure reports; the
        file is never written unless the fixed text parses.
        """
        try:
            unit = SecureFileHandler.read_source(path)
        except SourceReadError as e:
            logger.error(str(e))
            return FileReport(
                path=str(path), failure=CheckFailure(str(path), FailureKind.IO_ERROR, str(e.cause))
            )

        try:
            outcome = self.fix_unit(unit)
        except FixValidationError as e:
            logger.error(str(e))
            return FileReport(
                path=unit.path,
                failure=CheckFailure(
                    unit.path, FailureKind.INTERNAL_ERROR, str(e), e.cause.line, e.cause.col
                ),
            )
        except ParseError:
            # Report the original parse error the same way a plain check does.
            return self.checker.check_unit(unit)

        if outcome.fixes_applied == 0:
            return outcome.report

        if self.dry_run:
            diff = "".join(
                difflib.unified_diff(
                    unit.text.splitlines(keepends=True),
                    outcome.text.splitlines(keepends=True),
                    fromfile=f"a/{unit.path}",
                    tofile=f"b/{unit.path}",
                )
            )
            # Nothing is written, so the original findings still stand.
            original = self.checker.check_unit(unit)
            return replace(original, fixes_applied=outcome.fixes_applied, fix_diff=diff)

        try:
            SecureFileHandler.atomic_write(path, outcome.text)
        except SourceWriteError as e:
            logger.error(str(e))
            return FileReport(
                path=unit.path,
                failure=CheckFailure(unit.path, FailureKind.IO_ERROR, str(e.cause)),
            )
        logger.info(f"Applied {outcome.fixes_applied} fix(es) to {unit.path}")
        return outcome.report

