"""Unit tests for FixApplier in script_idiom_checker.fixes.fixer."""

from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

import pytest

from script_idiom_checker.analysis.context import AnalysisContext
from script_idiom_checker.core.checker import IdiomChecker
from script_idiom_checker.core.exceptions import FixValidationError
from script_idiom_checker.core.models import (
    Diagnostic,
    FailureKind,
    MatchResult,
    Severity,
    SourceUnit,
)
from script_idiom_checker.fixes.fixer import FixApplier, TextEdit
from script_idiom_checker.rules import PatternRule
from script_idiom_checker.syntax.nodes import NodeKind, SyntaxNode

MIXED_SOURCE = (
    "local ok = true\n"
    "for i = 1, 3 do if not t[i] then ok = false end end\n"
    "if(x.Boolean) then y.Boolean = true else y.Boolean = false end\n"
    "if c then t = 'a' else t = 'b' end\n"
    "Controls.Mute.EventHandler = function(ctl) print(ctl.Boolean) end\n"
)
MIXED_FIXED = (
    "local ok = true\n"
    "for i = 1, 3 do if not t[i] then ok = false break end end\n"
    "y.Boolean = x.Boolean\n"
    "t = c and 'a' or 'b'\n"
    "Controls.Mute.EventHandler = function(ctl) print(ctl.Boolean) end\n"
    "Controls.Mute.EventHandler(Controls.Mute)\n"
)
NESTED_SOURCE = "if a then\n  if b then t = 1 else t = 2 end\nelse\n  t = 3\nend\n"


class BrokenRewriteRule(PatternRule):
    """Test rule whose suggested fix does not parse."""

    name = "broken-rewrite"
    description = "produces an invalid replacement"
    specificity = 5
    node_kinds = frozenset({NodeKind.ASSIGNMENT})

    def match(self, node: SyntaxNode, context: AnalysisContext) -> MatchResult | None:
        return self.result(node, "always", replacement="x = = 1")


def _unit(text: str) -> SourceUnit:
    return SourceUnit(path="test.lua", text=text)


def _diagnostic(unit: SourceUnit, start: int, end: int, fix: str, rule: str = "r") -> Diagnostic:
    return Diagnostic(unit.path, rule, Severity.WARNING, unit.span(start, end), "m", fix)


class TestEditSelection:
    """Tests for choosing and applying text edits."""

    def test_overlapping_edits_keep_the_earliest(self) -> None:
        unit = _unit("abcdefghij")
        diagnostics = [
            _diagnostic(unit, 4, 8, "X", "later"),
            _diagnostic(unit, 2, 6, "Y", "earlier"),
            _diagnostic(unit, 8, 10, "Z", "adjacent"),
        ]
        edits = FixApplier.select_edits(diagnostics)
        assert [e.rule_name for e in edits] == ["earlier", "adjacent"]

    def test_diagnostics_without_fix_are_ignored(self) -> None:
        unit = _unit("abc")
        diagnostic = Diagnostic(unit.path, "r", Severity.INFO, unit.span(0, 1), "m")
        assert FixApplier.select_edits([diagnostic]) == []

    def test_apply_edits_back_to_front(self) -> None:
        unit = _unit("one two three")
        edits = [
            TextEdit(unit.span(0, 3), "1", "a"),
            TextEdit(unit.span(8, 13), "3333", "b"),
        ]
        assert FixApplier.apply_edits(unit.text, edits) == "1 two 3333"


class TestFixUnit:
    """Tests for in-memory fixing."""

    def test_fixes_are_idempotent(self) -> None:
        checker = IdiomChecker()
        outcome = FixApplier(checker).fix_unit(_unit(MIXED_SOURCE))
        assert outcome.text == MIXED_FIXED
        assert outcome.fixes_applied == 4
        assert outcome.report.diagnostics == ()
        assert checker.check_source(outcome.text).diagnostics == ()

    def test_fix_exposing_another_fix_needs_second_pass(self) -> None:
        outcome = FixApplier(IdiomChecker()).fix_unit(_unit(NESTED_SOURCE))
        assert outcome.text == "t = a and (b and 1 or 2) or 3\n"
        assert outcome.fixes_applied == 2

    def test_max_passes_limits_iterations(self) -> None:
        outcome = FixApplier(IdiomChecker(), max_passes=1).fix_unit(_unit(NESTED_SOURCE))
        assert outcome.fixes_applied == 1
        assert [d.rule_name for d in outcome.report.diagnostics] == ["ternary-opportunity"]

    def test_unsafe_matches_are_not_rewritten(self) -> None:
        source = "if c then t = x else t = 1 end\n"
        outcome = FixApplier(IdiomChecker()).fix_unit(_unit(source))
        assert outcome.text == source
        assert outcome.fixes_applied == 0
        assert len(outcome.report.diagnostics) == 1

    def test_invalid_fix_raises(self) -> None:
        applier = FixApplier(IdiomChecker(rules=[BrokenRewriteRule()]))
        with pytest.raises(FixValidationError) as exc_info:
            applier.fix_unit(_unit("x = 1\n"))
        assert exc_info.value.cause.line == 1

    def test_max_passes_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="max_passes"):
            FixApplier(IdiomChecker(), max_passes=0)


class TestFixFile:
    """Tests for fixing files on disk."""

    def test_writes_fixed_text(self, write_script: Callable[[str, str], Path]) -> None:
        path = write_script("mixed.lua", MIXED_SOURCE)
        report = FixApplier(IdiomChecker()).fix_file(path)
        assert report.failure is None
        assert report.fixes_applied == 4
        assert report.diagnostics == ()
        assert path.read_text() == MIXED_FIXED

    def test_preserves_crlf(self, tmp_path: Path) -> None:
        path = tmp_path / "crlf.lua"
        path.write_bytes(b"if c then\r\n  t = 1\r\nelse\r\n  t = 2\r\nend\r\nx = 1\r\n")
        FixApplier(IdiomChecker()).fix_file(path)
        assert path.read_bytes() == b"t = c and 1 or 2\r\nx = 1\r\n"

    def test_dry_run_leaves_file_untouched(self, write_script: Callable[[str, str], Path]) -> None:
        source = "if c then t = 1 else t = 2 end\n"
        path = write_script("dry.lua", source)
        report = FixApplier(IdiomChecker(), dry_run=True).fix_file(path)
        assert path.read_text() == source
        assert report.fixes_applied == 1
        assert [d.rule_name for d in report.diagnostics] == ["ternary-opportunity"]
        assert f"--- a/{path}" in report.fix_diff
        assert "-if c then t = 1 else t = 2 end" in report.fix_diff
        assert "+t = c and 1 or 2" in report.fix_diff

    def test_invalid_fix_is_not_written(self, write_script: Callable[[str, str], Path]) -> None:
        path = write_script("broken.lua", "x = 1\n")
        report = FixApplier(IdiomChecker(rules=[BrokenRewriteRule()])).fix_file(path)
        assert report.failure is not None
        assert report.failure.kind is FailureKind.INTERNAL_ERROR
        assert "no longer parses" in report.failure.message
        assert path.read_text() == "x = 1\n"

    def test_parse_error_is_reported(self, write_script: Callable[[str, str], Path]) -> None:
        path = write_script("bad.lua", "x = 1\ny = = 2\n")
        report = FixApplier(IdiomChecker()).fix_file(path)
        assert report.failure is not None
        assert report.failure.kind is FailureKind.PARSE_ERROR
        assert report.failure.line == 2

    def test_missing_file_is_io_error(self, tmp_path: Path) -> None:
        report = FixApplier(IdiomChecker()).fix_file(tmp_path / "missing.lua")
        assert report.failure is not None
        assert report.failure.kind is FailureKind.IO_ERROR

    def test_write_failure_is_io_error(self, write_script: Callable[[str, str], Path]) -> None:
        source = "if c then t = 1 else t = 2 end\n"
        path = write_script("locked.lua", source)
        with patch.object(Path, "replace", side_effect=OSError("read-only file system")):
            report = FixApplier(IdiomChecker()).fix_file(path)
        assert report.failure is not None
        assert report.failure.kind is FailureKind.IO_ERROR
        assert report.failure.message == "read-only file system"
        assert path.read_text() == source

    def test_clean_file_is_not_rewritten(self, write_script: Callable[[str, str], Path]) -> None:
        path = write_script("clean.lua", "x = 1\n")
        before = path.stat().st_mtime_ns
        report = FixApplier(IdiomChecker()).fix_file(path)
        assert report.fixes_applied == 0
        assert path.stat().st_mtime_ns == before
