"""Unit tests for IdiomChecker in script_idiom_checker.core.checker."""

import threading
from collections.abc import Callable
from pathlib import Path

import pytest

from script_idiom_checker.analysis.context import AnalysisContext
from script_idiom_checker.config import ConfigError, RuntimeConfig
from script_idiom_checker.core.checker import IdiomChecker
from script_idiom_checker.core.exceptions import ParseError
from script_idiom_checker.core.models import (
    FailureKind,
    FileReport,
    MatchResult,
    Severity,
    SourceUnit,
)
from script_idiom_checker.rules import PatternRule, TernaryRule
from script_idiom_checker.syntax.nodes import NodeKind, SyntaxNode

TERNARY_SOURCE = "if(c.Boolean) then c.Color = 'red' else c.Color = 'green' end\n"


class FaultyRule(PatternRule):
    """Test rule that always raises."""

    name = "faulty"
    description = "raises on every assignment"
    specificity = 1
    node_kinds = frozenset({NodeKind.ASSIGNMENT})

    def match(self, node: SyntaxNode, context: AnalysisContext) -> MatchResult | None:
        raise KeyError("boom")


class TestSingleUnit:
    """Tests for checking one source."""

    def test_check_source_reports_diagnostics(self, checker: IdiomChecker) -> None:
        report = checker.check_source(TERNARY_SOURCE, path="t.lua")
        assert report.ok
        assert report.path == "t.lua"
        assert [d.rule_name for d in report.diagnostics] == ["ternary-opportunity"]
        assert report.diagnostics[0].suggested_fix == "c.Color = c.Boolean and 'red' or 'green'"

    def test_parse_error_becomes_failure(self, checker: IdiomChecker) -> None:
        report = checker.check_source("x = 1\ny = = 2\n")
        assert report.failure is not None
        assert report.failure.kind is FailureKind.PARSE_ERROR
        assert report.failure.line == 2
        assert report.diagnostics == ()

    def test_analyze_raises_parse_error(self, checker: IdiomChecker) -> None:
        with pytest.raises(ParseError):
            checker.analyze(SourceUnit(path="x.lua", text="if"))

    def test_rule_fault_is_contained(self) -> None:
        checker = IdiomChecker(rules=[FaultyRule(), TernaryRule()])
        report = checker.check_source(TERNARY_SOURCE)
        assert report.failure is None
        assert [d.rule_name for d in report.diagnostics] == ["ternary-opportunity"]
        assert len(report.rule_errors) == 2
        error = report.rule_errors[0]
        assert error.kind is FailureKind.RULE_EVALUATION_ERROR
        assert (error.line, error.col) == (1, 20)
        assert "Rule 'faulty' failed at line 1" in error.message
        assert "KeyError" in error.message

    def test_min_severity(self) -> None:
        source = "if c then t = x else t = 1 end\n"
        assert IdiomChecker().check_source(source).diagnostics[0].severity is Severity.INFO
        assert IdiomChecker(min_severity=Severity.WARNING).check_source(source).diagnostics == ()

    def test_deeply_nested_source_is_internal_error(self, checker: IdiomChecker) -> None:
        source = "x = " + "(" * 5000 + "1" + ")" * 5000 + "\n"
        report = checker.check_source(source)
        assert report.failure is not None
        assert report.failure.kind is FailureKind.INTERNAL_ERROR


class TestFromConfig:
    """Tests for building a checker from RuntimeConfig."""

    def test_selected_rules(self) -> None:
        config = RuntimeConfig.from_defaults().merge_with_cli(rules=("ternary-opportunity",))
        checker = IdiomChecker.from_config(config)
        assert [rule.name for rule in checker.rules] == ["ternary-opportunity"]

    def test_unknown_rule(self) -> None:
        config = RuntimeConfig.from_defaults().merge_with_cli(rules=("no-such-rule",))
        with pytest.raises(ConfigError, match="Unknown rule"):
            IdiomChecker.from_config(config)


class TestBatch:
    """Tests for checking files and directories."""

    def test_directory_scan(self, checker: IdiomChecker, script_dir: Path) -> None:
        reports = checker.check_paths([script_dir])
        assert [Path(r.path).relative_to(script_dir).as_posix() for r in reports] == [
            "clean.lua",
            "nested/redundant.lua",
            "ternary.lua",
        ]
        assert reports[0].diagnostics == ()
        assert reports[1].diagnostics[0].rule_name == "redundant-branch-to-boolean"
        assert reports[2].diagnostics[0].rule_name == "ternary-opportunity"

    def test_explicit_file_is_always_checked(self, checker: IdiomChecker, script_dir: Path) -> None:
        reports = checker.check_paths([script_dir / "notes.txt"])
        assert len(reports) == 1
        assert reports[0].diagnostics[0].rule_name == "ternary-opportunity"

    def test_extensions(self, checker: IdiomChecker, script_dir: Path) -> None:
        reports = checker.check_paths([script_dir], extensions=(".txt",))
        assert [Path(r.path).name for r in reports] == ["notes.txt"]

    def test_duplicates_are_collapsed(self, checker: IdiomChecker, script_dir: Path) -> None:
        reports = checker.check_paths([script_dir, script_dir / "clean.lua"])
        assert len(reports) == 3

    def test_unreadable_file_does_not_stop_batch(
        self, checker: IdiomChecker, script_dir: Path
    ) -> None:
        (script_dir / "binary.lua").write_bytes(b"\xff\xfe\x00x = 1")
        reports = checker.check_paths([script_dir])
        by_name = {Path(r.path).name: r for r in reports}
        assert len(reports) == 4
        failure = by_name["binary.lua"].failure
        assert failure is not None
        assert failure.kind is FailureKind.IO_ERROR
        assert by_name["ternary.lua"].diagnostics

    def test_missing_file(self, checker: IdiomChecker, tmp_path: Path) -> None:
        (report,) = checker.check_paths([tmp_path / "gone.lua"])
        assert report.failure is not None
        assert report.failure.kind is FailureKind.IO_ERROR

    def test_parallel_matches_sequential(self, checker: IdiomChecker, script_dir: Path) -> None:
        sequential = checker.check_paths([script_dir])
        parallel = checker.check_paths([script_dir], parallel=True, max_workers=3)
        assert parallel == sequential

    def test_processor_exception_is_contained(
        self, checker: IdiomChecker, write_script: Callable[[str, str], Path]
    ) -> None:
        good = write_script("good.lua", "x = 1\n")
        bad = write_script("bad.lua", "x = 1\n")

        def job(path: Path) -> FileReport:
            if path == bad:
                raise RuntimeError("worker crashed")
            return checker.check_file(path)

        for parallel in (False, True):
            reports = checker.check_paths([good, bad], parallel=parallel, processor=job)
            assert [Path(r.path).name for r in reports] == ["bad.lua", "good.lua"]
            assert reports[0].failure is not None
            assert reports[0].failure.kind is FailureKind.INTERNAL_ERROR
            assert reports[0].failure.message == "worker crashed"
            assert reports[1].ok

    @pytest.mark.parametrize("parallel", [False, True])
    def test_timeout_yields_failure(
        self, checker: IdiomChecker, write_script: Callable[[str, str], Path], parallel: bool
    ) -> None:
        fast = write_script("fast.lua", "x = 1\n")
        slow = write_script("slow.lua", "x = 1\n")
        release = threading.Event()

        def job(path: Path) -> FileReport:
            if path == slow:
                release.wait(5)
            return checker.check_file(path)

        try:
            reports = checker.check_paths(
                [fast, slow], parallel=parallel, max_workers=2, file_timeout=0.05, processor=job
            )
        finally:
            release.set()

        assert reports[0].ok
        failure = reports[1].failure
        assert failure is not None
        assert failure.kind is FailureKind.TIMEOUT
        assert "0.05s" in failure.message

    def test_sequential_timeout_does_not_delay_later_files(
        self, checker: IdiomChecker, write_script: Callable[[str, str], Path]
    ) -> None:
        first = write_script("a_slow.lua", "x = 1\n")
        second = write_script("b_fast.lua", "x = 1\n")
        release = threading.Event()

        def job(path: Path) -> FileReport:
            if path == first:
                release.wait(5)
            return checker.check_file(path)

        try:
            reports = checker.check_paths([first, second], file_timeout=0.05, processor=job)
        finally:
            release.set()

        assert reports[0].failure is not None
        assert reports[0].failure.kind is FailureKind.TIMEOUT
        assert reports[1].ok
