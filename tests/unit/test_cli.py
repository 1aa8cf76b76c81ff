"""Unit tests for CLI commands in script_idiom_checker.cli.main."""

import json
import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from script_idiom_checker import __version__
from script_idiom_checker.cli.main import cli, exit_code_for
from script_idiom_checker.core.checker import IdiomChecker
from script_idiom_checker.core.models import CheckFailure, FailureKind, FileReport
from script_idiom_checker.rules import DEFAULT_RULES, TernaryRule

TERNARY_SOURCE = "if(c.Boolean) then c.Color = 'red' else c.Color = 'green' end\n"
TERNARY_FIXED = "c.Color = c.Boolean and 'red' or 'green'\n"


@pytest.fixture(autouse=True)
def restore_root_logging() -> Iterator[None]:
    """Undo the root logger changes made by ``configure_logging``."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestExitCode:
    """Tests for exit_code_for."""

    def test_clean(self) -> None:
        assert exit_code_for([FileReport("a.lua")]) == 0
        assert exit_code_for([]) == 0

    def test_failure_beats_diagnostics(self) -> None:
        flagged = IdiomChecker().check_source(TERNARY_SOURCE, path="a.lua")
        failed = FileReport("b.lua", failure=CheckFailure("b.lua", FailureKind.TIMEOUT, "slow"))
        assert exit_code_for([flagged]) == 1
        assert exit_code_for([flagged, failed]) == 2

    def test_rule_error_beats_diagnostics(self) -> None:
        error = CheckFailure("a.lua", FailureKind.RULE_EVALUATION_ERROR, "Rule 'x' failed")
        assert exit_code_for([FileReport("a.lua", rule_errors=(error,))]) == 2


class TestCheckCommand:
    """Tests for the check command."""

    def test_clean_file_exits_zero(
        self, runner: CliRunner, write_script: Callable[[str, str], Path]
    ) -> None:
        path = write_script("clean.lua", "x = 1\n")
        result = runner.invoke(cli, ["check", str(path)])
        assert result.exit_code == 0
        assert "0 diagnostic(s), 0 error(s), 1 file(s)" in result.output

    def test_diagnostics_exit_one(
        self, runner: CliRunner, write_script: Callable[[str, str], Path]
    ) -> None:
        path = write_script("ternary.lua", TERNARY_SOURCE)
        result = runner.invoke(cli, ["check", str(path)])
        assert result.exit_code == 1
        assert f"{path}:1:1: [ternary-opportunity]" in result.output
        assert "1 diagnostic(s)" in result.output

    def test_parse_error_exits_two(
        self, runner: CliRunner, write_script: Callable[[str, str], Path]
    ) -> None:
        path = write_script("bad.lua", "if x then\n")
        result = runner.invoke(cli, ["check", str(path)])
        assert result.exit_code == 2
        assert "error: [parse-error]" in result.output

    def test_rule_error_is_reported(
        self, runner: CliRunner, write_script: Callable[[str, str], Path]
    ) -> None:
        path = write_script("ternary.lua", TERNARY_SOURCE)
        with patch.object(TernaryRule, "match", side_effect=KeyError("shape")):
            text_result = runner.invoke(cli, ["check", str(path)])
            json_result = runner.invoke(cli, ["check", str(path), "--format", "json"])
        assert text_result.exit_code == 2
        assert f"{path}:1:1: error: [rule-evaluation-error]" in text_result.output
        assert "0 diagnostic(s), 1 error(s), 1 file(s)" in text_result.output
        assert json_result.exit_code == 2
        (record,) = json.loads(json_result.stdout)
        assert record["ruleName"] == "rule-evaluation-error"
        assert record["severity"] == "error"
        assert "KeyError" in record["message"]

    def test_directory_and_extension(self, runner: CliRunner, script_dir: Path) -> None:
        result = runner.invoke(cli, ["check", str(script_dir), "--ext", "txt"])
        assert result.exit_code == 1
        assert "notes.txt" in result.output
        assert "ternary.lua" not in result.output

    def test_json_output(self, runner: CliRunner, script_dir: Path) -> None:
        result = runner.invoke(cli, ["check", str(script_dir), "--format", "json"])
        assert result.exit_code == 1
        records = json.loads(result.stdout)
        assert [record["ruleName"] for record in records] == [
            "redundant-branch-to-boolean",
            "ternary-opportunity",
        ]
        assert records[1]["suggestedFix"] == TERNARY_FIXED.rstrip("\n")

    def test_rule_filter(self, runner: CliRunner, write_script: Callable[[str, str], Path]) -> None:
        path = write_script("ternary.lua", TERNARY_SOURCE)
        result = runner.invoke(cli, ["check", str(path), "--rule", "missing-startup-invocation"])
        assert result.exit_code == 0

    def test_unknown_rule_is_rejected(
        self, runner: CliRunner, write_script: Callable[[str, str], Path]
    ) -> None:
        path = write_script("ternary.lua", TERNARY_SOURCE)
        result = runner.invoke(cli, ["check", str(path), "--rule", "nope"])
        assert result.exit_code == 2
        assert "Invalid value" in result.output

    def test_min_severity(self, runner: CliRunner, write_script: Callable[[str, str], Path]) -> None:
        path = write_script("unsafe.lua", "if c then t = x else t = 1 end\n")
        assert runner.invoke(cli, ["check", str(path)]).exit_code == 1
        result = runner.invoke(cli, ["check", str(path), "--min-severity", "warning"])
        assert result.exit_code == 0

    def test_fix_rewrites_file(
        self, runner: CliRunner, write_script: Callable[[str, str], Path]
    ) -> None:
        path = write_script("ternary.lua", TERNARY_SOURCE)
        result = runner.invoke(cli, ["check", str(path), "--fix"])
        assert result.exit_code == 0
        assert path.read_text() == TERNARY_FIXED
        assert "applied 1 fix(es)" in result.output

    def test_dry_run_prints_diff(
        self, runner: CliRunner, write_script: Callable[[str, str], Path]
    ) -> None:
        path = write_script("ternary.lua", TERNARY_SOURCE)
        result = runner.invoke(cli, ["check", str(path), "--dry-run"])
        assert result.exit_code == 1
        assert path.read_text() == TERNARY_SOURCE
        assert "+" + TERNARY_FIXED in result.output
        assert "would apply 1 fix(es)" in result.output

    def test_parallel(self, runner: CliRunner, script_dir: Path) -> None:
        result = runner.invoke(
            cli, ["check", str(script_dir), "--parallel", "--max-workers", "2", "--timeout", "10"]
        )
        assert result.exit_code == 1
        assert "2 diagnostic(s), 0 error(s), 3 file(s)" in result.output

    def test_environment_configuration(self, runner: CliRunner, script_dir: Path) -> None:
        result = runner.invoke(cli, ["check", str(script_dir)], env={"SIC_FORMAT": "json"})
        assert result.exit_code == 1
        assert len(json.loads(result.stdout)) == 2

    def test_config_file(
        self, runner: CliRunner, script_dir: Path, tmp_path: Path
    ) -> None:
        config_file = tmp_path / "script-idioms.yaml"
        config_file.write_text("rules: [missing-startup-invocation]\n")
        result = runner.invoke(cli, ["check", str(script_dir), "--config", str(config_file)])
        assert result.exit_code == 0

    def test_missing_config_file(
        self, runner: CliRunner, script_dir: Path, tmp_path: Path
    ) -> None:
        result = runner.invoke(
            cli, ["check", str(script_dir), "--config", str(tmp_path / "missing.yaml")]
        )
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_invalid_environment(self, runner: CliRunner, script_dir: Path) -> None:
        result = runner.invoke(cli, ["check", str(script_dir)], env={"SIC_RULES": "nope"})
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_missing_path(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["check", str(tmp_path / "missing.lua")])
        assert result.exit_code == 2

    def test_log_file(
        self, runner: CliRunner, write_script: Callable[[str, str], Path], tmp_path: Path
    ) -> None:
        path = write_script("ternary.lua", TERNARY_SOURCE)
        log_file = tmp_path / "checker.log"
        result = runner.invoke(
            cli,
            ["check", str(path), "--log-level", "info", "--log-file", str(log_file)],
        )
        assert result.exit_code == 1
        assert "Checking 1 file(s)" in log_file.read_text()


class TestRulesCommand:
    """Tests for the rules command."""

    def test_lists_every_rule(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["rules"], env={"COLUMNS": "200"})
        assert result.exit_code == 0
        for rule in DEFAULT_RULES:
            assert rule.name in result.output
        assert result.output.index("redundant-branch-to-boolean") < result.output.index(
            "ternary-opportunity"
        )


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output
