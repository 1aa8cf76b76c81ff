"""Test configuration and fixtures."""

from collections.abc import Callable
from pathlib import Path

import pytest

from script_idiom_checker.analysis.context import AnalysisContext
from script_idiom_checker.core.checker import IdiomChecker
from script_idiom_checker.core.models import SourceUnit
from script_idiom_checker.syntax.parser import parse_source

TERNARY_SOURCE = "if(c.Boolean) then c.Color = 'red' else c.Color = 'green' end\n"
REDUNDANT_SOURCE = "if(x.Boolean) then y.Boolean = true else y.Boolean = false end\n"
STARTUP_SOURCE = (
    "function UpdateMute(ctl)\n"
    "  print(ctl.Boolean)\n"
    "end\n"
    "Controls.Mute.EventHandler = UpdateMute\n"
)
CLEAN_SOURCE = (
    "-- volume follows the knob\n"
    "local gain = Controls.Gain\n"
    "function Update(ctl)\n"
    "  Controls.Level.Value = ctl.Value * 2\n"
    "end\n"
    "gain.EventHandler = Update\n"
    "Update(gain)\n"
)


@pytest.fixture
def checker() -> IdiomChecker:
    """
    Provide a checker running every registered rule.

    Returns:
        IdiomChecker: Checker with default rules and severity threshold.
    """
    return IdiomChecker()


@pytest.fixture
def make_context() -> Callable[[str], AnalysisContext]:
    """
    Provide a factory that parses text and builds its analysis context.

    Returns:
        Callable[[str], AnalysisContext]: Factory taking script text.
    """

    def _make(text: str) -> AnalysisContext:
        unit = SourceUnit(path="test.lua", text=text)
        return AnalysisContext.build(unit, parse_source(unit))

    return _make


@pytest.fixture
def script_dir(tmp_path: Path) -> Path:
    """
    Create a small script tree with one clean and two flagged scripts.

    Layout::

        scripts/
            clean.lua
            ternary.lua
            nested/redundant.lua
            notes.txt

    Returns:
        Path: The ``scripts`` directory.
    """
    root = tmp_path / "scripts"
    (root / "nested").mkdir(parents=True)
    (root / "clean.lua").write_text(CLEAN_SOURCE)
    (root / "ternary.lua").write_text(TERNARY_SOURCE)
    (root / "nested" / "redundant.lua").write_text(REDUNDANT_SOURCE)
    (root / "notes.txt").write_text("if x then y = 1 else y = 2 end\n")
    return root


@pytest.fixture
def write_script(tmp_path: Path) -> Callable[[str, str], Path]:
    """
    Provide a helper that writes a script into the temporary directory.

    Returns:
        Callable[[str, str], Path]: Function taking (name, text), returning the path.
    """

    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.write_text(text)
        return path

    return _write
