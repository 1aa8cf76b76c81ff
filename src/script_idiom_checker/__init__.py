"""Script Idiom Checker.

A pattern-conformance checker for control scripts written in the vendor's Lua
dialect: flags missed idioms and offers safe rewrites.
"""

__version__ = "0.1.0"

from .config.runtime_config import OutputFormat, RuntimeConfig
from .core.checker import IdiomChecker
from .core.models import CheckFailure, Diagnostic, FileReport, Severity, SourceUnit, Span
from .fixes.fixer import FixApplier
from .reporting.reporter import Reporter
from .rules import DEFAULT_RULES, PatternRule, get_rules

__all__ = [
    "DEFAULT_RULES",
    "CheckFailure",
    "Diagnostic",
    "FileReport",
    "FixApplier",
    "IdiomChecker",
    "OutputFormat",
    "PatternRule",
    "Reporter",
    "RuntimeConfig",
    "Severity",
    "SourceUnit",
    "Span",
    "get_rules",
]
