"""Automatic application of suggested fixes."""

from script_idiom_checker.fixes.fixer import FixApplier, FixOutcome, TextEdit

__all__ = ["FixApplier", "FixOutcome", "TextEdit"]
