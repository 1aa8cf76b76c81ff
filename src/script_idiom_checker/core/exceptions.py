"""Exception classes for the idiom checker.

Errors are contained at file granularity: a ParseError, SourceReadError or
SourceWriteError stops the processing of one file but never the batch, and a
RuleEvaluationError only voids the match of a single rule on a single node.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from script_idiom_checker.core.models import Span


class CheckerError(Exception):
    """Base class for all errors raised by the checker."""


class ParseError(CheckerError):
    """Raised when script source text is not syntactically valid.

    Attributes:
        message: Human-readable description of the problem.
        line: 1-based line of the offending token.
        col: 1-based column of the offending token.
    """

    def __init__(self, message: str, line: int, col: int) -> None:
        """Initialize the parse error with its source location."""
        super().__init__(f"{message} (line {line}, column {col})")
        self.message = message
        self.line = line
        self.col = col


class RuleEvaluationError(CheckerError):
    """Raised when a pattern rule faults on an unexpected tree shape.

    Attributes:
        rule_name: Name of the rule that failed.
        span: Span of the node being evaluated, if known.
        cause: The underlying exception.
    """

    def __init__(self, rule_name: str, span: Span | None, cause: BaseException) -> None:
        """Initialize the error with the failing rule and node location."""
        where = f" at line {span.start_line}, column {span.start_col}" if span else ""
        super().__init__(
            f"Rule '{rule_name}' failed{where}: {cause.__class__.__name__}: {cause}"
        )
        self.rule_name = rule_name
        self.span = span
        self.cause = cause


class SourceReadError(CheckerError):
    """Raised when a script file cannot be read or decoded."""

    def __init__(self, path: str, cause: BaseException) -> None:
        """Initialize the error with the failing path."""
        super().__init__(f"Cannot access {path}: {cause}")
        self.path = path
        self.cause = cause


class SourceWriteError(CheckerError):
    """Raised when fixed text cannot be written back to a script file."""

    def __init__(self, path: str, cause: BaseException) -> None:
        """Initialize the error with the failing path."""
        super().__init__(f"Cannot write {path}: {cause}")
        self.path = path
        self.cause = cause


class FixValidationError(CheckerError):
    """Raised when applying fixes produced text that no longer parses."""

    def __init__(self, path: str, cause: ParseError) -> None:
        """Initialize the error with the path and the parse failure of the fixed text."""
        super().__init__(f"Fixed text of {path} no longer parses: {cause}")
        self.path = path
        self.cause = cause
