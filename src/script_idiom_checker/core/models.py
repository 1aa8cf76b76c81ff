"""Data models shared by the parser, the rules, the reporter and the CLI.

All models are immutable. A SourceUnit is loaded once per file; spans,
match results and diagnostics are produced during a run and never mutated.
"""

from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum


class Severity(str, Enum):
    """Severity of a reported finding, ordered info < warning < error."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        """Numeric rank used for threshold comparisons."""
        return _SEVERITY_RANK[self]

    def __str__(self) -> str:
        """Return string representation of the severity."""
        return self.value


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2}


class FailureKind(str, Enum):
    """Kinds of errors reported for a file.

    All but RULE_EVALUATION_ERROR stop the analysis of the file; a rule
    evaluation error only skips one rule on one node.
    """

    PARSE_ERROR = "parse-error"
    IO_ERROR = "io-error"
    TIMEOUT = "timeout"
    INTERNAL_ERROR = "internal-error"
    RULE_EVALUATION_ERROR = "rule-evaluation-error"

    def __str__(self) -> str:
        """Return string representation of the failure kind."""
        return self.value


@dataclass(frozen=True, slots=True)
class Span:
    """Half-open character range [start, end) with 1-based line/column coordinates."""

    start: int
    end: int
    start_line: int
    start_col: int
    end_line: int
    end_col: int

    def overlaps(self, other: "Span") -> bool:
        """Return True if the two spans share at least one character."""
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class SourceUnit:
    """The text of one script; immutable once loaded.

    Attributes:
        path: Display path of the script (file path, or "<string>" for inline text).
        text: Full source text.
    """

    path: str
    text: str
    _line_starts: tuple[int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Index line start offsets for offset-to-position conversion."""
        starts = [0]
        for index, char in enumerate(self.text):
            if char == "\n":
                starts.append(index + 1)
        object.__setattr__(self, "_line_starts", tuple(starts))

    def position(self, offset: int) -> tuple[int, int]:
        """Convert a character offset to a 1-based (line, column) pair."""
        line_index = bisect_right(self._line_starts, offset) - 1
        return line_index + 1, offset - self._line_starts[line_index] + 1

    def span(self, start: int, end: int) -> Span:
        """Build a Span for the half-open offset range [start, end)."""
        start_line, start_col = self.position(start)
        end_line, end_col = self.position(end)
        return Span(start, end, start_line, start_col, end_line, end_col)

    def slice(self, span: Span) -> str:
        """Return the source text covered by ``span``."""
        return self.text[span.start : span.end]

    @property
    def newline(self) -> str:
        """Line terminator used by the text (CRLF if any line uses it)."""
        return "\r\n" if "\r\n" in self.text else "\n"

    def indentation_at(self, offset: int) -> str:
        """Return the leading whitespace of the line containing ``offset``."""
        line_start = self._line_starts[bisect_right(self._line_starts, offset) - 1]
        indent_end = line_start
        while indent_end < len(self.text) and self.text[indent_end] in " \t":
            indent_end += 1
        return self.text[line_start:indent_end]


@dataclass(frozen=True, slots=True)
class MatchResult:
    """A single rule match, before deduplication and rendering.

    Attributes:
        rule_name: Name of the rule that matched.
        span: Source span of the matched construct.
        message: Explanation of the finding.
        severity: Severity of the finding.
        specificity: Rank used when several rules match the same span; higher wins.
        replacement: Replacement text for ``span``; only set when the rewrite is safe.
    """

    rule_name: str
    span: Span
    message: str
    severity: Severity
    specificity: int
    replacement: str | None = None


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A reported finding with its location and optional suggested fix."""

    path: str
    rule_name: str
    severity: Severity
    span: Span
    message: str
    suggested_fix: str | None = None

    @property
    def line(self) -> int:
        """1-based line where the finding starts."""
        return self.span.start_line

    @property
    def col(self) -> int:
        """1-based column where the finding starts."""
        return self.span.start_col


@dataclass(frozen=True, slots=True)
class CheckFailure:
    """An error reported for a file, with the location it refers to."""

    path: str
    kind: FailureKind
    message: str
    line: int = 1
    col: int = 1


@dataclass(frozen=True, slots=True)
class FileReport:
    """Result of checking one file.

    Attributes:
        path: Path of the checked file.
        diagnostics: Sorted, deduplicated diagnostics for the file.
        failure: File-level failure, if the file could not be analyzed.
        rule_errors: Rule evaluations that faulted and were skipped.
        fixes_applied: Number of suggested fixes applied to the file text.
        fix_diff: Unified diff of the fixes, set in dry-run mode.
    """

    path: str
    diagnostics: tuple[Diagnostic, ...] = ()
    failure: CheckFailure | None = None
    rule_errors: tuple[CheckFailure, ...] = ()
    fixes_applied: int = 0
    fix_diff: str = ""

    @property
    def ok(self) -> bool:
        """True when the file was analyzed without a file-level failure."""
        return self.failure is None
