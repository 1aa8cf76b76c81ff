"""Base class for pattern rules.

This module provides the abstract base class that all idiom matchers implement,
plus helpers for rendering rewritten expressions from source slices.
"""

from abc import ABC, abstractmethod
from typing import ClassVar

from script_idiom_checker.analysis.context import AnalysisContext
from script_idiom_checker.core.models import MatchResult, Severity
from script_idiom_checker.syntax.nodes import (
    Assignment,
    BinaryOp,
    Block,
    If,
    NodeKind,
    SyntaxNode,
    UnaryOp,
    unparen,
)
from script_idiom_checker.syntax.parser import BINARY_PRIORITY, UNARY_PRIORITY

# Priority of atoms (names, literals, calls, member access).
ATOM_PRIORITY = 100


class PatternRule(ABC):
    """Abstract base class for idiom matchers.

    Rules are stateless: ``match`` only reads the node and the analysis context,
    so rules can be evaluated in any order, or any subset, with the same result.

    Attributes:
        name: Rule identifier used in reports and on the command line.
        description: One-line description shown by ``script-idioms rules``.
        specificity: Dedupe rank; when rules match the same span the higher wins.
        default_severity: Severity of a typical match.
        node_kinds: Node kinds the rule inspects; other nodes are never passed in.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    specificity: ClassVar[int]
    default_severity: ClassVar[Severity] = Severity.WARNING
    node_kinds: ClassVar[frozenset[NodeKind]]

    @abstractmethod
    def match(self, node: SyntaxNode, context: AnalysisContext) -> MatchResult | None:
        """Test ``node`` against the idiom.

        Args:
            node: A node whose kind is in ``node_kinds``.
            context: Analysis context of the unit the node belongs to.

        Returns:
            MatchResult | None: The match, or None if the node does not match.
        """

    def result(
        self,
        node: SyntaxNode,
        message: str,
        severity: Severity | None = None,
        replacement: str | None = None,
    ) -> MatchResult:
        """Build a MatchResult for ``node`` attributed to this rule."""
        return MatchResult(
            rule_name=self.name,
            span=node.span,
            message=message,
            severity=severity or self.default_severity,
            specificity=self.specificity,
            replacement=replacement,
        )

    def __repr__(self) -> str:
        """Return a short representation including the rule name."""
        return f"{self.__class__.__name__}(name={self.name!r})"


def expression_priority(node: SyntaxNode) -> int:
    """Binding priority of an expression, as used by the parser."""
    if isinstance(node, BinaryOp):
        return BINARY_PRIORITY[node.op][0]
    if isinstance(node, UnaryOp):
        return UNARY_PRIORITY
    return ATOM_PRIORITY


def render_operand(context: AnalysisContext, node: SyntaxNode, min_priority: int) -> str:
    """Render ``node`` from source so it binds at least as tightly as ``min_priority``.

    Redundant enclosing parentheses are dropped; parentheses are added back only
    when the expression would otherwise bind looser than required.
    """
    inner = unparen(node)
    text = context.text(inner)
    if expression_priority(inner) < min_priority:
        return f"({text})"
    return text


def branch_assignment(block: Block) -> Assignment | None:
    """Return the single-target assignment a branch consists of, if any."""
    if len(block.statements) != 1:
        return None
    statement = block.statements[0]
    if isinstance(statement, Assignment) and len(statement.targets) == 1 and len(statement.values) == 1:
        return statement
    return None


def if_else_assignments(
    node: SyntaxNode, context: AnalysisContext
) -> tuple[SyntaxNode, Assignment, Assignment] | None:
    """Decompose ``if c then t = A else t = B end`` into (c, then, else).

    Returns None unless the statement has exactly one ``if`` clause and an
    ``else`` branch, and each branch is a single assignment to the same target.
    """
    if not isinstance(node, If) or len(node.clauses) != 1 or node.orelse is None:
        return None
    condition, then_block = node.clauses[0]
    then_assignment = branch_assignment(then_block)
    else_assignment = branch_assignment(node.orelse)
    if then_assignment is None or else_assignment is None:
        return None
    if context.canonical(then_assignment.targets[0]) != context.canonical(
        else_assignment.targets[0]
    ):
        return None
    return condition, then_assignment, else_assignment
