"""Ternary-style assignment opportunities.

``if c then t = A else t = B end`` can be written ``t = c and A or B``, but
only when ``A`` can never be ``false`` or ``nil``: otherwise the expression
silently yields ``B`` on the true branch. Matches where ``A`` is not provably
truthy are still reported as info, flagged as unsafe to rewrite, with no fix.
"""

import logging

from script_idiom_checker.analysis.context import AnalysisContext
from script_idiom_checker.core.models import MatchResult, Severity
from script_idiom_checker.rules.base import PatternRule, if_else_assignments, render_operand
from script_idiom_checker.syntax.nodes import BooleanLiteral, Nil, NodeKind, SyntaxNode, unparen
from script_idiom_checker.syntax.parser import BINARY_PRIORITY

logger = logging.getLogger(__name__)

_AND = BINARY_PRIORITY["and"][0]
_OR = BINARY_PRIORITY["or"][0]


class TernaryRule(PatternRule):
    """Suggest ``t = c and A or B`` for if/else assigning one target."""

    name = "ternary-opportunity"
    description = "if/else assigning one target; use 't = c and A or B' when A is never false/nil"
    specificity = 20
    node_kinds = frozenset({NodeKind.IF_STATEMENT})

    def match(self, node: SyntaxNode, context: AnalysisContext) -> MatchResult | None:
        """Match an if/else assigning two different values to the same target."""
        parts = if_else_assignments(node, context)
        if parts is None:
            return None
        condition, then_assignment, else_assignment = parts
        then_value = then_assignment.values[0]
        else_value = else_assignment.values[0]
        if context.canonical(then_value) == context.canonical(else_value):
            return None

        target = context.text(then_assignment.targets[0])
        rewrite = (
            f"{target} = {render_operand(context, condition, _AND)}"
            f" and {render_operand(context, then_value, _AND + 1)}"
            f" or {render_operand(context, else_value, _OR + 1)}"
        )
        if self._is_falsy_literal(then_value) or not context.never_falsy(then_value):
            logger.debug(f"Ternary candidate at line {node.span.start_line} is unsafe")
            return self.result(
                node,
                f"Branches assign '{target}'; '{rewrite}' is unsafe because the true value "
                f"'{context.text(then_value)}' may be false or nil",
                severity=Severity.INFO,
            )
        return self.result(
            node,
            f"Branches assign '{target}'; use '{rewrite}'",
            replacement=rewrite,
        )

    @staticmethod
    def _is_falsy_literal(node: SyntaxNode) -> bool:
        node = unparen(node)
        return isinstance(node, Nil) or (isinstance(node, BooleanLiteral) and not node.value)
