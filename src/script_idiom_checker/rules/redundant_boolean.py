"""Redundant branching to boolean literals.

Matches::

    if cond then t = true else t = false end

and suggests assigning the condition directly. When the condition is not
known to produce a boolean, the rewrite coerces it with ``not not`` so that
the target still receives ``true``/``false``.
"""

from script_idiom_checker.analysis.context import AnalysisContext
from script_idiom_checker.core.models import MatchResult
from script_idiom_checker.rules.base import PatternRule, if_else_assignments, render_operand
from script_idiom_checker.syntax.nodes import BooleanLiteral, NodeKind, SyntaxNode, unparen
from script_idiom_checker.syntax.parser import UNARY_PRIORITY


class RedundantBooleanRule(PatternRule):
    """Flag if/else statements that only assign opposite boolean literals."""

    name = "redundant-branch-to-boolean"
    description = "if/else assigning true/false to the same target; assign the condition instead"
    specificity = 30
    node_kinds = frozenset({NodeKind.IF_STATEMENT})

    def match(self, node: SyntaxNode, context: AnalysisContext) -> MatchResult | None:
        """Match an if/else whose branches assign opposite boolean literals."""
        parts = if_else_assignments(node, context)
        if parts is None:
            return None
        condition, then_assignment, else_assignment = parts
        then_value = unparen(then_assignment.values[0])
        else_value = unparen(else_assignment.values[0])
        if not (isinstance(then_value, BooleanLiteral) and isinstance(else_value, BooleanLiteral)):
            return None
        if then_value.value == else_value.value:
            return None

        target = context.text(then_assignment.targets[0])
        if not then_value.value:
            value = "not " + render_operand(context, condition, UNARY_PRIORITY)
        elif context.is_boolean(condition):
            value = render_operand(context, condition, 0)
        else:
            value = "not not " + render_operand(context, condition, UNARY_PRIORITY)
        replacement = f"{target} = {value}"
        return self.result(
            node,
            f"Branches only assign true/false to '{target}'; use '{replacement}'",
            replacement=replacement,
        )
