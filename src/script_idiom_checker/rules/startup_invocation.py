"""Event handlers that are bound but never run at startup.

A control's EventHandler only fires on the next change, so state derived from
the control is stale until then. The idiom is to call the handler once right
after binding it::

    Controls.Mute.EventHandler = UpdateMute
    UpdateMute(Controls.Mute)
"""

from script_idiom_checker.analysis.context import HANDLER_PROPERTY, AnalysisContext
from script_idiom_checker.core.models import MatchResult
from script_idiom_checker.rules.base import PatternRule
from script_idiom_checker.syntax.nodes import (
    Assignment,
    Call,
    Field,
    FunctionLiteral,
    Index,
    Name,
    NodeKind,
    SyntaxNode,
    unparen,
    walk_scope,
)


class StartupInvocationRule(PatternRule):
    """Flag control handlers with no later invocation in the same block."""

    name = "missing-startup-invocation"
    description = "control EventHandler bound without calling it once at startup"
    specificity = 10
    node_kinds = frozenset({NodeKind.ASSIGNMENT})

    def match(self, node: SyntaxNode, context: AnalysisContext) -> MatchResult | None:
        """Match ``<control>.EventHandler = handler`` with no following call."""
        if not isinstance(node, Assignment) or len(node.targets) != 1 or len(node.values) != 1:
            return None
        target = node.targets[0]
        if not isinstance(target, Field) or target.name != HANDLER_PROPERTY:
            return None
        if context.object_kind(target.obj) is not None and not context.is_control_like(
            target.obj
        ):
            return None

        handler = unparen(node.values[0])
        if isinstance(handler, FunctionLiteral):
            callee = context.text(target)
        elif isinstance(handler, (Name, Field, Index)):
            callee = context.text(handler)
        else:
            return None

        accepted = {context.canonical(target)}
        if not isinstance(handler, FunctionLiteral):
            accepted.add(context.canonical(handler))
        for statement in context.following_statements(node):
            for inner in walk_scope(statement):
                if isinstance(inner, Call) and context.canonical(inner.func) in accepted:
                    return None

        control = context.text(target.obj)
        call = f"{callee}({control})"
        indent = context.unit.indentation_at(node.span.start)
        kind = context.control_kind(target.obj)
        return self.result(
            node,
            f"Handler for {kind.value} control '{control}' is not invoked at startup; "
            f"call '{call}' after binding it",
            replacement=f"{context.text(node)}{context.unit.newline}{indent}{call}",
        )
