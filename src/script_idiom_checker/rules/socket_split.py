"""Socket event/data conflation.

A TcpSocket reports connection lifecycle through ``EventHandler`` and payload
arrival through ``Data``. Handling both in one function mixes reconnection
logic with parsing; the idiom is one handler per channel::

    sock.EventHandler = function(s, evt, err) ... end  -- Connected, Closed, ...
    sock.Data = function(s) local line = s:ReadLine(...) ... end
"""

from script_idiom_checker.analysis.context import (
    DATA_PROPERTY,
    HANDLER_PROPERTY,
    AnalysisContext,
    ObjectKind,
    SocketEvent,
)
from script_idiom_checker.core.models import MatchResult
from script_idiom_checker.rules.base import PatternRule
from script_idiom_checker.syntax.nodes import (
    Assignment,
    BinaryOp,
    Field,
    FunctionLiteral,
    MethodCall,
    NodeKind,
    SyntaxNode,
    unparen,
    walk_scope,
)

PAYLOAD_METHODS = frozenset({"Read", "ReadLine", "Search", "ReadAll"})


class SocketSplitRule(PatternRule):
    """Flag socket handlers that serve both the event and the data channel."""

    name = "socket-event-data-conflation"
    description = "socket EventHandler also handling Data; split into two handlers"
    specificity = 10
    node_kinds = frozenset({NodeKind.ASSIGNMENT})

    def match(self, node: SyntaxNode, context: AnalysisContext) -> MatchResult | None:
        """Match ``<socket>.EventHandler = f`` where ``f`` also handles payload data."""
        if not isinstance(node, Assignment) or len(node.targets) != 1 or len(node.values) != 1:
            return None
        target = node.targets[0]
        if not isinstance(target, Field) or target.name != HANDLER_PROPERTY:
            return None
        if context.object_kind(target.obj) is not ObjectKind.SOCKET:
            return None
        socket = context.text(target.obj)
        handler = node.values[0]

        if self._shared_with_data(target, handler, context):
            return self.result(
                node,
                f"The same handler is bound to '{socket}.EventHandler' and '{socket}.Data'; "
                "split connection events and payload handling into two handlers",
            )

        func = context.resolve_function(handler)
        if func is None:
            return None
        reason = self._data_handling(func, target.obj, context)
        if reason is None:
            return None
        return self.result(
            node,
            f"'{socket}.EventHandler' {reason}; move payload handling to '{socket}.Data'",
        )

    @staticmethod
    def _shared_with_data(target: Field, handler: SyntaxNode, context: AnalysisContext) -> bool:
        """True if some ``<socket>.Data`` assignment binds the same handler."""
        handler = unparen(handler)
        if isinstance(handler, FunctionLiteral):
            names = {context.canonical(target)}
        else:
            names = {context.canonical(target), context.canonical(handler)}
        socket = context.canonical(target.obj)
        for inner in context.chunk.walk():
            if not isinstance(inner, Assignment):
                continue
            for data_target, value in zip(inner.targets, inner.values):
                if (
                    isinstance(data_target, Field)
                    and data_target.name == DATA_PROPERTY
                    and context.canonical(data_target.obj) == socket
                    and context.canonical(value) in names
                ):
                    return True
        return False

    @staticmethod
    def _data_handling(
        func: FunctionLiteral, socket: SyntaxNode, context: AnalysisContext
    ) -> str | None:
        """Describe how a handler body deals with payload data, or None."""
        receivers = {context.canonical(socket)}
        if func.params:
            receivers.add(func.params[0])
        for inner in walk_scope(func.body):
            if isinstance(inner, BinaryOp) and inner.op in ("==", "~="):
                if SocketEvent.DATA in (
                    context.socket_event(inner.left),
                    context.socket_event(inner.right),
                ):
                    return "compares the event against the Data event"
            elif isinstance(inner, MethodCall) and inner.method in PAYLOAD_METHODS:
                if context.canonical(inner.obj) in receivers:
                    return f"reads payload with ':{inner.method}()'"
        return None
