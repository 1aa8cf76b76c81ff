"""Per-unit analysis context passed explicitly to every pattern rule.

The vendor runtime exposes its control objects through an implicit global
``Controls`` table and identifies socket events by bare strings. Rules never
consult process-wide state for this: the context is built once per source
unit from static analysis of the syntax tree and handed to each rule.

The context records:
    - the enclosing block and position of every statement,
    - names bound to constructed runtime objects (``TcpSocket.New()`` etc.),
    - named functions, so handlers referenced by name can be resolved,
    - the capability set of every control-like object, derived from the
      properties the script reads or writes on it.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum

from script_idiom_checker.core.models import SourceUnit
from script_idiom_checker.syntax.nodes import (
    Assignment,
    BinaryOp,
    Block,
    BooleanLiteral,
    Call,
    Chunk,
    Field,
    FunctionDefinition,
    FunctionLiteral,
    Index,
    LocalAssignment,
    Name,
    Nil,
    NumberLiteral,
    StringLiteral,
    SyntaxNode,
    Table,
    UnaryOp,
    dotted_name,
    root_name,
    unparen,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTROLS_TABLE = "Controls"


class ObjectKind(str, Enum):
    """Kinds of runtime objects created with ``<Constructor>.New(...)``."""

    SOCKET = "socket"
    TIMER = "timer"
    COMPONENT = "component"
    OBJECT = "object"


CONSTRUCTOR_KINDS: dict[str, ObjectKind] = {
    "TcpSocket": ObjectKind.SOCKET,
    "UdpSocket": ObjectKind.SOCKET,
    "Timer": ObjectKind.TIMER,
    "Component": ObjectKind.COMPONENT,
}


class SocketEvent(str, Enum):
    """Closed set of socket lifecycle/data events."""

    CONNECTED = "Connected"
    RECONNECT = "Reconnect"
    DATA = "Data"
    CLOSED = "Closed"
    ERROR = "Error"
    TIMEOUT = "Timeout"

    @classmethod
    def from_name(cls, name: str) -> "SocketEvent | None":
        """Map an event name (any case) to its enum member, or None if unknown."""
        lowered = name.lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return None


class ValueShape(str, Enum):
    """Statically inferred shape of an expression's value."""

    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    TABLE = "table"
    FUNCTION = "function"
    NIL = "nil"
    UNKNOWN = "unknown"


class ControlKind(str, Enum):
    """Control kind derived from the capability set of a control object."""

    TOGGLE = "toggle"
    KNOB = "knob"
    TEXT = "text"
    GENERIC = "generic"


# Value shapes of the control properties the dialect exposes.
CONTROL_PROPERTY_SHAPES: dict[str, ValueShape] = {
    "Boolean": ValueShape.BOOLEAN,
    "IsDisabled": ValueShape.BOOLEAN,
    "IsInvisible": ValueShape.BOOLEAN,
    "Value": ValueShape.NUMBER,
    "Position": ValueShape.NUMBER,
    "String": ValueShape.STRING,
    "Color": ValueShape.STRING,
    "Legend": ValueShape.STRING,
    "Choices": ValueShape.TABLE,
}

HANDLER_PROPERTY = "EventHandler"
DATA_PROPERTY = "Data"

_STRING_FUNCTIONS = frozenset(
    {"tostring", "string.format", "string.upper", "string.lower", "string.rep", "string.sub"}
)
_ARITHMETIC_OPERATORS = frozenset({"+", "-", "*", "/", "//", "%", "^", "&", "|", "~", "<<", ">>"})
_COMPARISON_OPERATORS = frozenset({"==", "~=", "<", ">", "<=", ">="})
_NEVER_FALSY_SHAPES = frozenset(
    {ValueShape.NUMBER, ValueShape.STRING, ValueShape.TABLE, ValueShape.FUNCTION}
)


@dataclass(frozen=True, slots=True)
class StatementLocation:
    """Position of a statement inside its enclosing block."""

    block: Block
    index: int


@dataclass
class AnalysisContext:
    """Static facts about one source unit shared by all rules.

    Attributes:
        unit: The analyzed source unit.
        chunk: Root of its syntax tree.
        controls_table: Name of the global table holding the script's controls.
        locations: Enclosing block and index of every statement.
        object_kinds: Canonical object expression -> kind, for ``X.New()`` bindings.
        functions: Canonical name -> function literal for named functions.
        capabilities: Canonical control expression -> properties accessed on it.
    """

    unit: SourceUnit
    chunk: Chunk
    controls_table: str = DEFAULT_CONTROLS_TABLE
    locations: dict[SyntaxNode, StatementLocation] = field(default_factory=dict)
    object_kinds: dict[str, ObjectKind] = field(default_factory=dict)
    functions: dict[str, FunctionLiteral] = field(default_factory=dict)
    capabilities: dict[str, set[str]] = field(default_factory=dict)

    @classmethod
    def build(
        cls, unit: SourceUnit, chunk: Chunk, controls_table: str = DEFAULT_CONTROLS_TABLE
    ) -> "AnalysisContext":
        """Collect bindings, capabilities and structure for a parsed unit.

        Args:
            unit: The source unit the tree was parsed from.
            chunk: The parsed syntax tree.
            controls_table: Name of the global controls table.

        Returns:
            AnalysisContext: A context ready to be passed to rules.
        """
        context = cls(unit=unit, chunk=chunk, controls_table=controls_table)
        for node in chunk.walk():
            if isinstance(node, Block):
                for index, statement in enumerate(node.statements):
                    context.locations[statement] = StatementLocation(node, index)
            elif isinstance(node, (Assignment, LocalAssignment)):
                context._record_bindings(node)
            elif isinstance(node, FunctionDefinition):
                name = dotted_name(node.name)
                if name:
                    context.functions[name] = node.func
            elif isinstance(node, Field) and (
                node.name in CONTROL_PROPERTY_SHAPES or node.name == HANDLER_PROPERTY
            ):
                context.capabilities.setdefault(context.canonical(node.obj), set()).add(node.name)
        logger.debug(
            f"Context for {unit.path}: {len(context.object_kinds)} objects, "
            f"{len(context.functions)} functions, {len(context.capabilities)} controls"
        )
        return context

    def _record_bindings(self, node: Assignment | LocalAssignment) -> None:
        if isinstance(node, LocalAssignment):
            targets = [name for name in node.names]
        else:
            targets = [self.canonical(target) for target in node.targets]
        for target, value in zip(targets, node.values):
            if isinstance(value, FunctionLiteral):
                self.functions[target] = value
            elif isinstance(value, Call) and isinstance(value.func, Field):
                constructor = value.func
                if constructor.name == "New" and isinstance(constructor.obj, Name):
                    self.object_kinds[target] = CONSTRUCTOR_KINDS.get(
                        constructor.obj.name, ObjectKind.OBJECT
                    )

    # -- text helpers ------------------------------------------------------

    def text(self, node: SyntaxNode) -> str:
        """Return the exact source text of ``node``."""
        return self.unit.slice(node.span)

    def canonical(self, node: SyntaxNode) -> str:
        """Render an expression in a normalized form for identity comparisons.

        ``Controls["Mute"]`` and ``Controls.Mute`` normalize to the same text;
        quoting style and whitespace are ignored.
        """
        node = unparen(node)
        if isinstance(node, Name):
            return node.name
        if isinstance(node, Field):
            return f"{self.canonical(node.obj)}.{node.name}"
        if isinstance(node, Index):
            key = unparen(node.key)
            if isinstance(key, StringLiteral) and key.value.isidentifier():
                return f"{self.canonical(node.obj)}.{key.value}"
            return f"{self.canonical(node.obj)}[{self.canonical(key)}]"
        if isinstance(node, StringLiteral):
            return json.dumps(node.value)
        return " ".join(self.text(node).split())

    # -- structure -----------------------------------------------------------

    def following_statements(self, statement: SyntaxNode) -> tuple[SyntaxNode, ...]:
        """Statements after ``statement`` in its enclosing block."""
        location = self.locations.get(statement)
        if location is None:
            return ()
        return location.block.statements[location.index + 1 :]

    def preceding_statements(self, statement: SyntaxNode) -> tuple[SyntaxNode, ...]:
        """Statements before ``statement`` in its enclosing block, nearest first."""
        location = self.locations.get(statement)
        if location is None:
            return ()
        return tuple(reversed(location.block.statements[: location.index]))

    # -- objects and controls ----------------------------------------------

    def object_kind(self, node: SyntaxNode) -> ObjectKind | None:
        """Return the constructed-object kind bound to ``node``, if known."""
        return self.object_kinds.get(self.canonical(node))

    def is_control_like(self, node: SyntaxNode) -> bool:
        """True if ``node`` may denote a control object.

        Anything rooted in the controls table qualifies, as does any object the
        script accesses control properties on, unless it is bound to a
        constructed runtime object other than a component.
        """
        kind = self.object_kind(node)
        if kind is not None:
            return kind is ObjectKind.COMPONENT
        if root_name(node) == self.controls_table:
            return True
        return bool(self.capabilities.get(self.canonical(node)))

    def control_kind(self, node: SyntaxNode) -> ControlKind:
        """Classify a control by the properties the script uses on it."""
        props = self.capabilities.get(self.canonical(node), set())
        if "Boolean" in props:
            return ControlKind.TOGGLE
        if props & {"Value", "Position"}:
            return ControlKind.KNOB
        if "String" in props:
            return ControlKind.TEXT
        return ControlKind.GENERIC

    def resolve_function(self, node: SyntaxNode) -> FunctionLiteral | None:
        """Resolve a handler expression to a function literal if statically known."""
        node = unparen(node)
        if isinstance(node, FunctionLiteral):
            return node
        if isinstance(node, (Name, Field, Index)):
            return self.functions.get(self.canonical(node))
        return None

    def socket_event(self, node: SyntaxNode) -> SocketEvent | None:
        """Interpret ``TcpSocket.Events.Data`` or ``"Data"`` as a SocketEvent."""
        node = unparen(node)
        if isinstance(node, StringLiteral):
            return SocketEvent.from_name(node.value)
        if isinstance(node, Field) and isinstance(node.obj, Field) and node.obj.name == "Events":
            return SocketEvent.from_name(node.name)
        return None

    # -- value shapes ---------------------------------------------------------

    def infer_shape(self, node: SyntaxNode) -> ValueShape:
        """Infer the shape of an expression's value without evaluating it."""
        node = unparen(node)
        if isinstance(node, BooleanLiteral):
            return ValueShape.BOOLEAN
        if isinstance(node, NumberLiteral):
            return ValueShape.NUMBER
        if isinstance(node, StringLiteral):
            return ValueShape.STRING
        if isinstance(node, Table):
            return ValueShape.TABLE
        if isinstance(node, FunctionLiteral):
            return ValueShape.FUNCTION
        if isinstance(node, Nil):
            return ValueShape.NIL
        if isinstance(node, UnaryOp):
            return ValueShape.BOOLEAN if node.op == "not" else ValueShape.NUMBER
        if isinstance(node, BinaryOp):
            if node.op in _COMPARISON_OPERATORS:
                return ValueShape.BOOLEAN
            if node.op == "..":
                return ValueShape.STRING
            if node.op in _ARITHMETIC_OPERATORS:
                return ValueShape.NUMBER
            left, right = self.infer_shape(node.left), self.infer_shape(node.right)
            if left is ValueShape.BOOLEAN and right is ValueShape.BOOLEAN:
                return ValueShape.BOOLEAN
            return ValueShape.UNKNOWN
        if isinstance(node, Field) and node.name in CONTROL_PROPERTY_SHAPES:
            if self.is_control_like(node.obj):
                return CONTROL_PROPERTY_SHAPES[node.name]
            return ValueShape.UNKNOWN
        if isinstance(node, Call) and dotted_name(node.func) in _STRING_FUNCTIONS:
            return ValueShape.STRING
        return ValueShape.UNKNOWN

    def is_boolean(self, node: SyntaxNode) -> bool:
        """True if the expression always evaluates to ``true`` or ``false``."""
        return self.infer_shape(node) is ValueShape.BOOLEAN

    def never_falsy(self, node: SyntaxNode) -> bool:
        """True if the expression can never evaluate to ``false`` or ``nil``."""
        node = unparen(node)
        if isinstance(node, BooleanLiteral):
            return node.value
        if isinstance(node, BinaryOp) and node.op == "or":
            return self.never_falsy(node.right) or self.never_falsy(node.left)
        if isinstance(node, BinaryOp) and node.op == "and":
            return self.never_falsy(node.left) and self.never_falsy(node.right)
        return self.infer_shape(node) in _NEVER_FALSY_SHAPES
