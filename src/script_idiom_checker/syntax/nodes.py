"""Syntax tree for control scripts.

Every node is an immutable dataclass carrying the Span it was parsed from and
owning its children. Nodes compare and hash by identity so they can be used as
keys in per-run lookup tables (statement locations, binding tables).
"""

from collections.abc import Iterator
from dataclasses import dataclass, fields
from enum import Enum
from typing import ClassVar

from script_idiom_checker.core.models import Span


class NodeKind(str, Enum):
    """Tags for syntax tree nodes."""

    CHUNK = "chunk"
    BLOCK = "block"
    ASSIGNMENT = "assignment"
    LOCAL_ASSIGNMENT = "local-assignment"
    IF_STATEMENT = "if-statement"
    NUMERIC_FOR = "numeric-for"
    GENERIC_FOR = "generic-for"
    WHILE_LOOP = "while-loop"
    REPEAT_LOOP = "repeat-loop"
    DO_BLOCK = "do-block"
    FUNCTION_DEFINITION = "function-definition"
    FUNCTION_LITERAL = "function-literal"
    CALL = "call"
    METHOD_CALL = "method-call"
    CALL_STATEMENT = "call-statement"
    RETURN = "return"
    BREAK = "break"
    GOTO = "goto"
    LABEL = "label"
    NAME = "name"
    FIELD = "field"
    INDEX = "index"
    NIL = "nil"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    VARARG = "vararg"
    TABLE = "table"
    TABLE_FIELD = "table-field"
    BINARY_OP = "binary-op"
    UNARY_OP = "unary-op"
    PAREN = "paren"


LOOP_KINDS = frozenset(
    {NodeKind.NUMERIC_FOR, NodeKind.GENERIC_FOR, NodeKind.WHILE_LOOP, NodeKind.REPEAT_LOOP}
)


@dataclass(frozen=True, slots=True, eq=False)
class SyntaxNode:
    """Base class of all syntax tree nodes."""

    kind: ClassVar[NodeKind]
    span: Span

    def children(self) -> Iterator["SyntaxNode"]:
        """Yield direct child nodes in source order."""
        for f in fields(self):
            if f.name == "span":
                continue
            value = getattr(self, f.name)
            if isinstance(value, SyntaxNode):
                yield value
            elif isinstance(value, tuple):
                for item in value:
                    if isinstance(item, SyntaxNode):
                        yield item
                    elif isinstance(item, tuple):
                        # if-statement clauses are (condition, block) pairs
                        yield from (x for x in item if isinstance(x, SyntaxNode))

    def walk(self) -> Iterator["SyntaxNode"]:
        """Yield this node and all descendants, depth first, in source order."""
        stack: list[SyntaxNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(list(node.children())))


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True, eq=False)
class Nil(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.NIL


@dataclass(frozen=True, slots=True, eq=False)
class BooleanLiteral(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.BOOLEAN
    value: bool


@dataclass(frozen=True, slots=True, eq=False)
class NumberLiteral(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.NUMBER
    raw: str


@dataclass(frozen=True, slots=True, eq=False)
class StringLiteral(SyntaxNode):
    """A string literal; ``value`` is the decoded text."""

    kind: ClassVar[NodeKind] = NodeKind.STRING
    value: str


@dataclass(frozen=True, slots=True, eq=False)
class Vararg(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.VARARG


@dataclass(frozen=True, slots=True, eq=False)
class Name(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.NAME
    name: str


@dataclass(frozen=True, slots=True, eq=False)
class Field(SyntaxNode):
    """Dotted member access ``obj.name``."""

    kind: ClassVar[NodeKind] = NodeKind.FIELD
    obj: SyntaxNode
    name: str


@dataclass(frozen=True, slots=True, eq=False)
class Index(SyntaxNode):
    """Bracketed member access ``obj[key]``."""

    kind: ClassVar[NodeKind] = NodeKind.INDEX
    obj: SyntaxNode
    key: SyntaxNode


@dataclass(frozen=True, slots=True, eq=False)
class Call(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.CALL
    func: SyntaxNode
    args: tuple[SyntaxNode, ...]


@dataclass(frozen=True, slots=True, eq=False)
class MethodCall(SyntaxNode):
    """Method-call syntax ``obj:Method(args)``."""

    kind: ClassVar[NodeKind] = NodeKind.METHOD_CALL
    obj: SyntaxNode
    method: str
    args: tuple[SyntaxNode, ...]


@dataclass(frozen=True, slots=True, eq=False)
class FunctionLiteral(SyntaxNode):
    """Anonymous ``function (params) ... end`` expression."""

    kind: ClassVar[NodeKind] = NodeKind.FUNCTION_LITERAL
    params: tuple[str, ...]
    is_vararg: bool
    body: "Block"


@dataclass(frozen=True, slots=True, eq=False)
class TableField(SyntaxNode):
    """One entry of a table constructor; ``key`` is None for positional entries."""

    kind: ClassVar[NodeKind] = NodeKind.TABLE_FIELD
    key: SyntaxNode | None
    value: SyntaxNode


@dataclass(frozen=True, slots=True, eq=False)
class Table(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.TABLE
    entries: tuple[TableField, ...]


@dataclass(frozen=True, slots=True, eq=False)
class BinaryOp(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.BINARY_OP
    op: str
    left: SyntaxNode
    right: SyntaxNode


@dataclass(frozen=True, slots=True, eq=False)
class UnaryOp(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.UNARY_OP
    op: str
    operand: SyntaxNode


@dataclass(frozen=True, slots=True, eq=False)
class Paren(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.PAREN
    inner: SyntaxNode


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True, eq=False)
class Block(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.BLOCK
    statements: tuple[SyntaxNode, ...]


@dataclass(frozen=True, slots=True, eq=False)
class Chunk(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.CHUNK
    body: Block


@dataclass(frozen=True, slots=True, eq=False)
class Assignment(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.ASSIGNMENT
    targets: tuple[SyntaxNode, ...]
    values: tuple[SyntaxNode, ...]


@dataclass(frozen=True, slots=True, eq=False)
class LocalAssignment(SyntaxNode):
    """``local a, b <attrib> = ...``; ``values`` is empty for bare declarations."""

    kind: ClassVar[NodeKind] = NodeKind.LOCAL_ASSIGNMENT
    names: tuple[str, ...]
    values: tuple[SyntaxNode, ...]


@dataclass(frozen=True, slots=True, eq=False)
class If(SyntaxNode):
    """If statement; ``clauses`` holds (condition, block) for ``if`` and each ``elseif``."""

    kind: ClassVar[NodeKind] = NodeKind.IF_STATEMENT
    clauses: tuple[tuple[SyntaxNode, Block], ...]
    orelse: Block | None


@dataclass(frozen=True, slots=True, eq=False)
class NumericFor(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.NUMERIC_FOR
    var: str
    start: SyntaxNode
    stop: SyntaxNode
    step: SyntaxNode | None
    body: Block


@dataclass(frozen=True, slots=True, eq=False)
class GenericFor(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.GENERIC_FOR
    names: tuple[str, ...]
    iterators: tuple[SyntaxNode, ...]
    body: Block


@dataclass(frozen=True, slots=True, eq=False)
class While(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.WHILE_LOOP
    condition: SyntaxNode
    body: Block


@dataclass(frozen=True, slots=True, eq=False)
class Repeat(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.REPEAT_LOOP
    body: Block
    condition: SyntaxNode


@dataclass(frozen=True, slots=True, eq=False)
class Do(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.DO_BLOCK
    body: Block


@dataclass(frozen=True, slots=True, eq=False)
class FunctionDefinition(SyntaxNode):
    """``function a.b:c() end`` or ``local function f() end``.

    Attributes:
        name: The target expression (Name, or Field chain for dotted names).
        is_local: True for ``local function``.
        is_method: True when declared with ``:`` (implicit ``self``).
        func: The function literal holding parameters and body.
    """

    kind: ClassVar[NodeKind] = NodeKind.FUNCTION_DEFINITION
    name: SyntaxNode
    is_local: bool
    is_method: bool
    func: FunctionLiteral


@dataclass(frozen=True, slots=True, eq=False)
class CallStatement(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.CALL_STATEMENT
    call: SyntaxNode


@dataclass(frozen=True, slots=True, eq=False)
class Return(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.RETURN
    values: tuple[SyntaxNode, ...]


@dataclass(frozen=True, slots=True, eq=False)
class Break(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.BREAK


@dataclass(frozen=True, slots=True, eq=False)
class Goto(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.GOTO
    label: str


@dataclass(frozen=True, slots=True, eq=False)
class Label(SyntaxNode):
    kind: ClassVar[NodeKind] = NodeKind.LABEL
    name: str


def walk_scope(node: SyntaxNode) -> Iterator[SyntaxNode]:
    """Yield ``node`` and its descendants without entering nested function bodies.

    The starting node itself is always expanded, even if it is a function.
    """
    stack: list[SyntaxNode] = [node]
    first = True
    while stack:
        current = stack.pop()
        yield current
        if not first and isinstance(current, (FunctionLiteral, FunctionDefinition)):
            continue
        first = False
        stack.extend(reversed(list(current.children())))


def dotted_name(node: SyntaxNode) -> str | None:
    """Return ``a.b.c`` for a Name/Field chain, or None for anything else."""
    parts: list[str] = []
    current = node
    while isinstance(current, Field):
        parts.append(current.name)
        current = current.obj
    if not isinstance(current, Name):
        return None
    parts.append(current.name)
    return ".".join(reversed(parts))


def root_name(node: SyntaxNode) -> str | None:
    """Return the base variable name of a Field/Index/Paren chain."""
    current = node
    while isinstance(current, (Field, Index, Paren)):
        current = current.inner if isinstance(current, Paren) else current.obj
    return current.name if isinstance(current, Name) else None


def unparen(node: SyntaxNode) -> SyntaxNode:
    """Strip any number of enclosing parentheses."""
    while isinstance(node, Paren):
        node = node.inner
    return node
