"""Parser for control scripts built on the tree-sitter Lua grammar.

The concrete syntax tree produced by tree-sitter is converted into the
immutable :class:`~script_idiom_checker.syntax.nodes.SyntaxNode` model the
rules work on. Source text that tree-sitter cannot parse cleanly raises
:class:`~script_idiom_checker.core.exceptions.ParseError` located at the first
ERROR or MISSING node. The conversion is purely syntactic: implicit boolean
coercion in conditions, table literals, method calls and anonymous handler
functions are accepted without any semantic validation.
"""

import logging
import re
from typing import Any

from tree_sitter_language_pack import get_parser

from script_idiom_checker.core.exceptions import ParseError
from script_idiom_checker.core.models import SourceUnit, Span
from script_idiom_checker.syntax.nodes import (
    Assignment,
    BinaryOp,
    Block,
    BooleanLiteral,
    Break,
    Call,
    CallStatement,
    Chunk,
    Do,
    Field,
    FunctionDefinition,
    FunctionLiteral,
    GenericFor,
    Goto,
    If,
    Index,
    Label,
    LocalAssignment,
    MethodCall,
    Name,
    Nil,
    NumberLiteral,
    NumericFor,
    Paren,
    Repeat,
    Return,
    StringLiteral,
    SyntaxNode,
    Table,
    TableField,
    UnaryOp,
    Vararg,
    While,
)

logger = logging.getLogger(__name__)

LANGUAGE = "lua"

# Binary operator precedence as (left, right) binding powers; right-associative
# operators bind tighter on the left. Used when rendering rewritten expressions.
BINARY_PRIORITY: dict[str, tuple[int, int]] = {
    "or": (1, 1),
    "and": (2, 2),
    "<": (3, 3), ">": (3, 3), "<=": (3, 3), ">=": (3, 3), "~=": (3, 3), "==": (3, 3),
    "|": (4, 4),
    "~": (5, 5),
    "&": (6, 6),
    "<<": (7, 7), ">>": (7, 7),
    "..": (9, 8),
    "+": (10, 10), "-": (10, 10),
    "*": (11, 11), "/": (11, 11), "//": (11, 11), "%": (11, 11),
    "^": (14, 13),
}
UNARY_PRIORITY = 12

_TRIVIA = frozenset({"comment", "hash_bang_line"})

_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    '"': '"',
    "'": "'",
    "\n": "\n",
}
_ESCAPE_RE = re.compile(
    r"\\(?:(?P<simple>[abfnrtv\\\"'\n])|(?P<crlf>\r\n?)|(?P<skip>z\s*)"
    r"|(?P<dec>\d{1,3})|x(?P<hex>[0-9A-Fa-f]{2})|u\{(?P<uni>[0-9A-Fa-f]+)\})"
)
_LONG_BRACKET_RE = re.compile(r"\[(=*)\[(.*)\]\1\]\Z", re.DOTALL)


def decode_string(raw: str) -> str:
    """Return the value of a string literal given its source text.

    Handles both quoted strings with escape sequences and long-bracket
    strings, where a newline directly after the opening bracket is dropped.
    """
    long_match = _LONG_BRACKET_RE.match(raw)
    if long_match:
        content = long_match.group(2)
        if content.startswith("\r\n"):
            return content[2:]
        if content.startswith("\n"):
            return content[1:]
        return content
    return _ESCAPE_RE.sub(_decode_escape, raw[1:-1])


def _decode_escape(match: re.Match[str]) -> str:
    if match.group("simple") is not None:
        return _SIMPLE_ESCAPES[match.group("simple")]
    if match.group("crlf") is not None:
        return "\n"
    if match.group("skip") is not None:
        return ""
    if match.group("dec") is not None:
        return chr(int(match.group("dec")))
    if match.group("hex") is not None:
        return chr(int(match.group("hex"), 16))
    return chr(int(match.group("uni"), 16))


def _named(node: Any) -> list[Any]:
    """Return the named children of a tree-sitter node, without comments."""
    return [child for child in node.named_children if child.type not in _TRIVIA]


def _operator(node: Any) -> str:
    """Return the anonymous operator token of a unary or binary expression."""
    for child in node.children:
        if not child.is_named:
            return str(child.type)
    raise ValueError(f"{node.type} without operator")


class Parser:
    """Convert the tree-sitter parse of one source unit into a syntax tree."""

    def __init__(self, unit: SourceUnit) -> None:
        """Encode the unit and index byte offsets for span conversion."""
        self.unit = unit
        self.source = unit.text.encode("utf-8")
        if len(self.source) == len(unit.text):
            self._char_offsets: list[int] | None = None
        else:
            offsets: list[int] = []
            for index, char in enumerate(unit.text):
                offsets.extend([index] * len(char.encode("utf-8")))
            offsets.append(len(unit.text))
            self._char_offsets = offsets

    # -- positions ---------------------------------------------------------

    def _offset(self, byte: int) -> int:
        return byte if self._char_offsets is None else self._char_offsets[byte]

    def _span(self, node: Any) -> Span:
        return self.unit.span(self._offset(node.start_byte), self._offset(node.end_byte))

    def _text(self, node: Any) -> str:
        return self.unit.text[self._offset(node.start_byte) : self._offset(node.end_byte)]

    def _error(self, message: str, node: Any) -> ParseError:
        line, col = self.unit.position(self._offset(node.start_byte))
        return ParseError(message, line, col)

    # -- entry point -------------------------------------------------------

    def parse(self) -> Chunk:
        """Parse the whole unit.

        Returns:
            Chunk: Root node of the syntax tree.

        Raises:
            ParseError: On the first syntax error.
        """
        tree = get_parser(LANGUAGE).parse(self.source)
        root = tree.root_node
        if root.has_error:
            raise self._first_error(root)
        body = self._statements(_named(root), 0)
        return Chunk(span=self.unit.span(0, len(self.unit.text)), body=body)

    def _first_error(self, root: Any) -> ParseError:
        stack = [root]
        while stack:
            node = stack.pop()
            if node.is_missing:
                return self._error(f"Expected '{node.type}'", node)
            if node.type == "ERROR":
                snippet = self._text(node).split("\n", 1)[0].strip()
                return self._error(f"Syntax error near '{snippet[:40]}'", node)
            if node.has_error:
                stack.extend(reversed(node.children))
        return self._error("Syntax error", root)

    # -- statements --------------------------------------------------------

    def _block(self, node: Any | None, fallback: int) -> Block:
        """Convert an optional ``block`` node; absent blocks are empty at ``fallback``."""
        if node is None:
            offset = self._offset(fallback)
            return Block(span=self.unit.span(offset, offset), statements=())
        return self._statements(_named(node), node.start_byte)

    def _statements(self, children: list[Any], fallback: int) -> Block:
        statements = [
            statement
            for statement in (self._statement(child) for child in children)
            if statement is not None
        ]
        if not statements:
            offset = self._offset(fallback)
            return Block(span=self.unit.span(offset, offset), statements=())
        start, end = statements[0].span.start, statements[-1].span.end
        return Block(span=self.unit.span(start, end), statements=tuple(statements))

    def _body(self, node: Any) -> Block:
        """Convert the ``body`` block of a statement, empty when omitted."""
        body = node.child_by_field_name("body")
        if body is None:
            body = next((child for child in _named(node) if child.type == "block"), None)
        return self._block(body, node.end_byte)

    def _statement(self, node: Any) -> SyntaxNode | None:
        kind = node.type
        span = self._span(node)

        if kind == "empty_statement":
            return None
        if kind == "assignment_statement":
            targets, values = self._assignment_lists(node)
            return Assignment(span=span, targets=targets, values=values)
        if kind == "variable_declaration":
            return self._local(node)
        if kind == "function_call":
            return CallStatement(span=span, call=self._expression(node))
        if kind == "function_declaration":
            return self._function_statement(node)
        if kind == "if_statement":
            return self._if(node)
        if kind == "for_statement":
            return self._for(node)
        if kind == "while_statement":
            condition = self._expression(node.child_by_field_name("condition"))
            return While(span=span, condition=condition, body=self._body(node))
        if kind == "repeat_statement":
            condition = self._expression(node.child_by_field_name("condition"))
            return Repeat(span=span, body=self._body(node), condition=condition)
        if kind == "do_statement":
            return Do(span=span, body=self._body(node))
        if kind == "return_statement":
            return Return(span=span, values=self._expression_list(node))
        if kind == "break_statement":
            return Break(span=span)
        if kind == "goto_statement":
            return Goto(span=span, label=self._text(_named(node)[0]))
        if kind == "label_statement":
            return Label(span=span, name=self._text(_named(node)[0]))
        raise self._error(f"Unsupported statement '{kind}'", node)

    def _assignment_lists(
        self, node: Any
    ) -> tuple[tuple[SyntaxNode, ...], tuple[SyntaxNode, ...]]:
        targets: tuple[SyntaxNode, ...] = ()
        values: tuple[SyntaxNode, ...] = ()
        for child in _named(node):
            if child.type == "variable_list":
                targets = tuple(self._expression(target) for target in _named(child))
            elif child.type == "expression_list":
                values = tuple(self._expression(value) for value in _named(child))
        return targets, values

    def _expression_list(self, node: Any) -> tuple[SyntaxNode, ...]:
        for child in _named(node):
            if child.type == "expression_list":
                return tuple(self._expression(value) for value in _named(child))
        # A single returned value may appear without a wrapping list.
        return tuple(self._expression(child) for child in _named(node))

    def _local(self, node: Any) -> LocalAssignment:
        names: tuple[str, ...] = ()
        values: tuple[SyntaxNode, ...] = ()
        declared = _named(node)
        if declared and declared[0].type == "assignment_statement":
            declared = _named(declared[0])
        for child in declared:
            if child.type == "variable_list":
                # <const>/<close> attributes are skipped.
                names = tuple(
                    self._text(name) for name in _named(child) if name.type == "identifier"
                )
            elif child.type == "expression_list":
                values = tuple(self._expression(value) for value in _named(child))
        return LocalAssignment(span=self._span(node), names=names, values=values)

    def _if(self, node: Any) -> If:
        clauses: list[tuple[SyntaxNode, Block]] = [
            (
                self._expression(node.child_by_field_name("condition")),
                self._consequence(node),
            )
        ]
        orelse: Block | None = None
        for child in _named(node):
            if child.type == "elseif_statement":
                condition = self._expression(child.child_by_field_name("condition"))
                clauses.append((condition, self._consequence(child)))
            elif child.type == "else_statement":
                orelse = self._body(child)
        return If(span=self._span(node), clauses=tuple(clauses), orelse=orelse)

    def _consequence(self, node: Any) -> Block:
        consequence = node.child_by_field_name("consequence")
        if consequence is None:
            then = next(child for child in node.children if child.type == "then")
            return self._block(None, then.end_byte)
        return self._block(consequence, consequence.start_byte)

    def _for(self, node: Any) -> SyntaxNode:
        clause = node.child_by_field_name("clause")
        if clause is None:
            clause = next(
                child
                for child in _named(node)
                if child.type in ("for_numeric_clause", "for_generic_clause")
            )
        body = self._body(node)
        if clause.type == "for_numeric_clause":
            step = clause.child_by_field_name("step")
            return NumericFor(
                span=self._span(node),
                var=self._text(clause.child_by_field_name("name")),
                start=self._expression(clause.child_by_field_name("start")),
                stop=self._expression(clause.child_by_field_name("end")),
                step=self._expression(step) if step is not None else None,
                body=body,
            )
        names: tuple[str, ...] = ()
        iterators: tuple[SyntaxNode, ...] = ()
        for child in _named(clause):
            if child.type == "variable_list":
                names = tuple(self._text(name) for name in _named(child))
            elif child.type == "expression_list":
                iterators = tuple(self._expression(value) for value in _named(child))
        return GenericFor(span=self._span(node), names=names, iterators=iterators, body=body)

    def _function_statement(self, node: Any) -> FunctionDefinition:
        is_local = node.children[0].type == "local"
        name_node = node.child_by_field_name("name")
        is_method = name_node.type == "method_index_expression"
        if is_method:
            target: SyntaxNode = Field(
                span=self._span(name_node),
                obj=self._expression(name_node.child_by_field_name("table")),
                name=self._text(name_node.child_by_field_name("method")),
            )
        else:
            target = self._expression(name_node)
        return FunctionDefinition(
            span=self._span(node),
            name=target,
            is_local=is_local,
            is_method=is_method,
            func=self._function_literal(node, implicit_self=is_method),
        )

    def _function_literal(self, node: Any, implicit_self: bool = False) -> FunctionLiteral:
        params: list[str] = ["self"] if implicit_self else []
        is_vararg = False
        parameters = node.child_by_field_name("parameters")
        if parameters is not None:
            for param in _named(parameters):
                if param.type == "vararg_expression":
                    is_vararg = True
                else:
                    params.append(self._text(param))
        return FunctionLiteral(
            span=self._span(node),
            params=tuple(params),
            is_vararg=is_vararg,
            body=self._body(node),
        )

    # -- expressions -------------------------------------------------------

    def _expression(self, node: Any) -> SyntaxNode:
        kind = node.type
        span = self._span(node)

        if kind == "identifier":
            return Name(span=span, name=self._text(node))
        if kind == "nil":
            return Nil(span=span)
        if kind in ("true", "false"):
            return BooleanLiteral(span=span, value=kind == "true")
        if kind == "number":
            return NumberLiteral(span=span, raw=self._text(node))
        if kind == "string":
            return StringLiteral(span=span, value=decode_string(self._text(node)))
        if kind == "vararg_expression":
            return Vararg(span=span)
        if kind == "function_definition":
            return self._function_literal(node)
        if kind == "table_constructor":
            return self._table(node)
        if kind == "parenthesized_expression":
            return Paren(span=span, inner=self._expression(_named(node)[0]))
        if kind == "binary_expression":
            children = _named(node)
            return BinaryOp(
                span=span,
                op=_operator(node),
                left=self._expression(node.child_by_field_name("left") or children[0]),
                right=self._expression(node.child_by_field_name("right") or children[-1]),
            )
        if kind == "unary_expression":
            operand = node.child_by_field_name("operand") or _named(node)[-1]
            return UnaryOp(span=span, op=_operator(node), operand=self._expression(operand))
        if kind == "dot_index_expression":
            return Field(
                span=span,
                obj=self._expression(node.child_by_field_name("table")),
                name=self._text(node.child_by_field_name("field")),
            )
        if kind == "bracket_index_expression":
            return Index(
                span=span,
                obj=self._expression(node.child_by_field_name("table")),
                key=self._expression(node.child_by_field_name("field")),
            )
        if kind == "function_call":
            return self._call(node)
        raise self._error(f"Unsupported expression '{kind}'", node)

    def _call(self, node: Any) -> SyntaxNode:
        arguments = node.child_by_field_name("arguments")
        args = tuple(self._expression(arg) for arg in _named(arguments))
        callee = node.child_by_field_name("name")
        if callee.type == "method_index_expression":
            return MethodCall(
                span=self._span(node),
                obj=self._expression(callee.child_by_field_name("table")),
                method=self._text(callee.child_by_field_name("method")),
                args=args,
            )
        return Call(span=self._span(node), func=self._expression(callee), args=args)

    def _table(self, node: Any) -> Table:
        entries: list[TableField] = []
        for entry in _named(node):
            value = self._expression(entry.child_by_field_name("value"))
            name = entry.child_by_field_name("name")
            key: SyntaxNode | None = None
            if name is not None and any(child.type == "[" for child in entry.children):
                key = self._expression(name)
            elif name is not None:
                key = StringLiteral(span=self._span(name), value=self._text(name))
            entries.append(TableField(span=self._span(entry), key=key, value=value))
        return Table(span=self._span(node), entries=tuple(entries))


def parse_source(unit: SourceUnit) -> Chunk:
    """Parse a source unit into a syntax tree.

    Args:
        unit: The script to parse.

    Returns:
        Chunk: Root of the syntax tree.

    Raises:
        ParseError: If the source is not syntactically valid.
    """
    chunk = Parser(unit).parse()
    logger.debug(f"Parsed {unit.path} ({len(chunk.body.statements)} top-level statements)")
    return chunk
