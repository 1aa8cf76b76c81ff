"""Syntax tree and tree-sitter based parser for the control-script dialect."""

from script_idiom_checker.syntax.nodes import NodeKind, SyntaxNode
from script_idiom_checker.syntax.parser import Parser, parse_source

__all__ = [
    "NodeKind",
    "Parser",
    "SyntaxNode",
    "parse_source",
]
