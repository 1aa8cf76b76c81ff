"""Assume-and-refute search loops.

Recognizes loops that start from an assumption held in an accumulator and
conditionally overwrite it while scanning::

    local allOn = true
    for _, ctl in ipairs(Controls.Buttons) do
      if not ctl.Boolean then
        allOn = false
      end
    end

Two shapes are distinguished:

- all-true check: every update stores a fixed literal that differs from the
  initial literal. Once refuted the answer cannot change, so the loop should
  ``break``. When the loop body is exactly the refuting ``if`` and its
  condition has no side effects, a fix inserting ``break`` is offered.
- best-candidate search: updates carry values computed from loop-local names
  (``best = v``); reported for information only.
"""

from dataclasses import dataclass
from enum import Enum

from script_idiom_checker.analysis.context import AnalysisContext
from script_idiom_checker.core.models import MatchResult, Severity
from script_idiom_checker.rules.base import PatternRule
from script_idiom_checker.syntax.nodes import (
    LOOP_KINDS,
    Assignment,
    Block,
    BooleanLiteral,
    Break,
    Call,
    GenericFor,
    If,
    LocalAssignment,
    MethodCall,
    Name,
    Nil,
    NumberLiteral,
    NumericFor,
    Return,
    StringLiteral,
    SyntaxNode,
    unparen,
    walk_scope,
)

_LITERAL_TYPES = (BooleanLiteral, Nil, NumberLiteral, StringLiteral)


def _literal_key(node: SyntaxNode, context: AnalysisContext) -> str:
    node = unparen(node)
    return "nil" if isinstance(node, Nil) else context.canonical(node)


class SearchKind(str, Enum):
    """Classification of an assume-and-refute loop."""

    ALL_TRUE_CHECK = "all-true check"
    BEST_CANDIDATE = "best-candidate search"

    def __str__(self) -> str:
        """Return string representation of the search kind."""
        return self.value


@dataclass(frozen=True, slots=True)
class _Update:
    """A conditional overwrite of the accumulator inside the loop."""

    assignment: Assignment
    branch: Block


class AssumeRefuteRule(PatternRule):
    """Classify accumulator loops and suggest early exit for all-true checks."""

    name = "assume-and-refute-loop"
    description = "loop refuting an initial assumption; break once an all-true check fails"
    specificity = 10
    node_kinds = LOOP_KINDS

    def match(self, node: SyntaxNode, context: AnalysisContext) -> MatchResult | None:
        """Match a loop that conditionally overwrites an accumulator set before it."""
        body = node.body  # type: ignore[attr-defined]
        updates, unconditional = self._collect_updates(body)
        if not updates:
            return None

        loop_locals = self._loop_locals(node, body)
        all_true: list[str] = []
        best_candidate: list[str] = []
        for accumulator, accumulator_updates in updates.items():
            if accumulator in unconditional or accumulator in loop_locals:
                continue
            initial = self._initial_value(node, accumulator, context)
            if initial is None:
                continue
            kind = self._classify(accumulator, initial, accumulator_updates, loop_locals, context)
            if kind is SearchKind.ALL_TRUE_CHECK:
                if any(self._exits(update.branch) for update in accumulator_updates):
                    continue
                all_true.append(accumulator)
            elif kind is SearchKind.BEST_CANDIDATE:
                best_candidate.append(accumulator)

        if all_true:
            names = ", ".join(f"'{name}'" for name in all_true)
            message = (
                f"Assume-and-refute loop ({SearchKind.ALL_TRUE_CHECK}) over {names}; "
                "break out once the assumption is refuted"
            )
            replacement = None
            if not best_candidate:
                replacement = self._break_fix(node, body, all_true, context)
            if replacement is None:
                return self.result(node, message, severity=Severity.INFO)
            return self.result(node, message, replacement=replacement)
        if best_candidate:
            names = ", ".join(f"'{name}'" for name in best_candidate)
            return self.result(
                node,
                f"Assume-and-refute loop ({SearchKind.BEST_CANDIDATE}) over {names}",
                severity=Severity.INFO,
            )
        return None

    @staticmethod
    def _collect_updates(body: Block) -> tuple[dict[str, list[_Update]], set[str]]:
        """Find accumulator assignments in the loop body.

        Returns:
            tuple: Name -> conditional updates (direct statements of an ``if``
            branch), and the set of names also assigned outside any branch.
        """
        updates: dict[str, list[_Update]] = {}
        conditional: set[SyntaxNode] = set()
        for inner in walk_scope(body):
            if not isinstance(inner, If):
                continue
            branches = [block for _, block in inner.clauses]
            if inner.orelse is not None:
                branches.append(inner.orelse)
            for branch in branches:
                for statement in branch.statements:
                    if not isinstance(statement, Assignment):
                        continue
                    conditional.add(statement)
                    for target in statement.targets:
                        if isinstance(target, Name):
                            updates.setdefault(target.name, []).append(_Update(statement, branch))

        unconditional: set[str] = set()
        for inner in walk_scope(body):
            if isinstance(inner, Assignment) and inner not in conditional:
                unconditional.update(t.name for t in inner.targets if isinstance(t, Name))
        return updates, unconditional

    @staticmethod
    def _loop_locals(loop: SyntaxNode, body: Block) -> set[str]:
        names: set[str] = set()
        if isinstance(loop, NumericFor):
            names.add(loop.var)
        elif isinstance(loop, GenericFor):
            names.update(loop.names)
        for inner in walk_scope(body):
            if isinstance(inner, LocalAssignment):
                names.update(inner.names)
        return names

    @staticmethod
    def _initial_value(
        loop: SyntaxNode, accumulator: str, context: AnalysisContext
    ) -> SyntaxNode | None:
        """Value assigned to ``accumulator`` by the nearest preceding statement."""
        for statement in context.preceding_statements(loop):
            if isinstance(statement, LocalAssignment) and accumulator in statement.names:
                position = statement.names.index(accumulator)
                if position < len(statement.values):
                    return statement.values[position]
                if not statement.values:
                    return Nil(span=statement.span)
                return None
            if isinstance(statement, Assignment):
                for position, target in enumerate(statement.targets):
                    if isinstance(target, Name) and target.name == accumulator:
                        if position < len(statement.values):
                            return statement.values[position]
                        return None
        return None

    @staticmethod
    def _classify(
        accumulator: str,
        initial: SyntaxNode,
        updates: list[_Update],
        loop_locals: set[str],
        context: AnalysisContext,
    ) -> SearchKind | None:
        values = [
            value
            for update in updates
            for target, value in zip(update.assignment.targets, update.assignment.values)
            if isinstance(target, Name) and target.name == accumulator
        ]

        initial = unparen(initial)
        if isinstance(initial, _LITERAL_TYPES) and all(
            isinstance(unparen(v), _LITERAL_TYPES)
            and _literal_key(v, context) != _literal_key(initial, context)
            for v in values
        ):
            return SearchKind.ALL_TRUE_CHECK
        if any(
            isinstance(inner, Name) and inner.name in loop_locals
            for value in values
            for inner in value.walk()
        ):
            return SearchKind.BEST_CANDIDATE
        return None

    @staticmethod
    def _exits(branch: Block) -> bool:
        return any(isinstance(statement, (Break, Return)) for statement in branch.statements)

    @staticmethod
    def _break_fix(
        loop: SyntaxNode, body: Block, accumulators: list[str], context: AnalysisContext
    ) -> str | None:
        """Loop text with ``break`` added to the refuting branch, if the shape allows it."""
        if len(body.statements) != 1:
            return None
        refutation = body.statements[0]
        if (
            not isinstance(refutation, If)
            or len(refutation.clauses) != 1
            or refutation.orelse is not None
        ):
            return None
        condition, branch = refutation.clauses[0]
        if not branch.statements:
            return None
        if any(isinstance(inner, (Call, MethodCall)) for inner in condition.walk()):
            return None
        for statement in branch.statements:
            if not isinstance(statement, Assignment):
                return None
            for target in statement.targets:
                if not (isinstance(target, Name) and target.name in accumulators):
                    return None

        last = branch.statements[-1]
        text = context.unit.text
        if last.span.start_line == refutation.span.start_line:
            insertion = " break"
        else:
            indent = context.unit.indentation_at(last.span.start)
            insertion = f"{context.unit.newline}{indent}break"
        return (
            text[loop.span.start : last.span.end] + insertion + text[last.span.end : loop.span.end]
        )
