"""Traversal engine shared by all rules.

:class:`RuleVisitor` walks a tree while threading a :class:`TraversalState`:
recursion depth (with a hard ceiling), loop nesting, async nesting, the names
bound by enclosing loop headers, and the live lock-guard stack. Each rule
gets a fresh visitor (and therefore a fresh state) per file.
"""

from __future__ import annotations

import ast
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from slowpath.analyzer.models import Diagnostic, Span

if TYPE_CHECKING:
    from slowpath.analyzer.context import AnalysisContext
    from slowpath.rules import Rule

logger = logging.getLogger(__name__)

MAX_RECURSION_DEPTH = 256

_COMPREHENSIONS = (ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)


@dataclass(frozen=True)
class GuardBinding:
    """A live lock guard: the name it is tracked under, its kind (``sync`` or
    ``async``), where it was acquired, and the source text of the lock."""

    name: str
    kind: str
    span: Span
    lock: str = ""


@dataclass
class TraversalState:
    """Mutable lexical state for one rule's walk of one file."""

    recursion_depth: int = 0
    loop_depth: int = 0
    async_depth: int = 0
    loop_targets: list[frozenset[str]] = field(default_factory=list)
    guard_scopes: list[list[GuardBinding]] = field(default_factory=list)
    truncated: bool = False

    @property
    def in_loop(self) -> bool:
        return self.loop_depth > 0

    @property
    def in_async(self) -> bool:
        return self.async_depth > 0

    @property
    def should_bail(self) -> bool:
        return self.recursion_depth >= MAX_RECURSION_DEPTH

    @property
    def live_guards(self) -> tuple[GuardBinding, ...]:
        return tuple(g for scope in self.guard_scopes for g in scope)

    def loop_bound_names(self) -> frozenset[str]:
        return frozenset().union(*self.loop_targets) if self.loop_targets else frozenset()

    def enter_block(self) -> None:
        self.guard_scopes.append([])

    def exit_block(self) -> list[GuardBinding]:
        return self.guard_scopes.pop() if self.guard_scopes else []

    def push_guard(self, guard: GuardBinding) -> None:
        if not self.guard_scopes:
            self.enter_block()
        self.guard_scopes[-1].append(guard)

    def release_guard(self, name: str) -> GuardBinding | None:
        """Drop the most recent live guard tracked under ``name`` or taken on
        the lock spelled ``name``."""
        for scope in reversed(self.guard_scopes):
            for i in range(len(scope) - 1, -1, -1):
                if name in (scope[i].name, scope[i].lock):
                    return scope.pop(i)
        return None

    def isolate_guards(self) -> list[list[GuardBinding]]:
        """Start an empty guard stack (for a nested function body) and
        return the outer one for :meth:`restore_guards`."""
        outer = self.guard_scopes
        self.guard_scopes = []
        return outer

    def restore_guards(self, outer: list[list[GuardBinding]]) -> None:
        self.guard_scopes = outer


class RuleVisitor(ast.NodeVisitor):
    """Base visitor: depth-limited descent plus loop/async/block bookkeeping.

    Subclasses add ``visit_<Node>`` methods for the shapes they detect and
    call :meth:`report`. Overrides of the structural methods below should
    delegate to ``super()`` so the state stays balanced.
    """

    # The query detector treats comprehension bodies as loop bodies.
    comprehensions_are_loops = False

    def __init__(self, ctx: AnalysisContext, rule: Rule) -> None:
        self.ctx = ctx
        self.rule = rule
        self.state = TraversalState()
        self.diagnostics: list[Diagnostic] = []

    def run(self) -> list[Diagnostic]:
        self.visit(self.ctx.tree)
        if self.state.truncated:
            logger.debug(
                "%s: traversal of %s truncated at depth %d",
                self.rule.id,
                self.ctx.path,
                MAX_RECURSION_DEPTH,
            )
        return self.diagnostics

    def report(self, node: ast.AST, message: str, **kwargs) -> Diagnostic:
        diagnostic = self.rule.diagnostic(self.ctx, node, message, **kwargs)
        self.diagnostics.append(diagnostic)
        return diagnostic

    # -- descent ---------------------------------------------------------

    def visit(self, node: ast.AST):
        if self.state.should_bail:
            self.state.truncated = True
            return None
        self.state.recursion_depth += 1
        try:
            method = getattr(self, "visit_" + node.__class__.__name__, self.generic_visit)
            return method(node)
        finally:
            self.state.recursion_depth -= 1

    def generic_visit(self, node: ast.AST) -> None:
        for _, value in ast.iter_fields(node):
            if isinstance(value, list):
                if value and isinstance(value[0], ast.stmt):
                    self.visit_block(value)
                    continue
                for item in value:
                    if isinstance(item, ast.AST):
                        self.visit(item)
            elif isinstance(value, ast.AST):
                self.visit(value)

    def visit_block(self, stmts: list[ast.stmt]) -> None:
        """Visit a statement list as one lexical block."""
        self.state.enter_block()
        try:
            for stmt in stmts:
                self.visit(stmt)
        finally:
            self.state.exit_block()

    def visit_all(self, nodes: list[ast.AST | None]) -> None:
        for node in nodes:
            if node is not None:
                self.visit(node)

    # -- loops -----------------------------------------------------------

    def visit_For(self, node: ast.For | ast.AsyncFor) -> None:
        self.visit(node.target)
        self.visit(node.iter)
        with self.loop_body(node.target):
            self.visit_block(node.body)
        if node.orelse:
            self.visit_block(node.orelse)

    visit_AsyncFor = visit_For

    def visit_While(self, node: ast.While) -> None:
        # The test is re-evaluated on every iteration.
        with self.loop_body():
            self.visit(node.test)
            self.visit_block(node.body)
        if node.orelse:
            self.visit_block(node.orelse)

    def _visit_comprehension(self, node: ast.AST, elements: list[ast.AST]) -> None:
        generators: list[ast.comprehension] = node.generators
        if not self.comprehensions_are_loops:
            for gen in generators:
                self.visit_all([gen.target, gen.iter, *gen.ifs])
            self.visit_all(elements)
            return
        # The first iterable is evaluated once; everything else per iteration.
        self.visit(generators[0].iter)
        with self.loop_body(*(gen.target for gen in generators)):
            self.visit(generators[0].target)
            self.visit_all(generators[0].ifs)
            for gen in generators[1:]:
                self.visit_all([gen.target, gen.iter, *gen.ifs])
            self.visit_all(elements)

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self._visit_comprehension(node, [node.elt])

    visit_SetComp = visit_ListComp
    visit_GeneratorExp = visit_ListComp

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self._visit_comprehension(node, [node.key, node.value])

    def loop_body(self, *targets: ast.AST) -> _LoopScope:
        return _LoopScope(self.state, frozenset(_bound_names(targets)))

    # -- functions -------------------------------------------------------

    def visit_FunctionDef(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        is_async = isinstance(node, ast.AsyncFunctionDef)
        self.visit_all([*node.decorator_list, node.args, node.returns])
        saved_loops = (self.state.loop_depth, self.state.loop_targets)
        self.state.loop_depth, self.state.loop_targets = 0, []
        if is_async:
            self.state.async_depth += 1
        try:
            self.visit_function_body(node)
        finally:
            if is_async:
                self.state.async_depth -= 1
            self.state.loop_depth, self.state.loop_targets = saved_loops

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_function_body(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        self.visit_block(node.body)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self.visit_all([*node.decorator_list, *node.bases, *node.keywords])
        saved_loops = (self.state.loop_depth, self.state.loop_targets)
        self.state.loop_depth, self.state.loop_targets = 0, []
        try:
            self.visit_block(node.body)
        finally:
            self.state.loop_depth, self.state.loop_targets = saved_loops


class _LoopScope:
    """Context manager marking a loop body for the duration of a ``with``."""

    def __init__(self, state: TraversalState, targets: frozenset[str]) -> None:
        self._state = state
        self._targets = targets

    def __enter__(self) -> TraversalState:
        self._state.loop_depth += 1
        self._state.loop_targets.append(self._targets)
        return self._state

    def __exit__(self, *exc) -> None:
        self._state.loop_targets.pop()
        self._state.loop_depth -= 1


def _bound_names(targets) -> Iterator[str]:
    for target in targets:
        for node in ast.walk(target):
            if isinstance(node, ast.Name):
                yield node.id


def names_in(node: ast.AST) -> set[str]:
    """All bare names read or written anywhere under ``node``."""
    return {n.id for n in ast.walk(node) if isinstance(n, ast.Name)}


def terminal_name(expr: ast.AST) -> str | None:
    """Last identifier of a Name/Attribute chain (``self._lock`` -> ``_lock``);
    for a call, the terminal name of the callee; for a subscript, of its base."""
    if isinstance(expr, ast.Call):
        expr = expr.func
    if isinstance(expr, ast.Subscript):
        expr = expr.value
    if isinstance(expr, ast.Attribute):
        return expr.attr
    if isinstance(expr, ast.Name):
        return expr.id
    return None
