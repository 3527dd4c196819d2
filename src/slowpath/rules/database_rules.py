"""N+1 query detection — database queries issued once per loop iteration."""

from __future__ import annotations

import ast

from slowpath.analyzer.models import Diagnostic, Severity
from slowpath.analyzer.visitor import RuleVisitor, terminal_name
from slowpath.rules import Rule
from slowpath.rules.patterns import DJANGO_ONLY_METHODS, QUERY_BACKENDS, QueryBackend

_MAX_LABEL = 60


class NPlusOneQueryRule(Rule):
    """Query calls inside a loop or comprehension.

    Method tables are chosen by ``database.orm``; with no backend configured
    every table applies. This is a pattern match only: nothing tries to prove
    the query differs per iteration.
    """

    id = "n-plus-one-query"
    name = "N+1 Query Detection"
    description = "Detects database queries inside loops that could be batched into a single query"
    default_severity = Severity.WARNING

    def check(self, ctx) -> list[Diagnostic]:
        orm = ctx.config.database.orm
        backends = [QUERY_BACKENDS[orm]] if orm else list(QUERY_BACKENDS.values())
        return _QueryInLoopVisitor(ctx, self, backends).run()


class _QueryInLoopVisitor(RuleVisitor):
    comprehensions_are_loops = True

    def __init__(self, ctx, rule, backends: list[QueryBackend]) -> None:
        super().__init__(ctx, rule)
        self.backends = backends
        # Calls already covered by a report on the outer end of their chain
        self._chained: set[int] = set()

    def visit_Call(self, node: ast.Call) -> None:
        if self.state.in_loop and id(node) not in self._chained:
            backend = self._match(node.func)
            if backend is not None:
                self._report(node, backend)
        self.generic_visit(node)

    def _match(self, func: ast.AST) -> QueryBackend | None:
        if not isinstance(func, ast.Attribute):
            return None
        method = func.attr
        for backend in self.backends:
            if backend.name == "django":
                if method in DJANGO_ONLY_METHODS or (
                    method in backend.methods and _through_manager(func.value)
                ):
                    return backend
            elif backend.receiver is not None and method in backend.methods:
                receiver = terminal_name(func.value)
                if receiver and backend.receiver.search(receiver):
                    return backend
        return None

    def _report(self, node: ast.Call, backend: QueryBackend) -> None:
        inner = node.func
        while isinstance(inner, (ast.Attribute, ast.Call)):
            if isinstance(inner, ast.Call):
                self._chained.add(id(inner))
                inner = inner.func
            else:
                inner = inner.value
        label = self.ctx.segment(node.func)
        if "\n" in label or len(label) > _MAX_LABEL:
            label = f".{node.func.attr}"
        self.report(
            node,
            f"Database query `{label}()` inside loop (N+1 query pattern). {backend.hint}",
            suggestion="Batch queries outside the loop using WHERE ... IN or a join",
        )


def _through_manager(expr: ast.AST) -> bool:
    """Whether a receiver chain passes through a Django model manager
    (``Book.objects``, ``author.books.objects.filter(...)``)."""
    while isinstance(expr, (ast.Attribute, ast.Call)):
        if isinstance(expr, ast.Attribute):
            if expr.attr == "objects":
                return True
            expr = expr.value
        else:
            expr = expr.func
    return False
