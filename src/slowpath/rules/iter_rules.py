"""Iteration patterns with mechanical rewrites.

``collect-then-iterate``: a list built in full only to be consumed once (by a
reducer such as ``sum``/``any``, or by the ``for`` right after it).

``container-build-in-loop``: an empty list/set/dict filled one element at a
time by the loop that follows it, which a comprehension builds directly.

Both rules offer fixes as span replacements.
"""

from __future__ import annotations

import ast
from collections import Counter

from slowpath.analyzer.models import Diagnostic, Fix, Severity
from slowpath.analyzer.visitor import RuleVisitor, names_in
from slowpath.rules import Rule
from slowpath.rules.patterns import REDUCERS

# Expressions that need parentheses as a comprehension's iterable or condition
_NEEDS_PARENS = (ast.IfExp, ast.Lambda, ast.NamedExpr, ast.Yield, ast.YieldFrom)


class _ScopedBlockVisitor(RuleVisitor):
    """Tracks the enclosing function (or module) so block patterns can count
    every use of a name in its scope."""

    def __init__(self, ctx, rule) -> None:
        super().__init__(ctx, rule)
        self._scopes: list[ast.AST] = [ctx.tree]
        self._counts: dict[int, Counter] = {}

    def visit_function_body(self, node) -> None:
        self._scopes.append(node)
        try:
            super().visit_function_body(node)
        finally:
            self._scopes.pop()

    def uses_in_scope(self, name: str) -> int:
        scope = self._scopes[-1]
        counts = self._counts.get(id(scope))
        if counts is None:
            counts = Counter(n.id for n in ast.walk(scope) if isinstance(n, ast.Name))
            self._counts[id(scope)] = counts
        return counts[name]


def _paren(ctx, node: ast.AST) -> str:
    text = ctx.segment(node)
    return f"({text})" if isinstance(node, _NEEDS_PARENS) else text


def _count(node: ast.AST, name: str) -> int:
    return sum(1 for n in ast.walk(node) if isinstance(n, ast.Name) and n.id == name)


def _single_name_binding(stmt: ast.stmt) -> tuple[str, ast.AST] | None:
    if (
        isinstance(stmt, ast.Assign)
        and len(stmt.targets) == 1
        and isinstance(stmt.targets[0], ast.Name)
    ):
        return stmt.targets[0].id, stmt.value
    return None


# ============================================================================
# collect-then-iterate
# ============================================================================


class CollectThenIterateRule(Rule):
    id = "collect-then-iterate"
    name = "Collect Then Iterate"
    description = "Detects lists built in full only to be iterated once"
    default_severity = Severity.INFO
    high_confidence = True
    fixable = True

    def check(self, ctx) -> list[Diagnostic]:
        return _CollectThenIterateVisitor(ctx, self).run()


class _CollectThenIterateVisitor(_ScopedBlockVisitor):
    def visit_Call(self, node: ast.Call) -> None:
        func = node.func
        if (
            isinstance(func, ast.Name)
            and func.id in REDUCERS
            and func.id not in self.ctx.imports
        ):
            sole = len(node.args) == 1 and not node.keywords
            for arg in node.args:
                if isinstance(arg, ast.ListComp):
                    self._report_reducer(func.id, arg, sole)
        self.generic_visit(node)

    def _report_reducer(self, reducer: str, comp: ast.ListComp, sole: bool) -> None:
        inner = self.ctx.segment(comp)[1:-1]
        replacement = inner if sole else f"({inner})"
        self.report(
            comp,
            f"List comprehension passed to `{reducer}()` is built in full, then consumed once",
            suggestion="Pass a generator expression instead of a list comprehension",
            fix=Fix(
                self.ctx.span(comp),
                replacement,
                "Replace the list comprehension with a generator expression",
            ),
        )

    def visit_block(self, stmts: list[ast.stmt]) -> None:
        for stmt, following in zip(stmts, stmts[1:]):
            binding = _single_name_binding(stmt)
            if binding is None:
                continue
            name, value = binding
            if (
                isinstance(value, ast.ListComp)
                and isinstance(following, (ast.For, ast.AsyncFor))
                and isinstance(following.iter, ast.Name)
                and following.iter.id == name
                and self.uses_in_scope(name) == 2
            ):
                self.report(
                    stmt,
                    f"`{name}` is collected into a list only to be iterated once by the next loop",
                    suggestion=f"Loop over the source directly, or bind `{name}` to a generator expression",
                )
        super().visit_block(stmts)


# ============================================================================
# container-build-in-loop
# ============================================================================

_EMPTY_FACTORIES = frozenset({"list", "set", "dict"})
_ADDERS = {"append": "list", "add": "set"}


class ContainerBuildInLoopRule(Rule):
    """``out = []`` followed by ``for x in xs: out.append(f(x))``.

    The loop body must be a single ``append``/``add``/item assignment on the
    new container, optionally under one ``if``, and the loop must not touch
    the container anywhere else.
    """

    id = "container-build-in-loop"
    name = "Container Built Element by Element"
    description = "Detects an empty list/set/dict filled by the following loop; build it with a comprehension"
    default_severity = Severity.INFO
    fixable = True

    def check(self, ctx) -> list[Diagnostic]:
        return _ContainerBuildVisitor(ctx, self).run()


class _ContainerBuildVisitor(_ScopedBlockVisitor):
    def visit_block(self, stmts: list[ast.stmt]) -> None:
        for stmt, following in zip(stmts, stmts[1:]):
            binding = _single_name_binding(stmt)
            if binding is None or not isinstance(following, ast.For) or following.orelse:
                continue
            name, value = binding
            kind = self._empty_container(value)
            if kind is None:
                continue
            comprehension = self._comprehension(name, kind, following)
            if comprehension is not None:
                self._report(stmt, following, name, kind, comprehension)
        super().visit_block(stmts)

    def _empty_container(self, value: ast.AST) -> str | None:
        if isinstance(value, ast.List) and not value.elts:
            return "list"
        if isinstance(value, ast.Dict) and not value.keys:
            return "dict"
        if (
            isinstance(value, ast.Call)
            and isinstance(value.func, ast.Name)
            and value.func.id in _EMPTY_FACTORIES
            and value.func.id not in self.ctx.imports
            and not value.args
            and not value.keywords
        ):
            return value.func.id
        return None

    def _comprehension(self, name: str, kind: str, loop: ast.For) -> str | None:
        """Source of the equivalent comprehension, or None if the loop body
        is not a lone insertion into ``name``."""
        if len(loop.body) != 1:
            return None
        body, test = loop.body[0], None
        if isinstance(body, ast.If):
            if body.orelse or len(body.body) != 1:
                return None
            body, test = body.body[0], body.test
        element = self._insertion(name, kind, body)
        if element is None:
            return None
        if _count(loop, name) != 1:
            return None
        ctx = self.ctx
        clause = f"for {ctx.segment(loop.target)} in {_paren(ctx, loop.iter)}"
        if test is not None:
            clause += f" if {_paren(ctx, test)}"
        if kind == "list":
            return f"[{element} {clause}]"
        return f"{{{element} {clause}}}"

    def _insertion(self, name: str, kind: str, stmt: ast.stmt) -> str | None:
        ctx = self.ctx
        if isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Call):
            call = stmt.value
            func = call.func
            if (
                isinstance(func, ast.Attribute)
                and isinstance(func.value, ast.Name)
                and func.value.id == name
                and _ADDERS.get(func.attr) == kind
                and len(call.args) == 1
                and not call.keywords
                and not isinstance(call.args[0], ast.Starred)
            ):
                return _paren(ctx, call.args[0])
        if (
            kind == "dict"
            and isinstance(stmt, ast.Assign)
            and len(stmt.targets) == 1
            and isinstance(stmt.targets[0], ast.Subscript)
            and isinstance(stmt.targets[0].value, ast.Name)
            and stmt.targets[0].value.id == name
            and not isinstance(stmt.targets[0].slice, ast.Slice)
        ):
            key = stmt.targets[0].slice
            return f"{_paren(ctx, key)}: {_paren(ctx, stmt.value)}"
        return None

    def _report(self, stmt: ast.stmt, loop: ast.For, name: str, kind: str, comprehension: str) -> None:
        span = self.ctx.span(stmt, end_node=loop)
        fix = None
        # No fix when the loop carries comments or its variable outlives it.
        leaks = any(
            self.uses_in_scope(target) != _count(loop, target) for target in names_in(loop.target)
        )
        if not leaks and "#" not in self.ctx.source[span.start_offset : span.end_offset]:
            fix = Fix(
                span,
                f"{name} = {comprehension}",
                f"Replace the loop with a {kind} comprehension",
            )
        self.report(
            stmt,
            f"`{name}` starts empty and is filled one element at a time by the following loop",
            suggestion=f"Build `{name}` directly with a {kind} comprehension",
            fix=fix,
        )
