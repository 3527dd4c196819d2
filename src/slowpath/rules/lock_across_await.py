"""Lock guards held across ``await`` points.

A bounded intra-procedural analysis over one ``async def`` body at a time.
Statements are walked in order while the traversal state tracks which guards
are live:

- ``with lock:`` / ``async with lock as g:`` holds a guard on ``lock`` for
  the whole with body;
- ``lock.acquire()`` / ``await lock.acquire()`` (bare or assigned) holds a
  guard until the end of the enclosing block;
- ``lock.release()``, rebinding the guard's name, or handing the guard to
  another call ends tracking.

Every ``await`` reached while a guard is live is reported once per guard.
Nested functions, lambdas and classes start with no live guards.
"""

from __future__ import annotations

import ast

from slowpath.analyzer.models import Diagnostic, Severity
from slowpath.analyzer.visitor import GuardBinding, RuleVisitor, terminal_name
from slowpath.rules import Rule
from slowpath.rules.patterns import (
    ACQUIRE_WRAPPERS,
    LOCK_FACTORIES,
    LOCK_NAME_RE,
    SEMAPHORE_FACTORIES,
    SEMAPHORE_NAME_RE,
)

_SUGGESTION = (
    "Release the lock before awaiting, or narrow the locked region so the "
    "await happens outside it."
)


def lock_bindings(tree: ast.AST) -> dict[str, str]:
    """Names bound anywhere in the file from a lock factory call, mapped to
    the factory (``self._lock = asyncio.Lock()`` -> ``{"_lock": "Lock"}``)."""
    bindings: dict[str, str] = {}
    for node in ast.walk(tree):
        if isinstance(node, ast.Assign):
            targets, value = node.targets, node.value
        elif isinstance(node, ast.AnnAssign) and node.value is not None:
            targets, value = [node.target], node.value
        else:
            continue
        if not isinstance(value, ast.Call):
            continue
        factory = terminal_name(value.func)
        if factory not in LOCK_FACTORIES:
            continue
        for target in targets:
            name = terminal_name(target)
            if name:
                bindings[name] = factory
    return bindings


def is_lock_like(expr: ast.AST, bindings: dict[str, str]) -> bool:
    """Whether ``expr`` names a lock, mutex or semaphore."""
    name = terminal_name(expr)
    if name is None:
        return False
    return name in bindings or name in LOCK_FACTORIES or bool(LOCK_NAME_RE.search(name))


def is_exclusive_lock(expr: ast.AST, bindings: dict[str, str]) -> bool:
    """Like :func:`is_lock_like`, minus counting semaphores and limiters."""
    name = terminal_name(expr)
    if name is None:
        return False
    factory = bindings.get(name) or (name if name in LOCK_FACTORIES else None)
    if factory is not None:
        return factory not in SEMAPHORE_FACTORIES
    if SEMAPHORE_NAME_RE.search(name):
        return False
    return bool(LOCK_NAME_RE.search(name))


class LockAcrossAwaitRule(Rule):
    id = "lock-across-await"
    name = "Lock Held Across Await"
    description = (
        "Detects lock guards that are still held when the coroutine suspends at "
        "an await, which stalls or deadlocks other tasks"
    )
    default_severity = Severity.ERROR
    high_confidence = True

    def check(self, ctx) -> list[Diagnostic]:
        return _LockAcrossAwaitVisitor(ctx, self).run()


class _LockAcrossAwaitVisitor(RuleVisitor):
    def __init__(self, ctx, rule) -> None:
        super().__init__(ctx, rule)
        self.locks = lock_bindings(ctx.tree)

    # -- acquisition -----------------------------------------------------

    def visit_With(self, node: ast.With | ast.AsyncWith) -> None:
        kind = "async" if isinstance(node, ast.AsyncWith) else "sync"
        self.visit_all(node.items)
        self.state.enter_block()
        try:
            for item in node.items:
                if not is_exclusive_lock(item.context_expr, self.locks):
                    continue
                # Held until the block exits, whatever happens to the `as` name.
                lock = self.ctx.segment(item.context_expr)
                self.state.push_guard(
                    GuardBinding(lock, kind, self.ctx.span(item.context_expr), lock)
                )
            for stmt in node.body:
                self.visit(stmt)
        finally:
            self.state.exit_block()

    visit_AsyncWith = visit_With

    def _acquisition(self, expr: ast.AST) -> tuple[ast.AST, bool] | None:
        """The lock expression and whether the acquire is awaited, if ``expr``
        acquires an exclusive lock."""
        awaited = isinstance(expr, ast.Await)
        if awaited:
            expr = expr.value
        if (
            isinstance(expr, ast.Call)
            and expr.args
            and self.ctx.qualified_name(expr.func) in ACQUIRE_WRAPPERS
        ):
            expr = expr.args[0]
        if (
            isinstance(expr, ast.Call)
            and isinstance(expr.func, ast.Attribute)
            and expr.func.attr == "acquire"
            and is_exclusive_lock(expr.func.value, self.locks)
        ):
            return expr.func.value, awaited
        return None

    def _acquire(self, site: ast.AST, lock_expr: ast.AST, awaited: bool) -> None:
        lock = self.ctx.segment(lock_expr)
        self.state.push_guard(
            GuardBinding(lock, "async" if awaited else "sync", self.ctx.span(site), lock)
        )

    def visit_Expr(self, node: ast.Expr) -> None:
        acquired = self._acquisition(node.value)
        if acquired is None:
            self.generic_visit(node)
        else:
            self._acquire(node.value, *acquired)

    def visit_Assign(self, node: ast.Assign) -> None:
        acquired = self._acquisition(node.value)
        if acquired is None:
            self.visit(node.value)
        self.visit_all(node.targets)
        for target in node.targets:
            self._rebind(target)
        if acquired is not None:
            self._acquire(node.value, *acquired)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        acquired = self._acquisition(node.value) if node.value is not None else None
        if acquired is None and node.value is not None:
            self.visit(node.value)
        self.visit_all([node.target, node.annotation])
        self._rebind(node.target)
        if acquired is not None:
            self._acquire(node.value, *acquired)

    def _rebind(self, target: ast.AST) -> None:
        for sub in ast.walk(target):
            if isinstance(sub, ast.Name):
                self.state.release_guard(sub.id)

    # -- release ---------------------------------------------------------

    def visit_Call(self, node: ast.Call) -> None:
        if self.state.live_guards:
            func = node.func
            if isinstance(func, ast.Attribute) and func.attr == "release":
                self.state.release_guard(self.ctx.segment(func.value))
            else:
                # A guard handed to another call is no longer tracked.
                for arg in [*node.args, *(kw.value for kw in node.keywords)]:
                    if isinstance(arg, (ast.Name, ast.Attribute)):
                        self.state.release_guard(self.ctx.segment(arg))
        self.generic_visit(node)

    # -- suspension ------------------------------------------------------

    def visit_Await(self, node: ast.Await) -> None:
        if self.state.in_async:
            for guard in self.state.live_guards:
                self.report(
                    node,
                    _message(guard),
                    suggestion=_SUGGESTION,
                    related_span=guard.span,
                )
        self.generic_visit(node)

    # -- nested scopes ---------------------------------------------------

    def visit_function_body(self, node) -> None:
        outer = self.state.isolate_guards()
        try:
            super().visit_function_body(node)
        finally:
            self.state.restore_guards(outer)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        outer = self.state.isolate_guards()
        try:
            self.generic_visit(node)
        finally:
            self.state.restore_guards(outer)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        outer = self.state.isolate_guards()
        try:
            super().visit_ClassDef(node)
        finally:
            self.state.restore_guards(outer)


def _message(guard: GuardBinding) -> str:
    line = guard.span.start_line
    if guard.kind == "sync":
        return (
            f"Synchronous lock `{guard.name}` (acquired on line {line}) is held across "
            "an await point; another task contending for it blocks the event loop "
            "and can deadlock"
        )
    return (
        f"Lock guard `{guard.name}` (acquired on line {line}) is held across an "
        "await point; every task contending for it stalls until this one resumes"
    )
