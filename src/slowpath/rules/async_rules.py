"""Async-correctness rules: blocking calls on the event loop, unbounded
queues, and unbounded task spawning."""

from __future__ import annotations

import ast

from slowpath.analyzer.models import Diagnostic, Severity
from slowpath.analyzer.visitor import RuleVisitor, terminal_name
from slowpath.rules import Rule
from slowpath.rules.lock_across_await import is_lock_like, lock_bindings
from slowpath.rules.patterns import (
    ALWAYS_UNBOUNDED_QUEUES,
    BLOCKING_CALLS,
    BLOCKING_METHODS,
    BOUNDED_SPAWNER_RE,
    LOCK_ACQUIRE_ALTERNATIVE,
    LOCK_CATEGORY,
    OFFLOAD_CALLS,
    QUEUE_FACTORIES,
    SPAWN_FUNCTIONS,
    SPAWN_METHODS,
    BlockingCall,
)

# ============================================================================
# Blocking calls inside async functions
# ============================================================================


class AsyncBlockingRule(Rule):
    """Blocking calls lexically inside an ``async def``.

    Synchronous closures nested in the coroutine count too: they run on the
    same thread. Lambdas handed to offloading calls (``asyncio.to_thread``,
    ``loop.run_in_executor``) are exempt; other arguments are evaluated on
    the loop and checked as usual.
    """

    id = "async-block-in-async"
    name = "Blocking Call in Async Function"
    description = "Detects blocking calls inside async functions that should use async alternatives"
    default_severity = Severity.ERROR
    high_confidence = True

    def check(self, ctx) -> list[Diagnostic]:
        return _AsyncBlockingVisitor(ctx, self).run()


class _AsyncBlockingVisitor(RuleVisitor):
    def __init__(self, ctx, rule) -> None:
        super().__init__(ctx, rule)
        self.locks = lock_bindings(ctx.tree)
        self._awaited: set[int] = set()

    def visit_Await(self, node: ast.Await) -> None:
        if isinstance(node.value, ast.Call):
            self._awaited.add(id(node.value))
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        if self.state.in_async:
            self._check(node)
        if terminal_name(node.func) not in OFFLOAD_CALLS:
            self.generic_visit(node)
            return
        self.visit(node.func)
        # Only deferred callables leave the loop; argument expressions still
        # evaluate here before the hand-off.
        for arg in [*node.args, *(kw.value for kw in node.keywords)]:
            if isinstance(arg, ast.Lambda):
                self._visit_offloaded(arg)
            else:
                self.visit(arg)

    def _visit_offloaded(self, node: ast.Lambda) -> None:
        saved = self.state.async_depth
        self.state.async_depth = 0
        try:
            self.visit(node)
        finally:
            self.state.async_depth = saved

    def _check(self, node: ast.Call) -> None:
        func = node.func
        awaited = id(node) in self._awaited
        label = self.ctx.imported_name(func)
        blocking = BLOCKING_CALLS.get(label) if label else None
        if blocking is None and isinstance(func, ast.Attribute):
            # Awaited file methods belong to async Path wrappers (anyio, trio, aiofiles).
            blocking = None if awaited else BLOCKING_METHODS.get(func.attr)
            label = f".{func.attr}()"
            if (
                blocking is None
                and func.attr == "acquire"
                and not awaited
                and is_lock_like(func.value, self.locks)
            ):
                blocking = BlockingCall(LOCK_CATEGORY, LOCK_ACQUIRE_ALTERNATIVE)
                label = f"{self.ctx.segment(func.value)}.acquire()"
        if blocking is None:
            return
        self.report(
            node,
            f"Blocking call `{label}` ({blocking.category}) inside async function "
            "stalls the event loop",
            suggestion=f"Use {blocking.alternative} instead",
        )


# ============================================================================
# Unbounded queues
# ============================================================================


class UnboundedQueueRule(Rule):
    id = "unbounded-queue"
    name = "Unbounded Queue"
    description = "Detects queues created without a maxsize, which give producers no backpressure"
    default_severity = Severity.WARNING

    def check(self, ctx) -> list[Diagnostic]:
        return _UnboundedQueueVisitor(ctx, self).run()


class _UnboundedQueueVisitor(RuleVisitor):
    def visit_Call(self, node: ast.Call) -> None:
        factory = self.ctx.imported_name(node.func)
        if factory in ALWAYS_UNBOUNDED_QUEUES:
            self.report(
                node,
                f"`{factory}()` is always unbounded and can grow without limit under load",
                suggestion="Use queue.Queue(maxsize=N) so producers block when consumers fall behind",
            )
        elif factory in QUEUE_FACTORIES and not _has_positive_maxsize(node):
            self.report(
                node,
                f"Unbounded queue `{factory}()` can cause memory exhaustion under load",
                suggestion=f"Pass an explicit capacity: `{factory}(maxsize=N)`",
            )
        self.generic_visit(node)


def _has_positive_maxsize(node: ast.Call) -> bool:
    maxsize = node.args[0] if node.args else None
    for keyword in node.keywords:
        if keyword.arg == "maxsize":
            maxsize = keyword.value
    if maxsize is None:
        return False
    if isinstance(maxsize, ast.Constant):
        value = maxsize.value
        return isinstance(value, int) and not isinstance(value, bool) and value > 0
    # Computed capacities are trusted.
    return True


# ============================================================================
# Unbounded task spawning
# ============================================================================


class UnboundedSpawnRule(Rule):
    id = "unbounded-task-spawn"
    name = "Unbounded Task Spawning"
    description = "Detects task or thread spawning in loops without a concurrency limit"
    default_severity = Severity.WARNING

    def check(self, ctx) -> list[Diagnostic]:
        return _UnboundedSpawnVisitor(ctx, self).run()


class _UnboundedSpawnVisitor(RuleVisitor):
    def visit_Call(self, node: ast.Call) -> None:
        if self.state.in_loop:
            label = self._spawn_label(node.func)
            if label is not None:
                self.report(
                    node,
                    f"Task spawned with `{label}` in a loop without a concurrency limit "
                    "can exhaust resources",
                    suggestion=(
                        "Bound concurrency with an asyncio.Semaphore, or feed a fixed "
                        "pool of workers from a bounded queue"
                    ),
                )
        self.generic_visit(node)

    def _spawn_label(self, func: ast.AST) -> str | None:
        qualified = self.ctx.imported_name(func)
        if qualified in SPAWN_FUNCTIONS:
            return qualified
        if isinstance(func, ast.Attribute) and func.attr in SPAWN_METHODS:
            receiver = terminal_name(func.value)
            if receiver and BOUNDED_SPAWNER_RE.search(receiver):
                return None
            return f".{func.attr}()"
        return None
