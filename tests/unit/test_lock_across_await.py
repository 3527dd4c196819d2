"""Tests for lock guards held across await points."""

from __future__ import annotations

import pytest

from slowpath.analyzer.models import Severity

RULE = "lock-across-await"


@pytest.fixture
def locks(analyze):
    def _run(source: str):
        return analyze(source, RULE)

    return _run


class TestExplicitAcquire:
    def test_await_after_acquire_is_reported_once(self, locks):
        found = locks(
            """
            async def f(lock, counter):
                await lock.acquire()
                counter.value += 1
                await other()
            """
        )
        assert len(found) == 1
        assert found[0].context_line == "await other()"
        assert found[0].severity == Severity.ERROR
        assert found[0].related_span is not None
        assert found[0].related_span.start_line == 3

    def test_release_before_await_clears_guard(self, locks):
        found = locks(
            """
            async def f(lock, counter):
                await lock.acquire()
                counter.value += 1
                lock.release()
                await other()
            """
        )
        assert found == []

    def test_guard_passed_to_call_stops_tracking(self, locks):
        found = locks(
            """
            async def f(lock):
                await lock.acquire()
                hand_off(lock)
                await other()
            """
        )
        assert found == []

    def test_wait_for_acquire(self, locks):
        found = locks(
            """
            import asyncio

            async def f(lock):
                await asyncio.wait_for(lock.acquire(), timeout=1)
                await other()
            """
        )
        assert [d.context_line for d in found] == ["await other()"]

    def test_guard_ends_with_its_block(self, locks):
        found = locks(
            """
            async def f(lock, ready):
                if ready:
                    await lock.acquire()
                await other()
            """
        )
        assert found == []


class TestWithBlocks:
    def test_async_with_body(self, locks):
        found = locks(
            """
            async def f(lock):
                async with lock:
                    await a()
                await b()
            """
        )
        assert [d.context_line for d in found] == ["await a()"]
        assert "Lock guard `lock`" in found[0].message

    def test_reported_under_lock_text(self, locks):
        found = locks(
            """
            async def f(lock):
                async with lock as held:
                    await a()
            """
        )
        assert "`lock`" in found[0].message

    def test_rebinding_as_name_keeps_guard(self, locks):
        found = locks(
            """
            async def f(lock):
                async with lock as held:
                    held = None
                    await other()
            """
        )
        assert [d.context_line for d in found] == ["await other()"]

    def test_sync_lock_in_coroutine(self, locks):
        found = locks(
            """
            import threading

            class Cache:
                def __init__(self):
                    self._guard = threading.Lock()

                async def refresh(self):
                    with self._guard:
                        await self.load()
            """
        )
        assert len(found) == 1
        assert found[0].message.startswith("Synchronous lock `self._guard`")

    def test_one_diagnostic_per_live_guard(self, locks):
        found = locks(
            """
            async def f(read_lock, write_lock):
                async with read_lock, write_lock:
                    await a()
            """
        )
        assert len(found) == 2

    def test_semaphores_are_not_exclusive(self, locks):
        found = locks(
            """
            import asyncio

            limit = asyncio.Semaphore(10)

            async def f(self):
                async with limit:
                    await a()
                async with self._sem:
                    await b()
            """
        )
        assert found == []

    def test_clock_is_not_a_lock(self, locks):
        found = locks(
            """
            async def f(clock):
                async with clock:
                    await a()
            """
        )
        assert found == []


class TestNestedScopes:
    def test_nested_function_starts_empty(self, locks):
        found = locks(
            """
            async def f(lock):
                async with lock:
                    async def inner():
                        await other()
                    return inner
            """
        )
        assert found == []

    def test_outer_guard_survives_nested_function(self, locks):
        found = locks(
            """
            async def f(lock):
                async with lock:
                    async def inner():
                        pass
                    await other()
            """
        )
        assert [d.context_line for d in found] == ["await other()"]
