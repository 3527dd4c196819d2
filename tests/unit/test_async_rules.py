"""Tests for blocking calls in async code, unbounded queues and task spawning."""

from __future__ import annotations

from slowpath.analyzer.models import Severity


class TestAsyncBlocking:
    RULE = "async-block-in-async"

    def test_open_in_async_def(self, analyze):
        found = analyze(
            """
            async def load(path):
                return open(path).read()
            """,
            self.RULE,
        )
        assert len(found) == 1
        assert found[0].severity == Severity.ERROR
        assert "file I/O" in found[0].message

    def test_open_in_sync_def(self, analyze):
        found = analyze(
            """
            def load(path):
                return open(path).read()
            """,
            self.RULE,
        )
        assert found == []

    def test_time_sleep_suggests_asyncio_sleep(self, analyze):
        found = analyze(
            """
            import time

            async def poll():
                time.sleep(1)
            """,
            self.RULE,
        )
        assert len(found) == 1
        assert "`time.sleep`" in found[0].message
        assert "asyncio.sleep" in found[0].suggestion

    def test_from_import_alias(self, analyze):
        found = analyze(
            """
            from subprocess import run as sh

            async def deploy():
                sh(["make"])
            """,
            self.RULE,
        )
        assert len(found) == 1
        assert "process spawn-and-wait" in found[0].message

    def test_local_name_shadowing_module(self, analyze):
        found = analyze(
            """
            async def handler():
                requests = {}
                return requests.get("a")
            """,
            self.RULE,
        )
        assert found == []

    def test_path_methods(self, analyze):
        found = analyze(
            """
            from pathlib import Path

            async def read(p):
                return Path(p).read_text()
            """,
            self.RULE,
        )
        assert [d.message.split("`")[1] for d in found] == [".read_text()"]

    def test_sync_closure_inside_coroutine(self, analyze):
        found = analyze(
            """
            import time

            async def f():
                def helper():
                    time.sleep(1)
                helper()
            """,
            self.RULE,
        )
        assert len(found) == 1

    def test_offloaded_calls_are_exempt(self, analyze):
        found = analyze(
            """
            import asyncio
            import time

            async def f(loop):
                await loop.run_in_executor(None, lambda: time.sleep(1))
                await asyncio.to_thread(lambda: open("f").read())
            """,
            self.RULE,
        )
        assert found == []

    def test_offload_arguments_run_on_the_loop(self, analyze):
        found = analyze(
            """
            import asyncio

            async def load(path):
                return await asyncio.to_thread(parse, open(path).read())
            """,
            self.RULE,
        )
        assert len(found) == 1
        assert "`open`" in found[0].message

    def test_awaited_async_path_methods(self, analyze):
        found = analyze(
            """
            import anyio

            async def read(p):
                return await anyio.Path(p).read_text()
            """,
            self.RULE,
        )
        assert found == []

    def test_non_awaited_lock_acquire(self, analyze):
        found = analyze(
            """
            async def f(self):
                self._lock.acquire()
                await self._alock.acquire()
            """,
            self.RULE,
        )
        assert len(found) == 1
        assert "blocking lock acquisition" in found[0].message
        assert found[0].context_line == "self._lock.acquire()"


class TestUnboundedQueue:
    RULE = "unbounded-queue"

    def test_queue_without_maxsize(self, analyze):
        found = analyze(
            """
            import asyncio

            jobs = asyncio.Queue()
            """,
            self.RULE,
        )
        assert len(found) == 1
        assert "asyncio.Queue" in found[0].message

    def test_positive_maxsize(self, analyze):
        found = analyze(
            """
            import asyncio
            import queue

            a = asyncio.Queue(maxsize=100)
            b = queue.Queue(8)
            c = asyncio.Queue(maxsize=capacity)
            """,
            self.RULE,
        )
        assert found == []

    def test_zero_maxsize_is_unbounded(self, analyze):
        found = analyze(
            """
            import queue

            q = queue.Queue(maxsize=0)
            """,
            self.RULE,
        )
        assert len(found) == 1

    def test_simple_queue_always_reported(self, analyze):
        found = analyze(
            """
            import queue

            q = queue.SimpleQueue()
            """,
            self.RULE,
        )
        assert len(found) == 1
        assert "always unbounded" in found[0].message


class TestUnboundedSpawn:
    RULE = "unbounded-task-spawn"

    def test_create_task_in_loop(self, analyze):
        found = analyze(
            """
            import asyncio

            async def crawl(urls):
                for url in urls:
                    asyncio.create_task(fetch(url))
            """,
            self.RULE,
        )
        assert len(found) == 1

    def test_thread_per_item(self, analyze):
        found = analyze(
            """
            import threading

            def start(items):
                for item in items:
                    threading.Thread(target=work, args=(item,)).start()
            """,
            self.RULE,
        )
        assert len(found) == 1

    def test_task_group_is_bounded(self, analyze):
        found = analyze(
            """
            import asyncio

            async def crawl(urls):
                async with asyncio.TaskGroup() as tg:
                    for url in urls:
                        tg.create_task(fetch(url))
            """,
            self.RULE,
        )
        assert found == []

    def test_outside_loop(self, analyze):
        found = analyze(
            """
            import asyncio

            async def main():
                asyncio.create_task(background())
            """,
            self.RULE,
        )
        assert found == []
