"""Tests for the loop-scoped pattern family."""

from __future__ import annotations

import ast

from slowpath.analyzer.models import Severity
from slowpath.rules.loop_rules import is_string_expr


class TestRegexInLoop:
    RULE = "regex-in-loop"

    def test_compile_in_for_body(self, analyze):
        found = analyze(
            r"""
            import re

            def numbers(lines):
                for line in lines:
                    if re.compile(r"\d+").match(line):
                        yield line
            """,
            self.RULE,
        )
        assert len(found) == 1
        assert found[0].suggestion.startswith("Compile the pattern once")

    def test_hoisted_compile(self, analyze):
        found = analyze(
            r"""
            import re

            DIGITS = re.compile(r"\d+")

            def numbers(lines):
                for line in lines:
                    if DIGITS.match(line):
                        yield line
            """,
            self.RULE,
        )
        assert found == []

    def test_pattern_built_from_loop_variable(self, analyze):
        found = analyze(
            """
            import re

            def matchers(words):
                for word in words:
                    yield re.compile(word)
            """,
            self.RULE,
        )
        assert found == []

    def test_aliased_module(self, analyze):
        found = analyze(
            """
            import re as regex_lib

            while True:
                regex_lib.compile("a+")
            """,
            self.RULE,
        )
        assert len(found) == 1

    def test_compile_in_while_condition(self, analyze):
        found = analyze(
            """
            import re

            def skip(s):
                while re.compile("a+").match(s):
                    s = s[1:]
                return s
            """,
            self.RULE,
        )
        assert len(found) == 1


class TestCopyInLoop:
    RULE = "copy-in-loop"

    def test_deepcopy_of_invariant(self, analyze):
        found = analyze(
            """
            import copy

            def expand(template, rows):
                for row in rows:
                    out = copy.deepcopy(template)
                    out.update(row)
            """,
            self.RULE,
        )
        assert len(found) == 1
        assert "copy.deepcopy()" in found[0].message

    def test_copy_of_loop_item(self, analyze):
        found = analyze(
            """
            import copy

            def expand(rows):
                for row in rows:
                    yield copy.copy(row)
            """,
            self.RULE,
        )
        assert found == []

    def test_method_copy(self, analyze):
        found = analyze(
            """
            def expand(defaults, rows):
                for row in rows:
                    merged = defaults.copy()
            """,
            self.RULE,
        )
        assert [d.message for d in found] == [
            "`defaults.copy()` copies the same value on every loop iteration"
        ]


class TestFormatInLoop:
    def test_literal_format(self, analyze):
        found = analyze(
            """
            for name in names:
                print("hello {}".format(name))
            """,
            "format-in-loop",
        )
        assert len(found) == 1
        assert found[0].severity == Severity.INFO

    def test_outside_loop(self, analyze):
        found = analyze('greeting = "hello {}".format(name)\n', "format-in-loop")
        assert found == []


class TestStringConcat:
    RULE = "string-concat-loop"

    def test_string_accumulator(self, analyze):
        found = analyze(
            """
            def render(rows):
                out = ""
                for row in rows:
                    out += row
                return out
            """,
            self.RULE,
        )
        assert len(found) == 1
        assert "`out`" in found[0].message

    def test_self_assignment_with_fstring(self, analyze):
        found = analyze(
            """
            def render(rows, text):
                for row in rows:
                    text = text + f"{row}\\n"
                return text
            """,
            self.RULE,
        )
        assert len(found) == 1

    def test_numeric_accumulator(self, analyze):
        found = analyze(
            """
            def total(rows):
                count = 0
                acc = 0
                for row in rows:
                    count += 1
                    acc += row
                return count, acc
            """,
            self.RULE,
        )
        assert found == []

    def test_annotated_parameter(self, analyze):
        found = analyze(
            """
            def pad(prefix: str, parts):
                for part in parts:
                    prefix += part
                return prefix
            """,
            self.RULE,
        )
        assert len(found) == 1

    def test_long_concatenation_chain(self):
        chain: ast.expr = ast.Constant(value="head")
        for _ in range(5000):
            chain = ast.BinOp(left=chain, op=ast.Add(), right=ast.Name(id="x", ctx=ast.Load()))
        assert is_string_expr(chain)

        numbers: ast.expr = ast.Constant(value=0)
        for _ in range(5000):
            numbers = ast.BinOp(left=numbers, op=ast.Add(), right=ast.Constant(value=1))
        assert not is_string_expr(numbers)


class TestLockInLoop:
    RULE = "lock-in-loop"

    def test_with_lock_per_iteration(self, analyze):
        found = analyze(
            """
            def drain(self, items):
                for item in items:
                    with self._lock:
                        self.items.append(item)
            """,
            self.RULE,
        )
        assert len(found) == 1
        assert found[0].context_line == "with self._lock:"

    def test_acquire_per_iteration(self, analyze):
        found = analyze(
            """
            def drain(mutex, items):
                while items:
                    mutex.acquire()
                    items.pop()
                    mutex.release()
            """,
            self.RULE,
        )
        assert len(found) == 1

    def test_semaphore_in_loop(self, analyze):
        found = analyze(
            """
            import threading

            slots = threading.BoundedSemaphore(4)

            def run(jobs):
                for job in jobs:
                    with slots:
                        job()
            """,
            self.RULE,
        )
        assert found == []


class TestPopFront:
    RULE = "pop-front-in-loop"

    def test_pop_zero(self, analyze):
        found = analyze(
            """
            def consume(queue):
                while queue:
                    handle(queue.pop(0))
            """,
            self.RULE,
        )
        assert len(found) == 1
        assert "collections.deque" in found[0].suggestion

    def test_insert_zero(self, analyze):
        found = analyze(
            """
            def reverse(items):
                out = []
                for item in items:
                    out.insert(0, item)
                return out
            """,
            self.RULE,
        )
        assert len(found) == 1

    def test_pop_from_end(self, analyze):
        found = analyze(
            """
            def consume(stack, mapping):
                while stack:
                    stack.pop()
                    mapping.pop(0, None)
            """,
            self.RULE,
        )
        assert found == []
