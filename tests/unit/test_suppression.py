"""Tests for inline suppression markers."""

from __future__ import annotations

import logging

from slowpath.analyzer.suppression import extract_suppressions

RULE = "async-block-in-async"


class TestIgnoreComments:
    def test_bare_ignore_silences_its_line_only(self, analyze):
        found = analyze(
            """
            import time

            async def f():
                time.sleep(1)  # slowpath-ignore
                time.sleep(2)
            """,
            RULE,
        )
        assert [d.context_line for d in found] == ["time.sleep(2)"]

    def test_scoped_ignore(self, analyze):
        source = """
        import time

        async def f():
            time.sleep(1)  # slowpath-ignore: {ids}
        """
        assert analyze(source.format(ids="regex-in-loop"), RULE) != []
        assert analyze(source.format(ids="async-block-in-async"), RULE) == []
        assert analyze(source.format(ids="regex-in-loop, async_block_in_async"), RULE) == []

    def test_marker_inside_string_is_not_a_comment(self, analyze):
        found = analyze(
            """
            import time

            async def f():
                note = "# slowpath-ignore"; time.sleep(1)
            """,
            RULE,
        )
        assert len(found) == 1

    def test_unknown_rule_id_warns(self, analyze, caplog):
        with caplog.at_level(logging.WARNING, logger="slowpath"):
            found = analyze(
                """
                import time

                async def f():
                    time.sleep(1)  # slowpath-ignore: no-such-rule
                """,
                RULE,
            )
        assert len(found) == 1
        assert "unknown rule id in suppression marker: no-such-rule" in caplog.text


class TestAllowMarkers:
    def test_allow_above_function(self, analyze):
        found = analyze(
            """
            import time

            # slowpath: allow(slowpath::async_block_in_async)
            async def quiet():
                time.sleep(1)


            async def loud():
                time.sleep(1)
            """,
            RULE,
        )
        assert len(found) == 1
        assert found[0].line == 10

    def test_allow_above_decorator(self, analyze):
        found = analyze(
            """
            import time

            # slowpath: allow(slowpath::async_block_in_async)
            @route("/")
            async def index():
                time.sleep(1)
            """,
            RULE,
        )
        assert found == []

    def test_trailing_allow_on_class_header(self, analyze):
        found = analyze(
            """
            import time

            class Worker:  # slowpath: allow(all)
                async def run(self):
                    time.sleep(1)
            """,
            RULE,
        )
        assert found == []

    def test_allow_for_other_rule(self, analyze):
        found = analyze(
            """
            import time

            # slowpath: allow(slowpath::regex_in_loop)
            async def f():
                time.sleep(1)
            """,
            RULE,
        )
        assert len(found) == 1

    def test_detached_marker_is_ignored(self, make_context):
        ctx = make_context(
            """
            # slowpath: allow(all)

            async def f():
                pass
            """
        )
        assert not extract_suppressions(ctx)


class TestSuppressionTable:
    def test_span_covers_decorators_and_body(self, make_context):
        ctx = make_context(
            """
            # slowpath: allow(slowpath::lock_across_await)
            @decorated
            async def f():
                pass
            """
        )
        table = extract_suppressions(ctx)
        assert len(table.spans) == 1
        marker = table.spans[0]
        assert marker.rule_id == "lock-across-await"
        assert (marker.span.start_line, marker.span.end_line) == (3, 5)
