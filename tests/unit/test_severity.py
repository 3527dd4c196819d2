"""Tests for severity resolution and rule actions."""

from __future__ import annotations

import pytest

from slowpath.analyzer.models import Diagnostic, Severity, Span
from slowpath.analyzer.severity import resolve
from slowpath.config import RuleAction, SlowpathConfig
from slowpath.rules.registry import get_rule

SOURCE = """
import re

for line in lines:
    re.compile("a+")
    "{}".format(line)
"""


def _diagnostic(rule_id: str, severity: Severity) -> Diagnostic:
    return Diagnostic(rule_id, severity, "message", "f.py", Span(1, 1, 1, 2))


class TestResolve:
    @pytest.mark.parametrize(
        "action, expected",
        [
            (RuleAction.DENY, Severity.ERROR),
            (RuleAction.WARN, Severity.WARNING),
            (None, Severity.WARNING),
        ],
    )
    def test_actions(self, action, expected):
        rule = get_rule("regex-in-loop")
        rules = {rule.id: action} if action else {}
        resolved = resolve(rule, _diagnostic(rule.id, Severity.WARNING), SlowpathConfig(rules=rules))
        assert resolved.severity == expected

    def test_allow_drops(self):
        rule = get_rule("format-in-loop")
        config = SlowpathConfig(rules={rule.id: RuleAction.ALLOW})
        assert resolve(rule, _diagnostic(rule.id, Severity.INFO), config) is None

    def test_severity_parse_aliases(self):
        assert Severity.parse("deny") is Severity.ERROR
        assert Severity.parse("WARN") is Severity.WARNING
        with pytest.raises(ValueError):
            Severity.parse("fatal")

    def test_ordering(self):
        assert Severity.INFO < Severity.WARNING < Severity.ERROR
        assert max([Severity.WARNING, Severity.ERROR, Severity.INFO]) is Severity.ERROR


class TestEndToEnd:
    def test_deny_promotes(self, analyze):
        config = SlowpathConfig(rules={"format-in-loop": RuleAction.DENY})
        found = analyze(SOURCE, "format-in-loop", config=config)
        assert [d.severity for d in found] == [Severity.ERROR]

    @pytest.mark.parametrize("strict", [False, True])
    def test_allowed_rules_never_appear(self, analyze, strict):
        config = SlowpathConfig(
            rules={"regex-in-loop": RuleAction.ALLOW, "format-in-loop": RuleAction.ALLOW},
            strict=strict,
        )
        found = analyze(SOURCE, config=config)
        assert not {"regex-in-loop", "format-in-loop"} & {d.rule_id for d in found}

    def test_strict_mode_runs_high_confidence_rules_only(self, analyze):
        found = analyze(SOURCE, config=SlowpathConfig(strict=True))
        assert {d.rule_id for d in found} == {"regex-in-loop"}

    def test_min_severity(self, analyze):
        found = analyze(SOURCE, config=SlowpathConfig(min_severity=Severity.WARNING))
        assert {d.rule_id for d in found} == {"regex-in-loop"}
