"""Rule registry — the built-in rules, created once per process.

:func:`all_rules` returns the same tuple on every call; rule instances are
stateless, so the tuple is shared read-only for the life of the process
(worker processes build their own on first use). Custom rules join through
:class:`RuleSet`, which never mutates the built-in tuple.
"""

from __future__ import annotations

import functools
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

from slowpath.rules import Rule
from slowpath.rules.async_rules import AsyncBlockingRule, UnboundedQueueRule, UnboundedSpawnRule
from slowpath.rules.database_rules import NPlusOneQueryRule
from slowpath.rules.iter_rules import CollectThenIterateRule, ContainerBuildInLoopRule
from slowpath.rules.lock_across_await import LockAcrossAwaitRule
from slowpath.rules.loop_rules import (
    CopyInLoopRule,
    FormatInLoopRule,
    LockInLoopRule,
    PopFrontInLoopRule,
    RegexInLoopRule,
    StringConcatLoopRule,
)

if TYPE_CHECKING:
    from slowpath.config import SlowpathConfig


@functools.cache
def all_rules() -> tuple[Rule, ...]:
    return (
        # Async rules
        AsyncBlockingRule(),
        LockAcrossAwaitRule(),
        UnboundedQueueRule(),
        UnboundedSpawnRule(),
        # Database rules
        NPlusOneQueryRule(),
        # Loop rules
        RegexInLoopRule(),
        CopyInLoopRule(),
        FormatInLoopRule(),
        StringConcatLoopRule(),
        LockInLoopRule(),
        PopFrontInLoopRule(),
        # Iteration rules
        CollectThenIterateRule(),
        ContainerBuildInLoopRule(),
    )


@functools.cache
def _index() -> dict[str, Rule]:
    return {rule.id: rule for rule in all_rules()}


def get_rule(rule_id: str) -> Rule | None:
    return _index().get(rule_id)


def has_rule(rule_id: str) -> bool:
    return rule_id in _index()


def rule_ids() -> list[str]:
    return [rule.id for rule in all_rules()]


class RuleSet:
    """An ordered, duplicate-free collection of rules.

    ``RuleSet.builtin().with_rule(MyRule())`` combines the built-ins with a
    custom rule. Every ``with_*`` call returns a new set.
    """

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._rules: dict[str, Rule] = {}
        for rule in rules:
            self._add(rule, replace=False)

    @classmethod
    def builtin(cls) -> RuleSet:
        return cls(all_rules())

    def with_rule(self, rule: Rule, replace: bool = False) -> RuleSet:
        """Return a copy including ``rule``.

        Raises ValueError when a rule with the same id exists, unless
        ``replace`` is set.
        """
        new = RuleSet(self._rules.values())
        new._add(rule, replace=replace)
        return new

    def without(self, rule_id: str) -> RuleSet:
        return RuleSet(r for r in self._rules.values() if r.id != rule_id)

    def _add(self, rule: Rule, replace: bool) -> None:
        if not rule.id:
            raise ValueError(f"{type(rule).__name__} has no id")
        if rule.id in self._rules and not replace:
            raise ValueError(f"Rule with id '{rule.id}' already exists")
        self._rules[rule.id] = rule

    def get(self, rule_id: str) -> Rule | None:
        return self._rules.get(rule_id)

    def ids(self) -> list[str]:
        return list(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)


def active_rules(
    config: SlowpathConfig,
    rules: Iterable[Rule] | None = None,
    selected: Iterable[str] | None = None,
) -> list[Rule]:
    """The rules that run for ``config``.

    ``selected`` narrows to the given ids. Strict mode drops every rule not
    in ``config.strict_rules`` before anything runs, and rules configured
    ``allow`` are skipped outright.
    """
    rules = list(all_rules() if rules is None else rules)
    if selected is not None:
        wanted = set(selected)
        rules = [r for r in rules if r.id in wanted]
    if config.strict:
        rules = [r for r in rules if r.id in config.strict_rules]
    return [r for r in rules if not config.is_allowed(r.id)]
