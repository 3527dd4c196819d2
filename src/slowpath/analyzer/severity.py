"""Final severity of a diagnostic: configuration override, else rule default."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from slowpath.analyzer.models import Diagnostic
from slowpath.config import RuleAction, SlowpathConfig

if TYPE_CHECKING:
    from slowpath.rules import Rule


def resolve(rule: Rule, diagnostic: Diagnostic, config: SlowpathConfig) -> Diagnostic | None:
    """Apply the configured action for ``rule`` to ``diagnostic``.

    ``deny`` maps to ERROR and ``warn`` to WARNING; ``allow`` returns None so
    the diagnostic is dropped. Without an override the rule's default applies.
    """
    action = config.action_for(rule.id)
    if action is RuleAction.ALLOW:
        return None
    severity = action.severity if action is not None else rule.default_severity
    if diagnostic.severity is severity:
        return diagnostic
    return replace(diagnostic, severity=severity)
