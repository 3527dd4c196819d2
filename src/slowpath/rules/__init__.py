"""Rule abstraction — the extension point every detector implements."""

from __future__ import annotations

import abc
import ast
from typing import TYPE_CHECKING

from slowpath.analyzer.models import Diagnostic, Fix, Severity, Span

if TYPE_CHECKING:
    from slowpath.analyzer.context import AnalysisContext


class Rule(abc.ABC):
    """A stateless detector: reads a context, returns raw diagnostics.

    Subclasses set the class attributes and implement :meth:`check`. Rule
    instances are shared across files and worker processes, so they must not
    keep per-file state; that belongs on a visitor created inside ``check``.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    default_severity: Severity = Severity.WARNING
    high_confidence: bool = False
    fixable: bool = False

    @abc.abstractmethod
    def check(self, ctx: AnalysisContext) -> list[Diagnostic]:
        """Run the detector over one file."""

    def diagnostic(
        self,
        ctx: AnalysisContext,
        node: ast.AST,
        message: str,
        suggestion: str | None = None,
        fix: Fix | None = None,
        related_span: Span | None = None,
        span: Span | None = None,
    ) -> Diagnostic:
        span = span or ctx.span(node)
        return Diagnostic(
            rule_id=self.id,
            severity=self.default_severity,
            message=message,
            file_path=ctx.path,
            span=span,
            suggestion=suggestion,
            fix=fix,
            context_line=ctx.get_line(span.start_line).strip(),
            related_span=related_span,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


__all__ = ["Rule"]
