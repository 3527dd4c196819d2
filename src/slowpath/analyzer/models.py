"""Analyzer data models — severities, spans, diagnostics and run results."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field


class Severity(enum.Enum):
    """Diagnostic severity level, ordered INFO < WARNING < ERROR."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def __lt__(self, other: Severity) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: Severity) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: Severity) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: Severity) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: str) -> Severity:
        """Parse a severity name; accepts ``warn`` and ``deny`` as aliases."""
        key = value.strip().lower()
        key = {"warn": "warning", "deny": "error"}.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown severity: {value}") from None


_RANKS = {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2}


@dataclass(frozen=True)
class Span:
    """A source range. Lines and columns are 1-based, columns in characters."""

    start_line: int
    start_column: int
    end_line: int
    end_column: int
    start_offset: int = 0
    end_offset: int = 0

    def contains(self, other: Span) -> bool:
        return (self.start_line, self.start_column) <= (
            other.start_line,
            other.start_column,
        ) and (other.end_line, other.end_column) <= (self.end_line, self.end_column)

    def overlaps(self, other: Span) -> bool:
        return self.start_offset < other.end_offset and other.start_offset < self.end_offset


@dataclass(frozen=True)
class Fix:
    """A textual replacement of one span. Never touches the filesystem."""

    span: Span
    replacement: str
    description: str = ""


@dataclass(frozen=True)
class Diagnostic:
    """A single defect reported by a rule."""

    rule_id: str
    severity: Severity
    message: str
    file_path: str
    span: Span
    suggestion: str | None = None
    fix: Fix | None = None
    context_line: str = ""
    related_span: Span | None = None

    @property
    def line(self) -> int:
        return self.span.start_line

    @property
    def column(self) -> int:
        return self.span.start_column

    @property
    def sort_key(self) -> tuple[str, int, int, str]:
        return (self.file_path, self.span.start_line, self.span.start_column, self.rule_id)


@dataclass
class FileReport:
    """Outcome of analyzing one file: diagnostics, or the reason it was skipped."""

    path: str
    diagnostics: list[Diagnostic] = field(default_factory=list)
    warning: str = ""

    @property
    def skipped(self) -> bool:
        return bool(self.warning)


@dataclass
class AnalysisResult:
    """Aggregate result of one run over a set of files."""

    diagnostics: list[Diagnostic] = field(default_factory=list)
    files_analyzed: int = 0
    files_skipped: int = 0
    warnings: list[str] = field(default_factory=list)
    duration: float = 0.0
    timestamp: float = field(default_factory=time.time)

    def count(self, severity: Severity) -> int:
        return sum(1 for d in self.diagnostics if d.severity == severity)

    def failed(self, fail_on: Severity | None) -> bool:
        """True when any diagnostic meets the minimum failing severity."""
        if fail_on is None:
            return False
        return any(d.severity >= fail_on for d in self.diagnostics)
