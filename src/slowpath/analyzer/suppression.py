"""Inline suppression markers.

Two forms, both read from comments (never from string contents):

- ``# slowpath-ignore`` or ``# slowpath-ignore: rule-id[, rule-id]`` silences
  diagnostics that start on the same line;
- ``# slowpath: allow(slowpath::rule_id)`` on the line directly above a
  ``def``/``class`` (or its first decorator), or trailing its header line,
  silences diagnostics inside that declaration's span.

``all`` (or no id) matches every rule.
"""

from __future__ import annotations

import ast
import io
import logging
import re
import tokenize
from collections.abc import Iterable
from dataclasses import dataclass, field

from slowpath.analyzer.context import AnalysisContext
from slowpath.analyzer.models import Diagnostic, Span
from slowpath.rules.registry import rule_ids

logger = logging.getLogger(__name__)

_IGNORE_RE = re.compile(r"#\s*slowpath-ignore\b(?:\s*:\s*(?P<ids>[\w\-, ]*))?")
_ALLOW_RE = re.compile(r"#\s*slowpath:\s*allow\((?P<ids>[^)]*)\)")
_TOOL_PREFIX = "slowpath::"

_DECLARATIONS = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)


@dataclass(frozen=True)
class LineMarker:
    line: int
    rule_id: str | None = None

    def matches(self, diagnostic: Diagnostic) -> bool:
        return diagnostic.span.start_line == self.line and self.rule_id in (
            None,
            diagnostic.rule_id,
        )


@dataclass(frozen=True)
class SpanMarker:
    span: Span
    rule_id: str | None = None

    def matches(self, diagnostic: Diagnostic) -> bool:
        return self.span.contains(diagnostic.span) and self.rule_id in (
            None,
            diagnostic.rule_id,
        )


@dataclass
class SuppressionTable:
    lines: list[LineMarker] = field(default_factory=list)
    spans: list[SpanMarker] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.lines or self.spans)

    def is_suppressed(self, diagnostic: Diagnostic) -> bool:
        return any(m.matches(diagnostic) for m in self.lines) or any(
            m.matches(diagnostic) for m in self.spans
        )


@dataclass(frozen=True)
class _Comment:
    line: int
    text: str
    trailing: bool


def _comments(source: str) -> list[_Comment]:
    comments: list[_Comment] = []
    readline = io.StringIO(source).readline
    try:
        for tok in tokenize.generate_tokens(readline):
            if tok.type == tokenize.COMMENT:
                trailing = bool(tok.line[: tok.start[1]].strip())
                comments.append(_Comment(tok.start[0], tok.string, trailing))
    except (tokenize.TokenError, SyntaxError) as e:
        logger.debug("Stopped reading comments early: %s", e)
    return comments


def _rule_ids(raw: str | None, where: str, known: frozenset[str]) -> list[str | None]:
    """Normalize a marker's id list; an empty list or ``all`` means every rule."""
    if raw is None or not raw.strip():
        return [None]
    ids: list[str | None] = []
    for part in raw.split(","):
        rule_id = part.strip()
        if rule_id.startswith(_TOOL_PREFIX):
            rule_id = rule_id[len(_TOOL_PREFIX) :]
        rule_id = rule_id.replace("_", "-")
        if not rule_id:
            continue
        if rule_id == "all":
            ids.append(None)
        elif rule_id in known:
            ids.append(rule_id)
        else:
            logger.warning("%s: unknown rule id in suppression marker: %s", where, rule_id)
    return ids


def _header_end(node: ast.AST) -> int:
    """Last line of a declaration's header (the line holding its colon)."""
    body = getattr(node, "body", None)
    if body:
        return max(node.lineno, body[0].lineno - 1)
    return node.lineno


def _attached(comment: _Comment, declarations: list[ast.AST]) -> list[ast.AST]:
    attached = []
    for node in declarations:
        first = node.decorator_list[0].lineno if node.decorator_list else node.lineno
        if not comment.trailing and comment.line == first - 1:
            attached.append(node)
        elif comment.trailing and node.lineno <= comment.line <= _header_end(node):
            attached.append(node)
    return attached


def extract_suppressions(
    ctx: AnalysisContext,
    known_ids: Iterable[str] | None = None,
) -> SuppressionTable:
    """Build the suppression table for one file."""
    known = frozenset(rule_ids() if known_ids is None else known_ids)
    table = SuppressionTable()

    comments = _comments(ctx.source)
    if not any("slowpath" in c.text for c in comments):
        return table

    declarations = [n for n in ast.walk(ctx.tree) if isinstance(n, _DECLARATIONS)]
    for comment in comments:
        where = f"{ctx.path}:{comment.line}"
        ignore = _IGNORE_RE.search(comment.text)
        if ignore:
            for rule_id in _rule_ids(ignore.group("ids"), where, known):
                table.lines.append(LineMarker(comment.line, rule_id))
            continue
        allow = _ALLOW_RE.search(comment.text)
        if not allow:
            continue
        nodes = _attached(comment, declarations)
        if not nodes:
            logger.debug("%s: allow marker is not attached to a def or class", where)
            continue
        ids = _rule_ids(allow.group("ids"), where, known)
        for node in nodes:
            start = node.decorator_list[0] if node.decorator_list else node
            span = ctx.span(start, end_node=node)
            for rule_id in ids:
                table.spans.append(SpanMarker(span, rule_id))
    return table
