"""Fix selection and application. Pure text edits; no filesystem access."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace

from slowpath.analyzer.models import Diagnostic, Fix

logger = logging.getLogger(__name__)


def select_fixes(diagnostics: list[Diagnostic]) -> list[Diagnostic]:
    """Strip fixes that overlap an earlier one so a file's fixes never overlap.

    Fixes are considered in source order; the first one wins. The diagnostics
    themselves are all kept, in their original order.
    """
    with_fix = sorted(
        (d for d in diagnostics if d.fix is not None),
        key=lambda d: (d.fix.span.start_offset, d.fix.span.end_offset),
    )
    dropped: set[int] = set()
    end = -1
    for diagnostic in with_fix:
        if diagnostic.fix.span.start_offset < end:
            logger.debug(
                "Dropping overlapping fix for %s at %s:%d",
                diagnostic.rule_id,
                diagnostic.file_path,
                diagnostic.line,
            )
            dropped.add(id(diagnostic))
            continue
        end = diagnostic.fix.span.end_offset
    if not dropped:
        return diagnostics
    return [replace(d, fix=None) if id(d) in dropped else d for d in diagnostics]


def apply_fixes(source: str, fixes: Iterable[Fix]) -> str:
    """Return ``source`` with ``fixes`` applied.

    Edits run from the end of the text toward the start so earlier offsets
    stay valid. Raises ValueError on overlapping fixes.
    """
    ordered = sorted(fixes, key=lambda f: (f.span.start_offset, f.span.end_offset))
    for prev, fix in zip(ordered, ordered[1:]):
        if fix.span.start_offset < prev.span.end_offset:
            raise ValueError(
                f"Overlapping fixes at line {prev.span.start_line} and line {fix.span.start_line}"
            )
    for fix in reversed(ordered):
        start, end = fix.span.start_offset, fix.span.end_offset
        source = source[:start] + fix.replacement + source[end:]
    return source
