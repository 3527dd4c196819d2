"""Per-file analysis context — source, tree, config, and a line index."""

from __future__ import annotations

import ast
import bisect
import io
import logging
import tokenize
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from slowpath.analyzer.models import Span
from slowpath.errors import IoFailure, ParseFailure

if TYPE_CHECKING:
    from slowpath.config import SlowpathConfig

logger = logging.getLogger(__name__)


class LineIndex:
    """Precomputed line starts for O(log n) offset -> (line, column) lookups.

    Offsets are character offsets into the source string. ``ast`` reports
    columns as UTF-8 byte offsets, so :meth:`offset` converts those back.
    """

    def __init__(self, source: str) -> None:
        self._source = source
        self._starts = [0]
        for i, ch in enumerate(source):
            if ch == "\n":
                self._starts.append(i + 1)

    @property
    def line_count(self) -> int:
        return len(self._starts)

    def line_start(self, line: int) -> int | None:
        """Offset where a 1-based line starts, or None if out of range."""
        if 1 <= line <= len(self._starts):
            return self._starts[line - 1]
        return None

    def line_col(self, offset: int) -> tuple[int, int]:
        """Convert a character offset to a 1-based (line, column)."""
        offset = max(0, min(offset, len(self._source)))
        idx = bisect.bisect_right(self._starts, offset) - 1
        return idx + 1, offset - self._starts[idx] + 1

    def line_text(self, line: int) -> str:
        start = self.line_start(line)
        if start is None:
            return ""
        end = self._source.find("\n", start)
        return self._source[start:] if end == -1 else self._source[start:end]

    def offset(self, line: int, byte_col: int) -> int:
        """Character offset of an ``ast`` position (1-based line, byte column)."""
        start = self.line_start(line)
        if start is None:
            return len(self._source)
        text = self.line_text(line)
        prefix = text.encode("utf-8")[:byte_col].decode("utf-8", errors="ignore")
        return start + len(prefix)


@dataclass(frozen=True)
class AnalysisContext:
    """Everything a rule needs to analyze one file. Created per file per run."""

    path: str
    source: str
    tree: ast.Module
    config: SlowpathConfig
    line_index: LineIndex = field(repr=False, compare=False)
    imports: dict[str, str] = field(default_factory=dict, repr=False, compare=False)

    def span(self, node: ast.AST, end_node: ast.AST | None = None) -> Span:
        """Span of ``node`` (through ``end_node`` when given)."""
        end_node = end_node or node
        lineno = getattr(node, "lineno", 1)
        col = getattr(node, "col_offset", 0)
        end_lineno = getattr(end_node, "end_lineno", None) or lineno
        end_col = getattr(end_node, "end_col_offset", None)
        if end_col is None:
            end_col = col
        start = self.line_index.offset(lineno, col)
        end = self.line_index.offset(end_lineno, end_col)
        start_line, start_column = self.line_index.line_col(start)
        end_line, end_column = self.line_index.line_col(end)
        return Span(start_line, start_column, end_line, end_column, start, end)

    def line_col(self, offset: int) -> tuple[int, int]:
        return self.line_index.line_col(offset)

    def get_line(self, line: int) -> str:
        return self.line_index.line_text(line)

    def segment(self, node: ast.AST) -> str:
        """Exact source text of a node."""
        span = self.span(node)
        return self.source[span.start_offset : span.end_offset]

    def qualified_name(self, expr: ast.AST) -> str | None:
        """Dotted name of a Name/Attribute chain with import aliases resolved.

        ``import numpy as np; np.load`` resolves to ``numpy.load`` and
        ``from time import sleep; sleep`` to ``time.sleep``. Chains rooted in
        anything other than a name (calls, subscripts) resolve to None.
        """
        parts: list[str] = []
        while isinstance(expr, ast.Attribute):
            parts.append(expr.attr)
            expr = expr.value
        if not isinstance(expr, ast.Name):
            return None
        parts.append(self.imports.get(expr.id, expr.id))
        return ".".join(reversed(parts))

    def imported_name(self, expr: ast.AST) -> str | None:
        """Like :meth:`qualified_name`, but dotted names must be rooted in an
        import: ``requests.get`` on a local ``requests`` dict resolves to None.
        Bare names (builtins such as ``open``) pass through."""
        qualified = self.qualified_name(expr)
        if qualified is None or "." not in qualified:
            return qualified
        root = expr
        while isinstance(root, ast.Attribute):
            root = root.value
        return qualified if root.id in self.imports else None


def collect_imports(tree: ast.Module) -> dict[str, str]:
    """Map local names to the dotted names they were imported as."""
    imports: dict[str, str] = {}
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname:
                    imports[alias.asname] = alias.name
                else:
                    root = alias.name.split(".", 1)[0]
                    imports.setdefault(root, root)
        elif isinstance(node, ast.ImportFrom) and node.module and not node.level:
            for alias in node.names:
                if alias.name == "*":
                    continue
                imports[alias.asname or alias.name] = f"{node.module}.{alias.name}"
    return imports


def parse_source(source: str, path: str) -> ast.Module:
    """Parse source into a tree, mapping every parser failure to ParseFailure."""
    try:
        return ast.parse(source, filename=path)
    except SyntaxError as e:
        raise ParseFailure(path, f"line {e.lineno}: {e.msg}") from e
    except (ValueError, RecursionError, MemoryError) as e:
        raise ParseFailure(path, str(e) or type(e).__name__) from e


def read_source(path: str | Path) -> str:
    """Read a source file honoring its PEP 263 coding cookie."""
    try:
        with tokenize.open(path) as fh:
            return fh.read()
    except (OSError, UnicodeDecodeError, SyntaxError) as e:
        raise IoFailure(str(path), str(e)) from e


def write_source(path: str | Path, source: str) -> None:
    """Overwrite a file read with :func:`read_source`, keeping its encoding
    (coding cookie or BOM) and its ``\\r\\n`` line endings if it had them."""
    path = Path(path)
    try:
        raw = path.read_bytes()
        encoding, _ = tokenize.detect_encoding(io.BytesIO(raw).readline)
        newline = "\r\n" if b"\r\n" in raw else "\n"
        path.write_text(source, encoding=encoding, newline=newline)
    except (OSError, UnicodeEncodeError, SyntaxError) as e:
        raise IoFailure(str(path), str(e)) from e


def build_context(
    source: str,
    path: str,
    config: SlowpathConfig,
    tree: ast.Module | None = None,
) -> AnalysisContext:
    """Build an immutable context; parses ``source`` unless a tree is given."""
    if tree is None:
        tree = parse_source(source, path)
    return AnalysisContext(
        path=path,
        source=source,
        tree=tree,
        config=config,
        line_index=LineIndex(source),
        imports=collect_imports(tree),
    )
