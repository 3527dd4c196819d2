"""Shared test fixtures."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from slowpath.analyzer.context import build_context
from slowpath.analyzer.engine import analyze_source
from slowpath.config import SlowpathConfig


@pytest.fixture
def config() -> SlowpathConfig:
    return SlowpathConfig()


@pytest.fixture
def make_context(config):
    """Build an AnalysisContext from dedented source."""

    def _make(source: str, path: str = "example.py", cfg: SlowpathConfig | None = None):
        return build_context(textwrap.dedent(source), path, cfg or config)

    return _make


@pytest.fixture
def analyze():
    """Analyze dedented source with the built-in rules, optionally
    narrowed to one rule id."""

    def _analyze(source: str, rule_id: str | None = None, config: SlowpathConfig | None = None):
        diagnostics = analyze_source(textwrap.dedent(source), "example.py", config)
        if rule_id is not None:
            diagnostics = [d for d in diagnostics if d.rule_id == rule_id]
        return diagnostics

    return _analyze


@pytest.fixture
def write_file(tmp_path: Path):
    """Write dedented source under tmp_path and return the path."""

    def _write(name: str, source: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return path

    return _write
