"""Tests for discovery and the analysis engine."""

from __future__ import annotations

import logging
import os

import pytest

from slowpath.analyzer import engine as engine_module
from slowpath.analyzer.engine import AnalysisEngine, discover_files
from slowpath.analyzer.models import Severity
from slowpath.errors import ParseFailure
from slowpath.rules import Rule
from slowpath.rules.registry import RuleSet

BLOCKING = """
import time

async def poll():
    time.sleep(1)
"""

LOOPS = """
import re

def scan(lines):
    for line in lines:
        re.compile("x").match(line)
        "{}".format(line)
"""


class BoomRule(Rule):
    id = "boom"

    def check(self, ctx):
        raise RuntimeError("boom")


class TestDiscovery:
    def test_skips_hidden_and_vendor_dirs(self, tmp_path, write_file):
        write_file("a.py", "x = 1\n")
        write_file("sub/b.py", "x = 1\n")
        write_file(".hidden/c.py", "x = 1\n")
        write_file("node_modules/d.py", "x = 1\n")
        write_file("pkg.egg-info/e.py", "x = 1\n")
        write_file("notes.txt", "not python\n")

        files, warnings = discover_files([tmp_path])
        assert [f.relative_to(tmp_path).as_posix() for f in files] == ["a.py", "sub/b.py"]
        assert warnings == []

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
    def test_symlinks_not_followed(self, tmp_path, write_file):
        target = write_file("real.py", "x = 1\n")
        link = tmp_path / "link.py"
        link.symlink_to(target)

        files, _ = discover_files([tmp_path])
        assert [f.name for f in files] == ["real.py"]
        explicit, _ = discover_files([link])
        assert explicit == [link]

    def test_large_files_skipped_with_warning(self, tmp_path, write_file, monkeypatch):
        monkeypatch.setattr(engine_module, "MAX_FILE_SIZE", 10)
        write_file("big.py", "x = 1234567890\n")
        files, warnings = discover_files([tmp_path])
        assert files == []
        assert len(warnings) == 1
        assert "exceeds" in warnings[0]

    def test_missing_path(self, tmp_path):
        files, warnings = discover_files([tmp_path / "nope"])
        assert files == []
        assert warnings == [f"Path not found: {tmp_path / 'nope'}"]


class TestAnalysisEngine:
    def test_results_sorted(self, tmp_path, write_file):
        write_file("b.py", BLOCKING)
        write_file("a.py", LOOPS)
        result = AnalysisEngine(jobs=1).analyze([tmp_path])
        assert result.files_analyzed == 2
        keys = [d.sort_key for d in result.diagnostics]
        assert keys == sorted(keys)
        assert {d.rule_id for d in result.diagnostics} == {
            "async-block-in-async",
            "regex-in-loop",
            "format-in-loop",
        }

    def test_parse_failure_skips_file(self, tmp_path, write_file):
        write_file("good.py", BLOCKING)
        write_file("bad.py", "def broken(:\n")
        result = AnalysisEngine(jobs=1).analyze([tmp_path])
        assert result.files_analyzed == 1
        assert result.files_skipped == 1
        assert any("Failed to parse" in w for w in result.warnings)
        assert len(result.diagnostics) == 1

    def test_analyze_source_raises_on_invalid(self):
        with pytest.raises(ParseFailure):
            AnalysisEngine().analyze_source("def broken(:\n")

    def test_idempotent(self, tmp_path, write_file):
        write_file("a.py", LOOPS)
        write_file("b.py", BLOCKING)
        engine = AnalysisEngine(jobs=1)
        assert engine.analyze([tmp_path]).diagnostics == engine.analyze([tmp_path]).diagnostics

    def test_parallel_matches_sequential(self, tmp_path, write_file):
        for i in range(4):
            write_file(f"loops_{i}.py", LOOPS)
            write_file(f"blocking_{i}.py", BLOCKING)
        sequential = AnalysisEngine(jobs=1).analyze([tmp_path])
        parallel = AnalysisEngine(jobs=2).analyze([tmp_path])
        assert parallel.diagnostics == sequential.diagnostics
        assert parallel.files_analyzed == sequential.files_analyzed == 8

    def test_failing_rule_is_skipped(self, caplog):
        engine = AnalysisEngine(rules=RuleSet.builtin().with_rule(BoomRule()), jobs=1)
        with caplog.at_level(logging.WARNING, logger="slowpath"):
            found = engine.analyze_source(BLOCKING)
        assert [d.rule_id for d in found] == ["async-block-in-async"]
        assert "Rule boom failed" in caplog.text

    def test_failed(self, tmp_path, write_file):
        write_file("a.py", LOOPS)
        result = AnalysisEngine(jobs=1).analyze([tmp_path])
        assert result.failed(Severity.WARNING)
        assert not result.failed(Severity.ERROR)
        assert not result.failed(None)
        assert result.count(Severity.INFO) == 1
