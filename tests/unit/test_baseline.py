"""Tests for recording and applying baselines."""

from __future__ import annotations

import json

import pytest

from slowpath.analyzer.baseline import Baseline, fingerprint
from slowpath.analyzer.engine import AnalysisEngine
from slowpath.errors import ConfigurationError

SOURCE = """
import time

async def poll():
    time.sleep(1)
"""


def _diagnostics(tmp_path, write_file, source=SOURCE):
    write_file("svc/poll.py", source)
    return AnalysisEngine(jobs=1).analyze([tmp_path]).diagnostics


class TestFingerprint:
    def test_survives_line_shifts(self, tmp_path, write_file):
        before = _diagnostics(tmp_path, write_file)
        after = _diagnostics(tmp_path, write_file, "\n\n# moved down\n" + SOURCE)
        assert before[0].line != after[0].line
        assert fingerprint(before[0], tmp_path) == fingerprint(after[0], tmp_path)

    def test_uses_relative_path(self, tmp_path, write_file):
        (diagnostic,) = _diagnostics(tmp_path, write_file)
        baseline = Baseline.from_diagnostics([diagnostic], tmp_path)
        (entry,) = baseline.entries.values()
        assert entry.file == "svc/poll.py"
        assert entry.rule_id == "async-block-in-async"


class TestBaseline:
    def test_filter_hides_recorded(self, tmp_path, write_file):
        diagnostics = _diagnostics(tmp_path, write_file)
        baseline = Baseline.from_diagnostics(diagnostics, tmp_path)
        kept, dropped = baseline.filter(diagnostics, tmp_path)
        assert kept == []
        assert dropped == 1

    def test_counts_limit_hidden_occurrences(self, tmp_path, write_file):
        (diagnostic,) = _diagnostics(tmp_path, write_file)
        baseline = Baseline.from_diagnostics([diagnostic], tmp_path)
        kept, dropped = baseline.filter([diagnostic, diagnostic], tmp_path)
        assert kept == [diagnostic]
        assert dropped == 1

    def test_save_and_load(self, tmp_path, write_file):
        diagnostics = _diagnostics(tmp_path, write_file)
        path = tmp_path / ".slowpath-baseline.json"
        Baseline.from_diagnostics(diagnostics + diagnostics, tmp_path).save(path)

        data = json.loads(path.read_text())
        assert data["version"] == 1
        assert data["entries"][0]["count"] == 2

        loaded = Baseline.load(path)
        assert len(loaded) == 2
        assert loaded.filter(diagnostics, tmp_path) == ([], 1)

    @pytest.mark.parametrize(
        "content",
        ["not json", '{"entries": 3}', '{"entries": [{"rule_id": "x"}]}', "[]"],
    )
    def test_malformed(self, tmp_path, content):
        path = tmp_path / "baseline.json"
        path.write_text(content)
        with pytest.raises(ConfigurationError):
            Baseline.load(path)
