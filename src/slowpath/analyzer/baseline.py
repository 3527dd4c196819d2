"""Baselines — record known diagnostics so later runs report only new ones.

A diagnostic's fingerprint hashes its rule id, its path relative to the
project root, and the stripped text of its first line. Fingerprints survive
lines being added or removed elsewhere in the file, but change when the
offending code itself changes. Each fingerprint carries a count, so a
baseline never hides more occurrences than it recorded.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from slowpath.analyzer.models import Diagnostic
from slowpath.errors import ConfigurationError

logger = logging.getLogger(__name__)

BASELINE_FILENAME = ".slowpath-baseline.json"
BASELINE_VERSION = 1


def relative_path(file_path: str, root: str | Path) -> str:
    try:
        rel = os.path.relpath(file_path, root)
    except ValueError:
        rel = file_path
    return rel.replace(os.sep, "/")


def fingerprint(diagnostic: Diagnostic, root: str | Path) -> str:
    key = "\0".join(
        (diagnostic.rule_id, relative_path(diagnostic.file_path, root), diagnostic.context_line)
    )
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


@dataclass
class BaselineEntry:
    fingerprint: str
    rule_id: str
    file: str
    count: int = 1
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "fingerprint": self.fingerprint,
            "rule_id": self.rule_id,
            "file": self.file,
            "count": self.count,
            "description": self.description,
        }


@dataclass
class Baseline:
    entries: dict[str, BaselineEntry] = field(default_factory=dict)
    version: int = BASELINE_VERSION

    def __len__(self) -> int:
        return sum(entry.count for entry in self.entries.values())

    @classmethod
    def from_diagnostics(cls, diagnostics: Iterable[Diagnostic], root: str | Path) -> Baseline:
        baseline = cls()
        for diagnostic in diagnostics:
            key = fingerprint(diagnostic, root)
            entry = baseline.entries.get(key)
            if entry is not None:
                entry.count += 1
                continue
            baseline.entries[key] = BaselineEntry(
                fingerprint=key,
                rule_id=diagnostic.rule_id,
                file=relative_path(diagnostic.file_path, root),
                description=diagnostic.message,
            )
        return baseline

    @classmethod
    def load(cls, path: str | Path) -> Baseline:
        """Load a baseline file. Malformed files raise ConfigurationError."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigurationError(f"cannot read baseline {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"invalid baseline {path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
            raise ConfigurationError(f"invalid baseline {path}: missing entries list")

        baseline = cls(version=data.get("version", BASELINE_VERSION))
        for raw in data["entries"]:
            try:
                entry = BaselineEntry(
                    fingerprint=str(raw["fingerprint"]),
                    rule_id=str(raw["rule_id"]),
                    file=str(raw.get("file", "")),
                    count=int(raw.get("count", 1)),
                    description=str(raw.get("description", "")),
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"invalid baseline entry in {path}: {raw!r}") from e
            baseline.entries[entry.fingerprint] = entry
        logger.debug("Loaded %d baseline fingerprints from %s", len(baseline.entries), path)
        return baseline

    def save(self, path: str | Path) -> None:
        data = {
            "version": self.version,
            "entries": [
                entry.to_dict()
                for entry in sorted(self.entries.values(), key=lambda e: (e.file, e.rule_id))
            ],
        }
        Path(path).write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")

    def filter(
        self, diagnostics: Iterable[Diagnostic], root: str | Path
    ) -> tuple[list[Diagnostic], int]:
        """Drop baselined diagnostics; returns the rest and how many were dropped."""
        remaining = Counter({key: entry.count for key, entry in self.entries.items()})
        kept: list[Diagnostic] = []
        dropped = 0
        for diagnostic in diagnostics:
            key = fingerprint(diagnostic, root)
            if remaining[key] > 0:
                remaining[key] -= 1
                dropped += 1
            else:
                kept.append(diagnostic)
        return kept, dropped
