"""Analysis engine — discovers files and runs the active rules over each one."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterable, Sequence
from concurrent.futures import ProcessPoolExecutor
from itertools import repeat
from pathlib import Path

from slowpath.analyzer.context import AnalysisContext, build_context, read_source
from slowpath.analyzer.fixes import select_fixes
from slowpath.analyzer.models import AnalysisResult, Diagnostic, FileReport
from slowpath.analyzer.severity import resolve
from slowpath.analyzer.suppression import extract_suppressions
from slowpath.config import SlowpathConfig
from slowpath.errors import FileFailure
from slowpath.rules import Rule
from slowpath.rules.registry import active_rules, rule_ids

logger = logging.getLogger(__name__)

# Directories to always skip
_SKIP_DIRS = {
    "node_modules",
    "__pycache__",
    "venv",
    "env",
    "site-packages",
    "dist",
    "build",
}

# Max file size to analyze (10 MB)
MAX_FILE_SIZE = 10 * 1024 * 1024


def discover_files(paths: Iterable[str | Path]) -> tuple[list[Path], list[str]]:
    """Collect the ``.py`` files under ``paths``, plus warnings for skipped ones.

    Explicit paths may be symlinks; symlinks found while walking are never
    followed. Files above :data:`MAX_FILE_SIZE` are skipped with a warning.
    """
    files: list[Path] = []
    warnings: list[str] = []
    for root in paths:
        root = Path(root)
        if root.is_file():
            candidates = [root]
        elif root.is_dir():
            candidates = _walk(root)
        else:
            warnings.append(f"Path not found: {root}")
            continue
        for path in candidates:
            try:
                size = path.stat().st_size
            except OSError as e:
                warnings.append(f"Failed to read {path}: {e}")
                continue
            if size > MAX_FILE_SIZE:
                warnings.append(
                    f"Skipping {path}: {size} bytes exceeds the {MAX_FILE_SIZE} byte limit"
                )
                continue
            files.append(path)
    return sorted(set(files)), warnings


def _walk(directory: Path):
    """Walk a directory yielding Python files, without following symlinks."""
    for root, dirs, names in os.walk(directory, followlinks=False):
        # Prune skipped directories in-place
        dirs[:] = sorted(
            d
            for d in dirs
            if d not in _SKIP_DIRS
            and not d.startswith(".")
            and not d.endswith(".egg-info")
        )
        for name in sorted(names):
            if not name.endswith(".py"):
                continue
            path = Path(root) / name
            if path.is_symlink():
                logger.debug("Skipping symlink %s", path)
                continue
            yield path


def check_context(
    ctx: AnalysisContext,
    rules: Sequence[Rule],
    known_ids: Iterable[str] | None = None,
) -> list[Diagnostic]:
    """Run ``rules`` over one context: suppression, then severity, then fixes."""
    if known_ids is None:
        known_ids = {*rule_ids(), *(rule.id for rule in rules)}
    suppressions = extract_suppressions(ctx, known_ids)
    config = ctx.config
    diagnostics: list[Diagnostic] = []
    for rule in rules:
        try:
            raw = rule.check(ctx)
        except Exception:
            logger.warning("Rule %s failed on %s", rule.id, ctx.path, exc_info=True)
            continue
        for diagnostic in raw:
            if suppressions and suppressions.is_suppressed(diagnostic):
                continue
            final = resolve(rule, diagnostic, config)
            if final is None or final.severity < config.min_severity:
                continue
            diagnostics.append(final)
    diagnostics.sort(key=lambda d: d.sort_key)
    return select_fixes(diagnostics)


def analyze_file(path: str | Path, config: SlowpathConfig, rules: Sequence[Rule]) -> FileReport:
    """Analyze one file. Module-level so worker processes can run it.

    Read and parse failures come back as a skipped report, never raised.
    """
    path = str(path)
    try:
        source = read_source(path)
        ctx = build_context(source, path, config)
    except FileFailure as e:
        logger.warning("%s", e)
        return FileReport(path, warning=str(e))
    return FileReport(path, check_context(ctx, rules))


class AnalysisEngine:
    """Runs the active rule set over every discovered file."""

    def __init__(
        self,
        config: SlowpathConfig | None = None,
        rules: Iterable[Rule] | None = None,
        jobs: int | None = None,
        selected: Iterable[str] | None = None,
    ) -> None:
        self._config = config or SlowpathConfig()
        self._rules = tuple(active_rules(self._config, rules, selected))
        self._jobs = jobs or os.cpu_count() or 1

    @property
    def config(self) -> SlowpathConfig:
        return self._config

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def analyze(self, paths: Iterable[str | Path]) -> AnalysisResult:
        """Analyze files and directories and return the sorted result."""
        start = time.time()
        files, warnings = discover_files(paths)
        for warning in warnings:
            logger.warning("%s", warning)
        logger.debug("Analyzing %d files with %d rules", len(files), len(self._rules))

        result = AnalysisResult(warnings=list(warnings), files_skipped=len(warnings))
        for report in self._run(files):
            if report.skipped:
                result.files_skipped += 1
                result.warnings.append(report.warning)
                continue
            result.files_analyzed += 1
            result.diagnostics.extend(report.diagnostics)

        result.diagnostics.sort(key=lambda d: d.sort_key)
        result.duration = time.time() - start
        return result

    def _run(self, files: list[Path]) -> list[FileReport]:
        if self._jobs == 1 or len(files) <= 1:
            return [analyze_file(path, self._config, self._rules) for path in files]
        workers = min(self._jobs, len(files))
        with ProcessPoolExecutor(max_workers=workers) as pool:
            return list(
                pool.map(
                    analyze_file,
                    files,
                    repeat(self._config),
                    repeat(self._rules),
                    chunksize=max(1, len(files) // (workers * 4)),
                )
            )

    def analyze_source(self, source: str, path: str = "<string>") -> list[Diagnostic]:
        """Analyze an in-memory string. Raises ParseFailure on invalid source."""
        ctx = build_context(source, path, self._config)
        return check_context(ctx, self._rules)


def analyze_source(
    source: str,
    path: str = "<string>",
    config: SlowpathConfig | None = None,
) -> list[Diagnostic]:
    """Analyze a source string with the built-in rules."""
    return AnalysisEngine(config, jobs=1).analyze_source(source, path)
