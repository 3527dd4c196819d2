"""CLI command: slowpath baseline [PATHS]... — record current diagnostics."""

from __future__ import annotations

from pathlib import Path

import click

from slowpath.analyzer.baseline import BASELINE_FILENAME, Baseline
from slowpath.analyzer.engine import AnalysisEngine
from slowpath.cli.options import config_option, console, load_config_or_exit, paths_argument


@click.command()
@paths_argument
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    default=BASELINE_FILENAME,
    show_default=True,
    help="Baseline file to write.",
)
@config_option
def baseline(paths: tuple[str, ...], output: str, config_path: str | None) -> None:
    """Record today's diagnostics so `check --baseline` reports only new ones."""
    config = load_config_or_exit(config_path)
    result = AnalysisEngine(config).analyze(paths or ["."])

    recorded = Baseline.from_diagnostics(result.diagnostics, root=Path.cwd())
    recorded.save(output)
    console.print(
        f"[green]Recorded {len(recorded)} diagnostic(s) "
        f"({len(recorded.entries)} fingerprints) in {output}[/green]"
    )
