"""CLI command: slowpath check [PATHS]... — analyze source files."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from slowpath.analyzer.baseline import Baseline
from slowpath.analyzer.engine import AnalysisEngine
from slowpath.analyzer.export import to_json, to_sarif
from slowpath.analyzer.models import AnalysisResult, Severity
from slowpath.cli.options import (
    SEVERITY_COLORS,
    abort_config,
    config_option,
    load_config_or_exit,
    make_console,
    paths_argument,
)
from slowpath.config import OUTPUT_FORMATS
from slowpath.errors import ConfigurationError
from slowpath.rules.registry import has_rule

_SEVERITY_CHOICES = ["error", "warning", "info"]


@click.command()
@paths_argument
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS),
    default=None,
    help="Output format (default: from configuration, else console).",
)
@click.option(
    "--strict/--no-strict",
    default=None,
    help="Run only the high-confidence rules.",
)
@click.option(
    "--rules",
    "rule_list",
    default=None,
    help="Comma-separated rule ids to run (default: all).",
)
@click.option(
    "--fail-on",
    type=click.Choice([*_SEVERITY_CHOICES, "never"]),
    default=None,
    help="Minimum severity that makes the run fail.",
)
@click.option(
    "--min-severity",
    type=click.Choice(_SEVERITY_CHOICES),
    default=None,
    help="Hide diagnostics below this severity.",
)
@click.option(
    "--jobs",
    "-j",
    type=click.IntRange(min=1),
    default=None,
    help="Worker processes (default: one per CPU).",
)
@click.option(
    "--baseline",
    "baseline_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Only report diagnostics not recorded in this baseline file.",
)
@config_option
def check(
    paths: tuple[str, ...],
    output_format: str | None,
    strict: bool | None,
    rule_list: str | None,
    fail_on: str | None,
    min_severity: str | None,
    jobs: int | None,
    baseline_path: str | None,
    config_path: str | None,
) -> None:
    """Analyze Python files for async-correctness and performance defects."""
    config = load_config_or_exit(config_path)

    overrides: dict = {}
    if strict is not None:
        overrides["strict"] = strict
    if fail_on is not None:
        overrides["fail_on"] = None if fail_on == "never" else Severity.parse(fail_on)
    if min_severity is not None:
        overrides["min_severity"] = Severity.parse(min_severity)
    if overrides:
        config = config.with_overrides(**overrides)
    output_format = output_format or config.output.format

    selected = None
    if rule_list:
        selected = [r.strip() for r in rule_list.split(",") if r.strip()]
        for rule_id in selected:
            if not has_rule(rule_id):
                click.echo(f"Warning: unknown rule id: {rule_id}", err=True)

    engine = AnalysisEngine(config, jobs=jobs, selected=selected)
    result = engine.analyze(paths or ["."])

    baselined = 0
    if baseline_path:
        try:
            baseline = Baseline.load(baseline_path)
        except ConfigurationError as e:
            abort_config(e)
        result.diagnostics, baselined = baseline.filter(result.diagnostics, root=Path.cwd())

    if output_format == "json":
        click.echo(to_json(result))
    elif output_format == "sarif":
        click.echo(to_sarif(result, engine.rules))
    else:
        _print_console(make_console(config.output.color), result, baselined)

    if result.failed(config.fail_on):
        sys.exit(1)


def _print_console(console: Console, result: AnalysisResult, baselined: int) -> None:
    for warning in result.warnings:
        console.print(f"[yellow]warning:[/yellow] {escape(warning)}", highlight=False)

    if not result.diagnostics:
        console.print("[green]No issues found.[/green]")
        _print_summary(console, result, baselined)
        return

    table = Table(title="Diagnostics", show_lines=False)
    table.add_column("Severity", style="bold", width=8)
    table.add_column("Location", style="cyan")
    table.add_column("Rule")
    table.add_column("Message")

    for diagnostic in result.diagnostics:
        color = SEVERITY_COLORS[diagnostic.severity]
        message = escape(diagnostic.message)
        if diagnostic.suggestion:
            message += f"\n[dim]help: {escape(diagnostic.suggestion)}[/dim]"
        table.add_row(
            f"[{color}]{diagnostic.severity.value}[/{color}]",
            escape(f"{diagnostic.file_path}:{diagnostic.line}:{diagnostic.column}"),
            diagnostic.rule_id,
            message,
        )

    console.print(table)
    _print_summary(console, result, baselined)


def _print_summary(console: Console, result: AnalysisResult, baselined: int) -> None:
    console.print(
        f"\nAnalyzed {result.files_analyzed} files "
        f"({result.files_skipped} skipped) "
        f"in {result.duration:.2f}s"
    )
    counts = ", ".join(
        f"{result.count(severity)} {severity.value}"
        for severity in (Severity.ERROR, Severity.WARNING, Severity.INFO)
    )
    console.print(f"Total diagnostics: {len(result.diagnostics)} ({counts})", highlight=False)
    if baselined:
        console.print(f"[dim]{baselined} baselined diagnostic(s) hidden[/dim]")
