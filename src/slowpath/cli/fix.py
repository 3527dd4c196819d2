"""CLI command: slowpath fix [PATHS]... — apply the mechanical fixes rules offer."""

from __future__ import annotations

import difflib
from collections import defaultdict

import click
from rich.markup import escape

from slowpath.analyzer.context import read_source, write_source
from slowpath.analyzer.engine import AnalysisEngine
from slowpath.analyzer.fixes import apply_fixes
from slowpath.analyzer.models import Fix
from slowpath.cli.options import config_option, console, load_config_or_exit, paths_argument
from slowpath.errors import IoFailure


@click.command()
@paths_argument
@click.option(
    "--dry-run",
    is_flag=True,
    help="Print a diff of the changes instead of writing files.",
)
@config_option
def fix(paths: tuple[str, ...], dry_run: bool, config_path: str | None) -> None:
    """Rewrite fixable diagnostics in place."""
    config = load_config_or_exit(config_path)
    engine = AnalysisEngine(config)
    result = engine.analyze(paths or ["."])

    fixes: dict[str, list[Fix]] = defaultdict(list)
    for diagnostic in result.diagnostics:
        if diagnostic.fix is not None:
            fixes[diagnostic.file_path].append(diagnostic.fix)

    if not fixes:
        console.print("[green]Nothing to fix.[/green]")
        return

    applied = 0
    for file_path, file_fixes in sorted(fixes.items()):
        try:
            source = read_source(file_path)
            fixed = apply_fixes(source, file_fixes)
            if dry_run:
                diff = difflib.unified_diff(
                    source.splitlines(keepends=True),
                    fixed.splitlines(keepends=True),
                    fromfile=f"a/{file_path}",
                    tofile=f"b/{file_path}",
                )
                click.echo("".join(diff), nl=False)
            else:
                write_source(file_path, fixed)
        except IoFailure as e:
            console.print(f"[yellow]Skipping {escape(file_path)}: {escape(e.message)}[/yellow]")
            continue
        applied += len(file_fixes)
        console.print(f"  [dim]{escape(file_path)}:[/dim] {len(file_fixes)} fix(es)", highlight=False)

    verb = "Would apply" if dry_run else "Applied"
    console.print(f"\n[green]{verb} {applied} fix(es) in {len(fixes)} file(s)[/green]")
