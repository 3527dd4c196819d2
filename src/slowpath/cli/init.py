"""CLI command: slowpath init — write a starter configuration file."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from slowpath.cli.options import console
from slowpath.config import CONFIG_FILENAMES, DEFAULT_CONFIG_YAML


@click.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    default=CONFIG_FILENAMES[0],
    show_default=True,
    help="Where to write the configuration.",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file.")
def init(output: str, force: bool) -> None:
    """Create a slowpath.yaml with the default settings."""
    path = Path(output)
    if path.exists() and not force:
        console.print(f"[red]{output} already exists[/red] (use --force to overwrite)")
        sys.exit(1)
    path.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")
    console.print(f"[green]Configuration written to {output}[/green]")
