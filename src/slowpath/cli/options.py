"""Options and helpers shared by the CLI commands."""

from __future__ import annotations

import sys

import click
from rich.console import Console
from rich.markup import escape

from slowpath.analyzer.models import Severity
from slowpath.config import SlowpathConfig
from slowpath.errors import ConfigurationError

console = Console(stderr=True)

SEVERITY_COLORS = {
    Severity.INFO: "blue",
    Severity.WARNING: "yellow",
    Severity.ERROR: "red",
}

paths_argument = click.argument("paths", nargs=-1, type=click.Path(exists=True))

config_option = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to a slowpath.yaml file (default: search the current directory).",
)


def load_config_or_exit(config_path: str | None) -> SlowpathConfig:
    """Load configuration; malformed settings abort with exit code 2."""
    try:
        return SlowpathConfig.load(config_path)
    except ConfigurationError as e:
        abort_config(e)


def abort_config(error: ConfigurationError) -> None:
    console.print(f"[red]{escape(str(error))}[/red]")
    sys.exit(2)


def make_console(color: str) -> Console:
    """A stderr console honoring the configured color mode."""
    if color == "always":
        return Console(stderr=True, force_terminal=True)
    if color == "never":
        return Console(stderr=True, no_color=True)
    return console

