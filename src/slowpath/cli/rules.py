"""CLI command: slowpath rules — list the built-in rules."""

from __future__ import annotations

import click
from rich.table import Table

from slowpath.cli.options import SEVERITY_COLORS, console
from slowpath.rules.registry import all_rules


@click.command()
def rules() -> None:
    """List the available rules and their defaults."""
    table = Table(title="Rules", show_lines=False)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Severity", width=8)
    table.add_column("Strict", justify="center")
    table.add_column("Fix", justify="center")
    table.add_column("Description")

    for rule in all_rules():
        color = SEVERITY_COLORS[rule.default_severity]
        table.add_row(
            rule.id,
            f"[{color}]{rule.default_severity.value}[/{color}]",
            "yes" if rule.high_confidence else "",
            "yes" if rule.fixable else "",
            rule.description,
        )

    console.print(table)
