"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from slowpath import __version__


@click.group()
@click.version_option(version=__version__, prog_name="slowpath")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """slowpath — find blocking calls in async code, locks held across awaits,
    and work repeated inside hot loops."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from slowpath.cli.baseline import baseline  # noqa: F811
    from slowpath.cli.check import check  # noqa: F811
    from slowpath.cli.fix import fix  # noqa: F811
    from slowpath.cli.init import init  # noqa: F811
    from slowpath.cli.rules import rules  # noqa: F811

    main.add_command(check)
    main.add_command(fix)
    main.add_command(rules)
    main.add_command(init)
    main.add_command(baseline)


_register_commands()
