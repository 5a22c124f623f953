"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from coderunner.cli_commands.health import health
    from coderunner.cli_commands.languages import languages

    cli.add_command(languages)
    cli.add_command(health)
