"""``coderunner health`` — check that the configured backend can run sandboxes."""

from __future__ import annotations

import asyncio
import sys

import click

from coderunner.cli_commands._output import console, load_cli_settings


@click.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check the configured isolation backend."""
    from coderunner.controller import build_provisioner

    settings = load_cli_settings(ctx)
    provisioner = build_provisioner(settings)
    healthy, detail = asyncio.run(provisioner.check_health())

    if healthy:
        console.print(f"[green]{provisioner.name}: healthy[/green] {detail}")
        return

    console.print(f"[red]{provisioner.name}: unhealthy[/red] {detail}")
    sys.exit(1)
