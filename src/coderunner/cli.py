"""coderunner CLI entrypoint."""

from __future__ import annotations

import logging

import click

from coderunner import __version__


@click.group()
@click.version_option(version=__version__, prog_name="coderunner")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    envvar="CODERUNNER_CONFIG",
    help="Settings YAML file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """coderunner — sandboxed code execution controller."""
    if verbose:
        from rich.logging import RichHandler

        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(rich_tracebacks=True)],
        )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# Register subcommands
from coderunner.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
