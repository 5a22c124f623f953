"""Shared CLI output formatters."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.table import Table

from coderunner.errors import SettingsError
from coderunner.utils.sizes import format_size

if TYPE_CHECKING:
    from coderunner.config.models import ControllerSettings
    from coderunner.profiles.models import ExecutionProfile

console = Console()


def load_cli_settings(ctx: click.Context) -> ControllerSettings:
    """Load the settings named by ``--config``; exit 1 on failure."""
    from coderunner.config.loader import load_settings

    config_path = (ctx.obj or {}).get("config_path")
    try:
        return load_settings(config_path)
    except SettingsError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)


def print_profiles_table(profiles: list[ExecutionProfile]) -> None:
    """Pretty-print registered profiles as a table."""
    table = Table(title="Language Profiles")
    table.add_column("Language", style="cyan")
    table.add_column("Aliases")
    table.add_column("Memory")
    table.add_column("Timeout")
    table.add_column("Compiled")

    for profile in profiles:
        table.add_row(
            profile.language,
            ", ".join(profile.aliases) or "-",
            format_size(profile.memory_limit),
            f"{profile.timeout:g}s",
            "yes" if profile.compile_command else "no",
        )

    console.print(table)


def print_profile(profile: ExecutionProfile) -> None:
    """Print the full envelope of one profile."""
    console.print(f"\n[bold]{profile.display_name or profile.language}[/bold] ({profile.language})")
    console.print(f"  Aliases: {', '.join(profile.aliases) or '(none)'}")
    console.print(f"  Image: {profile.image}")
    console.print(f"  Source file: {profile.source_name}")
    if profile.compile_command:
        console.print(f"  Compile: {' '.join(profile.compile_command)} (within {profile.compile_timeout:g}s)")
    console.print(f"  Run: {' '.join(profile.run_command)}")
    console.print(f"  Memory ceiling: {format_size(profile.memory_limit)}")
    console.print(f"  Timeout: {profile.timeout:g}s")
    console.print(f"  Max processes: {profile.max_processes}")
    console.print(
        f"  Identity: {profile.run_as_user} ({profile.run_as_uid}:{profile.run_as_gid}), "
        f"{profile.privilege.value}"
    )
    console.print(f"  Working directory: {profile.workdir}")
    if profile.env:
        console.print("\n[bold]Environment:[/bold]")
        for key, value in profile.env:
            console.print(f"  {key}={_truncate(value)}")


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
