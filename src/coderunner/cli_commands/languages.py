"""``coderunner languages`` — list and inspect language profiles."""

from __future__ import annotations

import json
import sys

import click

from coderunner.cli_commands._output import console, load_cli_settings, print_profile, print_profiles_table


@click.group()
def languages() -> None:
    """Inspect registered language profiles."""


@languages.command("list")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format.",
)
@click.pass_context
def list_languages(ctx: click.Context, fmt: str) -> None:
    """List every language the controller accepts."""
    from coderunner.errors import SettingsError
    from coderunner.profiles.registry import ProfileRegistry

    settings = load_cli_settings(ctx)
    try:
        registry = ProfileRegistry.from_settings(settings)
    except SettingsError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)

    if fmt == "json":
        data = {profile.language: profile.model_dump(mode="json") for profile in registry}
        console.print_json(json.dumps(data))
    else:
        print_profiles_table(registry.profiles())


@languages.command("show")
@click.argument("language")
@click.pass_context
def show_language(ctx: click.Context, language: str) -> None:
    """Show the execution envelope for LANGUAGE (aliases accepted)."""
    from coderunner.errors import SettingsError, UnknownLanguageError
    from coderunner.profiles.registry import ProfileRegistry

    settings = load_cli_settings(ctx)
    try:
        profile = ProfileRegistry.from_settings(settings).lookup(language)
    except (SettingsError, UnknownLanguageError) as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)

    print_profile(profile)
