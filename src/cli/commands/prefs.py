"""Preference and override commands."""

import sys

import click
from rich.console import Console
from rich.table import Table

from cli.utils import format_ts, get_manager

console = Console()


@click.group()
def prefs():
    """User locale preference and override."""
    pass


@prefs.command("show")
def prefs_show():
    """Show the stored preference and any override."""
    manager = get_manager()
    result = manager.get_user_preference()
    if result.success and result.data is not None:
        pref = result.data
        console.print(
            f"Preference: [bold]{pref.locale}[/] "
            f"(source={pref.source}, confidence={pref.confidence:.2f}, from {result.source})"
        )
    else:
        console.print("No preference stored.")

    override = manager.get_user_override()
    console.print(f"Override: [bold]{override}[/]" if override else "Override: none")


@prefs.command("set-override")
@click.argument("locale")
def prefs_set_override(locale: str):
    """Pin the locale regardless of detection."""
    manager = get_manager()
    result = manager.set_user_override(locale)
    if not result.success:
        console.print(f"[red]Failed:[/] {result.error}")
        sys.exit(1)
    console.print(f"[green]Override set to {locale}[/]")


@prefs.command("clear-override")
def prefs_clear_override():
    """Remove the override from both stores."""
    manager = get_manager()
    result = manager.clear_user_override()
    if not result.success:
        console.print(f"[red]Failed:[/] {result.error}")
        sys.exit(1)
    console.print("Override cleared.")


@prefs.command("log")
def prefs_log():
    """Show the preference change log."""
    manager = get_manager()
    entries = manager.get_preference_history()
    if not entries:
        console.print("No preference changes recorded.")
        return

    table = Table(title="Preference history")
    table.add_column("When", style="dim")
    table.add_column("Locale")
    table.add_column("Source")
    table.add_column("Confidence", justify="right")
    for entry in entries:
        table.add_row(
            format_ts(entry.timestamp), entry.locale, entry.source, f"{entry.confidence:.2f}"
        )
    console.print(table)
