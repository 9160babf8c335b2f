"""CLI entry point for locale storage."""

import sys
from pathlib import Path

import click
from rich.console import Console

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cli.commands import check, fix_sync, history, maintain, prefs, stats
from cli.config import load_config_model
from cli.logging_config import setup_logging

console = Console()


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
def cli(verbose: bool, json_logs: bool):
    """Locale storage - preference, detection history and backend sync."""
    try:
        config = load_config_model()
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)
    level = "DEBUG" if verbose else config.logging.level
    setup_logging(json_mode=json_logs or config.logging.json_mode, level=level)


cli.add_command(history)
cli.add_command(prefs)
cli.add_command(check)
cli.add_command(fix_sync)
cli.add_command(stats)
cli.add_command(maintain)


if __name__ == "__main__":
    cli()
