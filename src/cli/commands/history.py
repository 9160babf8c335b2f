"""Detection history commands: show, add, cleanup, export, import, clear."""

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from cli.utils import format_ts, get_manager

console = Console()


@click.group()
def history():
    """Locale detection history."""
    pass


@history.command("show")
@click.option("-n", "--limit", default=10, help="Number of records to show")
@click.option("--locale", default=None, help="Only records for this locale")
@click.option("--source", default=None, help="Only records from this source")
def history_show(limit: int, locale: str | None, source: str | None):
    """Show the most recent detections."""
    from locale_storage.query import QueryConditions

    manager = get_manager()
    result = manager.query_detections(
        QueryConditions(locale=locale, source=source, limit=limit)
    )
    if not result["records"]:
        console.print("No detections recorded.")
        return

    table = Table(title=f"Detections ({result['total_count']} total)")
    table.add_column("When", style="dim")
    table.add_column("Locale")
    table.add_column("Source")
    table.add_column("Confidence", justify="right")
    for record in result["records"]:
        table.add_row(
            format_ts(record.timestamp),
            record.locale,
            record.source,
            f"{record.confidence:.2f}",
        )
    console.print(table)
    if result["has_more"]:
        console.print(f"[dim]... {result['total_count'] - limit} more[/]")


@history.command("add")
@click.argument("locale")
@click.option("--source", default="user", help="Detection source tag")
@click.option("--confidence", default=1.0, type=float, help="Confidence 0-1 (clamped)")
def history_add(locale: str, source: str, confidence: float):
    """Record a detection."""
    manager = get_manager()
    result = manager.add_detection_record(locale, source, confidence)
    if not result.success:
        console.print(f"[red]Failed:[/] {result.error}")
        sys.exit(1)
    console.print(f"[green]Recorded[/] {locale} ({source}, {min(max(confidence, 0), 1):.2f})")


@history.command("summary")
def history_summary():
    """Show record counts, time span and cache status."""
    manager = get_manager()
    summary = manager.get_history_summary()
    console.print(f"Records: {summary['total_records']}")
    console.print(f"Last updated: {format_ts(summary['last_updated'])}")
    console.print(f"Oldest: {format_ts(summary['oldest_record'])}")
    console.print(f"Newest: {format_ts(summary['newest_record'])}")

    advice = manager.needs_cleanup()
    for line in advice["recommendations"]:
        console.print(f"  - {line}")


@history.command("cleanup")
@click.option("--max-age-days", default=None, type=int, help="Drop records older than this")
@click.option("--max-records", default=None, type=int, help="Keep only the newest N")
def history_cleanup(max_age_days: int | None, max_records: int | None):
    """Remove expired and duplicate records, then cap size."""
    manager = get_manager()
    max_age_ms = max_age_days * 24 * 60 * 60 * 1000 if max_age_days is not None else None
    steps = [
        ("expired", manager.cleanup_expired_detections(max_age_ms)),
        ("duplicates", manager.cleanup_duplicate_detections()),
        ("size limit", manager.limit_history_size(max_records)),
    ]
    for name, result in steps:
        if result.success:
            console.print(f"{name}: removed {result.data}")
        else:
            console.print(f"[red]{name} failed:[/] {result.error}")


@history.command("export")
@click.option("-o", "--output", type=click.Path(path_type=Path), default=None)
@click.option("--backup", is_flag=True, help="Wrap in a versioned backup envelope")
def history_export(output: Path | None, backup: bool):
    """Export history as JSON (stdout unless --output)."""
    manager = get_manager()
    if backup:
        result = manager.create_backup()
        text = json.dumps(result.data, indent=2) if result.success else None
    else:
        result = manager.export_history("json")
        text = result.data if result.success else None

    if text is None:
        console.print(f"[red]Export failed:[/] {result.error}")
        sys.exit(1)
    if output:
        output.write_text(text)
        console.print(f"[green]Exported to[/] {output}")
    else:
        click.echo(text)


@history.command("import")
@click.argument("path", type=click.Path(exists=True, path_type=Path))
def history_import(path: Path):
    """Replace history with an exported file or backup."""
    manager = get_manager()
    text = path.read_text()
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON:[/] {e}")
        sys.exit(1)

    if isinstance(data, dict) and "version" in data and "data" in data:
        result = manager.restore_from_backup(data)
    else:
        result = manager.import_history(data)

    if not result.success:
        console.print(f"[red]Import failed:[/] {result.error}")
        sys.exit(1)
    console.print(f"[green]Imported {result.data} records[/]")


@history.command("clear")
@click.confirmation_option(prompt="Delete all detection history?")
def history_clear():
    """Reset history to empty."""
    manager = get_manager()
    result = manager.clear_all_history()
    if not result.success:
        console.print(f"[red]Failed:[/] {result.error}")
        sys.exit(1)
    console.print(f"Cleared {result.data} records.")
