"""Cross-backend commands: check, fix-sync, stats, maintain."""

import sys

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_manager, print_json

console = Console()


@click.command("check")
def check():
    """Validate stored data and compare the two backends."""
    manager = get_manager()
    integrity = manager.validate_storage_integrity()
    consistency = manager.check_data_consistency()
    summary = manager.get_validation_summary()

    table = Table(title="Storage validation")
    table.add_column("Check")
    table.add_column("Result")
    table.add_row("Integrity", "[green]ok[/]" if integrity.success else "[red]failed[/]")
    table.add_row("Consistency", "[green]ok[/]" if consistency.success else "[red]failed[/]")
    table.add_row("Valid keys", f"{summary['valid_keys']}/{summary['total_keys']}")
    table.add_row("Sync gaps", str(summary["sync_issues"]))
    console.print(table)

    for issue in integrity.data["issues"] + consistency.data["issues"]:
        console.print(f"[red]issue:[/] {issue}")
    for warning in consistency.data["warnings"]:
        console.print(f"[yellow]warning:[/] {warning}")

    if not integrity.success or not consistency.success:
        sys.exit(1)


@click.command("fix-sync")
def fix_sync():
    """Copy local-only values into the cookie store."""
    manager = get_manager()
    result = manager.fix_sync_issues()
    for action in result.data["actions"]:
        console.print(f"  - {action}")
    console.print(f"Fixed {result.data['fixed_issues']} issue(s).")
    if not result.success:
        console.print(f"[red]Errors:[/] {result.error}")
        sys.exit(1)


@click.command("stats")
@click.option("--days", default=7, help="Trend window in days")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def stats(days: int, as_json: bool):
    """Detection statistics, trends and insights."""
    manager = get_manager()
    detection_stats = manager.get_detection_stats()
    trends = manager.get_detection_trends(days)
    insights = manager.generate_history_insights()

    if as_json:
        print_json({"stats": detection_stats, "trends": trends, "insights": insights})
        return

    console.print(f"Detections: {detection_stats['total_detections']}")
    console.print(f"Average confidence: {detection_stats['average_confidence']:.2f}")
    top = detection_stats["most_detected_locale"]
    if top:
        console.print(f"Top locale: {top['locale']} ({top['count']})")
    console.print(f"Trend ({days}d): {trends['trend_direction']}")
    for line in insights["insights"]:
        console.print(f"  * {line}")
    for line in insights["recommendations"]:
        console.print(f"  > {line}")
    for line in insights["alerts"]:
        console.print(f"  [red]![/] {line}")


@click.command("maintain")
@click.option("--compact", is_flag=True, help="Also re-serialize local storage")
@click.option("--dry-run", is_flag=True, help="Only print recommendations")
def maintain(compact: bool, dry_run: bool):
    """Run cleanup, validation and sync repair."""
    from locale_storage.maintenance import MaintenanceOptions

    manager = get_manager()
    if dry_run:
        advice = manager.get_maintenance_recommendations()
        console.print(f"Priority: {advice['priority']} (est. {advice['estimated_time']})")
        for line in advice["recommendations"]:
            console.print(f"  - {line}")
        return

    report = manager.perform_maintenance(MaintenanceOptions(compact_storage=compact))
    for name, result in report["results"].items():
        status = "[green]ok[/]" if result["success"] else f"[red]{result.get('error')}[/]"
        console.print(f"{name}: {status}")
    console.print(
        f"{report['successful_operations']}/{report['total_operations']} operations succeeded"
    )
