"""Display formatters and UI helpers for CLI."""

import logging
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from ...core.sync import (
    ChangeReport,
    DeploymentResult,
    HealthReport,
    ResolutionResult,
)
from ...core.versioning import VersionDiff
from ...database import (
    Conflict,
    ContentTypeVersion,
    Deployment,
    SyncHistory,
    SyncState,
)

console = Console()
logger = logging.getLogger(__name__)

STATUS_STYLES = {
    "completed": "green",
    "in_sync": "green",
    "partial": "yellow",
    "modified": "yellow",
    "pending": "yellow",
    "new": "cyan",
    "syncing": "blue",
    "processing": "blue",
    "conflict": "red",
    "failed": "red",
}

PRIORITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "dim",
}


def _styled(value: Optional[str], styles: Dict[str, str]) -> str:
    if not value:
        return "-"
    style = styles.get(value)
    return f"[{style}]{value}[/{style}]" if style else value


def _short(version_hash: Optional[str]) -> str:
    return version_hash[:12] if version_hash else "-"


def _timestamp(value: Any) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def display_change_report(report: ChangeReport) -> None:
    """Display the result of change detection.

    Args:
        report: Change report from the change detector
    """
    summary = report.summary
    table = Table(show_header=False, title="Change Detection")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green", justify="right")
    table.add_row("Content Types", str(summary["total"]))
    table.add_row("Created (remote only)", str(summary["created"]))
    table.add_row("Updated", str(summary["updated"]))
    table.add_row("Deleted (local only)", str(summary["deleted"]))
    table.add_row("Unchanged", str(summary["unchanged"]))
    console.print(table)

    if not summary["has_changes"]:
        console.print("[dim]✓ Local and remote are in sync[/dim]")
        return

    console.print("\n[bold]Details:[/bold]")
    for line in report.details:
        console.print(f"  {line}")


def display_deployment_result(
    result: DeploymentResult, show_logs: bool = True
) -> None:
    """Display the outcome of a deployment.

    Args:
        result: Deployment result
        show_logs: Whether to print the deployment log lines
    """
    status = result.status.value
    console.print(
        f"\n[bold]Deployment {result.deployment_id}:[/bold] "
        f"{_styled(status, STATUS_STYLES)}\n"
    )

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green", justify="right")
    summary = result.get_summary()
    for label, key in (
        ("Succeeded", "succeeded"),
        ("Failed", "failed"),
        ("Conflicts", "conflicts"),
        ("Auto-resolved", "resolved"),
        ("Skipped", "skipped"),
        ("Unchanged", "unchanged"),
    ):
        table.add_row(label, str(summary[key]))
    console.print(table)

    if result.failed:
        console.print(
            f"\n[yellow]⚠️  {len(result.failed)} item(s) failed:[/yellow]"
        )
        for key, error in result.failed.items():
            console.print(f"  • {key}: {error}")

    if result.conflicts:
        console.print(
            "\n[red]Conflicts need review:[/red] " + ", ".join(result.conflicts)
        )
        console.print("[dim]Run 'content-sync conflicts list' to review them[/dim]")

    if show_logs and result.logs:
        console.print("\n[bold]Log:[/bold]")
        for line in result.logs:
            console.print(f"  [dim]{line}[/dim]")


def display_sync_states(states: List[SyncState]) -> None:
    """Display sync states as a table."""
    if not states:
        console.print("[dim]No sync state recorded yet[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta", title="Sync State")
    table.add_column("Content Type", style="cyan")
    table.add_column("Status")
    table.add_column("Conflict")
    table.add_column("Local", style="dim")
    table.add_column("Remote", style="dim")
    table.add_column("Last Synced", style="dim")
    table.add_column("Last Sync At")

    for state in states:
        table.add_row(
            state.type_key,
            _styled(state.sync_status, STATUS_STYLES),
            state.conflict_status,
            _short(state.local_hash),
            _short(state.remote_hash),
            _short(state.last_synced_hash),
            _timestamp(state.last_sync_at),
        )
    console.print(table)


def display_conflicts(conflicts: List[Conflict]) -> None:
    """Display the conflict queue."""
    if not conflicts:
        console.print("[green]✓ No conflicts[/green]")
        return

    table = Table(show_header=True, header_style="bold magenta", title="Conflicts")
    table.add_column("ID", style="dim")
    table.add_column("Content Type", style="cyan")
    table.add_column("Type")
    table.add_column("Priority")
    table.add_column("Fields")
    table.add_column("Items", justify="right")
    table.add_column("Status")
    table.add_column("Created")

    for conflict in conflicts:
        table.add_row(
            conflict.id,
            conflict.type_key,
            conflict.conflict_type,
            _styled(conflict.priority, PRIORITY_STYLES),
            ", ".join(conflict.conflicting_fields or []) or "-",
            str(conflict.dependent_items),
            conflict.status,
            _timestamp(conflict.created_at),
        )
    console.print(table)


def display_conflict_stats(stats: Dict[str, Any]) -> None:
    """Display conflict statistics."""
    table = Table(show_header=False, title="Conflict Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Total", str(stats["total"]))
    table.add_row("Pending", str(stats["pending"]))
    table.add_row("Resolved", str(stats["resolved"]))
    for priority, count in stats["by_priority"].items():
        if count:
            table.add_row(f"Pending ({priority})", str(count))
    for resolution, count in stats["by_resolution"].items():
        if count:
            table.add_row(f"Resolved with {resolution}", str(count))
    console.print(table)


def display_resolution(result: ResolutionResult, suggestions: List[str]) -> None:
    """Display the outcome of a conflict resolution."""
    if result.success:
        console.print(
            f"[bold green]✓ Resolved with {result.strategy.value}[/bold green] "
            f"-> {_short(result.resolved_hash)}"
        )
        return

    console.print(f"[bold red]❌ Not resolved:[/bold red] {result.error}")
    if result.requires_manual:
        fields = result.manual_resolution_data.get("conflicting_fields") or []
        if fields:
            console.print(f"  Conflicting fields: {', '.join(fields)}")
    for suggestion in suggestions:
        console.print(f"  • {suggestion}")


def display_versions(versions: List[ContentTypeVersion]) -> None:
    """Display version history, newest first."""
    if not versions:
        console.print("[dim]No versions recorded[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta", title="History")
    table.add_column("Hash", style="cyan")
    table.add_column("Source")
    table.add_column("Parents", style="dim")
    table.add_column("Author")
    table.add_column("Message")
    table.add_column("Created")

    for version in versions:
        table.add_row(
            _short(version.version_hash),
            version.change_source,
            ", ".join(_short(p) for p in version.parent_hashes) or "-",
            version.author or "-",
            version.message or "",
            _timestamp(version.created_at),
        )
    console.print(table)


def display_field_diff(old: ContentTypeVersion, new: ContentTypeVersion) -> None:
    """Display the field diff between two versions."""
    diff = VersionDiff.calculate_diff(
        old.snapshot.get("fields", []), new.snapshot.get("fields", [])
    )
    console.print(
        f"[bold]{_short(old.version_hash)} -> {_short(new.version_hash)}[/bold]"
    )
    console.print(VersionDiff.format_diff(diff))


def display_deployment(deployment: Deployment) -> None:
    """Display a stored deployment with its progress and log."""
    console.print(
        f"[bold]Deployment {deployment.id}:[/bold] "
        f"{_styled(deployment.status, STATUS_STYLES)}"
    )
    console.print(f"  Started:   {_timestamp(deployment.created_at)}")
    console.print(f"  Completed: {_timestamp(deployment.completed_at)}")
    if deployment.type_keys:
        console.print(f"  Content types: {', '.join(deployment.type_keys)}")

    progress = deployment.progress or {}
    if progress:
        console.print(
            f"  Progress: {progress.get('phase')} "
            f"{progress.get('percentage', 0):.0f}% {progress.get('message') or ''}"
        )

    for line in deployment.logs or []:
        console.print(f"  [dim]{line}[/dim]")


def display_sync_history(entries: List[SyncHistory]) -> None:
    """Display sync attempts, newest first."""
    if not entries:
        console.print("[dim]No sync attempts recorded[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta", title="Sync History")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Content Type", style="cyan")
    table.add_column("Direction")
    table.add_column("Status")
    table.add_column("Retries", justify="right")
    table.add_column("Version", style="dim")
    table.add_column("Started")
    table.add_column("Error", style="red")

    for entry in entries:
        table.add_row(
            str(entry.id),
            entry.type_key,
            entry.sync_direction,
            entry.sync_status,
            str(entry.retry_count),
            _short(entry.version_hash),
            _timestamp(entry.started_at),
            entry.error_message or "",
        )
    console.print(table)


def display_health_report(report: HealthReport) -> None:
    """Display sync health for a platform."""
    table = Table(show_header=False, title=f"Sync Health: {report.platform}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Success rate", f"{report.success_rate:.1f}%")
    table.add_row("Average sync time", f"{report.average_duration:.2f}s")
    table.add_row("Total attempts", str(report.total_syncs))
    table.add_row("Succeeded", str(report.successful_syncs))
    table.add_row("Failed", str(report.failed_syncs))
    table.add_row("In progress", str(report.in_progress_syncs))
    table.add_row("Failures (24h)", str(report.recent_failures))
    table.add_row("Last success", _timestamp(report.last_successful_sync))
    table.add_row("Last failure", _timestamp(report.last_failed_sync))
    console.print(table)

    if report.common_errors:
        console.print("[bold]Common errors:[/bold]")
        for error in report.common_errors:
            console.print(f"  • {error}")
    console.print("[bold]Recommendations:[/bold]")
    for recommendation in report.recommendations:
        console.print(f"  • {recommendation}")
