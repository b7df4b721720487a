"""Conflict queue commands."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import click
from rich.console import Console

from ...config import Config
from ...core.sync import ConflictManager, ConflictResolution
from ...database import ConflictPriority, ConflictReviewStatus
from ..display import display_conflict_stats, display_conflicts, display_resolution
from .init import init_db, init_orchestrator

console = Console()
logger = logging.getLogger(__name__)


def _manager(config: Config) -> ConflictManager:
    return ConflictManager(
        init_db(config), priority_item_threshold=config.priority_item_threshold
    )


@click.group("conflicts")
def conflicts() -> None:
    """Review and resolve content type conflicts."""
    pass


@conflicts.command(name="list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in ConflictReviewStatus]),
    default=ConflictReviewStatus.PENDING_REVIEW.value,
    show_default=True,
    help="Filter by review status",
)
@click.option(
    "--priority",
    type=click.Choice([p.value for p in ConflictPriority]),
    help="Filter by priority",
)
@click.option("--type-key", help="Filter by content type key")
def list_conflicts(
    status: str, priority: Optional[str], type_key: Optional[str]
) -> None:
    """List conflicts, most urgent first."""
    try:
        manager = _manager(Config())
        queue = manager.get_conflict_queue(
            status=status, priority=priority, type_key=type_key
        )
        display_conflicts(queue)
    except Exception as e:
        logger.exception("Listing conflicts failed")
        console.print(f"[bold red]❌ Listing conflicts failed: {e}[/bold red]")
        raise click.Abort()


@conflicts.command(name="resolve")
@click.argument("conflict_id")
@click.option(
    "--strategy",
    type=click.Choice([r.value for r in ConflictResolution]),
    help="Resolution strategy (best available if omitted)",
)
@click.option("--resolved-by", default="cli", show_default=True, help="Resolver name")
def resolve_conflict(
    conflict_id: str, strategy: Optional[str], resolved_by: str
) -> None:
    """Resolve the conflict CONFLICT_ID against current local and remote state."""
    try:
        orchestrator = init_orchestrator(Config())
        result = orchestrator.resolve_conflict(
            conflict_id, strategy=strategy, resolved_by=resolved_by
        )
    except ValueError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise click.Abort()
    except Exception as e:
        logger.exception("Conflict resolution failed")
        console.print(f"[bold red]❌ Conflict resolution failed: {e}[/bold red]")
        raise click.Abort()

    suggestions = []
    if not result.success:
        conflict = orchestrator.conflict_manager.get_conflict(conflict_id)
        if conflict is not None:
            suggestions = orchestrator.selector.suggest_actions(
                ConflictManager.to_detected(conflict)
            )
    display_resolution(result, suggestions)


@conflicts.command(name="stats")
def conflict_stats() -> None:
    """Show conflict statistics."""
    try:
        display_conflict_stats(_manager(Config()).get_statistics())
    except Exception as e:
        logger.exception("Conflict statistics failed")
        console.print(f"[bold red]❌ Conflict statistics failed: {e}[/bold red]")
        raise click.Abort()


@conflicts.command(name="clear")
@click.option(
    "--older-than",
    type=int,
    help="Only clear conflicts resolved more than this many days ago",
)
def clear_conflicts(older_than: Optional[int]) -> None:
    """Delete resolved conflicts."""
    cutoff: Optional[datetime] = None
    if older_than is not None:
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than)
    try:
        count = _manager(Config()).clear_resolved_conflicts(older_than=cutoff)
    except Exception as e:
        logger.exception("Clearing conflicts failed")
        console.print(f"[bold red]❌ Clearing conflicts failed: {e}[/bold red]")
        raise click.Abort()
    console.print(f"[green]✓ Cleared {count} resolved conflict(s)[/green]")
