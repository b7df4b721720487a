"""Status command: sync state, deployments and sync attempts."""

import logging
from typing import Optional

import click
from rich.console import Console

from ...config import Config
from ...core.sync import SyncAnalytics, SyncHistoryManager
from ...database import SyncStateStore
from ..display import (
    display_deployment,
    display_health_report,
    display_sync_history,
    display_sync_states,
)
from .init import init_db

console = Console()
logger = logging.getLogger(__name__)


@click.command("status")
@click.argument("key", required=False)
@click.option("--deployment", "deployment_id", help="Show a deployment record")
@click.option("--history", is_flag=True, help="Show recent sync attempts")
@click.option("--stats", is_flag=True, help="Show sync health for the platform")
@click.option(
    "--limit", default=20, show_default=True, help="Number of attempts to show"
)
def status_command(
    key: Optional[str],
    deployment_id: Optional[str],
    history: bool,
    stats: bool,
    limit: int,
) -> None:
    """Show sync state for all content types, or for KEY."""
    try:
        config = Config()
        db_service = init_db(config)

        if stats:
            analytics = SyncAnalytics(SyncHistoryManager(db_service))
            display_health_report(
                analytics.generate_health_report(config.platform_name)
            )
            return

        if deployment_id:
            deployment = db_service.get_deployment(deployment_id)
            if deployment is None:
                console.print(f"[red]Deployment not found: {deployment_id}[/red]")
                raise click.Abort()
            display_deployment(deployment)
            if history:
                display_sync_history(
                    db_service.list_sync_history(deployment_id=deployment_id)
                )
            return

        store = SyncStateStore(db_service)
        if key:
            state = store.get(key)
            display_sync_states([state] if state else [])
            progress = store.get_sync_progress(key)
            if progress is not None:
                console.print(
                    f"Sync in progress: step {progress.current_step}"
                    f"/{progress.total_steps}"
                )
        else:
            display_sync_states(store.list_states())
            conflicted = store.get_conflicted_types()
            if conflicted:
                console.print(
                    f"\n[red]{len(conflicted)} content type(s) in conflict[/red]"
                )

        if history:
            entries = db_service.list_sync_history(type_key=key, limit=limit)
            display_sync_history(entries)

    except click.Abort:
        raise
    except Exception as e:
        logger.exception("Status check failed")
        console.print(f"[bold red]❌ Status check failed: {e}[/bold red]")
        raise click.Abort()
