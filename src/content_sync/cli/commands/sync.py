"""Sync commands: change detection, deployment, retry and recovery."""

import logging
from typing import Optional, Tuple

import click
from rich.console import Console

from ...config import Config
from ...database import (
    ConsoleProgressReporter,
    ProgressCallback,
    TqdmProgressReporter,
)
from ..display import display_change_report, display_deployment_result
from .init import init_orchestrator

console = Console()
logger = logging.getLogger(__name__)


def setup_progress_reporter(
    progress: bool, verbose: bool
) -> Optional[ProgressCallback]:
    """Pick a progress reporter for a command.

    Args:
        progress: Whether to use progress bars
        verbose: Whether to show verbose output

    Returns:
        A progress callback, or None to stay quiet
    """
    if progress:
        return TqdmProgressReporter()
    if verbose:
        return ConsoleProgressReporter(verbose=True)
    return None


def _close_reporter(reporter: Optional[ProgressCallback]) -> None:
    if isinstance(reporter, TqdmProgressReporter):
        reporter.close_all()


@click.command("detect")
@click.argument("keys", nargs=-1)
@click.option(
    "--persist/--no-persist",
    default=True,
    help="Record the detected state in the sync state store",
)
def detect_command(keys: Tuple[str, ...], persist: bool) -> None:
    """Compare local content types with the platform.

    KEYS restricts detection to the given content type keys.
    """
    try:
        orchestrator = init_orchestrator(Config())
        report = orchestrator.change_detector.detect_changes(
            keys=list(keys) or None, persist=persist
        )
        display_change_report(report)
    except Exception as e:
        logger.exception("Change detection failed")
        console.print(f"[bold red]❌ Change detection failed: {e}[/bold red]")
        raise click.Abort()


@click.command("deploy")
@click.argument("keys", nargs=-1)
@click.option(
    "--auto-resolve/--no-auto-resolve",
    default=None,
    help="Resolve conflicts that need no human judgment",
)
@click.option(
    "--skip-conflict-check",
    is_flag=True,
    help="Push local definitions without checking for conflicts",
)
@click.option(
    "--allow-deletes/--no-allow-deletes",
    default=None,
    help="Propagate deletions to the other side",
)
@click.option("--deployment-id", help="Id for the deployment record")
@click.option(
    "--progress/--no-progress",
    default=True,
    help="Show progress bars",
)
@click.option("--verbose", "-v", is_flag=True, help="Print every progress step")
def deploy_command(
    keys: Tuple[str, ...],
    auto_resolve: Optional[bool],
    skip_conflict_check: bool,
    allow_deletes: Optional[bool],
    deployment_id: Optional[str],
    progress: bool,
    verbose: bool,
) -> None:
    """Deploy content types between the local store and the platform.

    KEYS restricts the deployment to the given content type keys.
    """
    reporter = setup_progress_reporter(progress, verbose)
    try:
        orchestrator = init_orchestrator(Config(), progress_callback=reporter)
        result = orchestrator.deploy(
            keys=list(keys) or None,
            deployment_id=deployment_id,
            auto_resolve=auto_resolve,
            skip_conflict_check=skip_conflict_check,
            allow_deletes=allow_deletes,
        )
    except Exception as e:
        logger.exception("Deployment failed")
        console.print(f"[bold red]❌ Deployment failed: {e}[/bold red]")
        raise click.Abort()
    finally:
        _close_reporter(reporter)

    display_deployment_result(result, show_logs=verbose)


@click.command("retry")
@click.argument("deployment_id")
@click.option("--verbose", "-v", is_flag=True, help="Print the deployment log")
def retry_command(deployment_id: str, verbose: bool) -> None:
    """Retry the failed items of a deployment."""
    try:
        orchestrator = init_orchestrator(Config())
        result = orchestrator.retry_failed_syncs(deployment_id)
    except ValueError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise click.Abort()
    except Exception as e:
        logger.exception("Retry failed")
        console.print(f"[bold red]❌ Retry failed: {e}[/bold red]")
        raise click.Abort()

    display_deployment_result(result, show_logs=verbose)


@click.command("recover")
def recover_command() -> None:
    """Reset syncs left in progress by an interrupted run."""
    try:
        orchestrator = init_orchestrator(Config())
        keys = orchestrator.recover_interrupted_syncs()
    except Exception as e:
        logger.exception("Recovery failed")
        console.print(f"[bold red]❌ Recovery failed: {e}[/bold red]")
        raise click.Abort()

    if not keys:
        console.print("[green]✓ No interrupted syncs[/green]")
        return
    console.print(f"[yellow]Recovered {len(keys)} interrupted sync(s):[/yellow]")
    for key in keys:
        console.print(f"  • {key}")
    console.print("[dim]They will be picked up by the next deployment[/dim]")
