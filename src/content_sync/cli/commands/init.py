"""Initialization helpers and the init command.

This module provides simple initialization functions that return service instances:
- init_db() -> DatabaseService
- init_client() -> PlatformClient
- init_orchestrator() -> SyncOrchestrator
"""

import logging
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from ...config import Config
from ...core.platform import PlatformClient
from ...core.sync import SyncOrchestrator
from ...database import DatabaseService, ProgressCallback

console = Console()
logger = logging.getLogger(__name__)


class InitializationError(Exception):
    """Raised when initialization fails."""

    pass


def init_db(config: Optional[Config] = None) -> DatabaseService:
    """Initialize or get DatabaseService instance.

    Args:
        config: Application configuration (creates new if not provided)

    Returns:
        DatabaseService instance

    Raises:
        InitializationError: If database cannot be initialized
    """
    if config is None:
        config = Config()

    try:
        db_service = DatabaseService(db_path=config.database_path)

        if not db_service.is_initialized():
            logger.info("Initializing database schema...")
            db_service.init_db()

        stats = db_service.get_statistics()
        logger.debug(
            "Database connected: %d content types, %d versions",
            stats["content_types"],
            stats["versions"],
        )
        return db_service

    except Exception as e:
        logger.exception("Database initialization failed")
        raise InitializationError(f"Database initialization failed: {e}")


def init_client(config: Optional[Config] = None) -> PlatformClient:
    """Create a PlatformClient from configuration.

    Raises:
        InitializationError: If no platform URL is configured
    """
    if config is None:
        config = Config()

    if not config.platform_url:
        raise InitializationError(
            "No platform URL configured (set CONTENT_SYNC_PLATFORM_URL)"
        )
    if not config.platform_token:
        logger.warning("No platform token configured, requests are unauthenticated")

    return PlatformClient(
        base_url=config.platform_url,
        token=config.platform_token,
        timeout=config.request_timeout,
        max_concurrent_requests=config.max_concurrent_requests,
        platform_name=config.platform_name,
    )


def init_orchestrator(
    config: Optional[Config] = None,
    db_service: Optional[DatabaseService] = None,
    client: Optional[PlatformClient] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> SyncOrchestrator:
    """Wire database, client and configuration into an orchestrator."""
    if config is None:
        config = Config()

    return SyncOrchestrator(
        db_service=db_service or init_db(config),
        client=client or init_client(config),
        config=config,
        progress_callbacks=[progress_callback] if progress_callback else None,
    )


@click.command("init")
@click.option(
    "--check-remote/--no-check-remote",
    default=True,
    help="Verify the platform is reachable",
)
def init_command(check_remote: bool) -> None:
    """Create the local database and check the platform connection."""
    config = Config()
    table = Table(show_header=True, header_style="bold magenta", title="Services")
    table.add_column("Service", style="cyan")
    table.add_column("Status")
    table.add_column("Details", style="dim")

    try:
        db_service = init_db(config)
    except InitializationError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise click.Abort()

    stats = db_service.get_statistics()
    table.add_row(
        "Database",
        "[green]✓ ready[/green]",
        f"{config.database_path} ({stats['content_types']} content types)",
    )

    if check_remote:
        client = init_client(config)
        if client.test_connection():
            status = "[green]✓ reachable[/green]"
        else:
            status = "[red]✗ unreachable[/red]"
        table.add_row("Platform", status, config.platform_url)

    console.print(table)
