"""Version history commands."""

import logging
from typing import Optional

import click
from rich.console import Console

from ...config import Config
from ...core.versioning import VersionStore
from ..display import display_field_diff, display_versions
from .init import init_db

console = Console()
logger = logging.getLogger(__name__)


def _version_store() -> VersionStore:
    return VersionStore(init_db(Config()))


@click.group("history")
def history() -> None:
    """Inspect content type version history."""
    pass


@history.command(name="log")
@click.argument("key")
@click.option("--limit", type=int, help="Number of versions to show")
def history_log(key: str, limit: Optional[int]) -> None:
    """List versions of content type KEY, newest first."""
    try:
        display_versions(_version_store().get_history(key, limit=limit))
    except Exception as e:
        logger.exception("Reading history failed")
        console.print(f"[bold red]❌ Reading history failed: {e}[/bold red]")
        raise click.Abort()


@history.command(name="tree")
@click.argument("key")
def history_tree(key: str) -> None:
    """Draw the version tree of content type KEY."""
    try:
        console.print(_version_store().visualize_tree(key), highlight=False)
    except Exception as e:
        logger.exception("Building version tree failed")
        console.print(f"[bold red]❌ Building version tree failed: {e}[/bold red]")
        raise click.Abort()


@history.command(name="lineage")
@click.argument("version_hash")
def history_lineage(version_hash: str) -> None:
    """Follow first parents from VERSION_HASH back to the root."""
    try:
        lineage = _version_store().get_lineage(version_hash)
    except Exception as e:
        logger.exception("Reading lineage failed")
        console.print(f"[bold red]❌ Reading lineage failed: {e}[/bold red]")
        raise click.Abort()

    if not lineage:
        console.print(f"[red]Version not found: {version_hash}[/red]")
        raise click.Abort()
    display_versions(lineage)


@history.command(name="diff")
@click.argument("old_hash")
@click.argument("new_hash")
def history_diff(old_hash: str, new_hash: str) -> None:
    """Show field changes from OLD_HASH to NEW_HASH."""
    try:
        store = _version_store()
        old = store.db_service.get_version(old_hash)
        new = store.db_service.get_version(new_hash)
    except Exception as e:
        logger.exception("Reading versions failed")
        console.print(f"[bold red]❌ Reading versions failed: {e}[/bold red]")
        raise click.Abort()

    for version_hash, version in ((old_hash, old), (new_hash, new)):
        if version is None:
            console.print(f"[red]Version not found: {version_hash}[/red]")
            raise click.Abort()
    display_field_diff(old, new)

    ancestor = store.find_common_ancestor(old_hash, new_hash)
    if ancestor:
        console.print(f"[dim]Common ancestor: {ancestor[:12]}[/dim]")
