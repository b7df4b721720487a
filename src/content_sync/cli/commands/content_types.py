"""Local content type commands: import, export and list."""

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import click
from rich.console import Console
from rich.table import Table

from ...config import Config
from ...core.versioning import ContentTypeRepository, VersionStore
from ...database import ChangeSource
from ...models import InvalidDefinitionError
from .init import init_db

console = Console()
logger = logging.getLogger(__name__)


def _repository() -> ContentTypeRepository:
    db_service = init_db(Config())
    return ContentTypeRepository(db_service, VersionStore(db_service))


def load_definitions(path: Path) -> List[Any]:
    """Read definitions from a JSON file.

    The file holds either a list of definitions or an object with a
    ``content_types`` list.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("content_types", [data] if "key" in data else [])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of content types in {path}")
    return data


@click.group("types")
def types_group() -> None:
    """Manage locally stored content types."""
    pass


@types_group.command(name="import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--author", help="Author recorded on the new versions")
def import_command(file: Path, author: Optional[str]) -> None:
    """Import content type definitions from a JSON FILE."""
    try:
        definitions = load_definitions(file)
        results = _repository().import_definitions(
            definitions, source=ChangeSource.UI, author=author
        )
    except InvalidDefinitionError as e:
        console.print(f"[bold red]❌ Invalid definition: {e}[/bold red]")
        for error in e.errors:
            console.print(f"  • {error.get('loc')}: {error.get('msg')}")
        raise click.Abort()
    except Exception as e:
        logger.exception("Import failed")
        console.print(f"[bold red]❌ Import failed: {e}[/bold red]")
        raise click.Abort()

    created = sum(1 for r in results if r.version.success and not r.version.skipped)
    console.print(
        f"[green]✓ Imported {len(results)} content type(s), "
        f"{created} new version(s)[/green]"
    )


@types_group.command(name="export")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
@click.argument("keys", nargs=-1)
def export_command(file: Path, keys: tuple) -> None:
    """Export local content types to a JSON FILE."""
    try:
        definitions = _repository().list_definitions(list(keys) or None)
        file.parent.mkdir(parents=True, exist_ok=True)
        with open(file, "w", encoding="utf-8") as f:
            json.dump(
                {"content_types": [d.to_payload() for d in definitions]},
                f,
                indent=2,
            )
    except Exception as e:
        logger.exception("Export failed")
        console.print(f"[bold red]❌ Export failed: {e}[/bold red]")
        raise click.Abort()

    console.print(
        f"[green]✓ Exported {len(definitions)} content type(s) to {file}[/green]"
    )


@types_group.command(name="list")
def list_command() -> None:
    """List local content types."""
    try:
        definitions = _repository().list_definitions()
    except Exception as e:
        logger.exception("Listing content types failed")
        console.print(f"[bold red]❌ Listing content types failed: {e}[/bold red]")
        raise click.Abort()

    if not definitions:
        console.print("[dim]No content types stored locally[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Fields", justify="right")
    for definition in definitions:
        table.add_row(
            definition.key,
            definition.name,
            definition.category.value,
            str(len(definition.fields)),
        )
    console.print(table)
