"""Command-line interface for the content sync engine.

This is the main entry point that delegates to command modules.
"""

from pathlib import Path
from typing import Any

import click

from .. import __version__
from ..utils.logging_config import configure_third_party_loggers, setup_logging
from .commands import (
    conflicts,
    deploy_command,
    detect_command,
    history,
    init_command,
    recover_command,
    retry_command,
    status_command,
    types_group,
)


@click.group()
@click.version_option(__version__, prog_name="content-sync")
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Set logging level",
)
@click.option("--log-file", type=click.Path(), help="Log to file")
@click.pass_context
def cli(ctx: Any, log_level: str, log_file: str) -> None:
    """Content Type Sync Engine.

    Keeps content type definitions in sync between the local store and a
    remote publishing platform, with version history and conflict review.
    """
    setup_logging(log_level=log_level, log_file=Path(log_file) if log_file else None)
    configure_third_party_loggers()
    ctx.ensure_object(dict)


# Register command groups and commands
cli.add_command(init_command)
cli.add_command(types_group)
cli.add_command(detect_command)
cli.add_command(deploy_command)
cli.add_command(retry_command)
cli.add_command(recover_command)
cli.add_command(status_command)
cli.add_command(conflicts)
cli.add_command(history)


if __name__ == "__main__":
    cli()
