"""CLI command modules."""

from .conflicts import conflicts
from .content_types import types_group
from .history import history
from .init import InitializationError, init_command
from .status import status_command
from .sync import deploy_command, detect_command, recover_command, retry_command

__all__ = [
    "InitializationError",
    "conflicts",
    "deploy_command",
    "detect_command",
    "history",
    "init_command",
    "recover_command",
    "retry_command",
    "status_command",
    "types_group",
]
