"""Hashing, version history and local content-type storage."""

from .diff import FieldDiff, ThreeWayDiff, VersionDiff
from .hasher import ContentTypeHasher
from .repository import ContentTypeRepository, SaveResult
from .version_store import VersionNode, VersionStore, VersionTree, VersionWriteResult

__all__ = [
    "ContentTypeHasher",
    "ContentTypeRepository",
    "FieldDiff",
    "SaveResult",
    "ThreeWayDiff",
    "VersionDiff",
    "VersionNode",
    "VersionStore",
    "VersionTree",
    "VersionWriteResult",
]
