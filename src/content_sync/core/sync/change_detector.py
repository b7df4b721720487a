"""Content-hash based change detection between local and remote content types.

Both sides are hashed with the same hasher and compared key by key. A key
present only remotely is ``created``, only locally ``deleted``, on both sides
with different hashes ``updated`` and otherwise ``unchanged``. Timestamps are
never consulted.
"""

import logging
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ...database.models import SyncStatus
from ...database.sync_state import SyncStateStore
from ...models import ContentTypeDefinition
from ..platform.client import PlatformClient
from ..versioning.diff import FieldDiff, VersionDiff
from ..versioning.hasher import ContentTypeHasher
from ..versioning.repository import ContentTypeRepository

logger = logging.getLogger(__name__)


@dataclass
class HashedDefinition:
    """A definition with its content hash and, for remote ones, its etag."""

    hash: str
    definition: ContentTypeDefinition
    etag: Optional[str] = None


@dataclass
class ContentTypeChange:
    """Change detected for one content type key."""

    key: str
    local_hash: Optional[str] = None
    remote_hash: Optional[str] = None
    field_diff: Optional[FieldDiff] = None


@dataclass
class ChangeSet:
    """Result of comparing local and remote hash maps."""

    created: List[ContentTypeChange] = dataclass_field(default_factory=list)
    updated: List[ContentTypeChange] = dataclass_field(default_factory=list)
    deleted: List[ContentTypeChange] = dataclass_field(default_factory=list)
    unchanged: List[ContentTypeChange] = dataclass_field(default_factory=list)
    local: Dict[str, HashedDefinition] = dataclass_field(default_factory=dict)
    remote: Dict[str, HashedDefinition] = dataclass_field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        """Whether any key differs between the two sides."""
        return bool(self.created or self.updated or self.deleted)

    @property
    def changed(self) -> List[ContentTypeChange]:
        """Created, updated and deleted changes together."""
        return [*self.created, *self.updated, *self.deleted]

    def all_changes(self) -> List[ContentTypeChange]:
        """Every change including unchanged keys, sorted by key."""
        return sorted([*self.changed, *self.unchanged], key=lambda c: c.key)


@dataclass
class ChangeReport:
    """Change set plus a summary and human-readable detail lines."""

    changes: ChangeSet
    summary: Dict[str, Any]
    details: List[str]

    def __str__(self) -> str:
        """Multi-line text report."""
        s = self.summary
        header = (
            f"{s['total']} content types: {s['created']} created, "
            f"{s['updated']} updated, {s['deleted']} deleted, "
            f"{s['unchanged']} unchanged"
        )
        return "\n".join([header, *self.details])


class ChangeDetector:
    """Detects content-type drift between the local store and the platform."""

    def __init__(
        self,
        repository: ContentTypeRepository,
        client: PlatformClient,
        state_store: Optional[SyncStateStore] = None,
        hasher: Optional[ContentTypeHasher] = None,
        hash_workers: int = 4,
        on_converged: Optional[Callable[[str, str], Any]] = None,
    ):
        """Initialize change detector.

        Args:
            repository: Local content-type repository
            client: Remote platform client
            state_store: If given, detection results are persisted to it
            hasher: Hasher shared by both sides
            hash_workers: Threads used to hash definitions
            on_converged: Called with the key and hash of each key found
                equal on both sides when results are persisted
        """
        self.repository = repository
        self.client = client
        self.state_store = state_store
        self.hasher = hasher or ContentTypeHasher()
        self.hash_workers = hash_workers
        self.on_converged = on_converged

    def calculate_local_hashes(
        self, keys: Optional[Iterable[str]] = None
    ) -> Dict[str, HashedDefinition]:
        """Hash local definitions."""
        definitions = self.repository.list_definitions(keys)
        hashes = self.hasher.hash_many(definitions, max_workers=self.hash_workers)
        return {d.key: HashedDefinition(hashes[d.key], d) for d in definitions}

    def fetch_remote_hashes(
        self, keys: Optional[Iterable[str]] = None
    ) -> Dict[str, HashedDefinition]:
        """Fetch and hash remote definitions, keeping their etags."""
        wanted: Optional[Set[str]] = set(keys) if keys is not None else None
        remote = [
            r
            for r in self.client.list_content_types()
            if wanted is None or r.key in wanted
        ]
        hashes = self.hasher.hash_many(
            [r.definition for r in remote], max_workers=self.hash_workers
        )
        return {
            r.key: HashedDefinition(hashes[r.key], r.definition, r.etag)
            for r in remote
        }

    @staticmethod
    def compare_hashes(
        local: Dict[str, HashedDefinition], remote: Dict[str, HashedDefinition]
    ) -> ChangeSet:
        """Set-diff two hash maps."""
        change_set = ChangeSet(local=local, remote=remote)
        for key in sorted(set(local) | set(remote)):
            local_entry = local.get(key)
            remote_entry = remote.get(key)

            if local_entry is None and remote_entry is not None:
                change_set.created.append(
                    ContentTypeChange(key, remote_hash=remote_entry.hash)
                )
            elif remote_entry is None and local_entry is not None:
                change_set.deleted.append(
                    ContentTypeChange(key, local_hash=local_entry.hash)
                )
            elif local_entry is not None and remote_entry is not None:
                change = ContentTypeChange(key, local_entry.hash, remote_entry.hash)
                if local_entry.hash == remote_entry.hash:
                    change_set.unchanged.append(change)
                else:
                    change.field_diff = VersionDiff.calculate_diff(
                        local_entry.definition.fields, remote_entry.definition.fields
                    )
                    change_set.updated.append(change)
        return change_set

    def detect_changes(
        self, keys: Optional[Iterable[str]] = None, persist: bool = True
    ) -> ChangeReport:
        """Compare local and remote content types.

        Args:
            keys: Restrict detection to these keys
            persist: Write results to the state store when one is configured

        Returns:
            ChangeReport for the compared keys
        """
        key_list = list(keys) if keys is not None else None
        local = self.calculate_local_hashes(key_list)
        remote = self.fetch_remote_hashes(key_list)
        change_set = self.compare_hashes(local, remote)

        summary, details = self.generate_diff_report(change_set)
        logger.info(
            "Change detection: %d created, %d updated, %d deleted, %d unchanged",
            summary["created"],
            summary["updated"],
            summary["deleted"],
            summary["unchanged"],
        )

        if persist and self.state_store is not None:
            self.persist_sync_states(change_set)
        return ChangeReport(change_set, summary, details)

    def detect_batch_changes(
        self, keys: Iterable[str], persist: bool = True
    ) -> ChangeReport:
        """Run detection for a subset of keys."""
        return self.detect_changes(keys=list(keys), persist=persist)

    @staticmethod
    def generate_diff_report(
        change_set: ChangeSet,
    ) -> Tuple[Dict[str, Any], List[str]]:
        """Build summary counts and detail lines for a change set."""
        summary: Dict[str, Any] = {
            "total": len(change_set.all_changes()),
            "created": len(change_set.created),
            "updated": len(change_set.updated),
            "deleted": len(change_set.deleted),
            "unchanged": len(change_set.unchanged),
            "has_changes": change_set.has_changes,
        }

        details: List[str] = []
        for change in change_set.created:
            details.append(f"+ {change.key}: only on remote")
        for change in change_set.deleted:
            details.append(f"- {change.key}: only local")
        for change in change_set.updated:
            diff = change.field_diff or FieldDiff()
            parts = []
            if diff.added:
                parts.append(f"added {', '.join(diff.added)}")
            if diff.modified:
                parts.append(f"modified {', '.join(diff.modified)}")
            if diff.removed:
                parts.append(f"removed {', '.join(diff.removed)}")
            details.append(f"~ {change.key}: {'; '.join(parts) or 'metadata changed'}")
        return summary, details

    def persist_sync_states(
        self, change_set: ChangeSet, keys: Optional[Iterable[str]] = None
    ) -> None:
        """Store detection results in the state store.

        Created keys become ``new``, updated and deleted keys ``modified`` and
        unchanged keys ``in_sync``. Keys with a sync in flight are left alone;
        conflicted keys keep their status and only get fresh hashes. A key
        whose sides converged has its open conflict closed.

        Args:
            change_set: Detection result
            keys: Only persist these keys (all if None)
        """
        if self.state_store is None:
            return
        wanted: Optional[Set[str]] = set(keys) if keys is not None else None

        for change in change_set.unchanged:
            if wanted is not None and change.key not in wanted:
                continue
            if change.local_hash:
                self.state_store.mark_as_synced(
                    change.key, change.local_hash, change.local_hash
                )
                if self.on_converged is not None:
                    self.on_converged(change.key, change.local_hash)

        buckets = (
            (change_set.created, SyncStatus.NEW),
            (change_set.updated, SyncStatus.MODIFIED),
            (change_set.deleted, SyncStatus.MODIFIED),
        )
        for changes, status in buckets:
            for change in changes:
                if wanted is not None and change.key not in wanted:
                    continue
                state = self.state_store.get(change.key)
                current = state.sync_status if state is not None else None
                if current == SyncStatus.SYNCING.value:
                    logger.debug("Skipping %s, sync in progress", change.key)
                    continue
                if current == SyncStatus.CONFLICT.value:
                    self.state_store.update_sync_state(
                        change.key,
                        local_hash=change.local_hash,
                        remote_hash=change.remote_hash,
                    )
                    continue
                self.state_store.record_detection(
                    change.key, status, change.local_hash, change.remote_hash
                )
