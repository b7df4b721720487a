"""Conflict detection and classification.

A conflict exists when both sides diverged from the merge base. The base is
the snapshot both sides last agreed on, falling back to their common ancestor
in the version history, and finally to the fields both sides still share.
"""

import logging
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any, Dict, List, Optional, Tuple

from ...database.models import ConflictSeverity, ConflictType
from ...database.sync_state import SyncAction, SyncDelta, SyncStateStore
from ...models import ContentTypeDefinition
from ..versioning.diff import FieldDiff, VersionDiff
from ..versioning.version_store import VersionStore
from .change_detector import HashedDefinition

logger = logging.getLogger(__name__)

SEVERITY_BY_TYPE = {
    ConflictType.FIELD_TYPE_MISMATCH: ConflictSeverity.HIGH,
    ConflictType.DELETE_CONFLICT: ConflictSeverity.HIGH,
    ConflictType.FIELD_MODIFIED: ConflictSeverity.MEDIUM,
    ConflictType.STRUCTURAL: ConflictSeverity.MEDIUM,
    ConflictType.FIELD_ADDED: ConflictSeverity.LOW,
}


@dataclass
class DetectedConflict:
    """A classified conflict, before it is queued for review."""

    type_key: str
    conflict_type: ConflictType
    severity: ConflictSeverity
    local_hash: Optional[str]
    remote_hash: Optional[str]
    ancestor_hash: Optional[str]
    source_changes: FieldDiff
    target_changes: FieldDiff
    conflicting_fields: List[str] = dataclass_field(default_factory=list)
    local: Optional[ContentTypeDefinition] = None
    remote: Optional[ContentTypeDefinition] = None
    base: Optional[ContentTypeDefinition] = None
    remote_etag: Optional[str] = None
    conflict_id: Optional[str] = None

    @property
    def is_disjoint(self) -> bool:
        """Whether the two sides changed different fields."""
        return not self.conflicting_fields

    def __str__(self) -> str:
        """String representation of conflict."""
        parts = [
            f"{self.type_key}: {self.conflict_type.value} ({self.severity.value})"
        ]
        if self.conflicting_fields:
            parts.append(f"fields: {', '.join(self.conflicting_fields)}")
        return " ".join(parts)


class ConflictDetector:
    """Decides whether a change is a true conflict and classifies it."""

    def __init__(self, version_store: VersionStore, state_store: SyncStateStore):
        """Initialize conflict detector.

        Args:
            version_store: Source of base snapshots and common ancestors
            state_store: Source of the last synced hash
        """
        self.version_store = version_store
        self.state_store = state_store

    def detect(
        self,
        type_key: str,
        local: Optional[HashedDefinition],
        remote: Optional[HashedDefinition],
        delta: SyncDelta,
    ) -> Optional[DetectedConflict]:
        """Classify a change if it is a conflict.

        Args:
            type_key: Content type key
            local: Local definition and hash (None if absent)
            remote: Remote definition and hash (None if absent)
            delta: Delta computed by the state store

        Returns:
            DetectedConflict, or None for clean pushes, pulls and no-ops
        """
        if delta.action == SyncAction.INITIAL_SYNC:
            # First sighting with both sides present and different
            if local is None or remote is None or local.hash == remote.hash:
                return None
        elif delta.action != SyncAction.CONFLICT:
            return None

        local_def = local.definition if local else None
        remote_def = remote.definition if remote else None
        base, ancestor_hash = self.find_base(
            type_key,
            local.hash if local else None,
            remote.hash if remote else None,
            local_def,
            remote_def,
        )
        conflict = self.classify(type_key, local_def, remote_def, base)
        conflict.local_hash = local.hash if local else None
        conflict.remote_hash = remote.hash if remote else None
        conflict.ancestor_hash = ancestor_hash
        conflict.remote_etag = remote.etag if remote else None
        logger.info("Conflict detected: %s", conflict)
        return conflict

    def find_base(
        self,
        type_key: str,
        local_hash: Optional[str],
        remote_hash: Optional[str],
        local: Optional[ContentTypeDefinition],
        remote: Optional[ContentTypeDefinition],
    ) -> Tuple[Optional[ContentTypeDefinition], Optional[str]]:
        """Find the definition both sides diverged from.

        Returns:
            The base definition and its hash (None when synthesized)
        """
        state = self.state_store.get(type_key)
        if state is not None and state.last_synced_hash:
            snapshot = self.version_store.get_snapshot(state.last_synced_hash)
            if snapshot is not None:
                return snapshot, state.last_synced_hash
            logger.debug(
                "Merge base %s of %s not in history",
                state.last_synced_hash[:12],
                type_key,
            )

        if local_hash and remote_hash:
            ancestor = self.version_store.find_common_ancestor(local_hash, remote_hash)
            if ancestor is not None:
                snapshot = self.version_store.get_snapshot(ancestor)
                if snapshot is not None:
                    return snapshot, ancestor

        return self._shared_fields_base(local, remote), None

    @staticmethod
    def _shared_fields_base(
        local: Optional[ContentTypeDefinition],
        remote: Optional[ContentTypeDefinition],
    ) -> Optional[ContentTypeDefinition]:
        if local is None or remote is None:
            return None
        remote_fields = remote.field_map()
        shared = [
            f
            for f in local.fields
            if f.key in remote_fields
            and f.semantic_dict() == remote_fields[f.key].semantic_dict()
        ]
        return local.with_fields(shared)

    @staticmethod
    def classify(
        type_key: str,
        local: Optional[ContentTypeDefinition],
        remote: Optional[ContentTypeDefinition],
        base: Optional[ContentTypeDefinition],
    ) -> DetectedConflict:
        """Classify a conflict from the two sides and their base."""
        base_fields = base.fields if base else []
        three_way = VersionDiff.three_way_diff(
            base_fields,
            local.fields if local else [],
            remote.fields if remote else [],
        )
        source, target = three_way.local, three_way.remote
        conflicting = list(three_way.conflicting)

        local_map: Dict[str, Any] = local.field_map() if local else {}
        remote_map: Dict[str, Any] = remote.field_map() if remote else {}
        type_mismatches = [
            key
            for key in sorted(set(local_map) & set(remote_map))
            if local_map[key].type != remote_map[key].type
        ]
        delete_conflicts = [
            key
            for key in conflicting
            if (key in source.removed) != (key in target.removed)
        ]

        if local is None or remote is None:
            # One side deleted the whole content type, the other changed it
            conflict_type = ConflictType.DELETE_CONFLICT
            if not conflicting:
                touched = set(source.changed_keys) | set(target.changed_keys)
                conflicting = sorted(touched)
        elif type_mismatches:
            conflict_type = ConflictType.FIELD_TYPE_MISMATCH
        elif delete_conflicts:
            conflict_type = ConflictType.DELETE_CONFLICT
        elif conflicting:
            conflict_type = ConflictType.FIELD_MODIFIED
        elif (source.added or target.added) and not (source.removed or target.removed):
            conflict_type = ConflictType.FIELD_ADDED
        else:
            conflict_type = ConflictType.STRUCTURAL

        return DetectedConflict(
            type_key=type_key,
            conflict_type=conflict_type,
            severity=SEVERITY_BY_TYPE[conflict_type],
            local_hash=None,
            remote_hash=None,
            ancestor_hash=None,
            source_changes=source,
            target_changes=target,
            conflicting_fields=conflicting,
            local=local,
            remote=remote,
            base=base,
        )
