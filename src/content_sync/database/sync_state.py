"""Durable per content type sync state.

The store owns the sync state machine::

    new -> pending|modified -> syncing -> in_sync|failed|conflict
    conflict -> (resolution) -> in_sync
    failed -> pending

``sync_progress`` is set only while a type is ``syncing``. Every helper that
moves a type into another status clears it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Union

from ..models import InvalidSyncProgressError, SyncProgress
from .models import ConflictStatus, SyncState, SyncStatus
from .service import DatabaseService

logger = logging.getLogger(__name__)

PENDING_STATUSES = (SyncStatus.NEW, SyncStatus.PENDING, SyncStatus.MODIFIED)


class SyncAction(str, Enum):
    """Action implied by the current local and remote hashes."""

    INITIAL_SYNC = "INITIAL_SYNC"
    PUSH = "PUSH"
    PULL = "PULL"
    CONFLICT = "CONFLICT"
    NO_CHANGE = "NO_CHANGE"


@dataclass
class SyncDelta:
    """Result of a delta calculation."""

    action: SyncAction
    local_hash: Optional[str] = None
    remote_hash: Optional[str] = None

    def __str__(self) -> str:
        """String representation of the delta."""
        local = self.local_hash[:12] if self.local_hash else "-"
        remote = self.remote_hash[:12] if self.remote_hash else "-"
        return f"{self.action.value} (local={local}, remote={remote})"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _value(v: Any) -> Any:
    return v.value if isinstance(v, Enum) else v


class SyncStateStore:
    """Reads and transitions SyncState rows."""

    def __init__(self, db_service: DatabaseService):
        """Initialize the store.

        Args:
            db_service: Database service used for persistence
        """
        self.db_service = db_service

    def get(self, type_key: str) -> Optional[SyncState]:
        """Get the sync state for a content type."""
        return self.db_service.get_sync_state(type_key)

    def list_states(self) -> List[SyncState]:
        """List all sync states."""
        return self.db_service.list_sync_states()

    def update_sync_state(self, type_key: str, **changes: Any) -> SyncState:
        """Apply changes to a sync state, creating it if needed.

        Entering any status other than ``syncing`` clears the progress.

        Args:
            type_key: Content type key
            **changes: Column values to set

        Returns:
            Updated SyncState
        """
        data = {key: _value(value) for key, value in changes.items()}
        status = data.get("sync_status")
        if status is not None and status != SyncStatus.SYNCING.value:
            data["sync_progress"] = None
        return self.db_service.upsert_sync_state(type_key, data)

    # ------------------------------------------------------------------
    # Delta calculation
    # ------------------------------------------------------------------

    def calculate_delta(
        self,
        type_key: str,
        local_hash: Optional[str],
        remote_hash: Optional[str],
    ) -> SyncDelta:
        """Determine the sync action implied by the current hashes.

        Args:
            type_key: Content type key
            local_hash: Current local hash (None if absent locally)
            remote_hash: Current remote hash (None if absent remotely)

        Returns:
            SyncDelta with the inferred action
        """
        state = self.get(type_key)
        if state is None:
            return SyncDelta(SyncAction.INITIAL_SYNC, local_hash, remote_hash)

        if local_hash == remote_hash:
            return SyncDelta(SyncAction.NO_CHANGE, local_hash, remote_hash)

        if state.last_synced_hash:
            local_changed = local_hash != state.last_synced_hash
            remote_changed = remote_hash != state.last_synced_hash
        else:
            # Never synced and present on one side only: still a first sync
            if local_hash is None or remote_hash is None:
                action = SyncAction.PULL if local_hash is None else SyncAction.PUSH
                return SyncDelta(action, local_hash, remote_hash)

            # No merge base yet: infer direction from what we last observed
            local_changed = local_hash != state.local_hash
            remote_changed = remote_hash != state.remote_hash
            if local_changed == remote_changed:
                logger.debug(
                    "Ambiguous direction for %s without merge base, "
                    "treating as conflict",
                    type_key,
                )
                return SyncDelta(SyncAction.CONFLICT, local_hash, remote_hash)

        if local_changed and remote_changed:
            action = SyncAction.CONFLICT
        elif local_changed:
            action = SyncAction.PUSH
        elif remote_changed:
            action = SyncAction.PULL
        else:
            action = SyncAction.NO_CHANGE
        return SyncDelta(action, local_hash, remote_hash)

    # ------------------------------------------------------------------
    # Sync bookkeeping
    # ------------------------------------------------------------------

    def mark_as_synced(
        self, type_key: str, local_hash: str, remote_hash: str
    ) -> SyncState:
        """Record that both sides agree on a hash.

        This is the only transition that advances ``last_synced_hash``.

        Raises:
            ValueError: If the two hashes differ
        """
        if local_hash != remote_hash:
            raise ValueError(
                f"Cannot mark {type_key} as synced: local and remote hashes differ"
            )

        state = self.get(type_key)
        if (
            state is not None
            and state.sync_status == SyncStatus.IN_SYNC.value
            and state.conflict_status == ConflictStatus.NONE.value
            and state.local_hash == local_hash
            and state.remote_hash == remote_hash
            and state.last_synced_hash == local_hash
            and state.sync_progress is None
        ):
            return state

        logger.debug("Marking %s as synced at %s", type_key, local_hash[:12])
        return self.update_sync_state(
            type_key,
            local_hash=local_hash,
            remote_hash=remote_hash,
            last_synced_hash=local_hash,
            sync_status=SyncStatus.IN_SYNC,
            conflict_status=ConflictStatus.NONE,
            last_sync_at=_now(),
        )

    def record_detection(
        self,
        type_key: str,
        status: Union[SyncStatus, str],
        local_hash: Optional[str],
        remote_hash: Optional[str],
    ) -> SyncState:
        """Store the hashes observed by change detection."""
        return self.update_sync_state(
            type_key,
            local_hash=local_hash,
            remote_hash=remote_hash,
            sync_status=status,
        )

    def set_sync_progress(
        self, type_key: str, progress: Union[SyncProgress, dict]
    ) -> SyncState:
        """Validate and store progress, moving the type into ``syncing``.

        Raises:
            InvalidSyncProgressError: If the progress is malformed
        """
        validated = SyncProgress.parse(progress)
        return self.db_service.upsert_sync_state(
            type_key,
            {
                "sync_status": SyncStatus.SYNCING.value,
                "sync_progress": validated.to_json(),
            },
        )

    def get_sync_progress(self, type_key: str) -> Optional[SyncProgress]:
        """Read stored progress.

        Malformed progress is treated as absent: the type goes back to
        ``pending`` and None is returned.
        """
        state = self.get(type_key)
        if state is None or state.sync_progress is None:
            return None
        try:
            return SyncProgress.parse(state.sync_progress)
        except InvalidSyncProgressError as e:
            logger.warning("Discarding invalid progress for %s: %s", type_key, e)
            self.update_sync_state(type_key, sync_status=SyncStatus.PENDING)
            return None

    def resume_sync(self, type_key: str) -> Optional[SyncProgress]:
        """Return the progress an interrupted sync should resume from."""
        progress = self.get_sync_progress(type_key)
        if progress is not None:
            logger.info(
                "Resuming %s at step %d/%d",
                type_key,
                progress.current_step,
                progress.total_steps,
            )
        return progress

    def rollback_partial_sync(
        self, type_key: str, error: Optional[str] = None
    ) -> Optional[SyncState]:
        """Move an in-flight sync to ``failed`` and drop its progress."""
        state = self.get(type_key)
        if state is None:
            logger.warning("No sync state to roll back for %s", type_key)
            return None
        if state.sync_status != SyncStatus.SYNCING.value:
            logger.debug(
                "Rolling back %s from status %s", type_key, state.sync_status
            )
        if error:
            logger.warning("Rolled back sync for %s: %s", type_key, error)
        return self.update_sync_state(type_key, sync_status=SyncStatus.FAILED)

    def detect_interrupted_sync(self) -> List[str]:
        """Return every key stuck in ``syncing``."""
        states = self.db_service.list_sync_states(
            sync_status=[SyncStatus.SYNCING.value]
        )
        return [state.type_key for state in states]

    def mark_for_retry(self, type_key: str) -> Optional[SyncState]:
        """Move a failed type back to ``pending``."""
        state = self.get(type_key)
        if state is None or state.sync_status != SyncStatus.FAILED.value:
            return state
        return self.update_sync_state(type_key, sync_status=SyncStatus.PENDING)

    def get_pending_sync_types(self) -> List[str]:
        """Keys that have unsynced changes."""
        states = self.db_service.list_sync_states(
            sync_status=[s.value for s in PENDING_STATUSES]
        )
        return [state.type_key for state in states]

    # ------------------------------------------------------------------
    # Conflict bookkeeping
    # ------------------------------------------------------------------

    def mark_as_conflicted(
        self,
        type_key: str,
        local_hash: Optional[str],
        remote_hash: Optional[str],
    ) -> SyncState:
        """Record that both sides diverged from the merge base."""
        logger.info("Marking %s as conflicted", type_key)
        return self.update_sync_state(
            type_key,
            local_hash=local_hash,
            remote_hash=remote_hash,
            sync_status=SyncStatus.CONFLICT,
            conflict_status=ConflictStatus.DETECTED,
            last_conflict_at=_now(),
        )

    def resolve_conflict(self, type_key: str, resolved_hash: str) -> SyncState:
        """Record a resolution agreed by both sides."""
        logger.info("Resolved conflict for %s at %s", type_key, resolved_hash[:12])
        return self.update_sync_state(
            type_key,
            local_hash=resolved_hash,
            remote_hash=resolved_hash,
            last_synced_hash=resolved_hash,
            sync_status=SyncStatus.IN_SYNC,
            conflict_status=ConflictStatus.RESOLVED,
            last_sync_at=_now(),
        )

    def get_conflicted_types(self) -> List[str]:
        """Keys with an unresolved conflict."""
        states = self.db_service.list_sync_states(
            conflict_status=ConflictStatus.DETECTED.value
        )
        return [state.type_key for state in states]

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear_sync_state(self, type_key: str) -> bool:
        """Forget the sync state of one content type."""
        return self.db_service.delete_sync_state(type_key)

    def reset_all_sync_states(self) -> int:
        """Forget every sync state."""
        count = self.db_service.delete_all_sync_states()
        logger.warning("Reset %d sync states", count)
        return count
