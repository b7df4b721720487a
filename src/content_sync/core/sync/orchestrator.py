"""Deployment orchestrator for content-type sync.

This module provides the high-level SyncOrchestrator that coordinates:
- ChangeDetector: hashes both sides and finds what differs
- SyncStateStore: decides push, pull or conflict per content type
- ConflictDetector / ConflictManager: classifies and queues conflicts
- ResolutionStrategySelector: resolves what can be resolved automatically
- SyncHistoryManager: records every remote call and retries transient errors
- VersionStore: records what was synced in the version history
"""

import logging
import time
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ...config import Config, get_config
from ...database.models import (
    ChangeSource,
    ConflictReviewStatus,
    DeploymentStatus,
    SyncAttemptStatus,
    SyncDirection,
)
from ...database.progress_tracker import (
    ProgressCallback,
    ProgressPhase,
    ProgressTracker,
    ProgressUpdate,
)
from ...database.service import DatabaseService
from ...database.sync_state import SyncAction, SyncDelta, SyncStateStore
from ...models import ContentTypeDefinition, SyncProgress
from ..platform.client import PlatformClient, PreconditionFailedError, RemoteContentType
from ..platform.compatibility import (
    CompatibilityChecker,
    IncompatibleContentTypeError,
)
from ..versioning.hasher import ContentTypeHasher
from ..versioning.repository import ContentTypeRepository
from ..versioning.version_store import VersionStore
from .change_detector import ChangeDetector, ChangeSet, HashedDefinition
from .conflict_detector import ConflictDetector, DetectedConflict
from .conflict_manager import ConflictManager
from .history import RetryConfig, SyncHistoryManager
from .locks import KeyedLock
from .resolution_strategy import (
    ConflictResolution,
    ResolutionResult,
    ResolutionStrategySelector,
)

logger = logging.getLogger(__name__)

SYNC_STEPS = 3
AUTO_RESOLVER = "auto-resolver"


@dataclass
class SyncItem:
    """One content type scheduled in a deployment."""

    key: str
    action: SyncAction
    local: Optional[HashedDefinition] = None
    remote: Optional[HashedDefinition] = None
    base_hash: Optional[str] = None
    conflict: Optional[DetectedConflict] = None


@dataclass
class DeploymentResult:
    """Result of a deployment or a retry of one."""

    deployment_id: str
    status: DeploymentStatus = DeploymentStatus.PENDING
    succeeded: List[str] = dataclass_field(default_factory=list)
    failed: Dict[str, str] = dataclass_field(default_factory=dict)
    conflicts: List[str] = dataclass_field(default_factory=list)
    resolved: List[str] = dataclass_field(default_factory=list)
    skipped: List[str] = dataclass_field(default_factory=list)
    unchanged: List[str] = dataclass_field(default_factory=list)
    logs: List[str] = dataclass_field(default_factory=list)

    def add_failure(self, key: str, error: str) -> None:
        """Record a failed content type."""
        self.failed[key] = error

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of the deployment."""
        return {
            "deployment_id": self.deployment_id,
            "status": self.status.value,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "conflicts": len(self.conflicts),
            "resolved": len(self.resolved),
            "skipped": len(self.skipped),
            "unchanged": len(self.unchanged),
        }


def final_status(succeeded: int, failed: int) -> DeploymentStatus:
    """``completed`` without failures, ``failed`` without successes."""
    if failed == 0:
        return DeploymentStatus.COMPLETED
    if succeeded == 0:
        return DeploymentStatus.FAILED
    return DeploymentStatus.PARTIAL


def _response_data(response: Any) -> Optional[Dict[str, Any]]:
    if isinstance(response, RemoteContentType):
        return {"key": response.key, "etag": response.etag}
    return None


class SyncOrchestrator:
    """Runs deployments of local content types to the remote platform.

    Workflow per deployment:
    1. Detect changes between local and remote
    2. Classify conflicts and halt (or auto-resolve) when there are any
    3. Push, pull or delete each accepted content type under its lock
    4. Record history, versions and sync state for each item
    5. Publish progress and the final status on the deployment record
    """

    def __init__(
        self,
        db_service: DatabaseService,
        client: PlatformClient,
        config: Optional[Config] = None,
        retry_config: Optional[RetryConfig] = None,
        progress_callbacks: Optional[List[ProgressCallback]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize sync orchestrator.

        Args:
            db_service: Database service instance
            client: Remote platform client
            config: Application configuration
            retry_config: Backoff settings; built from config if None
            progress_callbacks: Extra consumers of progress updates
            sleep: Function used to wait between retries
        """
        self.config = config or get_config()
        self.db_service = db_service
        self.client = client
        self.progress_callbacks = list(progress_callbacks or [])

        retry_config = retry_config or RetryConfig(
            max_attempts=self.config.retry_max_attempts,
            initial_delay=self.config.retry_initial_delay,
            max_delay=self.config.retry_max_delay,
            backoff_multiplier=self.config.retry_backoff,
        )

        # Initialize components
        self.hasher = ContentTypeHasher()
        self.version_store = VersionStore(db_service, hasher=self.hasher)
        self.repository = ContentTypeRepository(db_service, self.version_store)
        self.state_store = SyncStateStore(db_service)
        self.conflict_manager = ConflictManager(
            db_service, priority_item_threshold=self.config.priority_item_threshold
        )
        self.change_detector = ChangeDetector(
            self.repository,
            client,
            state_store=self.state_store,
            hasher=self.hasher,
            hash_workers=self.config.hash_workers,
            on_converged=self.conflict_manager.close_converged,
        )
        self.conflict_detector = ConflictDetector(self.version_store, self.state_store)
        self.selector = ResolutionStrategySelector(self.hasher)
        self.compatibility = CompatibilityChecker()
        self.history = SyncHistoryManager(db_service, retry_config, sleep=sleep)
        self.locks = KeyedLock()

    @property
    def platform_name(self) -> str:
        """Target platform name recorded in sync history."""
        return self.config.platform_name

    # =========================================================================
    # Deployment
    # =========================================================================

    def deploy(
        self,
        keys: Optional[Iterable[str]] = None,
        deployment_id: Optional[str] = None,
        auto_resolve: Optional[bool] = None,
        skip_conflict_check: bool = False,
        allow_deletes: Optional[bool] = None,
    ) -> DeploymentResult:
        """Run a deployment.

        Args:
            keys: Content type keys to deploy (all if None)
            deployment_id: Id for the deployment record (generated if None)
            auto_resolve: Resolve conflicts that need no human judgment
            skip_conflict_check: Push local definitions without conflict checks
            allow_deletes: Propagate deletions to the other side

        Returns:
            DeploymentResult with the final status and logs
        """
        if auto_resolve is None:
            auto_resolve = self.config.auto_resolve
        allow_deletes = (
            self.config.allow_deletes if allow_deletes is None else allow_deletes
        )
        key_list = list(keys) if keys is not None else None

        deployment = self.db_service.create_deployment(
            {
                **({"id": deployment_id} if deployment_id else {}),
                "status": DeploymentStatus.PROCESSING.value,
                "type_keys": key_list,
            }
        )
        result = DeploymentResult(deployment.id, status=DeploymentStatus.PROCESSING)
        tracker = self._create_tracker(deployment.id)
        self._log(result, "Deployment %s started", deployment.id)

        # Detection and conflict checks abort the whole deployment on error
        try:
            items = self._plan(key_list, skip_conflict_check, tracker)
            self.compatibility.check_all(
                [
                    item.local.definition
                    for item in items
                    if item.action == SyncAction.PUSH and item.local is not None
                ]
            )
        except IncompatibleContentTypeError as e:
            for problem in e.problems:
                self._log(result, "Incompatible: %s", problem, level=logging.ERROR)
            tracker.error(str(e))
            self._log(result, "Deployment aborted: %s", e, level=logging.ERROR)
            return self._finish(result, DeploymentStatus.FAILED, tracker)
        except Exception as e:
            logger.exception("Change detection failed")
            tracker.error(f"Change detection failed: {e}")
            self._log(result, "Deployment aborted: %s", e, level=logging.ERROR)
            return self._finish(result, DeploymentStatus.FAILED, tracker)

        conflicted = [item.conflict for item in items if item.conflict is not None]
        if conflicted:
            remaining = self._handle_conflicts(
                conflicted, auto_resolve, tracker, result
            )
            if remaining:
                self._log(
                    result,
                    "Deployment halted: %d unresolved conflicts (%s)",
                    len(remaining),
                    ", ".join(remaining),
                    level=logging.WARNING,
                )
                return self._finish(result, DeploymentStatus.CONFLICT, tracker)

        batch = [item for item in items if item.conflict is None]
        tracker.start(ProgressPhase.SYNCING, len(batch), "Syncing content types")
        for index, item in enumerate(batch, start=1):
            with self.locks.hold(item.key):
                if self._superseded(item):
                    self._log(
                        result,
                        "Skipping %s, synced elsewhere since it was planned",
                        item.key,
                        level=logging.WARNING,
                    )
                    result.skipped.append(item.key)
                else:
                    self._sync_item(
                        deployment.id, item, allow_deletes, tracker, result
                    )
            tracker.update(index, message=item.key)
        tracker.complete("Sync finished")

        status = final_status(len(result.succeeded), len(result.failed))
        return self._finish(result, status, tracker)

    def _plan(
        self,
        keys: Optional[List[str]],
        skip_conflict_check: bool,
        tracker: ProgressTracker,
    ) -> List[SyncItem]:
        tracker.start(ProgressPhase.DETECTING_CHANGES, 1, "Detecting changes")
        report = self.change_detector.detect_changes(keys, persist=False)
        change_set = report.changes
        tracker.complete(str(report).splitlines()[0])

        items = self._schedule(change_set, skip_conflict_check)
        if skip_conflict_check:
            return items

        tracker.start(
            ProgressPhase.CHECKING_CONFLICTS, len(items), "Checking for conflicts"
        )
        for index, item in enumerate(items, start=1):
            if item.action == SyncAction.CONFLICT:
                delta = SyncDelta(
                    SyncAction.CONFLICT,
                    item.local.hash if item.local else None,
                    item.remote.hash if item.remote else None,
                )
                item.conflict = self.conflict_detector.detect(
                    item.key, item.local, item.remote, delta
                )
            tracker.update(index, message=item.key)
        tracker.complete("Conflict check finished")
        return items

    def _schedule(
        self, change_set: ChangeSet, skip_conflict_check: bool
    ) -> List[SyncItem]:
        """Turn a change set into one item per key.

        Each key's delta is computed and its detection persisted under the
        key's lock. The delta has to be read first, since persisting
        overwrites the observed hashes it is derived from.
        """
        items = []
        for change in change_set.all_changes():
            local = change_set.local.get(change.key)
            remote = change_set.remote.get(change.key)
            with self.locks.hold(change.key):
                state = self.state_store.get(change.key)
                delta = self.state_store.calculate_delta(
                    change.key,
                    local.hash if local else None,
                    remote.hash if remote else None,
                )
                self.change_detector.persist_sync_states(change_set, [change.key])
            action = self._action_for(delta, local, remote)
            if skip_conflict_check and action == SyncAction.CONFLICT:
                action = SyncAction.PUSH if local is not None else SyncAction.PULL
            base_hash = state.last_synced_hash if state is not None else None
            items.append(SyncItem(change.key, action, local, remote, base_hash))
            logger.debug("%s: %s", change.key, delta)
        return items

    @staticmethod
    def _action_for(
        delta: SyncDelta,
        local: Optional[HashedDefinition],
        remote: Optional[HashedDefinition],
    ) -> SyncAction:
        if delta.local_hash == delta.remote_hash:
            return SyncAction.NO_CHANGE
        if delta.action == SyncAction.INITIAL_SYNC:
            if remote is None:
                return SyncAction.PUSH
            if local is None:
                return SyncAction.PULL
            return SyncAction.CONFLICT
        return delta.action

    # =========================================================================
    # Conflicts
    # =========================================================================

    def _handle_conflicts(
        self,
        conflicts: List[DetectedConflict],
        auto_resolve: bool,
        tracker: ProgressTracker,
        result: DeploymentResult,
    ) -> List[str]:
        """Queue conflicts and auto-resolve what can be; return unresolved keys."""
        tracker.start(
            ProgressPhase.RESOLVING_CONFLICTS,
            len(conflicts),
            f"{len(conflicts)} conflicts detected",
        )
        remaining: List[str] = []
        for index, conflict in enumerate(conflicts, start=1):
            key = conflict.type_key
            with self.locks.hold(key):
                self._flag(conflict)
                strategy = self.selector.select_best_strategy(conflict)
                if not auto_resolve or strategy == ConflictResolution.MANUAL_MERGE:
                    remaining.append(key)
                    result.conflicts.append(key)
                    self._log(result, "Conflict on %s", conflict, level=logging.WARNING)
                else:
                    resolution = self._apply_resolution(
                        conflict, strategy, AUTO_RESOLVER, result.deployment_id
                    )
                    if resolution.success:
                        result.resolved.append(key)
                        result.succeeded.append(key)
                        self._log(
                            result, "Auto-resolved %s with %s", key, strategy.value
                        )
                    else:
                        error = resolution.error or "resolution failed"
                        result.add_failure(key, error)
                        tracker.error(f"{key}: {error}")
                        self._log(
                            result,
                            "Could not resolve %s: %s",
                            key,
                            error,
                            level=logging.ERROR,
                        )
            tracker.update(index, message=key)
        tracker.complete(f"{len(remaining)} conflicts need review")
        return remaining

    def _flag(self, conflict: DetectedConflict) -> None:
        with self.db_service.transaction():
            self.conflict_manager.flag_for_review(conflict)
            self.state_store.mark_as_conflicted(
                conflict.type_key, conflict.local_hash, conflict.remote_hash
            )

    def resolve_conflict(
        self,
        conflict_id: str,
        strategy: Optional[Union[ConflictResolution, str]] = None,
        resolved_by: Optional[str] = None,
    ) -> ResolutionResult:
        """Resolve a queued conflict against the current state of both sides.

        Args:
            conflict_id: Id of a pending conflict
            strategy: Strategy to apply; the best one is selected if None
            resolved_by: Who resolved the conflict

        Returns:
            ResolutionResult; the conflict stays open unless it succeeded

        Raises:
            ValueError: If the conflict does not exist or is already resolved
        """
        row = self.conflict_manager.get_conflict(conflict_id)
        if row is None:
            raise ValueError(f"Conflict not found: {conflict_id}")
        if row.status == ConflictReviewStatus.RESOLVED.value:
            raise ValueError(f"Conflict already resolved: {conflict_id}")

        key = row.type_key
        with self.locks.hold(key):
            local = self._hashed(self.repository.get(key))
            fetched = self.client.get_content_type(key)
            remote = (
                self._hashed(fetched.definition, fetched.etag) if fetched else None
            )

            if local is not None and remote is not None and local.hash == remote.hash:
                # Both sides converged since the conflict was queued
                with self.db_service.transaction():
                    self.conflict_manager.resolve_conflict(
                        conflict_id,
                        ConflictResolution.TAKE_LOCAL,
                        resolved_by,
                        local.hash,
                    )
                    self.state_store.resolve_conflict(key, local.hash)
                return ResolutionResult(
                    success=True,
                    strategy=ConflictResolution.TAKE_LOCAL,
                    resolution=local.definition,
                    resolved_hash=local.hash,
                )

            delta = SyncDelta(
                SyncAction.CONFLICT,
                local.hash if local else None,
                remote.hash if remote else None,
            )
            detected = self.conflict_detector.detect(key, local, remote, delta)
            if detected is None:
                raise ValueError(f"No conflict to resolve for {key}")
            detected.conflict_id = conflict_id
            chosen = ConflictResolution(strategy) if strategy else None
            return self._apply_resolution(detected, chosen, resolved_by)

    def _apply_resolution(
        self,
        conflict: DetectedConflict,
        strategy: Optional[ConflictResolution],
        resolved_by: Optional[str],
        deployment_id: Optional[str] = None,
    ) -> ResolutionResult:
        """Resolve, push the result if remote differs, then record it locally.

        The local bookkeeping is written in one transaction and only after the
        remote accepted the resolution; a failed push leaves the conflict open.
        """
        outcome = self.selector.resolve_conflict(conflict, strategy)
        if not outcome.success:
            return outcome

        resolved = outcome.resolution
        resolved_hash = outcome.resolved_hash
        if resolved is None or resolved_hash is None:
            raise ValueError(f"Resolution of {conflict.type_key} has no definition")
        key = conflict.type_key

        if resolved_hash != conflict.remote_hash:
            try:
                self._push_payload(
                    key,
                    resolved.to_payload(),
                    resolved_hash,
                    conflict.remote_etag,
                    remote_exists=conflict.remote is not None,
                    deployment_id=deployment_id,
                )
            except Exception as e:
                logger.error("Failed to push resolution for %s: %s", key, e)
                return ResolutionResult(
                    success=False,
                    strategy=outcome.strategy,
                    resolution=resolved,
                    resolved_hash=resolved_hash,
                    error=f"Push failed: {e}",
                )

        with self.db_service.transaction():
            conflict_id = conflict.conflict_id
            if conflict_id is None:
                conflict_id = self.conflict_manager.flag_for_review(conflict).id
            self.conflict_manager.resolve_conflict(
                conflict_id, outcome.strategy, resolved_by, resolved_hash
            )
            if resolved_hash != conflict.local_hash:
                self.db_service.upsert_content_type(resolved.to_payload())
            self.version_store.record_merge(
                resolved,
                [
                    conflict.local_hash or "",
                    self._remote_parent(conflict, resolved_hash),
                ],
                author=resolved_by,
                message=f"Resolved {conflict.conflict_type.value} with "
                f"{outcome.strategy.value}",
            )
            self.state_store.resolve_conflict(key, resolved_hash)
        return outcome

    def _remote_parent(self, conflict: DetectedConflict, resolved_hash: str) -> str:
        """Second parent of a merge: the remote version if we know it."""
        remote_hash = conflict.remote_hash
        if (
            remote_hash
            and remote_hash != resolved_hash
            and self.version_store.get_version(remote_hash) is not None
        ):
            return remote_hash
        return conflict.ancestor_hash or ""

    # =========================================================================
    # Item sync
    # =========================================================================

    def _sync_item(
        self,
        deployment_id: str,
        item: SyncItem,
        allow_deletes: bool,
        tracker: ProgressTracker,
        result: DeploymentResult,
    ) -> None:
        key = item.key
        if item.action == SyncAction.NO_CHANGE:
            if item.local is not None:
                self.state_store.mark_as_synced(key, item.local.hash, item.local.hash)
            result.unchanged.append(key)
            return

        deleting = (item.action == SyncAction.PUSH and item.local is None) or (
            item.action == SyncAction.PULL and item.remote is None
        )
        if deleting and not allow_deletes:
            self._log(result, "Skipping deletion of %s (deletes disabled)", key)
            result.skipped.append(key)
            return

        try:
            if item.action == SyncAction.PUSH:
                self._push_item(deployment_id, item)
                verb = "Deleted remote" if item.local is None else "Pushed"
            elif item.action == SyncAction.PULL:
                self._pull_item(deployment_id, item)
                verb = "Deleted local" if item.remote is None else "Pulled"
            else:
                raise ValueError(f"Unexpected action {item.action.value} for {key}")
        except PreconditionFailedError as e:
            if not self._reroute_to_conflict(item, str(e)):
                result.succeeded.append(key)
                self._log(result, "%s already matches remote", key)
                return
            result.conflicts.append(key)
            result.add_failure(key, "Remote changed during push")
            tracker.error(f"{key}: remote changed during push")
            self._log(
                result, "Remote changed during push of %s", key, level=logging.WARNING
            )
        except Exception as e:
            self.state_store.rollback_partial_sync(key, str(e))
            result.add_failure(key, str(e))
            tracker.error(f"{key}: {e}")
            self._log(result, "Failed to sync %s: %s", key, e, level=logging.ERROR)
        else:
            result.succeeded.append(key)
            self._log(result, "%s %s", verb, key)

    def _superseded(self, item: SyncItem) -> bool:
        """Whether the merge base moved since the item was planned."""
        if item.action == SyncAction.NO_CHANGE:
            return False
        state = self.state_store.get(item.key)
        current = state.last_synced_hash if state is not None else None
        return current != item.base_hash

    def _progress(self, key: str, step: int) -> None:
        self.state_store.set_sync_progress(
            key,
            SyncProgress(
                current_step=step,
                total_steps=SYNC_STEPS,
                last_processed_id=key,
                processed_count=step,
            ),
        )

    def _push_item(self, deployment_id: str, item: SyncItem) -> None:
        key = item.key
        self._progress(key, 0)

        if item.local is None:
            etag = item.remote.etag if item.remote else None
            self._send(
                key,
                None,
                None,
                SyncDirection.DELETE,
                lambda: self.client.delete_content_type(key, etag),
                deployment_id,
            )
            self.state_store.clear_sync_state(key)
            return

        # Retries reuse this snapshot even if the local definition changes
        payload = item.local.definition.to_payload()
        self._progress(key, 1)
        self._push_payload(
            key,
            payload,
            item.local.hash,
            item.remote.etag if item.remote else None,
            remote_exists=item.remote is not None,
            deployment_id=deployment_id,
        )
        self._progress(key, 2)
        self.version_store.record_change(
            item.local.definition,
            source=ChangeSource.SYNC,
            message=f"Deployed in {deployment_id}",
        )
        self.state_store.mark_as_synced(key, item.local.hash, item.local.hash)

    def _pull_item(self, deployment_id: str, item: SyncItem) -> None:
        key = item.key
        self._progress(key, 0)

        if item.remote is None:
            self._send(
                key,
                None,
                None,
                SyncDirection.DELETE,
                lambda: self.repository.delete(key),
                deployment_id,
            )
            self.state_store.clear_sync_state(key)
            return

        payload = item.remote.definition.to_payload()
        self._progress(key, 1)
        self._send(
            key,
            payload,
            item.remote.hash,
            SyncDirection.PULL,
            lambda: self.repository.save(
                payload,
                source=ChangeSource.SYNC,
                message=f"Pulled in {deployment_id}",
            ),
            deployment_id,
        )
        self._progress(key, 2)
        self.state_store.mark_as_synced(key, item.remote.hash, item.remote.hash)

    def _push_payload(
        self,
        key: str,
        payload: Dict[str, Any],
        version_hash: Optional[str],
        etag: Optional[str],
        remote_exists: bool,
        deployment_id: Optional[str] = None,
    ) -> Any:
        if remote_exists:
            return self._send(
                key,
                payload,
                version_hash,
                SyncDirection.PUSH,
                lambda: self.client.update_content_type(key, payload, etag=etag),
                deployment_id,
            )
        return self._send(
            key,
            payload,
            version_hash,
            SyncDirection.PUSH,
            lambda: self.client.create_content_type(payload),
            deployment_id,
        )

    def _send(
        self,
        key: str,
        payload: Optional[Dict[str, Any]],
        version_hash: Optional[str],
        direction: SyncDirection,
        operation: Callable[[], Any],
        deployment_id: Optional[str] = None,
    ) -> Any:
        """Run one remote call wrapped in a sync history attempt."""
        history_id = self._record_attempt(
            key, payload, version_hash, direction, deployment_id
        )
        try:
            response = self.history.execute_with_retry(history_id, operation)
        except Exception as e:
            self._record_outcome(history_id, SyncAttemptStatus.FAILED, error=str(e))
            raise
        self._record_outcome(
            history_id, SyncAttemptStatus.SUCCESS, response=_response_data(response)
        )
        return response

    def _record_attempt(
        self,
        key: str,
        payload: Optional[Dict[str, Any]],
        version_hash: Optional[str],
        direction: SyncDirection,
        deployment_id: Optional[str],
    ) -> Optional[int]:
        try:
            entry = self.history.record_sync_attempt(
                key,
                payload,
                self.platform_name,
                deployment_id=deployment_id,
                version_hash=version_hash,
                direction=direction,
            )
            return entry.id
        except Exception:
            logger.exception("Could not record sync attempt for %s", key)
            return None

    def _record_outcome(
        self,
        history_id: Optional[int],
        status: SyncAttemptStatus,
        response: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        if history_id is None:
            return
        try:
            self.history.update_sync_status(history_id, status, response, error)
        except Exception:
            logger.exception("Could not update sync attempt %s", history_id)

    def _reroute_to_conflict(self, item: SyncItem, error: str) -> bool:
        """Treat a 412 as a sign the remote moved: re-detect against it.

        Returns:
            False if the remote turned out to match local, True if conflicted
        """
        key = item.key
        local = item.local
        logger.warning("Precondition failed for %s: %s", key, error)
        try:
            fetched = self.client.get_content_type(key)
        except Exception as e:
            logger.error("Could not re-read %s after precondition failure: %s", key, e)
            self.state_store.mark_as_conflicted(
                key,
                local.hash if local else None,
                item.remote.hash if item.remote else None,
            )
            return True

        remote = self._hashed(fetched.definition, fetched.etag) if fetched else None
        if local is not None and remote is not None and local.hash == remote.hash:
            self.state_store.mark_as_synced(key, local.hash, remote.hash)
            return False

        delta = SyncDelta(
            SyncAction.CONFLICT,
            local.hash if local else None,
            remote.hash if remote else None,
        )
        conflict = self.conflict_detector.detect(key, local, remote, delta)
        if conflict is None:
            self.state_store.mark_as_conflicted(
                key, delta.local_hash, delta.remote_hash
            )
        else:
            self._flag(conflict)
        return True

    def _hashed(
        self, definition: Optional[ContentTypeDefinition], etag: Optional[str] = None
    ) -> Optional[HashedDefinition]:
        if definition is None:
            return None
        return HashedDefinition(self.hasher.hash(definition), definition, etag)

    # =========================================================================
    # Retry & recovery
    # =========================================================================

    def retry_failed_syncs(self, deployment_id: str) -> DeploymentResult:
        """Re-attempt the failed items of a deployment.

        Only keys whose latest attempt failed are retried, each with the
        payload captured before its first attempt. A remote that moved since
        then is routed into conflict detection instead of being overwritten.

        Raises:
            ValueError: If the deployment does not exist
        """
        deployment = self.db_service.get_deployment(deployment_id)
        if deployment is None:
            raise ValueError(f"Deployment not found: {deployment_id}")

        result = DeploymentResult(deployment_id, status=DeploymentStatus.PROCESSING)
        failed = self.history.get_failed_syncs(deployment_id)
        tracker = self._create_tracker(deployment_id)
        tracker.start(ProgressPhase.SYNCING, len(failed), "Retrying failed syncs")
        self._log(result, "Retrying %d failed syncs", len(failed))

        for index, entry in enumerate(failed, start=1):
            key = entry.type_key
            with self.locks.hold(key):
                self.state_store.mark_for_retry(key)
                try:
                    self._retry_entry(
                        deployment_id,
                        key,
                        entry.pushed_data,
                        entry.version_hash,
                        SyncDirection(entry.sync_direction),
                    )
                except PreconditionFailedError as e:
                    local = self._hashed(self.repository.get(key))
                    retry_item = SyncItem(key, SyncAction.PUSH, local=local)
                    if self._reroute_to_conflict(retry_item, str(e)):
                        result.conflicts.append(key)
                        result.add_failure(key, "Remote changed since last attempt")
                        tracker.error(f"{key}: remote changed")
                    else:
                        result.succeeded.append(key)
                except Exception as e:
                    self.state_store.rollback_partial_sync(key, str(e))
                    result.add_failure(key, str(e))
                    tracker.error(f"{key}: {e}")
                    self._log(
                        result,
                        "Retry of %s failed: %s",
                        key,
                        e,
                        level=logging.ERROR,
                    )
                else:
                    result.succeeded.append(key)
                    self._log(result, "Retried %s", key)
            tracker.update(index, message=key)
        tracker.complete("Retry finished")

        # Status over the whole deployment, counting earlier successes
        still_failed = len(self.history.get_failed_syncs(deployment_id))
        attempted = {
            e.type_key
            for e in self.history.get_sync_history(deployment_id=deployment_id)
        }
        status = final_status(len(attempted) - still_failed, still_failed)
        if not failed:
            status = DeploymentStatus(deployment.status)
        return self._finish(result, status, tracker)

    def _retry_entry(
        self,
        deployment_id: str,
        key: str,
        payload: Optional[Dict[str, Any]],
        version_hash: Optional[str],
        direction: SyncDirection,
    ) -> None:
        self._progress(key, 0)

        if direction == SyncDirection.PULL:
            if payload is None:
                raise ValueError(f"No captured snapshot for {key}")
            self._send(
                key,
                payload,
                version_hash,
                direction,
                lambda: self.repository.save(
                    payload, source=ChangeSource.SYNC, message="Retried pull"
                ),
                deployment_id,
            )
            synced = version_hash or self.hasher.hash(payload)
            self.state_store.mark_as_synced(key, synced, synced)
            return

        fetched = self.client.get_content_type(key)
        current = self._hashed(fetched.definition, fetched.etag) if fetched else None
        state = self.state_store.get(key)
        observed = state.remote_hash if state is not None else None
        if (current.hash if current else None) != observed:
            raise PreconditionFailedError(f"Remote {key} changed since last read", 412)

        if direction == SyncDirection.DELETE:
            if current is not None:
                self._send(
                    key,
                    None,
                    None,
                    direction,
                    lambda: self.client.delete_content_type(key, current.etag),
                    deployment_id,
                )
            self.state_store.clear_sync_state(key)
            return

        if payload is None:
            raise ValueError(f"No captured snapshot for {key}")
        self._progress(key, 1)
        self._push_payload(
            key,
            payload,
            version_hash,
            current.etag if current else None,
            remote_exists=current is not None,
            deployment_id=deployment_id,
        )
        self._progress(key, 2)
        synced = version_hash or self.hasher.hash(payload)
        self.version_store.record_change(
            payload, source=ChangeSource.SYNC, message=f"Retried in {deployment_id}"
        )
        self.state_store.mark_as_synced(key, synced, synced)

    def recover_interrupted_syncs(self) -> List[str]:
        """Reconcile syncs left ``syncing`` by a crashed process.

        Each one is rolled back to ``failed`` and then queued for retry.
        Attempts it left ``IN_PROGRESS`` are marked failed.

        Returns:
            Keys that were recovered
        """
        keys = self.state_store.detect_interrupted_sync()
        for key in keys:
            with self.locks.hold(key):
                progress = self.state_store.resume_sync(key)
                if progress is not None:
                    logger.info(
                        "Recovering %s interrupted at step %d/%d",
                        key,
                        progress.current_step,
                        progress.total_steps,
                    )
                self.history.abandon_in_progress(key, "Interrupted")
                self.state_store.rollback_partial_sync(key, "Interrupted")
                self.state_store.mark_for_retry(key)
        if keys:
            logger.info("Recovered %d interrupted syncs", len(keys))
        return keys

    # =========================================================================
    # Progress & logs
    # =========================================================================

    def _create_tracker(self, deployment_id: str) -> ProgressTracker:
        def write_progress(update: ProgressUpdate) -> None:
            self.db_service.update_deployment(
                deployment_id, {"progress": update.to_status()}
            )

        return ProgressTracker(callbacks=[write_progress, *self.progress_callbacks])

    def _log(
        self,
        result: DeploymentResult,
        message: str,
        *args: Any,
        level: int = logging.INFO,
    ) -> None:
        line = message % args if args else message
        logger.log(level, line)
        result.logs.append(line)
        try:
            self.db_service.append_deployment_log(result.deployment_id, line)
        except Exception as e:
            logger.warning("Could not append deployment log: %s", e)

    def _finish(
        self,
        result: DeploymentResult,
        status: DeploymentStatus,
        tracker: ProgressTracker,
    ) -> DeploymentResult:
        result.status = status
        self._log(
            result,
            "Deployment %s finished: %s (%d succeeded, %d failed)",
            result.deployment_id,
            status.value,
            len(result.succeeded),
            len(result.failed),
        )
        phase = (
            ProgressPhase.COMPLETE
            if status in (DeploymentStatus.COMPLETED, DeploymentStatus.PARTIAL)
            else ProgressPhase.ERROR
        )
        tracker.start(phase, 1, f"Deployment {status.value}")
        tracker.complete(f"Deployment {status.value}")
        timings = tracker.get_summary()
        logger.debug(
            "Deployment %s took %.2fs: %s",
            result.deployment_id,
            timings["total_time"],
            timings["phase_history"],
        )
        self.db_service.update_deployment(
            result.deployment_id,
            {
                "status": status.value,
                "completed_at": datetime.now(timezone.utc),
            },
        )
        return result
