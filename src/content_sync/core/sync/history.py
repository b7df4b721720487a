"""Sync history ledger and retry policy for remote calls."""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

import requests

from ...database.models import SyncAttemptStatus, SyncDirection, SyncHistory
from ...database.service import DatabaseService
from ..platform.client import RateLimitedError, TransientRemoteError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (
    RateLimitedError,
    TransientRemoteError,
    requests.ConnectionError,
    requests.Timeout,
)


@dataclass
class RetryConfig:
    """Exponential backoff settings."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0

    def delay_for(self, retry_number: int) -> float:
        """Delay before the given retry (0-based), capped at max_delay."""
        delay = self.initial_delay * (self.backoff_multiplier**retry_number)
        return min(delay, self.max_delay)


class SyncHistoryManager:
    """Records push/pull attempts and runs remote calls with retries."""

    def __init__(
        self,
        db_service: DatabaseService,
        retry_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize history manager.

        Args:
            db_service: Database service for persistence
            retry_config: Backoff settings
            sleep: Function used to wait between attempts
        """
        self.db_service = db_service
        self.retry_config = retry_config or RetryConfig()
        self.sleep = sleep

    def record_sync_attempt(
        self,
        type_key: str,
        pushed_data: Optional[Dict[str, Any]],
        target_platform: str,
        deployment_id: Optional[str] = None,
        version_hash: Optional[str] = None,
        direction: Union[SyncDirection, str] = SyncDirection.PUSH,
    ) -> SyncHistory:
        """Record an attempt before the remote call is made.

        ``pushed_data`` is the payload snapshot; retries reuse it verbatim.
        """
        entry = self.db_service.create_sync_history(
            {
                "type_key": type_key,
                "pushed_data": pushed_data,
                "target_platform": target_platform,
                "deployment_id": deployment_id,
                "version_hash": version_hash,
                "sync_direction": SyncDirection(direction).value,
                "sync_status": SyncAttemptStatus.IN_PROGRESS.value,
            }
        )
        logger.debug("Recorded sync attempt %s for %s", entry.id, type_key)
        return entry

    def update_sync_status(
        self,
        history_id: int,
        status: Union[SyncAttemptStatus, str],
        response_data: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> SyncHistory:
        """Record the outcome of an attempt."""
        status = SyncAttemptStatus(status)
        data: Dict[str, Any] = {"sync_status": status.value}
        if response_data is not None:
            data["response_data"] = response_data
        if error_message is not None:
            data["error_message"] = error_message
        if status != SyncAttemptStatus.IN_PROGRESS:
            data["completed_at"] = datetime.now(timezone.utc)
        return self.db_service.update_sync_history(history_id, data)

    def execute_with_retry(
        self, history_id: Optional[int], operation: Callable[[], T]
    ) -> T:
        """Run a remote call, retrying transient failures with backoff.

        Rate limits, 5xx responses, timeouts and connection errors are
        retried up to ``max_attempts`` in total. Anything else, including
        412 Precondition Failed, is raised immediately.

        Args:
            history_id: Sync history entry whose retry_count is updated, if any
            operation: Zero-argument callable performing the remote call

        Returns:
            Whatever the operation returns
        """
        max_attempts = max(1, self.retry_config.max_attempts)
        retries = 0
        while True:
            try:
                return operation()
            except RETRYABLE_ERRORS as e:
                if retries + 1 >= max_attempts:
                    logger.error(
                        "Giving up after %d attempts (history %s): %s",
                        max_attempts,
                        history_id,
                        e,
                    )
                    raise

                delay = self.retry_config.delay_for(retries)
                if isinstance(e, RateLimitedError) and e.retry_after is not None:
                    delay = min(e.retry_after, self.retry_config.max_delay)

                retries += 1
                self._record_retry(history_id, retries)
                logger.warning(
                    "Remote call failed (%s), retrying in %.1fs... (attempt %d/%d)",
                    e,
                    delay,
                    retries + 1,
                    max_attempts,
                )
                self.sleep(delay)

    def get_sync_history(
        self,
        type_key: Optional[str] = None,
        status: Optional[Union[SyncAttemptStatus, str]] = None,
        deployment_id: Optional[str] = None,
        limit: Optional[int] = None,
        target_platform: Optional[str] = None,
    ) -> List[SyncHistory]:
        """Attempts matching the filters, newest first."""
        return self.db_service.list_sync_history(
            type_key=type_key,
            status=SyncAttemptStatus(status).value if status else None,
            deployment_id=deployment_id,
            limit=limit,
            target_platform=target_platform,
        )

    def get_failed_syncs(self, deployment_id: str) -> List[SyncHistory]:
        """Latest attempt per key in a deployment, where that attempt failed."""
        latest: Dict[str, SyncHistory] = {}
        for entry in self.db_service.list_sync_history(deployment_id=deployment_id):
            latest.setdefault(entry.type_key, entry)
        return [
            entry
            for entry in latest.values()
            if entry.sync_status == SyncAttemptStatus.FAILED.value
        ]

    def get_last_successful_sync(self, type_key: str) -> Optional[SyncHistory]:
        """Most recent successful attempt for a content type."""
        entries = self.db_service.list_sync_history(
            type_key=type_key, status=SyncAttemptStatus.SUCCESS.value, limit=1
        )
        return entries[0] if entries else None

    def _record_retry(self, history_id: Optional[int], retries: int) -> None:
        if history_id is None:
            return
        try:
            self.db_service.update_sync_history(history_id, {"retry_count": retries})
        except Exception as e:
            logger.warning("Could not record retry count for %s: %s", history_id, e)

    def abandon_in_progress(self, type_key: str, reason: str) -> int:
        """Mark attempts left IN_PROGRESS by a crashed run as FAILED."""
        entries = self.db_service.list_sync_history(
            type_key=type_key, status=SyncAttemptStatus.IN_PROGRESS.value
        )
        for entry in entries:
            self.update_sync_status(
                entry.id, SyncAttemptStatus.FAILED, error_message=reason
            )
        return len(entries)
