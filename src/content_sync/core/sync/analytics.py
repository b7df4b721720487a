"""Sync analytics derived from the sync history ledger.

Success rates, durations, recurring failure patterns and a per-platform
health report, all computed from the recorded push/pull attempts.
"""

import logging
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from ...database.models import SyncAttemptStatus, SyncHistory
from .history import SyncHistoryManager

logger = logging.getLogger(__name__)

FAILURE_SAMPLE_SIZE = 100
RECENT_WINDOW = timedelta(hours=24)

# First matching marker names the error type
ERROR_TYPES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("timeout", "timed out"), "Timeout Error"),
    (("401", "unauthorized"), "Authentication Error"),
    (("403", "forbidden"), "Authorization Error"),
    (("404", "not found"), "Not Found Error"),
    (("412", "precondition", "remote changed"), "Precondition Failed"),
    (("409", "conflict"), "Conflict Error"),
    (("429", "rate limit"), "Rate Limit Error"),
    (("503", "service unavailable"), "Service Unavailable"),
    (("500", "502", "504", "internal server"), "Server Error"),
    (("network", "connection"), "Network Error"),
    (("validation", "invalid"), "Validation Error"),
    (("interrupted",), "Interrupted"),
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands datetimes back without tzinfo
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _duration(entry: SyncHistory) -> Optional[float]:
    started = _as_utc(entry.started_at)
    completed = _as_utc(entry.completed_at)
    if started is None or completed is None:
        return None
    return max((completed - started).total_seconds(), 0.0)


@dataclass
class FailurePattern:
    """Failures sharing an error type."""

    error_type: str
    count: int = 0
    platforms: List[str] = dataclass_field(default_factory=list)
    type_keys: List[str] = dataclass_field(default_factory=list)
    last_occurrence: Optional[datetime] = None


@dataclass
class SyncMetrics:
    """Attempt statistics for one direction and platform."""

    direction: str
    platform: str
    total_attempts: int = 0
    success_count: int = 0
    failure_count: int = 0
    average_duration: float = 0.0
    max_duration: float = 0.0
    min_duration: float = 0.0
    average_retries: float = 0.0


@dataclass
class HealthReport:
    """Health of syncs against one platform."""

    platform: str
    success_rate: float
    average_duration: float
    total_syncs: int
    successful_syncs: int
    failed_syncs: int
    in_progress_syncs: int
    recent_failures: int
    common_errors: List[str] = dataclass_field(default_factory=list)
    recommendations: List[str] = dataclass_field(default_factory=list)
    last_successful_sync: Optional[datetime] = None
    last_failed_sync: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Plain dictionary for display."""
        return {
            "platform": self.platform,
            "success_rate": round(self.success_rate, 1),
            "average_duration": round(self.average_duration, 3),
            "total_syncs": self.total_syncs,
            "successful_syncs": self.successful_syncs,
            "failed_syncs": self.failed_syncs,
            "in_progress_syncs": self.in_progress_syncs,
            "recent_failures": self.recent_failures,
            "common_errors": list(self.common_errors),
            "recommendations": list(self.recommendations),
            "last_successful_sync": self.last_successful_sync,
            "last_failed_sync": self.last_failed_sync,
        }


class SyncAnalytics:
    """Read-only statistics over the sync history."""

    def __init__(
        self, history: SyncHistoryManager, failure_sample: int = FAILURE_SAMPLE_SIZE
    ):
        """Initialize analytics.

        Args:
            history: Sync history manager to read attempts from
            failure_sample: Most recent failures considered for patterns
        """
        self.history = history
        self.failure_sample = failure_sample

    def _attempts(
        self,
        platform: Optional[str] = None,
        status: Optional[SyncAttemptStatus] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[SyncHistory]:
        entries = self.history.get_sync_history(status=status, target_platform=platform)
        since, until = _as_utc(since), _as_utc(until)
        if since is not None:
            entries = [e for e in entries if _as_utc(e.started_at) >= since]
        if until is not None:
            entries = [e for e in entries if _as_utc(e.started_at) <= until]
        return entries

    def calculate_success_rate(
        self,
        platform: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> float:
        """Percentage of finished attempts that succeeded.

        Attempts still in progress are left out. Returns 0.0 when nothing
        has finished.
        """
        finished = [
            e
            for e in self._attempts(platform, since=since, until=until)
            if e.sync_status != SyncAttemptStatus.IN_PROGRESS.value
        ]
        if not finished:
            return 0.0
        succeeded = sum(
            1 for e in finished if e.sync_status == SyncAttemptStatus.SUCCESS.value
        )
        return succeeded / len(finished) * 100

    def get_average_sync_time(self, platform: Optional[str] = None) -> float:
        """Mean duration in seconds of successful attempts."""
        durations = [
            d
            for d in (
                _duration(e)
                for e in self._attempts(platform, status=SyncAttemptStatus.SUCCESS)
            )
            if d is not None
        ]
        if not durations:
            return 0.0
        return sum(durations) / len(durations)

    @staticmethod
    def classify_error(message: str) -> str:
        """Map an error message to a coarse error type."""
        lowered = message.lower()
        for markers, error_type in ERROR_TYPES:
            if any(marker in lowered for marker in markers):
                return error_type
        return message[:50]

    def detect_failure_patterns(
        self, platform: Optional[str] = None
    ) -> List[FailurePattern]:
        """Group recent failures by error type, most frequent first."""
        failures = self._attempts(platform, status=SyncAttemptStatus.FAILED)
        patterns: Dict[str, FailurePattern] = {}
        for entry in failures[: self.failure_sample]:
            if not entry.error_message:
                continue
            error_type = self.classify_error(entry.error_message)
            pattern = patterns.setdefault(error_type, FailurePattern(error_type))
            pattern.count += 1
            if entry.target_platform not in pattern.platforms:
                pattern.platforms.append(entry.target_platform)
            if entry.type_key not in pattern.type_keys:
                pattern.type_keys.append(entry.type_key)
            started = _as_utc(entry.started_at)
            if pattern.last_occurrence is None or (
                started is not None and started > pattern.last_occurrence
            ):
                pattern.last_occurrence = started
        return sorted(patterns.values(), key=lambda p: p.count, reverse=True)

    def get_sync_metrics(
        self, direction: Optional[str] = None, platform: Optional[str] = None
    ) -> List[SyncMetrics]:
        """Attempt counts, durations and retries per direction and platform."""
        grouped: Dict[Tuple[str, str], List[SyncHistory]] = {}
        for entry in self._attempts(platform):
            if direction is not None and entry.sync_direction != direction:
                continue
            group = (entry.sync_direction, entry.target_platform)
            grouped.setdefault(group, []).append(entry)

        metrics = []
        for (entry_direction, entry_platform), entries in sorted(grouped.items()):
            durations = [d for d in map(_duration, entries) if d is not None]
            metrics.append(
                SyncMetrics(
                    direction=entry_direction,
                    platform=entry_platform,
                    total_attempts=len(entries),
                    success_count=sum(
                        1
                        for e in entries
                        if e.sync_status == SyncAttemptStatus.SUCCESS.value
                    ),
                    failure_count=sum(
                        1
                        for e in entries
                        if e.sync_status == SyncAttemptStatus.FAILED.value
                    ),
                    average_duration=(
                        sum(durations) / len(durations) if durations else 0.0
                    ),
                    max_duration=max(durations, default=0.0),
                    min_duration=min(durations, default=0.0),
                    average_retries=sum(e.retry_count or 0 for e in entries)
                    / len(entries),
                )
            )
        return metrics

    def generate_health_report(
        self, platform: str, now: Optional[datetime] = None
    ) -> HealthReport:
        """Summarize how syncs against a platform are doing.

        Args:
            platform: Target platform name as recorded in the history
            now: Reference time for the recent-failure window

        Returns:
            HealthReport with recommendations
        """
        now = _as_utc(now) or datetime.now(timezone.utc)
        entries = self._attempts(platform)
        by_status: Dict[str, List[SyncHistory]] = {}
        for entry in entries:
            by_status.setdefault(entry.sync_status, []).append(entry)

        successes = by_status.get(SyncAttemptStatus.SUCCESS.value, [])
        failures = by_status.get(SyncAttemptStatus.FAILED.value, [])
        recent_failures = sum(
            1 for e in failures if _as_utc(e.started_at) >= now - RECENT_WINDOW
        )
        patterns = self.detect_failure_patterns(platform)

        report = HealthReport(
            platform=platform,
            success_rate=self.calculate_success_rate(platform),
            average_duration=self.get_average_sync_time(platform),
            total_syncs=len(entries),
            successful_syncs=len(successes),
            failed_syncs=len(failures),
            in_progress_syncs=len(
                by_status.get(SyncAttemptStatus.IN_PROGRESS.value, [])
            ),
            recent_failures=recent_failures,
            common_errors=[p.error_type for p in patterns[:5]],
            last_successful_sync=max(
                (_as_utc(e.completed_at or e.started_at) for e in successes),
                default=None,
            ),
            last_failed_sync=max(
                (_as_utc(e.started_at) for e in failures), default=None
            ),
        )
        report.recommendations = self._recommendations(report, patterns)
        logger.debug(
            "Health of %s: %.1f%% success over %d attempts",
            platform,
            report.success_rate,
            report.total_syncs,
        )
        return report

    @staticmethod
    def _recommendations(
        report: HealthReport, patterns: List[FailurePattern]
    ) -> List[str]:
        counts = {p.error_type: p.count for p in patterns}
        finished = report.successful_syncs + report.failed_syncs
        recommendations = []

        if finished and report.success_rate < 50:
            recommendations.append(
                "Critical: success rate below 50%. Review the platform "
                "configuration and the error log."
            )
        elif finished and report.success_rate < 80:
            recommendations.append(
                "Warning: success rate below 80%. Consider raising the retry limits."
            )
        if report.recent_failures > 10:
            recommendations.append(
                "Many failures in the last 24 hours. Check platform availability."
            )
        auth_errors = counts.get("Authentication Error", 0) + counts.get(
            "Authorization Error", 0
        )
        if auth_errors > 5:
            recommendations.append(
                "Repeated authentication failures. Verify the platform token."
            )
        if counts.get("Timeout Error", 0) > 5:
            recommendations.append(
                "Frequent timeouts. Increase the request timeout or reduce "
                "concurrent requests."
            )
        if counts.get("Rate Limit Error", 0) > 3:
            recommendations.append(
                "Rate limiting detected. Lower the number of concurrent requests."
            )
        if not recommendations:
            recommendations.append("Syncs are healthy.")
        return recommendations
