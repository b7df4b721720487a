"""Progress tracking for deployments.

Updates are published as ``{phase, percentage, message, errors}`` to any
callback, typically the deployment record writer and a terminal reporter.
"""

import logging
import time
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from tqdm import tqdm  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)


class ProgressPhase(str, Enum):
    """Phases of a deployment."""

    INITIALIZING = "initializing"
    DETECTING_CHANGES = "detecting_changes"
    CHECKING_CONFLICTS = "checking_conflicts"
    RESOLVING_CONFLICTS = "resolving_conflicts"
    SYNCING = "syncing"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class ProgressUpdate:
    """Progress update information."""

    phase: ProgressPhase
    current: int
    total: int
    message: str = ""
    errors: List[str] = dataclass_field(default_factory=list)
    metadata: Dict[str, Any] = dataclass_field(default_factory=dict)
    elapsed_time: float = 0.0

    @property
    def percentage(self) -> float:
        """Calculate progress percentage."""
        if self.total == 0:
            return 100.0 if self.phase == ProgressPhase.COMPLETE else 0.0
        return min(100.0, (self.current / self.total) * 100.0)

    @property
    def is_complete(self) -> bool:
        """Check if phase is complete."""
        return self.current >= self.total

    def to_status(self) -> Dict[str, Any]:
        """Payload stored on the deployment record."""
        return {
            "phase": self.phase.value,
            "percentage": round(self.percentage, 1),
            "message": self.message,
            "errors": list(self.errors),
        }

    def __str__(self) -> str:
        """String representation of progress."""
        parts = [
            f"[{self.phase.value}]",
            f"{self.current}/{self.total}",
            f"({self.percentage:.1f}%)",
        ]
        if self.message:
            parts.append(f"- {self.message}")
        if self.errors:
            parts.append(f"({len(self.errors)} errors)")
        return " ".join(parts)


ProgressCallback = Callable[[ProgressUpdate], None]


class ProgressTracker:
    """Tracks deployment progress and fans updates out to callbacks."""

    def __init__(
        self,
        callbacks: Optional[List[ProgressCallback]] = None,
        update_interval: float = 0.0,
    ):
        """Initialize progress tracker.

        Args:
            callbacks: Functions to call with progress updates
            update_interval: Minimum time between intermediate updates (seconds)
        """
        self.callbacks: List[ProgressCallback] = list(callbacks or [])
        self.update_interval = update_interval
        self._last_update_time = 0.0
        self._start_time = 0.0
        self._current_phase: Optional[ProgressPhase] = None
        self._phase_start_time = 0.0
        self._current = 0
        self._total = 0
        self._errors: List[str] = []
        self._phase_history: Dict[ProgressPhase, float] = {}

    def add_callback(self, callback: ProgressCallback) -> None:
        """Register another progress consumer."""
        self.callbacks.append(callback)

    @property
    def errors(self) -> List[str]:
        """Errors reported so far."""
        return list(self._errors)

    def start(self, phase: ProgressPhase, total: int, message: str = "") -> None:
        """Start tracking a new phase."""
        now = time.time()
        if self._current_phase and self._current_phase not in self._phase_history:
            self._phase_history[self._current_phase] = now - self._phase_start_time

        self._current_phase = phase
        self._phase_start_time = now
        self._current = 0
        self._total = total

        if self._start_time == 0.0:
            self._start_time = now

        self._notify(message)

    def update(
        self,
        current: Optional[int] = None,
        message: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Update progress.

        Args:
            current: Current progress (if None, increments by 1)
            message: Optional progress message
            metadata: Optional metadata dictionary
        """
        if current is not None:
            self._current = current
        else:
            self._current += 1

        if time.time() - self._last_update_time < self.update_interval:
            return

        self._notify(message, metadata)

    def complete(self, message: str = "") -> None:
        """Mark current phase as complete."""
        if self._current_phase:
            self._phase_history[self._current_phase] = (
                time.time() - self._phase_start_time
            )
        self._current = self._total
        self._notify(message)

    def error(self, message: str) -> None:
        """Record an error and publish it."""
        self._errors.append(message)
        self._notify(message, phase=ProgressPhase.ERROR)

    def _notify(
        self,
        message: str = "",
        metadata: Optional[Dict[str, Any]] = None,
        phase: Optional[ProgressPhase] = None,
    ) -> None:
        if not self.callbacks:
            return

        now = time.time()
        self._last_update_time = now

        update = ProgressUpdate(
            phase=phase or self._current_phase or ProgressPhase.INITIALIZING,
            current=self._current,
            total=self._total,
            message=message,
            errors=list(self._errors),
            metadata=metadata or {},
            elapsed_time=now - self._start_time if self._start_time else 0.0,
        )

        for callback in self.callbacks:
            try:
                callback(update)
            except Exception as e:
                logger.error("Error in progress callback: %s", e)

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of progress tracking."""
        total_time = time.time() - self._start_time if self._start_time > 0 else 0
        return {
            "total_time": total_time,
            "phase_history": {
                phase.value: duration for phase, duration in self._phase_history.items()
            },
            "current_phase": (
                self._current_phase.value if self._current_phase else None
            ),
            "progress": f"{self._current}/{self._total}",
            "errors": len(self._errors),
        }


class ConsoleProgressReporter:
    """Simple console progress reporter."""

    def __init__(self, verbose: bool = True):
        """Initialize console reporter.

        Args:
            verbose: Whether to print every update or only phase boundaries
        """
        self.verbose = verbose
        self._last_phase: Optional[ProgressPhase] = None

    def __call__(self, update: ProgressUpdate) -> None:
        """Handle progress update."""
        if update.phase != self._last_phase:
            print(f"\n{'=' * 60}")
            print(f"Phase: {update.phase.value.upper()}")
            print(f"{'=' * 60}")
            self._last_phase = update.phase

        if self.verbose or update.is_complete:
            print(f"  {update}")


class TqdmProgressReporter:
    """Progress reporter using tqdm bars, one per phase."""

    def __init__(self) -> None:
        """Initialize tqdm reporter."""
        self._bars: Dict[ProgressPhase, Any] = {}

    def __call__(self, update: ProgressUpdate) -> None:
        """Handle progress update."""
        if update.phase == ProgressPhase.ERROR:
            tqdm.write(f"error: {update.message}")
            return

        if update.phase not in self._bars:
            self._bars[update.phase] = tqdm(
                total=update.total,
                desc=update.phase.value,
                unit="type",
            )

        bar = self._bars[update.phase]
        bar.n = update.current
        bar.set_postfix_str(update.message if update.message else "")
        bar.refresh()

        if update.is_complete:
            bar.close()

    def close_all(self) -> None:
        """Close all progress bars."""
        for bar in self._bars.values():
            if not bar.disable:
                bar.close()
