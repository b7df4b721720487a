"""Display formatters for CLI output."""

from .formatters import (
    display_change_report,
    display_conflict_stats,
    display_conflicts,
    display_deployment,
    display_deployment_result,
    display_field_diff,
    display_health_report,
    display_resolution,
    display_sync_history,
    display_sync_states,
    display_versions,
)

__all__ = [
    "display_change_report",
    "display_conflict_stats",
    "display_conflicts",
    "display_deployment",
    "display_deployment_result",
    "display_field_diff",
    "display_health_report",
    "display_resolution",
    "display_sync_history",
    "display_sync_states",
    "display_versions",
]
