"""Resolution strategies for content-type conflicts.

- TAKE_LOCAL: keep the local definition (remote made no field changes)
- TAKE_REMOTE: keep the remote definition (local made no field changes)
- AUTO_MERGE: union of both sides when they changed disjoint fields
- MANUAL_MERGE: overlapping changes, a person has to decide
"""

import logging
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any, Dict, List, Optional

from ...models import ContentTypeDefinition, FieldDescriptor
from ..versioning.hasher import ContentTypeHasher
from .conflict_detector import DetectedConflict

logger = logging.getLogger(__name__)


class ConflictResolution(str, Enum):
    """Resolution strategies for conflicts."""

    TAKE_LOCAL = "take_local"
    TAKE_REMOTE = "take_remote"
    AUTO_MERGE = "auto_merge"
    MANUAL_MERGE = "manual_merge"


@dataclass
class ResolutionResult:
    """Outcome of applying a strategy.

    ``requires_manual`` is a hard stop: the conflict stays open until someone
    supplies a resolution. It is never retried automatically.
    """

    success: bool
    strategy: ConflictResolution
    resolution: Optional[ContentTypeDefinition] = None
    resolved_hash: Optional[str] = None
    requires_manual: bool = False
    error: Optional[str] = None
    manual_resolution_data: Dict[str, Any] = dataclass_field(default_factory=dict)


class ResolutionStrategySelector:
    """Picks and applies a resolution strategy for a conflict."""

    def __init__(self, hasher: Optional[ContentTypeHasher] = None):
        """Initialize selector.

        Args:
            hasher: Hasher used to identify resolved definitions
        """
        self.hasher = hasher or ContentTypeHasher()

    @staticmethod
    def select_best_strategy(conflict: DetectedConflict) -> ConflictResolution:
        """Choose the least invasive strategy that is safe."""
        if conflict.local is None or conflict.remote is None:
            return ConflictResolution.MANUAL_MERGE
        if not conflict.target_changes.has_changes:
            return ConflictResolution.TAKE_LOCAL
        if not conflict.source_changes.has_changes:
            return ConflictResolution.TAKE_REMOTE
        if not conflict.conflicting_fields:
            return ConflictResolution.AUTO_MERGE
        return ConflictResolution.MANUAL_MERGE

    def resolve_conflict(
        self,
        conflict: DetectedConflict,
        strategy: Optional[ConflictResolution] = None,
    ) -> ResolutionResult:
        """Apply a strategy to a conflict.

        Args:
            conflict: Classified conflict with both sides loaded
            strategy: Strategy to apply; the best one is selected if None

        Returns:
            ResolutionResult with the resolved definition on success
        """
        strategy = ConflictResolution(strategy or self.select_best_strategy(conflict))
        logger.debug("Resolving %s with %s", conflict.type_key, strategy.value)

        if strategy == ConflictResolution.MANUAL_MERGE:
            return self._manual(conflict, strategy, "Conflict requires manual merge")

        if conflict.local is None or conflict.remote is None:
            return self._manual(
                conflict,
                strategy,
                "Content type was deleted on one side",
            )

        if strategy == ConflictResolution.TAKE_LOCAL:
            resolved = conflict.local
        elif strategy == ConflictResolution.TAKE_REMOTE:
            resolved = conflict.remote
        else:
            if conflict.conflicting_fields:
                return self._manual(
                    conflict,
                    strategy,
                    "Overlapping changes on "
                    + ", ".join(conflict.conflicting_fields),
                )
            resolved = self.merge(conflict)

        resolved_hash = self.hasher.hash(resolved)
        logger.info(
            "Resolved %s with %s -> %s",
            conflict.type_key,
            strategy.value,
            resolved_hash[:12],
        )
        return ResolutionResult(
            success=True,
            strategy=strategy,
            resolution=resolved,
            resolved_hash=resolved_hash,
        )

    @staticmethod
    def merge(conflict: DetectedConflict) -> ContentTypeDefinition:
        """Union of both sides' field changes on top of the base.

        Fields keep the local declaration order, followed by remote-only
        additions.
        """
        local, remote = conflict.local, conflict.remote
        if local is None or remote is None:
            raise ValueError(f"Cannot merge {conflict.type_key}: one side is missing")
        base_map = conflict.base.field_map() if conflict.base else {}
        local_map = local.field_map()
        remote_map = remote.field_map()

        merged: Dict[str, FieldDescriptor] = dict(base_map)
        for key in conflict.source_changes.added + conflict.source_changes.modified:
            merged[key] = local_map[key]
        for key in conflict.target_changes.added + conflict.target_changes.modified:
            merged[key] = remote_map[key]
        for key in conflict.source_changes.removed + conflict.target_changes.removed:
            merged.pop(key, None)

        order: List[str] = [*local.field_keys]
        order += [k for k in remote.field_keys if k not in order]
        order += [k for k in base_map if k not in order]
        fields = [merged[k] for k in order if k in merged]

        base_name = conflict.base.name if conflict.base else local.name
        merged_definition = local.with_fields(fields)
        if local.name == base_name and remote.name != base_name:
            merged_definition = merged_definition.model_copy(
                update={"name": remote.name}
            )
        return merged_definition

    @staticmethod
    def _manual(
        conflict: DetectedConflict, strategy: ConflictResolution, reason: str
    ) -> ResolutionResult:
        logger.warning("%s: %s", conflict.type_key, reason)
        return ResolutionResult(
            success=False,
            strategy=strategy,
            requires_manual=True,
            error=reason,
            manual_resolution_data={
                "type_key": conflict.type_key,
                "conflict_type": conflict.conflict_type.value,
                "conflicting_fields": list(conflict.conflicting_fields),
                "local": conflict.local.to_payload() if conflict.local else None,
                "remote": conflict.remote.to_payload() if conflict.remote else None,
                "base": conflict.base.to_payload() if conflict.base else None,
            },
        )

    @staticmethod
    def suggest_actions(conflict: DetectedConflict) -> List[str]:
        """Human-readable hints for resolving a conflict."""
        suggestions: List[str] = []
        if conflict.conflict_type.value == "field_type_mismatch":
            suggestions.append(
                "Field types differ; migrate existing content before choosing a side"
            )
        if conflict.conflict_type.value == "delete_conflict":
            suggestions.append(
                "One side removed what the other changed; confirm the deletion"
            )
        if conflict.conflicting_fields:
            suggestions.append(
                "Review fields: " + ", ".join(conflict.conflicting_fields)
            )
        else:
            suggestions.append("Changes are disjoint and can be merged automatically")
        if not conflict.target_changes.has_changes:
            suggestions.append("Remote made no field changes; keeping local is safe")
        if not conflict.source_changes.has_changes:
            suggestions.append("Local made no field changes; taking remote is safe")
        return suggestions
