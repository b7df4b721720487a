"""Tests for the conflict review queue."""

from datetime import datetime, timedelta, timezone

import pytest

from content_sync.core.sync import ConflictDetector, ConflictManager, ConflictResolution
from content_sync.database import (
    ConflictPriority,
    ConflictReviewStatus,
    ConflictSeverity,
)

from tests.helpers import make_definition, text_field

TITLE = text_field("title")


def _detected(type_key="article", local_required=True, remote_unique=True):
    """A field_modified (medium) conflict on title."""
    return ConflictDetector.classify(
        type_key,
        make_definition(type_key, [dict(TITLE, required=local_required)]),
        make_definition(type_key, [dict(TITLE, unique=remote_unique)]),
        make_definition(type_key, [TITLE]),
    )


def _type_mismatch(type_key):
    return ConflictDetector.classify(
        type_key,
        make_definition(type_key, [dict(TITLE, type="richtext")]),
        make_definition(type_key, [dict(TITLE, type="slug")]),
        make_definition(type_key, [TITLE]),
    )


def _field_added(type_key):
    return ConflictDetector.classify(
        type_key,
        make_definition(type_key, [TITLE, text_field("body")]),
        make_definition(type_key, [TITLE, text_field("tags")]),
        make_definition(type_key, [TITLE]),
    )


@pytest.fixture
def manager(temp_db):
    """Conflict manager with a low escalation threshold."""
    return ConflictManager(temp_db, priority_item_threshold=3)


class TestPriority:
    """Test priority calculation."""

    @pytest.mark.parametrize(
        "severity,items,expected",
        [
            (ConflictSeverity.LOW, 0, ConflictPriority.LOW),
            (ConflictSeverity.MEDIUM, 2, ConflictPriority.MEDIUM),
            (ConflictSeverity.MEDIUM, 3, ConflictPriority.HIGH),
            (ConflictSeverity.HIGH, 0, ConflictPriority.HIGH),
            (ConflictSeverity.HIGH, 50, ConflictPriority.CRITICAL),
            ("low", 3, ConflictPriority.MEDIUM),
        ],
    )
    def test_calculate_priority(self, manager, severity, items, expected):
        """Severity sets the level, many dependent items raise it."""
        assert manager.calculate_priority(severity, items) == expected


class TestConflictManager:
    """Test ConflictManager class."""

    def test_flag_for_review(self, manager):
        """Flagging stores the conflict and its id."""
        detected = _detected()
        conflict = manager.flag_for_review(detected)

        assert detected.conflict_id == conflict.id
        assert conflict.status == ConflictReviewStatus.PENDING_REVIEW.value
        assert conflict.conflict_type == "field_modified"
        assert conflict.priority == "medium"
        assert conflict.conflicting_fields == ["title"]
        assert conflict.source_changes == {
            "added": [],
            "modified": ["title"],
            "removed": [],
        }

    def test_dependent_items_escalate(self, manager, temp_db):
        """Content items depending on the type raise the priority."""
        temp_db.upsert_content_type({"key": "article", "name": "Article"})
        for i in range(3):
            temp_db.create_content_item("article", f"Post {i}")

        conflict = manager.flag_for_review(_detected())

        assert conflict.dependent_items == 3
        assert conflict.priority == "high"

    def test_one_open_conflict_per_key(self, manager, temp_db):
        """Flagging a key again refreshes its open conflict."""
        first = manager.flag_for_review(_detected())
        second = manager.flag_for_review(_type_mismatch("article"))

        assert second.id == first.id
        assert second.conflict_type == "field_type_mismatch"
        assert temp_db.get_statistics()["conflicts"] == 1

    def test_queue_ordering(self, manager):
        """Most urgent first, oldest first within a priority."""
        manager.flag_for_review(_field_added("low-one"))
        manager.flag_for_review(_detected("medium-one"))
        manager.flag_for_review(_type_mismatch("high-one"))
        manager.flag_for_review(_detected("medium-two"))

        queue = manager.get_conflict_queue()

        assert [c.type_key for c in queue] == [
            "high-one",
            "medium-one",
            "medium-two",
            "low-one",
        ]
        assert [c.type_key for c in manager.get_conflict_queue(priority="low")] == [
            "low-one"
        ]

    def test_resolve_conflict(self, manager):
        """Resolving closes the conflict."""
        conflict = manager.flag_for_review(_detected())

        resolved = manager.resolve_conflict(
            conflict.id, ConflictResolution.TAKE_LOCAL, "reviewer", "f" * 64
        )

        assert resolved.status == ConflictReviewStatus.RESOLVED.value
        assert resolved.resolution == "take_local"
        assert resolved.resolved_by == "reviewer"
        assert resolved.resolved_hash == "f" * 64
        assert manager.get_open_conflict("article") is None
        assert manager.get_conflict_queue() == []

    def test_resolve_twice_raises(self, manager):
        """A resolved conflict cannot be resolved again."""
        conflict = manager.flag_for_review(_detected())
        manager.resolve_conflict(conflict.id, "take_remote")

        with pytest.raises(ValueError, match="already resolved"):
            manager.resolve_conflict(conflict.id, "take_remote")

    def test_resolve_unknown_raises(self, manager):
        """Unknown ids are rejected."""
        with pytest.raises(ValueError, match="not found"):
            manager.resolve_conflict("missing", "take_local")

    def test_close_converged(self, manager):
        """A key whose sides agree again has its open conflict closed."""
        conflict = manager.flag_for_review(_detected())

        closed = manager.close_converged("article", "e" * 64)

        assert closed.id == conflict.id
        assert closed.status == ConflictReviewStatus.RESOLVED.value
        assert closed.resolved_hash == "e" * 64
        assert manager.get_open_conflict("article") is None
        assert manager.close_converged("article", "e" * 64) is None

    def test_resolution_history_and_clear(self, manager):
        """Resolved conflicts can be listed and cleared."""
        first = manager.flag_for_review(_detected("article"))
        second = manager.flag_for_review(_detected("author"))
        manager.resolve_conflict(first.id, "take_local")
        manager.resolve_conflict(second.id, "auto_merge")

        history = manager.get_resolution_history()
        assert [c.type_key for c in history] == ["author", "article"]

        cutoff = datetime.now(timezone.utc) - timedelta(days=1)
        assert manager.clear_resolved_conflicts(older_than=cutoff) == 0
        assert manager.clear_resolved_conflicts() == 2

    def test_statistics(self, manager):
        """Counts by status, priority, type and resolution."""
        pending = manager.flag_for_review(_type_mismatch("article"))
        resolved = manager.flag_for_review(_field_added("author"))
        manager.resolve_conflict(resolved.id, "auto_merge")

        stats = manager.get_statistics()

        assert stats["total"] == 2
        assert stats["pending"] == 1
        assert stats["resolved"] == 1
        assert stats["by_priority"]["high"] == 1
        assert stats["by_type"]["field_type_mismatch"] == 1
        assert stats["by_type"]["field_added"] == 1
        assert stats["by_resolution"]["auto_merge"] == 1
        assert pending.id != resolved.id

    def test_to_detected(self, manager):
        """Stored rows rebuild into detected conflicts without definitions."""
        conflict = manager.flag_for_review(_detected())

        detected = ConflictManager.to_detected(manager.get_conflict(conflict.id))

        assert detected.conflict_id == conflict.id
        assert detected.severity == ConflictSeverity.MEDIUM
        assert detected.source_changes.modified == ["title"]
        assert detected.local is None
