"""Tests for change detection."""

import pytest

from content_sync.core.sync import ChangeDetector
from content_sync.core.versioning import ContentTypeRepository, VersionStore
from content_sync.database import SyncStateStore, SyncStatus

from tests.helpers import make_definition, text_field


@pytest.fixture
def repository(temp_db):
    """Local repository."""
    return ContentTypeRepository(temp_db, VersionStore(temp_db))


@pytest.fixture
def state_store(temp_db):
    """Sync state store."""
    return SyncStateStore(temp_db)


@pytest.fixture
def detector(repository, platform, state_store):
    """Detector persisting to the state store."""
    return ChangeDetector(repository, platform, state_store, hash_workers=2)


@pytest.fixture
def populated(repository, platform):
    """One key of each kind: local only, remote only, updated, unchanged."""
    repository.save(make_definition("local-only"))
    platform.put(make_definition("remote-only"))
    repository.save(make_definition("article", [text_field("title")]))
    platform.put(
        make_definition("article", [text_field("title"), text_field("summary")])
    )
    repository.save(make_definition("author", [text_field("name")]))
    platform.put(
        make_definition("author", [dict(text_field("name"), label="Full name")])
    )


class TestChangeDetector:
    """Test ChangeDetector class."""

    def test_compare_hashes_buckets(self, detector, populated):
        """Keys are sorted into created, deleted, updated and unchanged."""
        report = detector.detect_changes(persist=False)
        changes = report.changes

        assert [c.key for c in changes.created] == ["remote-only"]
        assert [c.key for c in changes.deleted] == ["local-only"]
        assert [c.key for c in changes.updated] == ["article"]
        assert [c.key for c in changes.unchanged] == ["author"]
        assert changes.updated[0].field_diff.added == ["summary"]
        assert changes.has_changes is True

    def test_summary_and_details(self, detector, populated):
        """The report counts every bucket and describes each change."""
        report = detector.detect_changes(persist=False)

        assert report.summary == {
            "total": 4,
            "created": 1,
            "updated": 1,
            "deleted": 1,
            "unchanged": 1,
            "has_changes": True,
        }
        assert "+ remote-only: only on remote" in report.details
        assert "- local-only: only local" in report.details
        assert "~ article: added summary" in report.details
        assert str(report).startswith("4 content types: 1 created")

    def test_remote_etags_are_kept(self, detector, platform, populated):
        """Remote entries carry the etag they were read with."""
        report = detector.detect_changes(persist=False)
        assert report.changes.remote["article"].etag == platform.etags["article"]
        assert report.changes.local["article"].etag is None

    def test_restricted_to_keys(self, detector, populated):
        """Detection can be limited to a subset of keys."""
        report = detector.detect_batch_changes(["article"], persist=False)
        assert [c.key for c in report.changes.all_changes()] == ["article"]

    def test_no_persist_writes_nothing(self, detector, state_store, populated):
        """persist=False leaves the state store untouched."""
        detector.detect_changes(persist=False)
        assert state_store.list_states() == []

    def test_persist_sync_states(self, detector, state_store, populated):
        """Detection results are stored per key."""
        detector.detect_changes()

        assert state_store.get("remote-only").sync_status == SyncStatus.NEW.value
        assert state_store.get("local-only").sync_status == SyncStatus.MODIFIED.value
        assert state_store.get("article").sync_status == SyncStatus.MODIFIED.value
        author = state_store.get("author")
        assert author.sync_status == SyncStatus.IN_SYNC.value
        assert author.last_synced_hash == author.local_hash

    def test_persist_skips_syncing(self, detector, state_store, populated):
        """Keys with a sync in flight keep their state."""
        state_store.set_sync_progress(
            "article", {"current_step": 1, "total_steps": 3}
        )
        detector.detect_changes()

        state = state_store.get("article")
        assert state.sync_status == SyncStatus.SYNCING.value
        assert state.local_hash is None

    def test_persist_conflict_only_updates_hashes(
        self, detector, state_store, populated
    ):
        """Conflicted keys stay conflicted with fresh hashes."""
        state_store.mark_as_conflicted("article", "a" * 64, "b" * 64)
        report = detector.detect_changes()

        state = state_store.get("article")
        assert state.sync_status == SyncStatus.CONFLICT.value
        assert state.local_hash == report.changes.local["article"].hash
        assert state.remote_hash == report.changes.remote["article"].hash

    def test_empty_sides(self, detector):
        """Nothing anywhere means nothing to report."""
        report = detector.detect_changes()
        assert report.summary["total"] == 0
        assert report.changes.has_changes is False
        assert report.details == []
