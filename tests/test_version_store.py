"""Tests for the version store and repository."""

from unittest.mock import patch

import pytest

from content_sync.core.versioning import (
    ContentTypeHasher,
    ContentTypeRepository,
    VersionStore,
)
from content_sync.database import ChangeSource, SyncStateStore
from content_sync.models import InvalidDefinitionError

from tests.helpers import make_definition, text_field


@pytest.fixture
def store(temp_db):
    """Version store on a temporary database."""
    return VersionStore(temp_db)


@pytest.fixture
def repository(temp_db, store):
    """Repository on a temporary database."""
    return ContentTypeRepository(temp_db, store)


def _article(*field_keys):
    return make_definition("article", [text_field(k) for k in field_keys])


class TestRecordChange:
    """Test history writes."""

    def test_first_version_is_root(self, store):
        """The first version of a type has no parents."""
        result = store.record_change(_article("title"), source=ChangeSource.UI)

        assert result.success is True
        assert result.skipped is False
        version = store.get_version(result.version_hash)
        assert version.parent_hashes == []
        assert version.change_source == "UI"

    def test_head_becomes_parent(self, store):
        """Linear edits chain onto the head."""
        first = store.record_change(_article("title"))
        second = store.record_change(_article("title", "body"), source=ChangeSource.AI)

        version = store.get_version(second.version_hash)
        assert version.parent_hashes == [first.version_hash]
        assert store.get_head("article").version_hash == second.version_hash

    def test_unchanged_content_is_skipped(self, store, temp_db):
        """Saving the head content again writes nothing."""
        first = store.record_change(_article("title"))
        again = store.record_change(_article("title"), author="someone")

        assert again.skipped is True
        assert again.version_hash == first.version_hash
        assert temp_db.get_statistics()["versions"] == 1

    def test_revert_to_known_hash_is_skipped(self, store, temp_db):
        """Content already in history is not recorded twice."""
        store.record_change(_article("title"))
        store.record_change(_article("title", "body"))
        revert = store.record_change(_article("title"))

        assert revert.skipped is True
        assert temp_db.get_statistics()["versions"] == 2

    def test_unknown_parents_are_dropped(self, store):
        """Explicit parents are limited to recorded versions."""
        first = store.record_change(_article("title"))
        result = store.record_change(
            _article("title", "body"),
            parent_hashes=[first.version_hash, "0" * 64],
        )
        assert store.get_version(result.version_hash).parent_hashes == [
            first.version_hash
        ]

    def test_merge_records_both_parents_in_order(self, store):
        """A merge keeps local first and remote second."""
        base = store.record_change(_article("title"))
        local = store.record_change(_article("title", "body"))
        remote = store.record_change(
            _article("title", "tags"), parent_hashes=[base.version_hash]
        )

        merged = store.record_merge(
            _article("title", "body", "tags"),
            [local.version_hash, remote.version_hash],
        )

        version = store.get_version(merged.version_hash)
        assert version.parent_hashes == [local.version_hash, remote.version_hash]
        assert version.change_source == "SYNC"
        assert version.message == "Merge conflict resolution"

    def test_errors_are_returned_not_raised(self, store, temp_db):
        """A failing write reports the error."""
        with patch.object(temp_db, "create_version", side_effect=RuntimeError("disk")):
            result = store.record_change(_article("title"))

        assert result.success is False
        assert "disk" in result.error

    def test_failed_write_keeps_transaction_usable(self, store, temp_db):
        """A rejected insert does not roll back the surrounding transaction."""
        first = store.record_change(_article("title"))
        states = SyncStateStore(temp_db)

        with patch.object(temp_db, "get_version", return_value=None), patch.object(
            temp_db, "get_latest_version", return_value=None
        ):
            with temp_db.transaction():
                duplicate = store.record_change(_article("title"))
                states.mark_as_synced(
                    "article", first.version_hash, first.version_hash
                )

        assert duplicate.success is False
        assert states.get("article").last_synced_hash == first.version_hash
        assert len(temp_db.list_versions("article")) == 1

    def test_invalid_definition_is_reported(self, store):
        """Invalid input yields a failed result."""
        result = store.record_change({"key": "article"})
        assert result.success is False


class TestTreeQueries:
    """Test ancestry, lineage and rendering."""

    @pytest.fixture
    def diverged(self, store):
        """Base with a local and a remote branch."""
        base = store.record_change(_article("title")).version_hash
        local = store.record_change(_article("title", "body")).version_hash
        remote = store.record_change(
            _article("title", "tags"), parent_hashes=[base]
        ).version_hash
        return base, local, remote

    def test_find_common_ancestor(self, store, diverged):
        """Two branches meet at their base."""
        base, local, remote = diverged
        assert store.find_common_ancestor(local, remote) == base

    def test_common_ancestor_of_descendant(self, store, diverged):
        """A version is the ancestor of its own descendants."""
        base, local, _ = diverged
        assert store.find_common_ancestor(base, local) == base
        assert store.find_common_ancestor(local, base) == base

    def test_common_ancestor_same_hash(self, store, diverged):
        """A known version is its own ancestor."""
        base, _, _ = diverged
        assert store.find_common_ancestor(base, base) == base
        assert store.find_common_ancestor("f" * 64, "f" * 64) is None

    def test_common_ancestor_after_merge(self, store, diverged):
        """Ancestors are found through merge parents."""
        base, local, remote = diverged
        merged = store.record_merge(
            _article("title", "body", "tags"), [local, remote]
        ).version_hash
        later = store.record_change(
            _article("title", "body", "tags", "summary")
        ).version_hash

        assert store.find_common_ancestor(later, remote) == remote
        assert store.find_common_ancestor(merged, base) == base

    def test_unrelated_versions_have_no_ancestor(self, store):
        """Different roots never meet."""
        a = store.record_change(_article("title")).version_hash
        b = store.record_change(
            make_definition("author", [text_field("name")])
        ).version_hash
        assert store.find_common_ancestor(a, b) is None

    def test_get_lineage_follows_first_parent(self, store, diverged):
        """Lineage runs newest to root along first parents."""
        base, local, remote = diverged
        merged = store.record_merge(
            _article("title", "body", "tags"), [local, remote]
        ).version_hash

        lineage = [v.version_hash for v in store.get_lineage(merged)]
        assert lineage == [merged, local, base]

    def test_get_history_newest_first(self, store):
        """History is returned newest first and can be limited."""
        hashes = [
            store.record_change(_article(*keys)).version_hash
            for keys in (("title",), ("title", "body"), ("title", "body", "tags"))
        ]
        assert [v.version_hash for v in store.get_history("article")] == list(
            reversed(hashes)
        )
        assert len(store.get_history("article", limit=1)) == 1

    def test_build_tree(self, store, diverged):
        """The tree links parents to children."""
        base, local, remote = diverged
        tree = store.build_tree("article")

        assert len(tree) == 3
        assert tree.roots == [base]
        assert sorted(tree.nodes[base].children) == sorted([local, remote])
        assert sorted(tree.heads) == sorted([local, remote])

    def test_visualize_tree(self, store, diverged):
        """Rendering shows every version and marks merges."""
        base, local, remote = diverged
        merged = store.record_merge(
            _article("title", "body", "tags"), [local, remote]
        ).version_hash

        text = store.visualize_tree("article")

        assert text.startswith("article (4 versions)")
        assert f"* {base[:12]}" in text
        assert f"M {merged[:12]}" in text
        assert "(see above)" in text

    def test_visualize_empty_tree(self, store):
        """Types without history say so."""
        assert store.visualize_tree("missing") == "missing: no versions"

    def test_get_snapshot(self, store):
        """Snapshots parse back into definitions."""
        result = store.record_change(_article("title"))
        snapshot = store.get_snapshot(result.version_hash)
        assert snapshot.field_keys == ["title"]
        assert ContentTypeHasher().hash(snapshot) == result.version_hash
        assert store.get_snapshot(None) is None


class TestContentTypeRepository:
    """Test local storage with history."""

    def test_save_stores_and_versions(self, repository, store):
        """Saving writes the type and a version."""
        result = repository.save(_article("title", "body"), author="editor")

        assert result.version.success is True
        assert repository.get("article").field_keys == ["title", "body"]
        assert store.get_head("article").author == "editor"

    def test_save_survives_history_failure(self, repository, store):
        """A failed history write does not undo the save."""
        with patch.object(
            store.db_service, "create_version", side_effect=RuntimeError("disk")
        ):
            result = repository.save(_article("title"))

        assert result.version.success is False
        assert repository.get("article") is not None

    def test_save_rejects_invalid(self, repository):
        """Invalid definitions are not stored."""
        with pytest.raises(InvalidDefinitionError):
            repository.save({"key": "article", "fields": "nope"})
        assert repository.get("article") is None

    def test_import_validates_all_first(self, repository):
        """One invalid definition stops the whole import."""
        with pytest.raises(InvalidDefinitionError):
            repository.import_definitions(
                [_article("title").to_payload(), {"key": "broken"}]
            )
        assert repository.list_definitions() == []

    def test_list_and_delete(self, repository):
        """Definitions can be listed by key and deleted."""
        repository.save(_article("title"))
        repository.save(make_definition("author", [text_field("name")]))

        assert [d.key for d in repository.list_definitions(["author"])] == ["author"]
        assert repository.delete("author") is True
        assert repository.get("author") is None
