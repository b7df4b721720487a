"""Tests for the database service."""

import pytest

from content_sync.database import DatabaseService, DeploymentStatus, SyncStatus


class TestDatabaseService:
    """Test DatabaseService class."""

    def test_new_database_is_initialized(self, tmp_path):
        """A new database file gets its schema automatically."""
        db_service = DatabaseService(tmp_path / "nested" / "sync.db")
        try:
            assert db_service.is_initialized() is True
            assert (tmp_path / "nested" / "sync.db").exists()
        finally:
            db_service.close()

    def test_statistics_empty(self, temp_db):
        """Every table starts empty."""
        assert temp_db.get_statistics() == {
            "content_types": 0,
            "content_items": 0,
            "versions": 0,
            "sync_states": 0,
            "conflicts": 0,
            "sync_history": 0,
            "deployments": 0,
        }

    def test_upsert_content_type(self, temp_db):
        """Upserting twice updates in place."""
        temp_db.upsert_content_type(
            {"key": "article", "name": "Article", "fields": []}
        )
        temp_db.upsert_content_type(
            {
                "key": "article",
                "name": "News Article",
                "description": "News",
                "fields": [{"key": "title", "name": "Title", "type": "text"}],
            }
        )

        stored = temp_db.get_content_type("article")
        assert stored.name == "News Article"
        assert stored.to_definition_dict()["description"] == "News"
        assert len(stored.fields) == 1
        assert temp_db.get_statistics()["content_types"] == 1

    def test_content_items_counted_and_cascade(self, temp_db):
        """Items count per type and go away with their type."""
        temp_db.upsert_content_type({"key": "article", "name": "Article"})
        temp_db.create_content_item("article", "First post", {"body": "hi"})
        temp_db.create_content_item("article", "Second post")

        assert temp_db.count_content_items("article") == 2
        assert temp_db.delete_content_type("article") is True
        assert temp_db.count_content_items("article") == 0
        assert temp_db.delete_content_type("article") is False

    def test_version_parents_in_order(self, temp_db):
        """Parent links keep their order."""
        temp_db.create_version("a" * 64, "article", {}, "UI")
        temp_db.create_version("b" * 64, "article", {}, "UI")
        temp_db.create_version(
            "c" * 64, "article", {}, "SYNC", parent_hashes=["b" * 64, "a" * 64]
        )

        assert temp_db.get_parent_hashes("c" * 64) == ["b" * 64, "a" * 64]
        assert temp_db.get_version("c" * 64).is_merge is True
        assert temp_db.get_latest_version("article").version_hash == "c" * 64
        assert [v.version_hash for v in temp_db.list_versions("article")] == [
            "a" * 64,
            "b" * 64,
            "c" * 64,
        ]

    def test_sync_state_upsert_and_filter(self, temp_db):
        """Sync states are keyed by type and filterable by status."""
        temp_db.upsert_sync_state("article", {"sync_status": SyncStatus.NEW.value})
        temp_db.upsert_sync_state("author", {"sync_status": SyncStatus.IN_SYNC.value})
        temp_db.upsert_sync_state("article", {"local_hash": "a" * 64})

        article = temp_db.get_sync_state("article")
        assert article.local_hash == "a" * 64
        assert article.sync_status == SyncStatus.NEW.value
        in_sync = temp_db.list_sync_states(sync_status=[SyncStatus.IN_SYNC.value])
        assert [s.type_key for s in in_sync] == ["author"]
        assert temp_db.delete_sync_state("author") is True
        assert temp_db.delete_all_sync_states() == 1

    def test_transaction_commits(self, temp_db):
        """Writes inside a transaction are committed together."""
        with temp_db.transaction():
            assert temp_db.in_transaction() is True
            temp_db.upsert_content_type({"key": "article", "name": "Article"})
            temp_db.upsert_sync_state("article", {"local_hash": "a" * 64})

        assert temp_db.in_transaction() is False
        assert temp_db.get_content_type("article") is not None
        assert temp_db.get_sync_state("article") is not None

    def test_transaction_rolls_back(self, temp_db):
        """An error inside a transaction discards every write in it."""
        with pytest.raises(RuntimeError):
            with temp_db.transaction():
                temp_db.upsert_content_type({"key": "article", "name": "Article"})
                temp_db.upsert_sync_state("article", {"local_hash": "a" * 64})
                raise RuntimeError("boom")

        assert temp_db.get_content_type("article") is None
        assert temp_db.get_sync_state("article") is None
        assert temp_db.in_transaction() is False

    def test_nested_transaction_joins_outer(self, temp_db):
        """An inner transaction is part of the outer one."""
        with pytest.raises(RuntimeError):
            with temp_db.transaction():
                with temp_db.transaction():
                    temp_db.upsert_content_type({"key": "article", "name": "Article"})
                raise RuntimeError("boom")

        assert temp_db.get_content_type("article") is None

    def test_deployment_logs_append(self, temp_db):
        """Log lines accumulate on the deployment."""
        deployment = temp_db.create_deployment({"type_keys": ["article"]})
        temp_db.append_deployment_log(deployment.id, "first")
        temp_db.append_deployment_log(deployment.id, "second")
        temp_db.update_deployment(
            deployment.id, {"status": DeploymentStatus.COMPLETED.value}
        )

        stored = temp_db.get_deployment(deployment.id)
        assert stored.logs == ["first", "second"]
        assert stored.status == "completed"
        assert stored.type_keys == ["article"]

    def test_update_missing_row_raises(self, temp_db):
        """Updating an unknown deployment raises."""
        with pytest.raises(ValueError, match="Deployment not found"):
            temp_db.update_deployment("missing", {"status": "failed"})
        with pytest.raises(ValueError):
            temp_db.append_deployment_log("missing", "line")

    def test_sync_history_filters(self, temp_db):
        """History can be filtered and is newest first."""
        deployment = temp_db.create_deployment()
        first = temp_db.create_sync_history(
            {
                "deployment_id": deployment.id,
                "type_key": "article",
                "target_platform": "test",
            }
        )
        second = temp_db.create_sync_history(
            {
                "deployment_id": deployment.id,
                "type_key": "author",
                "target_platform": "test",
                "sync_status": "FAILED",
            }
        )

        entries = temp_db.list_sync_history(deployment_id=deployment.id)
        assert [e.id for e in entries] == [second.id, first.id]
        assert [e.id for e in temp_db.list_sync_history(status="FAILED")] == [
            second.id
        ]
        assert len(temp_db.list_sync_history(type_key="article", limit=5)) == 1
