"""Tests for content type and sync progress models."""

import pytest

from content_sync.models import (
    ContentCategory,
    ContentTypeDefinition,
    InvalidDefinitionError,
    InvalidSyncProgressError,
    ListField,
    ReferenceField,
    SyncProgress,
    TextField,
)


class TestContentTypeDefinition:
    """Test definition parsing and validation."""

    def test_parse_minimal(self):
        """A key and a name are enough."""
        definition = ContentTypeDefinition.parse({"key": "article", "name": "Article"})
        assert definition.key == "article"
        assert definition.fields == []
        assert definition.category == ContentCategory.COMPONENT

    def test_fields_are_discriminated_by_type(self):
        """Each field type maps to its own model."""
        definition = ContentTypeDefinition.parse(
            {
                "key": "article",
                "name": "Article",
                "fields": [
                    {"key": "title", "name": "Title", "type": "text"},
                    {
                        "key": "author",
                        "name": "Author",
                        "type": "reference",
                        "settings": {"target_type": "person"},
                    },
                    {
                        "key": "tags",
                        "name": "Tags",
                        "type": "list",
                        "settings": {"item_type": "text"},
                    },
                ],
            }
        )
        title, author, tags = definition.fields
        assert isinstance(title, TextField)
        assert isinstance(author, ReferenceField)
        assert isinstance(tags, ListField)
        assert definition.field_keys == ["title", "author", "tags"]

    def test_unknown_field_type_rejected(self):
        """Unknown field types fail validation with details."""
        with pytest.raises(InvalidDefinitionError) as exc_info:
            ContentTypeDefinition.parse(
                {
                    "key": "article",
                    "name": "Article",
                    "fields": [{"key": "x", "name": "X", "type": "hologram"}],
                }
            )
        assert exc_info.value.errors
        assert "article" in str(exc_info.value)

    def test_reference_requires_target_type(self):
        """Reference fields must name the type they point to."""
        with pytest.raises(InvalidDefinitionError):
            ContentTypeDefinition.parse(
                {
                    "key": "article",
                    "name": "Article",
                    "fields": [
                        {"key": "author", "name": "Author", "type": "reference"}
                    ],
                }
            )

    def test_list_requires_item_type(self):
        """List fields must name their item type."""
        with pytest.raises(InvalidDefinitionError):
            ContentTypeDefinition.parse(
                {
                    "key": "article",
                    "name": "Article",
                    "fields": [{"key": "tags", "name": "Tags", "type": "list"}],
                }
            )

    def test_duplicate_field_keys_rejected(self):
        """Field keys are unique within a definition."""
        with pytest.raises(InvalidDefinitionError):
            ContentTypeDefinition.parse(
                {
                    "key": "article",
                    "name": "Article",
                    "fields": [
                        {"key": "title", "name": "Title", "type": "text"},
                        {"key": "title", "name": "Again", "type": "text"},
                    ],
                }
            )

    def test_missing_key_rejected(self):
        """A definition needs a non-empty key."""
        with pytest.raises(InvalidDefinitionError):
            ContentTypeDefinition.parse({"key": "  ", "name": "Article"})

    def test_raw_fields_are_normalized(self):
        """Legacy editor attributes fill in key, name and type case."""
        definition = ContentTypeDefinition.parse(
            {
                "key": "article",
                "name": "Article",
                "fields": [
                    {"id": "f1", "label": "Headline", "type": "TEXT"},
                    {"name": "Publish Date", "type": "Date"},
                ],
            }
        )
        first, second = definition.fields
        assert first.key == "f1"
        assert first.name == "Headline"
        assert first.type == "text"
        assert second.key == "publish_date"
        assert second.type == "date"

    def test_with_fields_returns_copy(self):
        """with_fields leaves the original untouched."""
        original = ContentTypeDefinition.parse(
            {
                "key": "article",
                "name": "Article",
                "fields": [{"key": "title", "name": "Title", "type": "text"}],
            }
        )
        updated = original.with_fields(
            list(original.fields)
            + [{"key": "body", "name": "Body", "type": "richtext"}]
        )
        assert original.field_keys == ["title"]
        assert updated.field_keys == ["title", "body"]

    def test_to_payload_roundtrips(self):
        """Payloads parse back into an equal definition."""
        original = ContentTypeDefinition.parse(
            {
                "key": "page",
                "name": "Page",
                "category": "page",
                "fields": [{"key": "slug", "name": "Slug", "type": "slug"}],
            }
        )
        assert ContentTypeDefinition.parse(original.to_payload()) == original


class TestSyncProgress:
    """Test sync progress validation."""

    def test_valid_progress(self):
        """Optional values are omitted when serialized."""
        progress = SyncProgress.parse({"current_step": 1, "total_steps": 3})
        assert progress.to_json() == {"current_step": 1, "total_steps": 3}

    def test_step_beyond_total_rejected(self):
        """current_step may not exceed total_steps."""
        with pytest.raises(InvalidSyncProgressError):
            SyncProgress.parse({"current_step": 4, "total_steps": 3})

    def test_zero_total_rejected(self):
        """There is always at least one step."""
        with pytest.raises(InvalidSyncProgressError):
            SyncProgress.parse({"current_step": 0, "total_steps": 0})

    def test_unknown_keys_rejected(self):
        """Extra keys are not allowed."""
        with pytest.raises(InvalidSyncProgressError):
            SyncProgress.parse({"current_step": 0, "total_steps": 1, "eta": 5})

    def test_strict_types(self):
        """Numeric strings are not coerced."""
        with pytest.raises(InvalidSyncProgressError):
            SyncProgress.parse({"current_step": "1", "total_steps": 3})
