"""Tests for structural field diffs."""

from content_sync.core.versioning import FieldDiff, VersionDiff

from tests.helpers import text_field

TITLE = text_field("title")
BODY = text_field("body")
TAGS = {
    "key": "tags",
    "name": "Tags",
    "type": "list",
    "settings": {"item_type": "text"},
}


class TestCalculateDiff:
    """Test two-way diffs."""

    def test_added_removed_modified(self):
        """Keys are sorted into added, removed, modified and unchanged."""
        old = [TITLE, BODY]
        new = [dict(TITLE, required=True), TAGS]

        diff = VersionDiff.calculate_diff(old, new)

        assert diff.added == ["tags"]
        assert diff.removed == ["body"]
        assert diff.modified == ["title"]
        assert diff.unchanged == []
        assert diff.has_changes is True
        assert diff.changed_keys == ["body", "tags", "title"]

    def test_no_changes(self):
        """Reordered and relabelled fields are not changes."""
        diff = VersionDiff.calculate_diff(
            [TITLE, BODY], [dict(BODY, label="Main text"), TITLE]
        )
        assert diff.has_changes is False
        assert diff.unchanged == ["body", "title"]

    def test_none_is_empty(self):
        """Missing field lists compare as empty."""
        diff = VersionDiff.calculate_diff(None, [TITLE])
        assert diff.added == ["title"]

    def test_changed_attributes(self):
        """Only semantic attributes are reported."""
        changed = VersionDiff.changed_attributes(
            TITLE, dict(TITLE, required=True, label="Headline", type="richtext")
        )
        assert changed == ["required", "type"]

    def test_format_diff(self):
        """Diffs render as +/~/- lines."""
        diff = FieldDiff(added=["tags"], modified=["title"], removed=["body"])
        assert VersionDiff.format_diff(diff) == "+ tags\n~ title\n- body"
        assert VersionDiff.format_diff(FieldDiff()) == "(no field changes)"

    def test_dict_roundtrip(self):
        """Stored diffs rebuild without unchanged keys."""
        diff = FieldDiff(added=["a"], modified=["b"], removed=["c"], unchanged=["d"])
        rebuilt = FieldDiff.from_dict(diff.to_dict())
        assert rebuilt.changed_keys == ["a", "b", "c"]
        assert rebuilt.unchanged == []
        assert FieldDiff.from_dict(None).has_changes is False


class TestThreeWayDiff:
    """Test diffs against a common base."""

    def test_disjoint_changes_merge(self):
        """Changes to different fields are auto-mergeable."""
        result = VersionDiff.three_way_diff([TITLE], [TITLE, BODY], [TITLE, TAGS])

        assert result.local.added == ["body"]
        assert result.remote.added == ["tags"]
        assert result.conflicting == []
        assert result.auto_mergeable is True

    def test_same_field_changed_differently(self):
        """Different edits to one field conflict."""
        result = VersionDiff.three_way_diff(
            [TITLE],
            [dict(TITLE, required=True)],
            [dict(TITLE, unique=True)],
        )
        assert result.conflicting == ["title"]
        assert result.auto_mergeable is False

    def test_identical_edits_do_not_conflict(self):
        """Both sides making the same change is not a conflict."""
        edited = dict(TITLE, required=True)
        result = VersionDiff.three_way_diff([TITLE, BODY], [edited], [edited])
        assert result.conflicting == []

    def test_remove_versus_modify_conflicts(self):
        """Removing a field the other side changed conflicts."""
        result = VersionDiff.three_way_diff(
            [TITLE, BODY], [TITLE], [TITLE, dict(BODY, required=True)]
        )
        assert result.conflicting == ["body"]
