"""Structural diffs between content-type field lists."""

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ...models import FieldDescriptor

FieldLike = Union[FieldDescriptor, Dict[str, Any]]


def _semantic(field: FieldLike) -> Dict[str, Any]:
    if isinstance(field, FieldDescriptor):
        return field.semantic_dict()
    return {
        "key": field.get("key"),
        "name": field.get("name"),
        "type": field.get("type"),
        "required": bool(field.get("required", False)),
        "unique": bool(field.get("unique", False)),
        "indexed": bool(field.get("indexed", False)),
        "settings": field.get("settings") or {},
    }


def _by_key(fields: Optional[Iterable[FieldLike]]) -> Dict[str, Dict[str, Any]]:
    result: Dict[str, Dict[str, Any]] = {}
    for field in fields or []:
        semantic = _semantic(field)
        result[str(semantic["key"])] = semantic
    return result


@dataclass
class FieldDiff:
    """Field keys added, modified, removed and unchanged between two versions."""

    added: List[str] = dataclass_field(default_factory=list)
    modified: List[str] = dataclass_field(default_factory=list)
    removed: List[str] = dataclass_field(default_factory=list)
    unchanged: List[str] = dataclass_field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        """Whether anything was added, modified or removed."""
        return bool(self.added or self.modified or self.removed)

    @property
    def changed_keys(self) -> List[str]:
        """All keys touched by this diff, sorted."""
        return sorted(set(self.added) | set(self.modified) | set(self.removed))

    def to_dict(self) -> Dict[str, List[str]]:
        """Serialize for storage."""
        return {
            "added": list(self.added),
            "modified": list(self.modified),
            "removed": list(self.removed),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FieldDiff":
        """Rebuild from a stored dict."""
        data = data or {}
        return cls(
            added=list(data.get("added", [])),
            modified=list(data.get("modified", [])),
            removed=list(data.get("removed", [])),
        )


@dataclass
class ThreeWayDiff:
    """Both sides' changes relative to a common base."""

    local: FieldDiff
    remote: FieldDiff
    conflicting: List[str]
    auto_mergeable: bool


class VersionDiff:
    """Computes structural diffs between field lists."""

    @staticmethod
    def calculate_diff(
        old_fields: Optional[Sequence[FieldLike]],
        new_fields: Optional[Sequence[FieldLike]],
    ) -> FieldDiff:
        """Compare two field lists by key.

        Args:
            old_fields: Fields of the older version
            new_fields: Fields of the newer version

        Returns:
            FieldDiff with sorted key lists
        """
        old = _by_key(old_fields)
        new = _by_key(new_fields)

        diff = FieldDiff()
        for key in sorted(set(old) | set(new)):
            if key not in old:
                diff.added.append(key)
            elif key not in new:
                diff.removed.append(key)
            elif old[key] != new[key]:
                diff.modified.append(key)
            else:
                diff.unchanged.append(key)
        return diff

    @staticmethod
    def changed_attributes(old_field: FieldLike, new_field: FieldLike) -> List[str]:
        """Names of the semantic attributes that differ between two fields."""
        old = _semantic(old_field)
        new = _semantic(new_field)
        return sorted(attr for attr in old if old[attr] != new.get(attr))

    @staticmethod
    def format_diff(diff: FieldDiff) -> str:
        """Render a diff as +/~/- lines."""
        lines = [f"+ {key}" for key in diff.added]
        lines += [f"~ {key}" for key in diff.modified]
        lines += [f"- {key}" for key in diff.removed]
        if not lines:
            return "(no field changes)"
        return "\n".join(lines)

    @classmethod
    def three_way_diff(
        cls,
        base_fields: Optional[Sequence[FieldLike]],
        local_fields: Optional[Sequence[FieldLike]],
        remote_fields: Optional[Sequence[FieldLike]],
    ) -> ThreeWayDiff:
        """Diff both sides against a base and find overlapping changes.

        A key changed on both sides conflicts unless both sides ended up with
        the same field (or both removed it).
        """
        local = cls.calculate_diff(base_fields, local_fields)
        remote = cls.calculate_diff(base_fields, remote_fields)
        local_by_key = _by_key(local_fields)
        remote_by_key = _by_key(remote_fields)

        conflicting = [
            key
            for key in sorted(set(local.changed_keys) & set(remote.changed_keys))
            if local_by_key.get(key) != remote_by_key.get(key)
        ]
        return ThreeWayDiff(
            local=local,
            remote=remote,
            conflicting=conflicting,
            auto_mergeable=not conflicting,
        )
