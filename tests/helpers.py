"""Test helpers: definition builders and an in-memory platform."""

from typing import Any, Dict, List, Optional, Tuple

from content_sync.core.platform import (
    PreconditionFailedError,
    RemoteApiError,
    RemoteContentType,
)
from content_sync.models import ContentTypeDefinition


def text_field(key: str, **extra: Any) -> Dict[str, Any]:
    """Raw text field definition."""
    return {"key": key, "name": key.replace("_", " ").title(), "type": "text", **extra}


def make_definition(
    key: str = "article",
    fields: Optional[List[Dict[str, Any]]] = None,
    name: Optional[str] = None,
    **extra: Any,
) -> ContentTypeDefinition:
    """Build a validated definition, with a single title field by default."""
    return ContentTypeDefinition.parse(
        {
            "key": key,
            "name": name or key.replace("-", " ").title(),
            "fields": fields if fields is not None else [text_field("title")],
            **extra,
        }
    )


class FakePlatform:
    """In-memory platform with etags and scripted failures."""

    def __init__(self) -> None:
        self.types: Dict[str, ContentTypeDefinition] = {}
        self.etags: Dict[str, str] = {}
        self.failures: Dict[str, List[Exception]] = {}
        self.moved_on_write: Dict[str, ContentTypeDefinition] = {}
        self.calls: List[Tuple[str, str]] = []
        self._revision = 0

    def put(self, definition: ContentTypeDefinition) -> None:
        """Store a definition directly, as if edited on the platform."""
        self._revision += 1
        self.types[definition.key] = definition
        self.etags[definition.key] = f'"rev-{self._revision}"'

    def fail(self, key: str, *errors: Exception) -> None:
        """Raise these errors, in order, on the next writes to key."""
        self.failures.setdefault(key, []).extend(errors)

    def _maybe_fail(self, key: str) -> None:
        queue = self.failures.get(key)
        if queue:
            raise queue.pop(0)

    def _remote(self, key: str) -> RemoteContentType:
        return RemoteContentType(self.types[key], self.etags[key])

    def list_content_types(self) -> List[RemoteContentType]:
        return [self._remote(key) for key in sorted(self.types)]

    def get_content_type(self, key: str) -> Optional[RemoteContentType]:
        if key not in self.types:
            return None
        return self._remote(key)

    def create_content_type(self, definition: Any) -> RemoteContentType:
        parsed = ContentTypeDefinition.parse(definition)
        self.calls.append(("create", parsed.key))
        self._maybe_fail(parsed.key)
        if parsed.key in self.types:
            raise RemoteApiError(f"{parsed.key} already exists", 409)
        self.put(parsed)
        return self._remote(parsed.key)

    def update_content_type(
        self, key: str, definition: Any, etag: Optional[str] = None
    ) -> RemoteContentType:
        self.calls.append(("update", key))
        if key in self.moved_on_write:
            # Someone else saved first
            self.put(self.moved_on_write.pop(key))
        self._maybe_fail(key)
        if etag is not None and etag != self.etags.get(key):
            raise PreconditionFailedError(f"etag mismatch for {key}", 412)
        self.put(ContentTypeDefinition.parse(definition))
        return self._remote(key)

    def delete_content_type(self, key: str, etag: Optional[str] = None) -> None:
        self.calls.append(("delete", key))
        self._maybe_fail(key)
        if etag is not None and etag != self.etags.get(key):
            raise PreconditionFailedError(f"etag mismatch for {key}", 412)
        self.types.pop(key, None)
        self.etags.pop(key, None)
