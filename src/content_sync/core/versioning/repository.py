"""Local content-type storage with version tracking."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from ...database.models import ChangeSource
from ...database.service import DatabaseService
from ...models import ContentTypeDefinition
from .version_store import VersionStore, VersionWriteResult

logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    """A saved definition and the outcome of its history write."""

    definition: ContentTypeDefinition
    version: VersionWriteResult


class ContentTypeRepository:
    """Reads and writes local content types.

    Saving validates first, writes the content type, then records a version.
    A failed history write is reported on the result but never undoes the save.
    """

    def __init__(self, db_service: DatabaseService, version_store: VersionStore):
        """Initialize repository.

        Args:
            db_service: Database service for persistence
            version_store: Version store for history writes
        """
        self.db_service = db_service
        self.version_store = version_store

    def get(self, key: str) -> Optional[ContentTypeDefinition]:
        """Load a local definition by key."""
        content_type = self.db_service.get_content_type(key)
        if content_type is None:
            return None
        return ContentTypeDefinition.parse(content_type.to_definition_dict())

    def list_definitions(
        self, keys: Optional[Iterable[str]] = None
    ) -> List[ContentTypeDefinition]:
        """Load local definitions, optionally restricted to keys."""
        return [
            ContentTypeDefinition.parse(ct.to_definition_dict())
            for ct in self.db_service.list_content_types(keys)
        ]

    def save(
        self,
        definition: Union[ContentTypeDefinition, Dict[str, Any]],
        source: Union[ChangeSource, str] = ChangeSource.UI,
        author: Optional[str] = None,
        message: Optional[str] = None,
    ) -> SaveResult:
        """Validate, store and version a definition.

        Raises:
            InvalidDefinitionError: If the definition is malformed
        """
        parsed = ContentTypeDefinition.parse(definition)
        self.db_service.upsert_content_type(parsed.to_payload())

        version = self.version_store.record_change(
            parsed, source=source, author=author, message=message
        )
        if not version.success:
            logger.warning(
                "Saved %s without history: %s", parsed.key, version.error
            )
        return SaveResult(definition=parsed, version=version)

    def delete(self, key: str) -> bool:
        """Delete a local definition."""
        return self.db_service.delete_content_type(key)

    def import_definitions(
        self,
        definitions: Iterable[Union[ContentTypeDefinition, Dict[str, Any]]],
        source: Union[ChangeSource, str] = ChangeSource.UI,
        author: Optional[str] = None,
    ) -> List[SaveResult]:
        """Save many definitions, validating all of them first."""
        parsed = [ContentTypeDefinition.parse(d) for d in definitions]
        results = [
            self.save(d, source=source, author=author, message="Imported")
            for d in parsed
        ]
        logger.info("Imported %d content types", len(results))
        return results
