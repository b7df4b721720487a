"""Canonicalization and hashing of content-type definitions."""

import hashlib
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Union

from ...models import ContentTypeDefinition

logger = logging.getLogger(__name__)

DefinitionLike = Union[ContentTypeDefinition, Dict[str, Any]]


class ContentTypeHasher:
    """Produces stable content hashes for content-type definitions.

    Two definitions hash equal exactly when they have the same key, name and
    the same set of fields (compared on key, name, type, required, unique,
    indexed and settings). Field order and editor metadata are ignored.
    """

    @staticmethod
    def canonicalize(definition: DefinitionLike) -> Dict[str, Any]:
        """Reduce a definition to its canonical form.

        Args:
            definition: Definition instance or raw mapping

        Returns:
            Canonical dictionary with fields sorted by key

        Raises:
            InvalidDefinitionError: If the definition is malformed
        """
        parsed = ContentTypeDefinition.parse(definition)
        fields = sorted(
            (f.semantic_dict() for f in parsed.fields), key=lambda f: f["key"]
        )
        return {"key": parsed.key, "name": parsed.name, "fields": fields}

    @staticmethod
    def serialize(canonical: Dict[str, Any]) -> bytes:
        """Serialize a canonical dict deterministically."""
        return json.dumps(
            canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")

    def hash(self, definition: DefinitionLike) -> str:
        """Compute the SHA-256 hex digest of a definition's canonical form."""
        canonical = self.canonicalize(definition)
        return hashlib.sha256(self.serialize(canonical)).hexdigest()

    def hash_many(
        self, definitions: Iterable[ContentTypeDefinition], max_workers: int = 4
    ) -> Dict[str, str]:
        """Hash independent definitions concurrently.

        Args:
            definitions: Definitions to hash
            max_workers: Thread pool size

        Returns:
            Mapping of content type key to hash
        """
        items: List[ContentTypeDefinition] = list(definitions)
        if not items:
            return {}
        if max_workers <= 1 or len(items) == 1:
            return {d.key: self.hash(d) for d in items}

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            digests = list(executor.map(self.hash, items))
        logger.debug("Hashed %d content types", len(items))
        return {d.key: digest for d, digest in zip(items, digests)}
