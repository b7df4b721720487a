"""Append-only version history for content types.

Each record is identified by the content hash of its snapshot and links to
0..N parents through ``version_parents``. One parent is a linear edit, two
parents mark a conflict resolution, none marks a root.
"""

import logging
from collections import deque
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Sequence, Set, Union

from ...database.models import ChangeSource, ContentTypeVersion
from ...database.service import DatabaseService
from ...models import ContentTypeDefinition
from .hasher import ContentTypeHasher

logger = logging.getLogger(__name__)


@dataclass
class VersionWriteResult:
    """Outcome of a best-effort history write."""

    success: bool
    version_hash: Optional[str] = None
    skipped: bool = False
    error: Optional[str] = None


@dataclass
class VersionNode:
    """A version record inside an in-memory tree."""

    version_hash: str
    parent_hashes: List[str]
    change_source: str
    author: Optional[str]
    message: Optional[str]
    created_at: datetime
    children: List[str] = dataclass_field(default_factory=list)

    @property
    def is_merge(self) -> bool:
        """Whether this node has two or more parents."""
        return len(self.parent_hashes) >= 2


@dataclass
class VersionTree:
    """Parent/child edges of every version of one content type."""

    type_key: str
    nodes: Dict[str, VersionNode] = dataclass_field(default_factory=dict)
    roots: List[str] = dataclass_field(default_factory=list)

    @property
    def heads(self) -> List[str]:
        """Nodes without children."""
        return [h for h, node in self.nodes.items() if not node.children]

    def __len__(self) -> int:
        """Number of nodes."""
        return len(self.nodes)


class VersionStore:
    """Records and queries the version DAG."""

    def __init__(
        self,
        db_service: DatabaseService,
        hasher: Optional[ContentTypeHasher] = None,
    ):
        """Initialize version store.

        Args:
            db_service: Database service for persistence
            hasher: Hasher used to identify snapshots
        """
        self.db_service = db_service
        self.hasher = hasher or ContentTypeHasher()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_change(
        self,
        definition: Union[ContentTypeDefinition, Dict[str, Any]],
        source: Union[ChangeSource, str] = ChangeSource.UI,
        author: Optional[str] = None,
        message: Optional[str] = None,
        parent_hashes: Optional[Sequence[str]] = None,
    ) -> VersionWriteResult:
        """Append a version for an accepted change.

        The current head becomes the parent unless ``parent_hashes`` is given.
        Content that matches the head, or that was already recorded, writes
        nothing. Errors are logged and returned, never raised.

        Args:
            definition: The accepted definition
            source: UI, AI or SYNC
            author: Optional author
            message: Optional message
            parent_hashes: Explicit ordered parents (merges)

        Returns:
            VersionWriteResult describing what happened
        """
        type_key = None
        try:
            parsed = ContentTypeDefinition.parse(definition)
            type_key = parsed.key
            version_hash = self.hasher.hash(parsed)

            head = self.db_service.get_latest_version(type_key)
            if head is not None and head.version_hash == version_hash:
                logger.debug(
                    "No change for %s, head already %s", type_key, version_hash[:12]
                )
                return VersionWriteResult(True, version_hash, skipped=True)

            if self.db_service.get_version(version_hash) is not None:
                logger.debug(
                    "Version %s of %s already recorded", version_hash[:12], type_key
                )
                return VersionWriteResult(True, version_hash, skipped=True)

            if parent_hashes is None:
                parents = [head.version_hash] if head is not None else []
            else:
                parents = self._known_parents(parent_hashes, version_hash)

            self.db_service.create_version(
                version_hash=version_hash,
                type_key=type_key,
                snapshot=parsed.to_payload(),
                change_source=ChangeSource(source).value,
                author=author,
                message=message,
                parent_hashes=parents,
            )
            logger.info(
                "Recorded %s version %s of %s",
                ChangeSource(source).value,
                version_hash[:12],
                type_key,
            )
            return VersionWriteResult(True, version_hash)
        except Exception as e:
            logger.exception("Failed to record version history for %s", type_key)
            return VersionWriteResult(False, error=str(e))

    def record_merge(
        self,
        definition: Union[ContentTypeDefinition, Dict[str, Any]],
        parent_hashes: Sequence[str],
        author: Optional[str] = None,
        message: Optional[str] = None,
    ) -> VersionWriteResult:
        """Record a conflict resolution with its parents (local first)."""
        return self.record_change(
            definition,
            source=ChangeSource.SYNC,
            author=author,
            message=message or "Merge conflict resolution",
            parent_hashes=parent_hashes,
        )

    def _known_parents(
        self, parent_hashes: Sequence[str], child_hash: str
    ) -> List[str]:
        parents: List[str] = []
        for parent_hash in parent_hashes:
            if not parent_hash or parent_hash == child_hash or parent_hash in parents:
                continue
            if self.db_service.get_version(parent_hash) is None:
                logger.debug("Skipping unknown parent %s", parent_hash[:12])
                continue
            parents.append(parent_hash)
        return parents

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_head(self, type_key: str) -> Optional[ContentTypeVersion]:
        """Latest version of a content type."""
        return self.db_service.get_latest_version(type_key)

    def get_version(self, version_hash: str) -> Optional[ContentTypeVersion]:
        """Version record by hash."""
        return self.db_service.get_version(version_hash)

    def get_snapshot(
        self, version_hash: Optional[str]
    ) -> Optional[ContentTypeDefinition]:
        """Definition stored for a hash, if recorded."""
        if not version_hash:
            return None
        version = self.db_service.get_version(version_hash)
        if version is None:
            return None
        return ContentTypeDefinition.parse(version.snapshot)

    def get_history(
        self, type_key: str, limit: Optional[int] = None
    ) -> List[ContentTypeVersion]:
        """Versions of a content type, newest first."""
        versions = list(reversed(self.db_service.list_versions(type_key)))
        return versions[:limit] if limit is not None else versions

    # ------------------------------------------------------------------
    # Tree queries
    # ------------------------------------------------------------------

    def build_tree(self, type_key: str) -> VersionTree:
        """Rebuild the DAG of a content type in memory."""
        tree = VersionTree(type_key=type_key)
        for version in self.db_service.list_versions(type_key):
            tree.nodes[version.version_hash] = VersionNode(
                version_hash=version.version_hash,
                parent_hashes=version.parent_hashes,
                change_source=version.change_source,
                author=version.author,
                message=version.message,
                created_at=version.created_at,
            )

        for version_hash, node in tree.nodes.items():
            known_parents = [p for p in node.parent_hashes if p in tree.nodes]
            if not known_parents:
                tree.roots.append(version_hash)
            for parent_hash in known_parents:
                tree.nodes[parent_hash].children.append(version_hash)
        return tree

    def find_common_ancestor(self, hash_a: str, hash_b: str) -> Optional[str]:
        """Find the nearest shared ancestor of two versions.

        Walks parent links breadth-first from both sides, one level at a
        time, until one side reaches a hash the other has already seen.
        """
        if hash_a == hash_b:
            return hash_a if self.db_service.get_version(hash_a) else None

        seen_a: Set[str] = {hash_a}
        seen_b: Set[str] = {hash_b}
        queue_a: Deque[str] = deque([hash_a])
        queue_b: Deque[str] = deque([hash_b])

        while queue_a or queue_b:
            sides = ((queue_a, seen_a, seen_b), (queue_b, seen_b, seen_a))
            for queue, seen, other in sides:
                for _ in range(len(queue)):
                    current = queue.popleft()
                    for parent_hash in self.db_service.get_parent_hashes(current):
                        if parent_hash in other:
                            return parent_hash
                        if parent_hash not in seen:
                            seen.add(parent_hash)
                            queue.append(parent_hash)
        return None

    def get_lineage(self, version_hash: str) -> List[ContentTypeVersion]:
        """Follow first parents from a version back to its root."""
        lineage: List[ContentTypeVersion] = []
        visited: Set[str] = set()
        current: Optional[str] = version_hash
        while current and current not in visited:
            visited.add(current)
            version = self.db_service.get_version(current)
            if version is None:
                break
            lineage.append(version)
            parents = version.parent_hashes
            current = parents[0] if parents else None
        return lineage

    def visualize_tree(self, type_key: str) -> str:
        """Render the DAG as indented text, roots first."""
        tree = self.build_tree(type_key)
        if not tree.nodes:
            return f"{type_key}: no versions"

        lines = [f"{type_key} ({len(tree)} versions)"]
        printed: Set[str] = set()

        def render(version_hash: str, depth: int) -> None:
            node = tree.nodes[version_hash]
            marker = "M" if node.is_merge else "*"
            indent = "  " * depth
            if version_hash in printed:
                lines.append(f"{indent}{marker} {version_hash[:12]} (see above)")
                return
            printed.add(version_hash)
            label = node.message or ""
            entry = f"{indent}{marker} {version_hash[:12]} [{node.change_source}]"
            if label:
                entry = f"{entry} {label}"
            lines.append(entry)
            for child in node.children:
                render(child, depth + 1)

        for root in tree.roots:
            render(root, 0)
        return "\n".join(lines)
