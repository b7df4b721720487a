"""SQLAlchemy database models for content types, versions and sync state."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class ChangeSource(str, Enum):
    """Origin of a version record."""

    UI = "UI"
    AI = "AI"
    SYNC = "SYNC"


class SyncStatus(str, Enum):
    """Per content type sync status."""

    NEW = "new"
    PENDING = "pending"
    MODIFIED = "modified"
    SYNCING = "syncing"
    IN_SYNC = "in_sync"
    CONFLICT = "conflict"
    FAILED = "failed"


class ConflictStatus(str, Enum):
    """Conflict bookkeeping status, orthogonal to SyncStatus."""

    NONE = "none"
    DETECTED = "detected"
    RESOLVED = "resolved"


class ConflictType(str, Enum):
    """Classification of a detected conflict."""

    FIELD_TYPE_MISMATCH = "field_type_mismatch"
    DELETE_CONFLICT = "delete_conflict"
    FIELD_MODIFIED = "field_modified"
    FIELD_ADDED = "field_added"
    STRUCTURAL = "structural"


class ConflictSeverity(str, Enum):
    """How risky a conflict is to resolve automatically."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ConflictPriority(str, Enum):
    """Review queue priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def ordered(cls) -> List["ConflictPriority"]:
        """Return priorities from most to least urgent."""
        return [cls.CRITICAL, cls.HIGH, cls.MEDIUM, cls.LOW]


class ConflictReviewStatus(str, Enum):
    """Lifecycle of a queued conflict."""

    PENDING_REVIEW = "pending_review"
    RESOLVED = "resolved"


class SyncAttemptStatus(str, Enum):
    """Outcome of a single push/pull attempt."""

    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class SyncDirection(str, Enum):
    """Direction of a sync attempt."""

    PUSH = "push"
    PULL = "pull"
    DELETE = "delete"


class DeploymentStatus(str, Enum):
    """Terminal and intermediate deployment states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    CONFLICT = "conflict"


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class ContentType(Base):
    """A locally authored content type."""

    __tablename__ = "content_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(
        String(20), nullable=False, default="component"
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fields: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    items: Mapped[List["ContentItem"]] = relationship(
        "ContentItem", back_populates="content_type", cascade="all, delete-orphan"
    )

    def to_definition_dict(self) -> Dict[str, Any]:
        """Return the stored definition as a plain dict."""
        data: Dict[str, Any] = {
            "key": self.key,
            "name": self.name,
            "category": self.category,
            "fields": list(self.fields or []),
        }
        if self.description:
            data["description"] = self.description
        return data

    def __repr__(self) -> str:
        """String representation."""
        return f"<ContentType(key='{self.key}', fields={len(self.fields or [])})>"


class ContentItem(Base):
    """A content entry belonging to a content type."""

    __tablename__ = "content_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type_key: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("content_types.key", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )

    content_type: Mapped["ContentType"] = relationship(
        "ContentType", back_populates="items"
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<ContentItem(id={self.id}, type_key='{self.type_key}')>"


class ContentTypeVersion(Base):
    """Append-only version record of a content type snapshot."""

    __tablename__ = "content_type_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    version_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    type_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    snapshot: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    change_source: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ChangeSource.UI.value
    )
    author: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )

    parent_links: Mapped[List["VersionParent"]] = relationship(
        "VersionParent",
        foreign_keys="VersionParent.child_hash",
        order_by="VersionParent.parent_order",
        back_populates="child",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (Index("ix_versions_type_created", "type_key", "created_at"),)

    @property
    def parent_hashes(self) -> List[str]:
        """Parent hashes in parent order."""
        return [link.parent_hash for link in self.parent_links]

    @property
    def is_merge(self) -> bool:
        """Whether this record resolves a conflict."""
        return len(self.parent_links) >= 2

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ContentTypeVersion(type_key='{self.type_key}', "
            f"hash='{self.version_hash[:12]}', parents={len(self.parent_links)})>"
        )


class VersionParent(Base):
    """Parent link between two version records (0..N per child)."""

    __tablename__ = "version_parents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    child_hash: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("content_type_versions.version_hash", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent_hash: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("content_type_versions.version_hash"),
        nullable=False,
        index=True,
    )
    parent_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    child: Mapped["ContentTypeVersion"] = relationship(
        "ContentTypeVersion", foreign_keys=[child_hash], back_populates="parent_links"
    )

    __table_args__ = (
        UniqueConstraint("child_hash", "parent_hash", name="uq_version_parent"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<VersionParent(child='{self.child_hash[:12]}', "
            f"parent='{self.parent_hash[:12]}', order={self.parent_order})>"
        )


class SyncState(Base):
    """Durable sync state, one row per content type key."""

    __tablename__ = "sync_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    local_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    remote_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    last_synced_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    sync_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SyncStatus.NEW.value, index=True
    )
    conflict_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ConflictStatus.NONE.value, index=True
    )
    sync_progress: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON, nullable=True
    )
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_conflict_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<SyncState(type_key='{self.type_key}', status='{self.sync_status}', "
            f"conflict='{self.conflict_status}')>"
        )


class Conflict(Base):
    """A conflict awaiting or having received resolution."""

    __tablename__ = "conflicts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    type_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    conflict_type: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ConflictReviewStatus.PENDING_REVIEW.value,
        index=True,
    )
    local_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    remote_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ancestor_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    source_changes: Mapped[Dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    target_changes: Mapped[Dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    conflicting_fields: Mapped[List[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    dependent_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    resolution: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    resolved_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Conflict(id='{self.id[:8]}', type_key='{self.type_key}', "
            f"type='{self.conflict_type}', priority='{self.priority}')>"
        )


class SyncHistory(Base):
    """A single push or pull attempt against the remote platform."""

    __tablename__ = "sync_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deployment_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("deployments.id"), nullable=True, index=True
    )
    type_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    version_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    target_platform: Mapped[str] = mapped_column(String(100), nullable=False)
    sync_direction: Mapped[str] = mapped_column(
        String(10), nullable=False, default=SyncDirection.PUSH.value
    )
    sync_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SyncAttemptStatus.IN_PROGRESS.value,
        index=True,
    )
    pushed_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    response_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON, nullable=True
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<SyncHistory(id={self.id}, type_key='{self.type_key}', "
            f"status='{self.sync_status}', retries={self.retry_count})>"
        )


class Deployment(Base):
    """A deployment run: its status, live progress and log lines."""

    __tablename__ = "deployments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DeploymentStatus.PENDING.value, index=True
    )
    type_keys: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    progress: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    logs: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Deployment(id='{self.id[:8]}', status='{self.status}')>"
