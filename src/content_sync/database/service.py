"""Database service for content types, version history and sync bookkeeping."""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Type, TypeVar

from sqlalchemy import Engine, create_engine, delete, event, func, inspect, select
from sqlalchemy.orm import Session, sessionmaker

from alembic import command  # type: ignore[attr-defined]
from alembic.config import Config as AlembicConfig  # type: ignore[import-not-found]

from .models import (
    Base,
    Conflict,
    ContentItem,
    ContentType,
    ContentTypeVersion,
    Deployment,
    SyncHistory,
    SyncState,
    VersionParent,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

REQUIRED_TABLES = ("content_types", "content_type_versions", "sync_states")


def _enable_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT nests inside it."""

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


class DatabaseService:
    """Service for database operations and transaction management.

    Every write goes through :meth:`session_scope`. When a caller has opened
    :meth:`transaction`, all writes on the same thread join that session and
    are committed or rolled back together.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        """Initialize database service.

        Args:
            db_path: Path to SQLite database file.
                    If None, uses default ~/.content-sync/sync.db
        """
        if db_path is None:
            db_path = Path.home() / ".content-sync" / "sync.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        db_exists = self.db_path.exists()

        db_url = f"sqlite:///{self.db_path}"
        self.engine = create_engine(
            db_url, echo=False, connect_args={"check_same_thread": False}
        )
        _enable_savepoints(self.engine)

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )
        self._local = threading.local()

        logger.info("Database initialized at: %s", self.db_path)

        if not db_exists:
            logger.info("New database detected, initializing schema...")
            self.init_db()

    def init_db(self) -> None:
        """Create all tables and stamp Alembic at head."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database schema created successfully")
        self._stamp_migrations()

    def _alembic_config(self) -> Optional[AlembicConfig]:
        # alembic.ini and alembic/ live in the project root, next to src/
        project_dir = Path(__file__).parent.parent.parent.parent
        alembic_ini = project_dir / "alembic.ini"
        alembic_dir = project_dir / "alembic"

        if not alembic_ini.exists() or not alembic_dir.exists():
            logger.warning("Alembic not found at %s, skipping", project_dir)
            return None

        alembic_cfg = AlembicConfig(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(alembic_dir))
        alembic_cfg.set_main_option("sqlalchemy.url", f"sqlite:///{self.db_path}")
        return alembic_cfg

    def _stamp_migrations(self) -> None:
        """Stamp database as being at the latest migration version."""
        try:
            alembic_cfg = self._alembic_config()
            if alembic_cfg is None:
                return
            command.stamp(alembic_cfg, "head")
            logger.info("Database stamped with latest migration version")
        except Exception as e:
            logger.error("Failed to stamp migrations: %s", e)
            logger.warning("Database may need manual migration")

    def run_migrations(self) -> None:
        """Run Alembic migrations to upgrade database to latest version."""
        try:
            alembic_cfg = self._alembic_config()
            if alembic_cfg is None:
                return
            command.upgrade(alembic_cfg, "head")
            logger.info("Database migrations applied successfully")
        except Exception as e:
            logger.error("Failed to run migrations: %s", e)
            logger.warning("Continuing with base schema only")

    def get_session(self) -> Session:
        """Get a new database session.

        Returns:
            SQLAlchemy Session object

        Note:
            Caller is responsible for closing the session
        """
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a session for a unit of work.

        Joins the ambient transaction when one is open on this thread,
        otherwise commits on success and rolls back on error.
        """
        ambient: Optional[Session] = getattr(self._local, "session", None)
        if ambient is not None:
            yield ambient
            ambient.flush()
            return

        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Open an ambient transaction for multi-step writes.

        Nested calls join the outermost transaction.
        """
        if getattr(self._local, "session", None) is not None:
            yield self._local.session
            return

        session = self.SessionLocal()
        self._local.session = session
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            logger.debug("Transaction rolled back")
            raise
        finally:
            self._local.session = None
            session.close()

    @contextmanager
    def savepoint(self) -> Iterator[Session]:
        """Session scope whose failure leaves the ambient transaction usable.

        Inside :meth:`transaction` the work runs in a SAVEPOINT that is rolled
        back on error; outside it behaves like :meth:`session_scope`.
        """
        ambient: Optional[Session] = getattr(self._local, "session", None)
        if ambient is None:
            with self.session_scope() as session:
                yield session
            return

        with ambient.begin_nested():
            yield ambient

    def in_transaction(self) -> bool:
        """Whether an ambient transaction is open on this thread."""
        return getattr(self._local, "session", None) is not None

    def close(self) -> None:
        """Dispose of the engine and its connections."""
        self.engine.dispose()

    def is_initialized(self) -> bool:
        """Check that the engine works and the required tables exist."""
        try:
            inspector = inspect(self.engine)
            missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
            if missing:
                logger.debug("Required tables missing: %s", ", ".join(missing))
                return False

            with self.SessionLocal() as session:
                session.execute(select(1))
            return True
        except Exception as e:
            logger.debug("Database initialization check failed: %s", e)
            return False

    def _update(
        self, model: Type[ModelT], pk: Any, data: Dict[str, Any]
    ) -> ModelT:
        with self.session_scope() as session:
            obj = session.get(model, pk)
            if obj is None:
                raise ValueError(f"{model.__name__} not found: {pk}")
            for key, value in data.items():
                if hasattr(obj, key):
                    setattr(obj, key, value)
            session.flush()
            return obj

    # =========================================================================
    # Content Type Operations
    # =========================================================================

    def get_content_type(self, key: str) -> Optional[ContentType]:
        """Get a local content type by key."""
        with self.session_scope() as session:
            return session.scalar(select(ContentType).where(ContentType.key == key))

    def list_content_types(
        self, keys: Optional[Iterable[str]] = None
    ) -> List[ContentType]:
        """List local content types, optionally restricted to keys."""
        with self.session_scope() as session:
            stmt = select(ContentType).order_by(ContentType.key)
            if keys is not None:
                stmt = stmt.where(ContentType.key.in_(list(keys)))
            return list(session.scalars(stmt))

    def upsert_content_type(self, data: Dict[str, Any]) -> ContentType:
        """Create the content type or update it in place.

        Args:
            data: Definition dictionary with at least ``key`` and ``name``

        Returns:
            Stored ContentType
        """
        with self.session_scope() as session:
            content_type = session.scalar(
                select(ContentType).where(ContentType.key == data["key"])
            )
            if content_type is None:
                content_type = ContentType(
                    key=data["key"],
                    name=data["name"],
                    category=data.get("category", "component"),
                    description=data.get("description"),
                    fields=list(data.get("fields", [])),
                )
                session.add(content_type)
                logger.info("Created content type: %s", data["key"])
            else:
                content_type.name = data["name"]
                content_type.category = data.get("category", content_type.category)
                content_type.description = data.get("description")
                content_type.fields = list(data.get("fields", []))
                logger.debug("Updated content type: %s", data["key"])
            session.flush()
            return content_type

    def delete_content_type(self, key: str) -> bool:
        """Delete a local content type. Returns False if it did not exist."""
        with self.session_scope() as session:
            content_type = session.scalar(
                select(ContentType).where(ContentType.key == key)
            )
            if content_type is None:
                return False
            session.delete(content_type)
            logger.info("Deleted content type: %s", key)
            return True

    def create_content_item(
        self, type_key: str, title: str, data: Optional[Dict[str, Any]] = None
    ) -> ContentItem:
        """Create a content entry for a content type."""
        with self.session_scope() as session:
            item = ContentItem(type_key=type_key, title=title, data=data or {})
            session.add(item)
            session.flush()
            return item

    def count_content_items(self, type_key: str) -> int:
        """Count content entries that depend on a content type."""
        with self.session_scope() as session:
            stmt = (
                select(func.count())
                .select_from(ContentItem)
                .where(ContentItem.type_key == type_key)
            )
            return int(session.scalar(stmt) or 0)

    # =========================================================================
    # Version Operations
    # =========================================================================

    def get_version(self, version_hash: str) -> Optional[ContentTypeVersion]:
        """Get a version record by hash."""
        with self.session_scope() as session:
            stmt = select(ContentTypeVersion).where(
                ContentTypeVersion.version_hash == version_hash
            )
            return session.scalar(stmt)

    def get_latest_version(self, type_key: str) -> Optional[ContentTypeVersion]:
        """Get the most recently created version for a content type."""
        with self.session_scope() as session:
            stmt = (
                select(ContentTypeVersion)
                .where(ContentTypeVersion.type_key == type_key)
                .order_by(
                    ContentTypeVersion.created_at.desc(), ContentTypeVersion.id.desc()
                )
                .limit(1)
            )
            return session.scalar(stmt)

    def list_versions(
        self, type_key: str, limit: Optional[int] = None
    ) -> List[ContentTypeVersion]:
        """List versions for a content type, oldest first."""
        with self.session_scope() as session:
            stmt = (
                select(ContentTypeVersion)
                .where(ContentTypeVersion.type_key == type_key)
                .order_by(ContentTypeVersion.created_at, ContentTypeVersion.id)
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            return list(session.scalars(stmt))

    def create_version(
        self,
        version_hash: str,
        type_key: str,
        snapshot: Dict[str, Any],
        change_source: str,
        author: Optional[str] = None,
        message: Optional[str] = None,
        parent_hashes: Optional[List[str]] = None,
    ) -> ContentTypeVersion:
        """Insert a version record and its parent links.

        Args:
            version_hash: Content hash of the snapshot
            type_key: Content type key
            snapshot: Definition snapshot
            change_source: UI, AI or SYNC
            author: Optional author
            message: Optional message
            parent_hashes: Ordered parent hashes (0..N)

        Returns:
            Created ContentTypeVersion
        """
        with self.savepoint() as session:
            version = ContentTypeVersion(
                version_hash=version_hash,
                type_key=type_key,
                snapshot=snapshot,
                change_source=change_source,
                author=author,
                message=message,
            )
            for order, parent_hash in enumerate(parent_hashes or []):
                version.parent_links.append(
                    VersionParent(parent_hash=parent_hash, parent_order=order)
                )
            session.add(version)
            session.flush()
            logger.debug(
                "Created version %s for %s (%d parents)",
                version_hash[:12],
                type_key,
                len(parent_hashes or []),
            )
            return version

    def get_parent_hashes(self, version_hash: str) -> List[str]:
        """Return the parent hashes of a version in parent order."""
        with self.session_scope() as session:
            stmt = (
                select(VersionParent.parent_hash)
                .where(VersionParent.child_hash == version_hash)
                .order_by(VersionParent.parent_order)
            )
            return list(session.scalars(stmt))

    # =========================================================================
    # Sync State Operations
    # =========================================================================

    def get_sync_state(self, type_key: str) -> Optional[SyncState]:
        """Get the sync state for a content type."""
        with self.session_scope() as session:
            stmt = select(SyncState).where(SyncState.type_key == type_key)
            return session.scalar(stmt)

    def list_sync_states(
        self,
        sync_status: Optional[Iterable[str]] = None,
        conflict_status: Optional[str] = None,
    ) -> List[SyncState]:
        """List sync states, optionally filtered by status."""
        with self.session_scope() as session:
            stmt = select(SyncState).order_by(SyncState.type_key)
            if sync_status is not None:
                stmt = stmt.where(SyncState.sync_status.in_(list(sync_status)))
            if conflict_status is not None:
                stmt = stmt.where(SyncState.conflict_status == conflict_status)
            return list(session.scalars(stmt))

    def upsert_sync_state(self, type_key: str, data: Dict[str, Any]) -> SyncState:
        """Create or update the sync state for a content type."""
        with self.session_scope() as session:
            state = session.scalar(
                select(SyncState).where(SyncState.type_key == type_key)
            )
            if state is None:
                state = SyncState(type_key=type_key)
                session.add(state)
            for key, value in data.items():
                setattr(state, key, value)
            session.flush()
            return state

    def delete_sync_state(self, type_key: str) -> bool:
        """Delete the sync state for a content type."""
        with self.session_scope() as session:
            result = session.execute(
                delete(SyncState).where(SyncState.type_key == type_key)
            )
            return bool(result.rowcount)

    def delete_all_sync_states(self) -> int:
        """Delete every sync state. Returns the number of rows removed."""
        with self.session_scope() as session:
            result = session.execute(delete(SyncState))
            return int(result.rowcount or 0)

    # =========================================================================
    # Conflict Operations
    # =========================================================================

    def create_conflict(self, data: Dict[str, Any]) -> Conflict:
        """Create a conflict record."""
        with self.session_scope() as session:
            conflict = Conflict(**data)
            session.add(conflict)
            session.flush()
            return conflict

    def update_conflict(self, conflict_id: str, data: Dict[str, Any]) -> Conflict:
        """Update a conflict record."""
        return self._update(Conflict, conflict_id, data)

    def get_conflict(self, conflict_id: str) -> Optional[Conflict]:
        """Get a conflict by id."""
        with self.session_scope() as session:
            return session.get(Conflict, conflict_id)

    def list_conflicts(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        type_key: Optional[str] = None,
    ) -> List[Conflict]:
        """List conflicts, oldest first."""
        with self.session_scope() as session:
            stmt = select(Conflict).order_by(Conflict.created_at)
            if status is not None:
                stmt = stmt.where(Conflict.status == status)
            if priority is not None:
                stmt = stmt.where(Conflict.priority == priority)
            if type_key is not None:
                stmt = stmt.where(Conflict.type_key == type_key)
            return list(session.scalars(stmt))

    def delete_conflicts(
        self, status: str, older_than: Optional[datetime] = None
    ) -> int:
        """Delete conflicts in a status, optionally only those older than a date."""
        with self.session_scope() as session:
            stmt = delete(Conflict).where(Conflict.status == status)
            if older_than is not None:
                stmt = stmt.where(Conflict.resolved_at < older_than)
            result = session.execute(stmt)
            return int(result.rowcount or 0)

    # =========================================================================
    # Sync History Operations
    # =========================================================================

    def create_sync_history(self, data: Dict[str, Any]) -> SyncHistory:
        """Create a sync history entry."""
        with self.session_scope() as session:
            entry = SyncHistory(**data)
            session.add(entry)
            session.flush()
            return entry

    def update_sync_history(self, history_id: int, data: Dict[str, Any]) -> SyncHistory:
        """Update a sync history entry."""
        return self._update(SyncHistory, history_id, data)

    def get_sync_history_entry(self, history_id: int) -> Optional[SyncHistory]:
        """Get a sync history entry by id."""
        with self.session_scope() as session:
            return session.get(SyncHistory, history_id)

    def list_sync_history(
        self,
        type_key: Optional[str] = None,
        status: Optional[str] = None,
        deployment_id: Optional[str] = None,
        limit: Optional[int] = None,
        target_platform: Optional[str] = None,
    ) -> List[SyncHistory]:
        """List sync history entries, newest first."""
        with self.session_scope() as session:
            stmt = select(SyncHistory).order_by(
                SyncHistory.started_at.desc(), SyncHistory.id.desc()
            )
            if type_key is not None:
                stmt = stmt.where(SyncHistory.type_key == type_key)
            if status is not None:
                stmt = stmt.where(SyncHistory.sync_status == status)
            if deployment_id is not None:
                stmt = stmt.where(SyncHistory.deployment_id == deployment_id)
            if target_platform is not None:
                stmt = stmt.where(SyncHistory.target_platform == target_platform)
            if limit is not None:
                stmt = stmt.limit(limit)
            return list(session.scalars(stmt))

    # =========================================================================
    # Deployment Operations
    # =========================================================================

    def create_deployment(self, data: Optional[Dict[str, Any]] = None) -> Deployment:
        """Create a deployment record."""
        with self.session_scope() as session:
            deployment = Deployment(**(data or {}))
            session.add(deployment)
            session.flush()
            return deployment

    def update_deployment(self, deployment_id: str, data: Dict[str, Any]) -> Deployment:
        """Update a deployment record."""
        return self._update(Deployment, deployment_id, data)

    def get_deployment(self, deployment_id: str) -> Optional[Deployment]:
        """Get a deployment by id."""
        with self.session_scope() as session:
            return session.get(Deployment, deployment_id)

    def append_deployment_log(self, deployment_id: str, line: str) -> None:
        """Append a line to a deployment's log."""
        with self.session_scope() as session:
            deployment = session.get(Deployment, deployment_id)
            if deployment is None:
                raise ValueError(f"Deployment not found: {deployment_id}")
            # JSON columns are not mutation-tracked; assign a new list
            deployment.logs = [*(deployment.logs or []), line]

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_statistics(self) -> Dict[str, int]:
        """Row counts per table."""
        models: Dict[str, Type[Base]] = {
            "content_types": ContentType,
            "content_items": ContentItem,
            "versions": ContentTypeVersion,
            "sync_states": SyncState,
            "conflicts": Conflict,
            "sync_history": SyncHistory,
            "deployments": Deployment,
        }
        with self.session_scope() as session:
            return {
                name: int(session.scalar(select(func.count()).select_from(model)) or 0)
                for name, model in models.items()
            }
