"""SQLite database operations.

Handles database connection, session management, and the record-level
operations the sync engine needs.
"""

import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..utils import format_timestamp, utcnow
from .models import MODEL_TYPES, Base, Location, SyncableMixin
from .schemas import SYNC_ORDER, EntityKind, LocationRecord, SyncRecord


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     FREECOST_DB_PATH env var or default location.
        """
        if db_path is None:
            db_path = os.environ.get(
                "FREECOST_DB_PATH",
                str(Path.home() / ".freecost" / "freecost.db"),
            )

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager.

        Each sync round uses its own session so it never shares a unit of
        work with long-lived sessions elsewhere in the application.
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Syncable Record Operations
    # ========================================================================

    def get_record(
        self, kind: EntityKind, record_id: str, session: Optional[Session] = None
    ) -> Optional[SyncableMixin]:
        """Get a record of the given kind by ID."""

        def _get(s: Session) -> Optional[SyncableMixin]:
            return s.get(MODEL_TYPES[kind], record_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                row = _get(s)
                if row:
                    s.expunge(row)
                return row

    def list_records(
        self,
        kind: EntityKind,
        location_id: str,
        modified_after: Optional[datetime] = None,
        session: Optional[Session] = None,
    ) -> list[SyncableMixin]:
        """List a location's records, optionally only those modified after a time.

        Args:
            kind: Entity kind to list
            location_id: Tenant/location to scope to
            modified_after: Exclusive lower bound on modified_at (None = all)
        """
        model = MODEL_TYPES[kind]

        def _list(s: Session) -> list[SyncableMixin]:
            stmt = select(model).where(model.location_id == location_id)
            if modified_after is not None:
                stmt = stmt.where(model.modified_at > format_timestamp(modified_after))
            stmt = stmt.order_by(model.modified_at, model.id)
            return list(s.execute(stmt).scalars().all())

        if session:
            return _list(session)
        else:
            with self.get_session() as s:
                rows = _list(s)
                for row in rows:
                    s.expunge(row)
                return rows

    def count_records(
        self, kind: EntityKind, location_id: str, session: Optional[Session] = None
    ) -> int:
        """Count a location's records of one kind."""
        model = MODEL_TYPES[kind]

        def _count(s: Session) -> int:
            stmt = (
                select(func.count())
                .select_from(model)
                .where(model.location_id == location_id)
            )
            return s.execute(stmt).scalar_one()

        if session:
            return _count(session)
        else:
            with self.get_session() as s:
                return _count(s)

    def is_location_empty(self, location_id: str, session: Optional[Session] = None) -> bool:
        """True if the location has no records of any syncable kind."""
        return all(
            self.count_records(kind, location_id, session=session) == 0
            for kind in SYNC_ORDER
        )

    def insert_record(
        self, record: SyncRecord, session: Optional[Session] = None
    ) -> SyncableMixin:
        """Insert a record, keeping its identifier and timestamps."""

        def _insert(s: Session) -> SyncableMixin:
            row = MODEL_TYPES[record.kind].from_record(record)
            s.add(row)
            s.flush()
            return row

        if session:
            return _insert(session)
        else:
            with self.get_session() as s:
                row = _insert(s)
                s.expunge(row)
                return row

    def overwrite_record(
        self, record: SyncRecord, session: Optional[Session] = None
    ) -> Optional[SyncableMixin]:
        """Overwrite an existing row's fields with a record's fields.

        The local identifier is kept and modified_at is taken from the record.
        """

        def _overwrite(s: Session) -> Optional[SyncableMixin]:
            row = s.get(MODEL_TYPES[record.kind], record.id)
            if not row:
                return None
            row.apply_record(record)
            s.flush()
            return row

        if session:
            return _overwrite(session)
        else:
            with self.get_session() as s:
                row = _overwrite(s)
                if row:
                    s.expunge(row)
                return row

    def save_record(
        self, record: SyncRecord, session: Optional[Session] = None
    ) -> SyncableMixin:
        """Insert or overwrite a record (used by the CRUD layer and fixtures)."""

        def _save(s: Session) -> SyncableMixin:
            row = s.get(MODEL_TYPES[record.kind], record.id)
            if row is None:
                row = MODEL_TYPES[record.kind].from_record(record)
                s.add(row)
            else:
                row.apply_record(record)
            s.flush()
            return row

        if session:
            return _save(session)
        else:
            with self.get_session() as s:
                row = _save(s)
                s.expunge(row)
                return row

    def update_field(
        self,
        kind: EntityKind,
        record_id: str,
        field: str,
        value: Optional[str],
        session: Optional[Session] = None,
        modified_at: Optional[datetime] = None,
    ) -> Optional[SyncableMixin]:
        """Set one field on a record and stamp it as locally modified.

        The stamp is ``modified_at`` when given, otherwise the current time.
        """

        def _update(s: Session) -> Optional[SyncableMixin]:
            row = s.get(MODEL_TYPES[kind], record_id)
            if not row:
                return None
            setattr(row, field, value)
            row.modified_at = format_timestamp(modified_at or utcnow())
            s.flush()
            return row

        if session:
            return _update(session)
        else:
            with self.get_session() as s:
                row = _update(s)
                if row:
                    s.expunge(row)
                return row

    # ========================================================================
    # Location Operations
    # ========================================================================

    def upsert_location(
        self, record: LocationRecord, session: Optional[Session] = None
    ) -> tuple[Location, bool]:
        """Insert or update a location. Returns (row, created)."""

        def _upsert(s: Session) -> tuple[Location, bool]:
            row = s.get(Location, record.id)
            created = row is None
            if created:
                row = Location.from_record(record)
                s.add(row)
            else:
                row.apply_record(record)
            s.flush()
            return row, created

        if session:
            return _upsert(session)
        else:
            with self.get_session() as s:
                row, created = _upsert(s)
                s.expunge(row)
                return row, created

    def get_all_locations(self, session: Optional[Session] = None) -> list[Location]:
        """Get all locations ordered by name."""

        def _get(s: Session) -> list[Location]:
            return list(s.execute(select(Location).order_by(Location.name)).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                rows = _get(s)
                for row in rows:
                    s.expunge(row)
                return rows


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
