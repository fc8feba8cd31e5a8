"""SQLite database operations.

Handles database connection, session management, the local mirror of the
remote store, the activity log and the key/value local store.
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional
from uuid import uuid4

from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import (
    ActivityLog,
    Base,
    LibrarySettings,
    LoanEvent,
    LocalStoreEntry,
    Member,
    Reservation,
    Title,
)
from .schemas import ActivityLogRecord, Entity, Settings, utcnow
from .snapshot import CirculationSnapshot, EntityRecord

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".libris" / "libris.db"

# Mirror tables keyed by remote entity
MIRROR_MODELS = {
    Entity.TITLES: Title,
    Entity.MEMBERS: Member,
    Entity.LOAN_EVENTS: LoanEvent,
    Entity.RESERVATIONS: Reservation,
    Entity.ACTIVITY_LOG: ActivityLog,
}


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     LIBRIS_DB_PATH env var or default location.
        """
        if db_path is None:
            db_path = os.environ.get("LIBRIS_DB_PATH", str(DEFAULT_DB_PATH))

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if self._is_memory:
            # All sessions must share the same in-memory database
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
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
    # Snapshot Mirror
    # ========================================================================

    def load_snapshot(self) -> CirculationSnapshot:
        """Build a snapshot from the local mirror."""
        with self.get_session() as s:
            titles = [t.to_record() for t in s.execute(select(Title)).scalars()]
            members = [m.to_record() for m in s.execute(select(Member)).scalars()]
            events = [
                e.to_record()
                for e in s.execute(select(LoanEvent).order_by(LoanEvent.timestamp)).scalars()
            ]
            reservations = [
                r.to_record()
                for r in s.execute(
                    select(Reservation).order_by(Reservation.created_at)
                ).scalars()
            ]
            settings = self._get_settings(s)

        return CirculationSnapshot.build(
            titles=titles,
            members=members,
            events=events,
            reservations=reservations,
            settings=settings,
        )

    def replace_snapshot(self, snapshot: CirculationSnapshot) -> None:
        """Overwrite the mirror tables with a freshly pulled snapshot."""
        with self.get_session() as s:
            for model in (Title, Member, LoanEvent, Reservation):
                s.execute(delete(model))
            s.add_all(Title.from_record(t) for t in snapshot.titles.values())
            s.add_all(Member.from_record(m) for m in snapshot.members.values())
            s.add_all(LoanEvent.from_record(e) for e in snapshot.events)
            s.add_all(Reservation.from_record(r) for r in snapshot.reservations)
            self._put_settings(s, snapshot.settings)

        logger.debug(
            "Mirror replaced: %d titles, %d members, %d events, %d reservations",
            len(snapshot.titles),
            len(snapshot.members),
            len(snapshot.events),
            len(snapshot.reservations),
        )

    def upsert_record(self, entity: Entity, record: EntityRecord) -> None:
        """Insert or replace one mirrored record."""
        with self.get_session() as s:
            if entity == Entity.SETTINGS:
                self._put_settings(s, record)
                return
            model = MIRROR_MODELS[entity]
            if entity == Entity.ACTIVITY_LOG:
                row = ActivityLog(
                    id=record.id,
                    timestamp=record.timestamp.isoformat(),
                    action=record.action,
                    details=record.details,
                )
            else:
                row = model.from_record(record)
            s.merge(row)

    def delete_record(self, entity: Entity, record_id: str) -> bool:
        """Delete one mirrored record. Returns True if a row was removed."""
        model = MIRROR_MODELS.get(entity)
        if model is None:
            return False
        with self.get_session() as s:
            row = s.get(model, record_id)
            if row is None:
                return False
            s.delete(row)
            return True

    # ========================================================================
    # Settings
    # ========================================================================

    def get_settings(self) -> Settings:
        """Get the mirrored settings, defaults if never stored."""
        with self.get_session() as s:
            return self._get_settings(s)

    def save_settings(self, settings: Settings) -> Settings:
        """Store settings in the mirror."""
        with self.get_session() as s:
            self._put_settings(s, settings)
        return settings

    def _get_settings(self, s: Session) -> Settings:
        row = s.get(LibrarySettings, 1)
        return row.to_settings() if row else Settings()

    def _put_settings(self, s: Session, settings: Settings) -> None:
        row = s.get(LibrarySettings, 1)
        if row is None:
            row = LibrarySettings(id=1)
            s.add(row)
        row.loan_period_days = settings.loan_period_days
        row.max_renewals = settings.max_renewals

    # ========================================================================
    # Activity Log
    # ========================================================================

    def add_activity(self, action: str, details: str = "") -> ActivityLogRecord:
        """Append an entry to the activity log."""
        record = ActivityLogRecord(
            id=f"log-{uuid4().hex[:12]}",
            timestamp=utcnow(),
            action=action,
            details=details,
        )
        self.upsert_record(Entity.ACTIVITY_LOG, record)
        return record

    def list_activity(self, limit: int = 100) -> list[ActivityLogRecord]:
        """Most recent activity first."""
        with self.get_session() as s:
            stmt = select(ActivityLog).order_by(ActivityLog.timestamp.desc()).limit(limit)
            return [row.to_record() for row in s.execute(stmt).scalars()]

    # ========================================================================
    # Local Store
    # ========================================================================

    def get_local_value(self, key: str) -> Optional[str]:
        """Raw stored text for a key, None if absent."""
        with self.get_session() as s:
            entry = s.get(LocalStoreEntry, key)
            return entry.value if entry else None

    def set_local_value(self, key: str, value: str) -> None:
        """Store raw text under a key, replacing any previous value."""
        with self.get_session() as s:
            entry = s.get(LocalStoreEntry, key)
            if entry is None:
                entry = LocalStoreEntry(key=key)
                s.add(entry)
            entry.value = value

    def delete_local_value(self, key: str) -> None:
        """Remove a key from the local store."""
        with self.get_session() as s:
            entry = s.get(LocalStoreEntry, key)
            if entry is not None:
                s.delete(entry)


# Global database instance, only used by the CLI
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
