"""Database module for the local SQLite mirror and snapshot."""

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
from .schemas import (
    ActivityLogRecord,
    Entity,
    EventKind,
    LoanEventRecord,
    MemberRecord,
    ReservationRecord,
    ReservationStatus,
    Settings,
    TitleRecord,
    TitleStatus,
)
from .snapshot import CirculationSnapshot, EntityRecord
from .sqlite import Database, get_db, reset_db

__all__ = [
    # ORM models
    "ActivityLog",
    "Base",
    "LibrarySettings",
    "LoanEvent",
    "LocalStoreEntry",
    "Member",
    "Reservation",
    "Title",
    # Schemas
    "ActivityLogRecord",
    "Entity",
    "EventKind",
    "LoanEventRecord",
    "MemberRecord",
    "ReservationRecord",
    "ReservationStatus",
    "Settings",
    "TitleRecord",
    "TitleStatus",
    # Snapshot
    "CirculationSnapshot",
    "EntityRecord",
    # Database
    "Database",
    "get_db",
    "reset_db",
]
