"""SQLAlchemy ORM models for the local SQLite mirror.

Tables:
- titles, members, loan_events, reservations, library_settings: last snapshot
  pulled from the remote store, so reads keep working offline
- activity_log: audit trail of accepted actions
- local_store: key/value blobs (the offline queue lives under one key)
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .schemas import (
    ActivityLogRecord,
    EventKind,
    LoanEventRecord,
    MemberRecord,
    ReservationRecord,
    ReservationStatus,
    Settings,
    TitleRecord,
)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Title(Base):
    """Mirror of a catalogued title."""

    __tablename__ = "titles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(500), default="")
    isbn: Mapped[Optional[str]] = mapped_column(String(20))
    category: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    language: Mapped[Optional[str]] = mapped_column(String(50))
    total_copies: Mapped[int] = mapped_column(Integer, default=1)

    def __repr__(self) -> str:
        return f"<Title(id={self.id}, title='{self.title}', copies={self.total_copies})>"

    def to_record(self) -> TitleRecord:
        return TitleRecord(
            id=self.id,
            title=self.title,
            author=self.author or "",
            isbn=self.isbn,
            category=self.category,
            language=self.language,
            total_copies=self.total_copies,
        )

    @classmethod
    def from_record(cls, record: TitleRecord) -> "Title":
        return cls(**record.model_dump())


class Member(Base):
    """Mirror of a library member."""

    __tablename__ = "members"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(200))
    phone_number: Mapped[Optional[str]] = mapped_column(String(50))
    join_date: Mapped[Optional[str]] = mapped_column(String(10))  # ISO date

    def __repr__(self) -> str:
        return f"<Member(id={self.id}, name='{self.name}')>"

    def to_record(self) -> MemberRecord:
        return MemberRecord(
            id=self.id,
            name=self.name,
            email=self.email,
            phone_number=self.phone_number,
            join_date=date.fromisoformat(self.join_date) if self.join_date else None,
        )

    @classmethod
    def from_record(cls, record: MemberRecord) -> "Member":
        return cls(
            id=record.id,
            name=record.name,
            email=record.email,
            phone_number=record.phone_number,
            join_date=record.join_date.isoformat() if record.join_date else None,
        )


class LoanEvent(Base):
    """Mirror of one ledger event."""

    __tablename__ = "loan_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    member_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    timestamp: Mapped[str] = mapped_column(String(32), nullable=False)  # ISO datetime
    due_date: Mapped[Optional[str]] = mapped_column(String(10))  # ISO date
    renewal_count: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<LoanEvent(id={self.id}, {self.kind} {self.title_id} by {self.member_id})>"

    def to_record(self) -> LoanEventRecord:
        return LoanEventRecord(
            id=self.id,
            title_id=self.title_id,
            member_id=self.member_id,
            kind=EventKind(self.kind),
            timestamp=_parse_timestamp(self.timestamp),
            due_date=date.fromisoformat(self.due_date) if self.due_date else None,
            renewal_count=self.renewal_count or 0,
        )

    @classmethod
    def from_record(cls, record: LoanEventRecord) -> "LoanEvent":
        return cls(
            id=record.id,
            title_id=record.title_id,
            member_id=record.member_id,
            kind=record.kind.value,
            timestamp=record.timestamp.isoformat(),
            due_date=record.due_date.isoformat() if record.due_date else None,
            renewal_count=record.renewal_count,
        )


class Reservation(Base):
    """Mirror of a reservation."""

    __tablename__ = "reservations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    member_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    created_at: Mapped[str] = mapped_column(String(32), nullable=False)
    pickup_date: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), default=ReservationStatus.ACTIVE.value, index=True
    )

    def __repr__(self) -> str:
        return f"<Reservation(id={self.id}, title={self.title_id}, status={self.status})>"

    def to_record(self) -> ReservationRecord:
        return ReservationRecord(
            id=self.id,
            title_id=self.title_id,
            member_id=self.member_id,
            created_at=_parse_timestamp(self.created_at),
            pickup_date=date.fromisoformat(self.pickup_date[:10]),
            status=ReservationStatus(self.status),
        )

    @classmethod
    def from_record(cls, record: ReservationRecord) -> "Reservation":
        return cls(
            id=record.id,
            title_id=record.title_id,
            member_id=record.member_id,
            created_at=record.created_at.isoformat(),
            pickup_date=record.pickup_date.isoformat(),
            status=record.status.value,
        )


class LibrarySettings(Base):
    """Single-row settings mirror."""

    __tablename__ = "library_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    loan_period_days: Mapped[int] = mapped_column(Integer, default=15)
    max_renewals: Mapped[int] = mapped_column(Integer, default=2)

    def to_settings(self) -> Settings:
        return Settings(
            loan_period_days=self.loan_period_days,
            max_renewals=self.max_renewals,
        )


class ActivityLog(Base):
    """Audit trail entry."""

    __tablename__ = "activity_log"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    timestamp: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[str] = mapped_column(Text, default="")

    def to_record(self) -> ActivityLogRecord:
        return ActivityLogRecord(
            id=self.id,
            timestamp=_parse_timestamp(self.timestamp),
            action=self.action,
            details=self.details or "",
        )


class LocalStoreEntry(Base):
    """Key/value blob that must survive restarts."""

    __tablename__ = "local_store"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text)  # JSON
    updated_at: Mapped[str] = mapped_column(
        String(32),
        default=lambda: datetime.now(timezone.utc).isoformat(),
        onupdate=lambda: datetime.now(timezone.utc).isoformat(),
    )


def _parse_timestamp(ts: str) -> datetime:
    """Parse ISO timestamp string to an aware datetime."""
    dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
