"""Pydantic schemas for circulation records.

These are the shapes that cross every boundary: the remote store, the local
mirror, the offline queue and the scheduling functions.
"""

from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Entity(str, Enum):
    """Remote store tables."""

    TITLES = "titles"
    MEMBERS = "members"
    LOAN_EVENTS = "loan_events"
    RESERVATIONS = "reservations"
    SETTINGS = "settings"
    ACTIVITY_LOG = "activity_log"


class EventKind(str, Enum):
    """Kind of ledger event."""

    CHECK_OUT = "CheckOut"
    CHECK_IN = "CheckIn"


class ReservationStatus(str, Enum):
    """Lifecycle of a reservation."""

    ACTIVE = "Active"
    FULFILLED = "Fulfilled"
    CANCELLED = "Cancelled"
    CANCELLED_OVERDUE = "Cancelled (Overdue)"
    CANCELLED_BY_MEMBER = "Cancelled (Member)"
    EXPIRED = "Expired"

    @property
    def is_cancellation(self) -> bool:
        return self in CANCELLATION_STATUSES


CANCELLATION_STATUSES = frozenset(
    {
        ReservationStatus.CANCELLED,
        ReservationStatus.CANCELLED_OVERDUE,
        ReservationStatus.CANCELLED_BY_MEMBER,
    }
)


class TitleStatus(str, Enum):
    """Derived shelf status of a title."""

    ON_SHELF = "On Shelf"
    RESERVED = "Reserved"
    UNAVAILABLE = "Unavailable"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ============================================================================
# Settings
# ============================================================================


class Settings(BaseModel):
    """Global circulation settings."""

    loan_period_days: int = Field(default=15, ge=1, description="Standard loan length")
    max_renewals: int = Field(default=2, ge=0, description="Renewals allowed per loan")


# ============================================================================
# Records
# ============================================================================


class TitleRecord(BaseModel):
    """A catalogued title with a fixed number of physical copies."""

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    author: str = ""
    isbn: Optional[str] = None
    category: Optional[str] = None
    language: Optional[str] = None
    total_copies: int = Field(default=1, ge=1)


class MemberRecord(BaseModel):
    """A library member."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone_number: Optional[str] = None
    join_date: Optional[date] = None


class LoanEventRecord(BaseModel):
    """One CheckOut or CheckIn entry of the append-only ledger.

    Only ``due_date`` and ``renewal_count`` ever change after creation, and
    only through a renewal.
    """

    id: str = Field(..., min_length=1)
    title_id: str
    member_id: str
    kind: EventKind
    timestamp: datetime
    due_date: Optional[date] = None
    renewal_count: int = Field(default=0, ge=0)

    @property
    def is_checkout(self) -> bool:
        return self.kind == EventKind.CHECK_OUT

    def effective_due_date(self, loan_period_days: int) -> date:
        """Explicit due date, else checkout day plus the loan period."""
        if self.due_date is not None:
            return self.due_date
        return self.timestamp.date() + timedelta(days=loan_period_days)


class ReservationRecord(BaseModel):
    """A queued claim on a future copy of a title."""

    id: str = Field(..., min_length=1)
    title_id: str
    member_id: str
    created_at: datetime
    pickup_date: date
    status: ReservationStatus = ReservationStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == ReservationStatus.ACTIVE


class ActivityLogRecord(BaseModel):
    """Audit trail entry for an accepted action."""

    id: str
    timestamp: datetime
    action: str
    details: str = ""