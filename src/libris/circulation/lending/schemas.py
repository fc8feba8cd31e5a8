"""Pydantic schemas for lending actions and reports."""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class ActionResult(BaseModel):
    """Outcome of a mutating action.

    Validation problems come back as ``ok=False`` with the reason in
    ``message``; they are never raised.
    """

    ok: bool
    message: str = ""
    queued: bool = False
    record_id: Optional[str] = None

    @property
    def reason(self) -> str:
        return "" if self.ok else self.message

    @classmethod
    def accepted(
        cls,
        message: str,
        record_id: Optional[str] = None,
        queued: bool = False,
    ) -> "ActionResult":
        return cls(ok=True, message=message, record_id=record_id, queued=queued)

    @classmethod
    def rejected(cls, reason: str) -> "ActionResult":
        return cls(ok=False, message=reason)


class OverdueLoan(BaseModel):
    """An open loan past its due date."""

    loan_id: str
    title_id: str
    title: str
    member_id: str
    member_name: str
    due_date: date
    days_overdue: int = Field(..., ge=1)


class OverdueReservation(BaseModel):
    """An Active reservation whose pickup date has passed."""

    reservation_id: str
    title_id: str
    title: str
    member_id: str
    member_name: str
    pickup_date: date


class OpenLoan(BaseModel):
    """An open loan with display names resolved."""

    loan_id: str
    title_id: str
    title: str
    member_id: str
    member_name: str
    checked_out_on: date
    due_date: date
    renewal_count: int


class TitleUpdate(BaseModel):
    """Schema for updating a title."""

    title: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = None
    isbn: Optional[str] = None
    category: Optional[str] = None
    language: Optional[str] = None
    total_copies: Optional[int] = Field(None, ge=1)


class MemberUpdate(BaseModel):
    """Schema for updating a member."""

    name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    phone_number: Optional[str] = None
