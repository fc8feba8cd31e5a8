"""Per-member reservation rules.

A member may hold one Active reservation per title, and the pickup dates of
their Active reservations must be at least ``min_gap_days`` whole days apart.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping, Optional

from ..db.schemas import ReservationRecord, TitleRecord

MIN_RESERVATION_GAP_DAYS = 15


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a reservation check."""

    ok: bool
    reason: str = ""
    conflicting: Optional[ReservationRecord] = None

    @classmethod
    def accepted(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def rejected(
        cls, reason: str, conflicting: Optional[ReservationRecord] = None
    ) -> "ValidationResult":
        return cls(ok=False, reason=reason, conflicting=conflicting)


def days_apart(a: date, b: date) -> int:
    """Absolute distance in whole days."""
    return abs((a - b).days)


def _title_label(title_id: str, titles: Optional[Mapping[str, TitleRecord]]) -> str:
    if titles and title_id in titles:
        return titles[title_id].title
    return title_id


def validate_reservation(
    member_id: str,
    title_id: str,
    pickup_date: date,
    reservations: Iterable[ReservationRecord],
    exclude_id: Optional[str] = None,
    min_gap_days: int = MIN_RESERVATION_GAP_DAYS,
    titles: Optional[Mapping[str, TitleRecord]] = None,
) -> ValidationResult:
    """Check a new or edited reservation against the member's others.

    Args:
        member_id: Member placing the reservation
        title_id: Title being reserved
        pickup_date: Candidate pickup date
        reservations: Current reservations (only Active ones count)
        exclude_id: Reservation being edited, ignored by both rules
        min_gap_days: Minimum whole days between two pickups
        titles: Optional catalog used to name titles in reasons

    Returns:
        ValidationResult, with the offending reservation when rejected
    """
    others = [
        r
        for r in reservations
        if r.is_active and r.member_id == member_id and r.id != exclude_id
    ]

    for other in others:
        if other.title_id == title_id:
            label = _title_label(title_id, titles)
            return ValidationResult.rejected(
                f"Member already has an active reservation for '{label}'. "
                "Cannot reserve the same title multiple times.",
                conflicting=other,
            )

    for other in sorted(others, key=lambda r: r.pickup_date):
        if days_apart(pickup_date, other.pickup_date) < min_gap_days:
            label = _title_label(other.title_id, titles)
            return ValidationResult.rejected(
                f"Member has a reservation for '{label}' on "
                f"{other.pickup_date.isoformat()}. Pickup dates must be at least "
                f"{min_gap_days} days apart.",
                conflicting=other,
            )

    return ValidationResult.accepted()
