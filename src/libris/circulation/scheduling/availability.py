"""Per-title shelf availability.

Recomputed from the snapshot on every read, never cached across mutations.
"""

from dataclasses import dataclass
from typing import Iterable

from ..db.schemas import LoanEventRecord, ReservationRecord, TitleRecord, TitleStatus
from ..db.snapshot import CirculationSnapshot
from .ledger import ledger_counts


@dataclass(frozen=True)
class TitleAvailability:
    """Derived availability of a title."""

    title_id: str
    total_copies: int
    checked_out: int
    on_shelf: int
    active_reservations: int
    status: TitleStatus

    @property
    def can_check_out(self) -> bool:
        return self.status != TitleStatus.UNAVAILABLE


def shelf_status(on_shelf: int, active_reservations: int) -> TitleStatus:
    """Status from on-shelf copies and queued reservations."""
    if on_shelf <= 0:
        return TitleStatus.UNAVAILABLE
    if on_shelf <= active_reservations:
        return TitleStatus.RESERVED
    return TitleStatus.ON_SHELF


def compute_availability(
    title: TitleRecord,
    events: Iterable[LoanEventRecord],
    reservations: Iterable[ReservationRecord],
) -> TitleAvailability:
    """Availability of one title.

    Args:
        title: Title with its copy count
        events: Ledger (any titles, filtered here)
        reservations: Reservations (any titles and statuses, filtered here)

    Returns:
        TitleAvailability with on-shelf count and status
    """
    checked_out = ledger_counts(events, title.id).checked_out
    on_shelf = title.total_copies - checked_out
    reserved = sum(1 for r in reservations if r.title_id == title.id and r.is_active)

    return TitleAvailability(
        title_id=title.id,
        total_copies=title.total_copies,
        checked_out=checked_out,
        on_shelf=on_shelf,
        active_reservations=reserved,
        status=shelf_status(on_shelf, reserved),
    )


def availability_for(snapshot: CirculationSnapshot, title_id: str) -> TitleAvailability:
    """Availability of a title in a snapshot. Raises KeyError for unknown ids."""
    title = snapshot.titles[title_id]
    return compute_availability(title, snapshot.events, snapshot.reservations)


def catalog_availability(snapshot: CirculationSnapshot) -> list[TitleAvailability]:
    """Availability of every title, in catalog order."""
    return [
        compute_availability(title, snapshot.events, snapshot.reservations)
        for title in snapshot.titles.values()
    ]
