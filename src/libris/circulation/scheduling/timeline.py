"""Project when copies of a title become free.

The simulator builds one free date per physical copy, lets the already
queued reservations claim copies in pickup order, and reads the earliest
remaining free date. All arithmetic is in whole days.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from ..db.schemas import LoanEventRecord, ReservationRecord, Settings, TitleRecord
from .availability import compute_availability
from .ledger import active_loans

DEFAULT_HORIZON_DAYS = 90

# Free date of a copy that is on the shelf right now
ON_SHELF = date.min


@dataclass(frozen=True)
class PickupLimit:
    """Latest pickup date allowed when editing a reservation."""

    max_date: date
    limited_by: Optional[ReservationRecord] = None

    @property
    def is_reservation_limit(self) -> bool:
        return self.limited_by is not None


@dataclass(frozen=True)
class DueDateProposal:
    """Due date offered for a new checkout."""

    due_date: date
    max_due_date: Optional[date] = None
    note: str = ""

    @property
    def shortened(self) -> bool:
        return bool(self.note)


def _sorted_by_pickup(reservations: Iterable[ReservationRecord]) -> list[ReservationRecord]:
    return sorted(reservations, key=lambda r: r.pickup_date)


def _active_for_title(
    reservations: Iterable[ReservationRecord], title_id: str
) -> list[ReservationRecord]:
    return _sorted_by_pickup(r for r in reservations if r.title_id == title_id and r.is_active)


def copy_free_dates(
    title: TitleRecord,
    events: Iterable[LoanEventRecord],
    settings: Settings,
) -> list[date]:
    """One free date per copy, ascending.

    Copies on loan are free on their due date, shelf copies immediately.
    """
    loans = active_loans(events, title_id=title.id)
    free = [loan.effective_due_date(settings.loan_period_days) for loan in loans]
    free.extend([ON_SHELF] * max(0, title.total_copies - len(loans)))
    return sorted(free)


def simulate_reservations(
    free_dates: list[date],
    reservations: Iterable[ReservationRecord],
    settings: Settings,
) -> list[date]:
    """Assign each reservation, in pickup order, to a copy free by its pickup.

    A reservation that finds no free copy leaves every copy untouched.

    Returns:
        Copy free dates after all assignments, ascending
    """
    period = timedelta(days=settings.loan_period_days)
    timeline = sorted(free_dates)

    for reservation in _sorted_by_pickup(reservations):
        pickup = reservation.pickup_date
        for i, free_on in enumerate(timeline):
            if free_on <= pickup:
                timeline[i] = pickup + period
                timeline.sort()
                break

    return timeline


def earliest_pickup_date(
    title: TitleRecord,
    events: Iterable[LoanEventRecord],
    reservations: Iterable[ReservationRecord],
    settings: Settings,
    today: Optional[date] = None,
) -> date:
    """Earliest pickup date a new reservation for the title can get.

    Args:
        title: Title to reserve
        events: Ledger
        reservations: All reservations (filtered to the title's Active ones)
        settings: Loan period source
        today: Reference day (defaults to date.today())

    Returns:
        Earliest projected free date, never before tomorrow
    """
    today = today or date.today()
    events = list(events)
    timeline = simulate_reservations(
        copy_free_dates(title, events, settings),
        _active_for_title(reservations, title.id),
        settings,
    )
    tomorrow = today + timedelta(days=1)
    if not timeline:
        return tomorrow
    return max(timeline[0], tomorrow)


def latest_pickup_date(
    reservation: ReservationRecord,
    title: TitleRecord,
    reservations: Iterable[ReservationRecord],
    settings: Settings,
    today: Optional[date] = None,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> PickupLimit:
    """Latest pickup date the reservation can be moved to.

    Once every copy has cycled through the reservations ahead of it, the
    reservation ``total_copies`` places later would be blocked, so the
    edited pickup must leave a full loan period before that one.
    """
    today = today or date.today()
    queue = _active_for_title(reservations, title.id)
    position = next((i for i, r in enumerate(queue) if r.id == reservation.id), None)

    if position is not None:
        blocking_index = position + title.total_copies
        if blocking_index < len(queue):
            blocking = queue[blocking_index]
            return PickupLimit(
                max_date=blocking.pickup_date - timedelta(days=settings.loan_period_days),
                limited_by=blocking,
            )

    return PickupLimit(max_date=today + timedelta(days=horizon_days))


def propose_checkout_due_date(
    title: TitleRecord,
    events: Iterable[LoanEventRecord],
    reservations: Iterable[ReservationRecord],
    settings: Settings,
    today: Optional[date] = None,
) -> DueDateProposal:
    """Due date for a checkout that does not starve upcoming reservations.

    With ``n`` copies on the shelf, the n-th upcoming reservation is the one
    this checkout would leave without a copy; the loan must end the day
    before its pickup.
    """
    today = today or date.today()
    events = list(events)
    reservations = list(reservations)
    standard = today + timedelta(days=settings.loan_period_days)

    on_shelf = compute_availability(title, events, reservations).on_shelf
    upcoming = [r for r in _active_for_title(reservations, title.id) if r.pickup_date > today]

    if on_shelf < 1 or len(upcoming) < on_shelf:
        return DueDateProposal(due_date=standard)

    critical = upcoming[on_shelf - 1]
    max_due = critical.pickup_date - timedelta(days=1)

    if standard > max_due:
        return DueDateProposal(
            due_date=max_due,
            max_due_date=max_due,
            note=(
                f"Due date shortened to {max_due.isoformat()} due to upcoming "
                f"reservation on {critical.pickup_date.isoformat()}."
            ),
        )

    return DueDateProposal(due_date=standard, max_due_date=max_due)
