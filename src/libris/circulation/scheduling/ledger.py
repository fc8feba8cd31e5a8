"""Reconstruct open loans from the CheckOut/CheckIn event log.

Events are grouped per (member, title) pair and walked in timestamp order.
A CheckIn closes the oldest still-open CheckOut of its pair, so the k-th
CheckIn always closes the k-th oldest open loan. A CheckIn with nothing open
is ignored.
"""

from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Iterable, Optional

from ..db.schemas import LoanEventRecord


@dataclass(frozen=True)
class LedgerCounts:
    """Raw CheckOut/CheckIn totals for one title."""

    checkouts: int
    checkins: int

    @property
    def net(self) -> int:
        """Unclamped checkouts minus checkins."""
        return self.checkouts - self.checkins

    @property
    def checked_out(self) -> int:
        """Copies currently out, never negative."""
        return max(0, self.net)


def active_loans(
    events: Iterable[LoanEventRecord],
    member_id: Optional[str] = None,
    title_id: Optional[str] = None,
) -> list[LoanEventRecord]:
    """Currently open CheckOut events.

    Args:
        events: Full ledger
        member_id: Restrict to one member
        title_id: Restrict to one title

    Returns:
        Open CheckOut events ordered by checkout time
    """
    groups: dict[tuple[str, str], list[LoanEventRecord]] = defaultdict(list)
    for event in events:
        if member_id is not None and event.member_id != member_id:
            continue
        if title_id is not None and event.title_id != title_id:
            continue
        groups[(event.member_id, event.title_id)].append(event)

    still_open: list[LoanEventRecord] = []
    for pair_events in groups.values():
        open_checkouts: deque[LoanEventRecord] = deque()
        # sorted() is stable, ties keep log order
        for event in sorted(pair_events, key=lambda e: e.timestamp):
            if event.is_checkout:
                open_checkouts.append(event)
            elif open_checkouts:
                open_checkouts.popleft()
        still_open.extend(open_checkouts)

    return sorted(still_open, key=lambda e: e.timestamp)


def find_active_loan(
    events: Iterable[LoanEventRecord],
    member_id: str,
    title_id: str,
) -> Optional[LoanEventRecord]:
    """Oldest open loan for a (member, title) pair, the one a CheckIn closes."""
    loans = active_loans(events, member_id=member_id, title_id=title_id)
    return loans[0] if loans else None


def is_loan_open(events: Iterable[LoanEventRecord], loan_id: str) -> bool:
    """Whether the CheckOut event with this id is still open."""
    return any(loan.id == loan_id for loan in active_loans(events))


def ledger_counts(events: Iterable[LoanEventRecord], title_id: str) -> LedgerCounts:
    """Count CheckOut and CheckIn events for a title."""
    checkouts = checkins = 0
    for event in events:
        if event.title_id != title_id:
            continue
        if event.is_checkout:
            checkouts += 1
        else:
            checkins += 1
    return LedgerCounts(checkouts=checkouts, checkins=checkins)


def member_has_open_loan(events: Iterable[LoanEventRecord], member_id: str) -> bool:
    """Whether the member still holds any copy."""
    return bool(active_loans(events, member_id=member_id))
