"""Loan renewal capped by queued reservations.

A renewal normally adds one loan period to the current due date. When more
Active reservations fall inside that extension than there are copies on the
shelf, the loan is cut short to the day before the earliest such pickup. If
that leaves no extension at all, the renewal is refused.

``max_renewals`` is not checked here; see LendingManager.renew.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from ..db.schemas import LoanEventRecord, ReservationRecord, Settings, TitleRecord
from .ledger import ledger_counts


@dataclass(frozen=True)
class RenewalDecision:
    """Outcome of a renewal request."""

    ok: bool
    current_due_date: date
    new_due_date: Optional[date]
    renewal_count: int
    message: str
    constraining: Optional[ReservationRecord] = None

    @property
    def capped(self) -> bool:
        return self.ok and self.constraining is not None

    @property
    def blocked(self) -> bool:
        return not self.ok


def plan_renewal(
    loan: LoanEventRecord,
    title: TitleRecord,
    events: Iterable[LoanEventRecord],
    reservations: Iterable[ReservationRecord],
    settings: Settings,
) -> RenewalDecision:
    """Decide the new due date for a loan.

    Args:
        loan: Open CheckOut event being renewed
        title: Title of the loan
        events: Ledger
        reservations: All reservations
        settings: Loan period source

    Returns:
        RenewalDecision; when accepted, ``renewal_count`` is already incremented
    """
    period = timedelta(days=settings.loan_period_days)
    current_due = loan.effective_due_date(settings.loan_period_days)
    standard_due = current_due + period

    conflicting = sorted(
        (
            r
            for r in reservations
            if r.title_id == title.id and r.is_active and r.pickup_date < standard_due
        ),
        key=lambda r: r.pickup_date,
    )
    current_on_shelf = title.total_copies - ledger_counts(events, title.id).net

    if len(conflicting) > current_on_shelf:
        earliest = conflicting[0]
        capped_due = earliest.pickup_date - timedelta(days=1)

        if capped_due <= current_due:
            return RenewalDecision(
                ok=False,
                current_due_date=current_due,
                new_due_date=None,
                renewal_count=loan.renewal_count,
                message=(
                    f"Cannot renew: reservation {earliest.id} by member "
                    f"{earliest.member_id} starts on {earliest.pickup_date.isoformat()}."
                ),
                constraining=earliest,
            )

        return RenewalDecision(
            ok=True,
            current_due_date=current_due,
            new_due_date=capped_due,
            renewal_count=loan.renewal_count + 1,
            message=(
                f"Renewed only until {capped_due.isoformat()} due to reservation "
                f"{earliest.id} by member {earliest.member_id} on "
                f"{earliest.pickup_date.isoformat()}."
            ),
            constraining=earliest,
        )

    return RenewalDecision(
        ok=True,
        current_due_date=current_due,
        new_due_date=standard_due,
        renewal_count=loan.renewal_count + 1,
        message=f"Loan renewed until {standard_due.isoformat()}.",
    )


def apply_renewal(loan: LoanEventRecord, decision: RenewalDecision) -> LoanEventRecord:
    """The loan event as it reads after an accepted renewal."""
    if not decision.ok:
        raise ValueError("Cannot apply a rejected renewal")
    return loan.model_copy(
        update={
            "due_date": decision.new_due_date,
            "renewal_count": decision.renewal_count,
        }
    )
