"""Scheduling engine.

Pure functions over a circulation snapshot:
- Ledger reconstruction (open loans from the event log)
- Shelf availability per title
- Reservation timeline simulation
- Per-member reservation rules
- Renewal capping
"""

from .availability import (
    TitleAvailability,
    availability_for,
    catalog_availability,
    compute_availability,
    shelf_status,
)
from .conflicts import (
    MIN_RESERVATION_GAP_DAYS,
    ValidationResult,
    days_apart,
    validate_reservation,
)
from .ledger import (
    LedgerCounts,
    active_loans,
    find_active_loan,
    is_loan_open,
    ledger_counts,
    member_has_open_loan,
)
from .renewal import RenewalDecision, apply_renewal, plan_renewal
from .timeline import (
    DEFAULT_HORIZON_DAYS,
    DueDateProposal,
    PickupLimit,
    copy_free_dates,
    earliest_pickup_date,
    latest_pickup_date,
    propose_checkout_due_date,
    simulate_reservations,
)

__all__ = [
    # Ledger
    "LedgerCounts",
    "active_loans",
    "find_active_loan",
    "is_loan_open",
    "ledger_counts",
    "member_has_open_loan",
    # Availability
    "TitleAvailability",
    "availability_for",
    "catalog_availability",
    "compute_availability",
    "shelf_status",
    # Timeline
    "DEFAULT_HORIZON_DAYS",
    "DueDateProposal",
    "PickupLimit",
    "copy_free_dates",
    "earliest_pickup_date",
    "latest_pickup_date",
    "propose_checkout_due_date",
    "simulate_reservations",
    # Conflicts
    "MIN_RESERVATION_GAP_DAYS",
    "ValidationResult",
    "days_apart",
    "validate_reservation",
    # Renewal
    "RenewalDecision",
    "apply_renewal",
    "plan_renewal",
]
