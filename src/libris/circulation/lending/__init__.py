"""Circulation desk actions.

Provides functionality for:
- Checkout, check-in and renewal of loans
- Reservation booking, pickup edits, cancellation and fulfilment
- Catalog and member maintenance
- Overdue reports
"""

from .manager import LendingManager
from .schemas import (
    ActionResult,
    MemberUpdate,
    OpenLoan,
    OverdueLoan,
    OverdueReservation,
    TitleUpdate,
)

__all__ = [
    "LendingManager",
    "ActionResult",
    "MemberUpdate",
    "OpenLoan",
    "OverdueLoan",
    "OverdueReservation",
    "TitleUpdate",
]
