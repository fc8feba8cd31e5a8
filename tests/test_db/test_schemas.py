"""Tests for circulation record schemas."""

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from libris.circulation.db.schemas import (
    EventKind,
    LoanEventRecord,
    ReservationStatus,
    Settings,
    TitleRecord,
)
from libris.circulation.db.snapshot import CirculationSnapshot


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Fifteen-day loans with two renewals."""
        settings = Settings()
        assert settings.loan_period_days == 15
        assert settings.max_renewals == 2

    @pytest.mark.parametrize("field,value", [("loan_period_days", 0), ("max_renewals", -1)])
    def test_bounds(self, field, value):
        """Out-of-range values are rejected."""
        with pytest.raises(ValidationError):
            Settings(**{field: value})


class TestTitleRecord:
    """Tests for TitleRecord."""

    def test_needs_a_copy(self):
        """A title has at least one copy."""
        with pytest.raises(ValidationError):
            TitleRecord(id="B1", title="Emma", total_copies=0)


class TestLoanEventRecord:
    """Tests for LoanEventRecord."""

    def test_effective_due_date_explicit(self):
        """An explicit due date wins."""
        event = LoanEventRecord(
            id="T1",
            title_id="B1",
            member_id="0001",
            kind=EventKind.CHECK_OUT,
            timestamp=datetime(2025, 3, 1, 23, 30, tzinfo=timezone.utc),
            due_date=date(2025, 3, 10),
        )
        assert event.effective_due_date(15) == date(2025, 3, 10)

    def test_effective_due_date_derived(self):
        """Otherwise the checkout day plus the loan period."""
        event = LoanEventRecord(
            id="T1",
            title_id="B1",
            member_id="0001",
            kind=EventKind.CHECK_OUT,
            timestamp=datetime(2025, 3, 1, 23, 30, tzinfo=timezone.utc),
        )
        assert event.effective_due_date(15) == date(2025, 3, 16)
        assert event.is_checkout


class TestReservationStatus:
    """Tests for ReservationStatus."""

    def test_cancellation_variants(self):
        """Three statuses count as cancellations."""
        assert ReservationStatus.CANCELLED.is_cancellation
        assert ReservationStatus.CANCELLED_OVERDUE.is_cancellation
        assert ReservationStatus.CANCELLED_BY_MEMBER.is_cancellation
        assert not ReservationStatus.FULFILLED.is_cancellation
        assert not ReservationStatus.ACTIVE.is_cancellation


class TestCirculationSnapshot:
    """Tests for snapshot lookups."""

    def test_lookups(self, snapshot, reservation, checkout):
        """Lookups by id return None when missing."""
        held = reservation("B1", "0001", pickup=5, reservation_id="R1")
        out = checkout("B2", "0002", event_id="T1")
        snapshot.reservations.append(held)
        snapshot.events.append(out)

        assert snapshot.title("B1").total_copies == 1
        assert snapshot.member("missing") is None
        assert snapshot.reservation("R1") == held
        assert snapshot.event("T1") == out
        assert snapshot.events_for_title("B2") == [out]

    def test_active_reservations(self, snapshot, reservation):
        """Only Active reservations, optionally per title."""
        snapshot.reservations.extend(
            [
                reservation("B1", "0001", pickup=5),
                reservation("B2", "0002", pickup=6),
                reservation("B2", "0003", pickup=7, status=ReservationStatus.EXPIRED),
            ]
        )

        assert len(snapshot.active_reservations()) == 2
        assert len(snapshot.active_reservations("B2")) == 1
