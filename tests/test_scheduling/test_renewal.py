"""Tests for renewal capping."""

import pytest

from libris.circulation.db.schemas import ReservationStatus
from libris.circulation.scheduling.renewal import apply_renewal, plan_renewal


class TestPlanRenewal:
    """Tests for plan_renewal."""

    def test_no_conflict_adds_full_period(self, make_title, checkout, settings, day):
        """Without reservations the due date moves by one loan period."""
        loan = checkout("B1", "0001", on=0, due=15)
        decision = plan_renewal(loan, make_title("B1"), [loan], [], settings)

        assert decision.ok
        assert decision.current_due_date == day(15)
        assert decision.new_due_date == day(30)
        assert decision.renewal_count == 1
        assert not decision.capped

    def test_derived_due_date_renewal(self, make_title, checkout, settings, day):
        """Loans without an explicit due date renew from the derived one."""
        loan = checkout("B1", "0001", on=2)
        decision = plan_renewal(loan, make_title("B1"), [loan], [], settings)

        assert decision.current_due_date == day(17)
        assert decision.new_due_date == day(32)

    def test_capped_by_reservation(self, make_title, checkout, reservation, settings, day):
        """Day 0 checkout due Day 15, reservation on Day 20: capped to Day 19."""
        loan = checkout("A", "M1", on=0, due=15)
        held = reservation("A", "M2", pickup=20, reservation_id="R1")

        decision = plan_renewal(loan, make_title("A"), [loan], [held], settings)

        assert decision.ok
        assert decision.capped
        assert decision.new_due_date == day(19)
        assert decision.constraining == held
        assert "R1" in decision.message
        assert day(20).isoformat() in decision.message

    def test_capped_renewal_rejected_when_no_gain(
        self, make_title, checkout, reservation, settings, day
    ):
        """Renewing again once due on Day 19 cannot move the date."""
        loan = checkout("A", "M1", on=0, due=19, renewal_count=1)
        held = reservation("A", "M2", pickup=20, reservation_id="R1")

        decision = plan_renewal(loan, make_title("A"), [loan], [held], settings)

        assert not decision.ok
        assert decision.blocked
        assert decision.new_due_date is None
        assert decision.renewal_count == 1
        assert "Cannot renew" in decision.message

    def test_spare_shelf_copy_absorbs_reservation(
        self, make_title, checkout, reservation, settings, day
    ):
        """A reservation that a shelf copy can serve does not cap the loan."""
        loan = checkout("A", "M1", on=0, due=15)
        held = reservation("A", "M2", pickup=20)

        decision = plan_renewal(loan, make_title("A", copies=2), [loan], [held], settings)

        assert decision.new_due_date == day(30)
        assert not decision.capped

    def test_reservation_after_extension_ignored(
        self, make_title, checkout, reservation, settings, day
    ):
        """Only pickups before the standard renewed date conflict."""
        loan = checkout("A", "M1", on=0, due=15)
        held = reservation("A", "M2", pickup=30)

        decision = plan_renewal(loan, make_title("A"), [loan], [held], settings)

        assert decision.new_due_date == day(30)

    def test_earliest_conflict_caps(self, make_title, checkout, reservation, settings, day):
        """With several conflicts the earliest pickup decides."""
        loan = checkout("A", "M1", on=0, due=15)
        late = reservation("A", "M2", pickup=25, reservation_id="R-late")
        early = reservation("A", "M3", pickup=22, reservation_id="R-early")

        decision = plan_renewal(loan, make_title("A"), [loan], [late, early], settings)

        assert decision.new_due_date == day(21)
        assert decision.constraining.id == "R-early"

    def test_inactive_reservations_do_not_conflict(
        self, make_title, checkout, reservation, settings, day
    ):
        """Cancelled reservations are ignored."""
        loan = checkout("A", "M1", on=0, due=15)
        held = reservation("A", "M2", pickup=20, status=ReservationStatus.CANCELLED)

        decision = plan_renewal(loan, make_title("A"), [loan], [held], settings)

        assert decision.new_due_date == day(30)


class TestApplyRenewal:
    """Tests for apply_renewal."""

    def test_updates_due_date_and_count(self, make_title, checkout, settings, day):
        """The renewed loan carries the new due date and count."""
        loan = checkout("B1", "0001", on=0, due=15)
        decision = plan_renewal(loan, make_title("B1"), [loan], [], settings)
        renewed = apply_renewal(loan, decision)

        assert renewed.id == loan.id
        assert renewed.due_date == day(30)
        assert renewed.renewal_count == 1
        assert loan.due_date == day(15)

    def test_rejected_decision_raises(self, make_title, checkout, reservation, settings):
        """Applying a refusal is a programming error."""
        loan = checkout("A", "M1", on=0, due=19)
        held = reservation("A", "M2", pickup=20)
        decision = plan_renewal(loan, make_title("A"), [loan], [held], settings)

        with pytest.raises(ValueError):
            apply_renewal(loan, decision)
