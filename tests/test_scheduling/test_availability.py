"""Tests for per-title shelf availability."""

import pytest

from libris.circulation.db.schemas import ReservationStatus, TitleStatus
from libris.circulation.scheduling.availability import (
    availability_for,
    catalog_availability,
    compute_availability,
    shelf_status,
)


class TestShelfStatus:
    """Tests for shelf_status."""

    @pytest.mark.parametrize(
        "on_shelf,reserved,expected",
        [
            (0, 0, TitleStatus.UNAVAILABLE),
            (-1, 0, TitleStatus.UNAVAILABLE),
            (0, 3, TitleStatus.UNAVAILABLE),
            (1, 1, TitleStatus.RESERVED),
            (1, 2, TitleStatus.RESERVED),
            (2, 1, TitleStatus.ON_SHELF),
            (1, 0, TitleStatus.ON_SHELF),
        ],
    )
    def test_status_rules(self, on_shelf, reserved, expected):
        """Unavailable at zero shelf copies, Reserved when the queue covers them."""
        assert shelf_status(on_shelf, reserved) == expected


class TestComputeAvailability:
    """Tests for compute_availability."""

    def test_all_on_shelf(self, make_title):
        """A title with no events has every copy on the shelf."""
        result = compute_availability(make_title("B1", copies=3), [], [])

        assert result.checked_out == 0
        assert result.on_shelf == 3
        assert result.status == TitleStatus.ON_SHELF
        assert result.can_check_out

    def test_single_copy_with_reservation_is_reserved(self, make_title, reservation):
        """One copy, nothing out, one Active reservation reads as Reserved."""
        title = make_title("B1", copies=1)
        result = compute_availability(title, [], [reservation("B1", "0002", pickup=5)])

        assert result.on_shelf == 1
        assert result.active_reservations == 1
        assert result.status == TitleStatus.RESERVED

    def test_checked_out_copy(self, make_title, checkout):
        """Every copy out makes the title Unavailable."""
        title = make_title("B1", copies=1)
        result = compute_availability(title, [checkout("B1", "0001")], [])

        assert result.on_shelf == 0
        assert result.status == TitleStatus.UNAVAILABLE
        assert not result.can_check_out

    def test_excess_checkins_clamp_to_zero_out(self, make_title, checkin):
        """Checked-out count never goes negative."""
        title = make_title("B1", copies=2)
        result = compute_availability(title, [checkin("B1", "0001")], [])

        assert result.checked_out == 0
        assert result.on_shelf == 2

    def test_only_active_reservations_count(self, make_title, reservation):
        """Fulfilled and cancelled reservations are ignored."""
        title = make_title("B1", copies=2)
        reservations = [
            reservation("B1", "0001", pickup=5),
            reservation("B1", "0002", pickup=6, status=ReservationStatus.FULFILLED),
            reservation("B1", "0003", pickup=7, status=ReservationStatus.CANCELLED),
            reservation("B2", "0003", pickup=7),
        ]
        result = compute_availability(title, [], reservations)

        assert result.active_reservations == 1
        assert result.status == TitleStatus.ON_SHELF

    def test_on_shelf_is_total_minus_net(self, make_title, checkout, checkin):
        """On-shelf copies are total minus net checked out."""
        title = make_title("B2", copies=3)
        events = [
            checkout("B2", "0001", on=0),
            checkout("B2", "0002", on=1),
            checkin("B2", "0001", on=2),
        ]
        result = compute_availability(title, events, [])

        assert result.on_shelf == 2


class TestSnapshotAvailability:
    """Tests for snapshot-level helpers."""

    def test_availability_for(self, snapshot, checkout):
        """Looks the title up in the snapshot."""
        snapshot.events.append(checkout("B2", "0001"))
        result = availability_for(snapshot, "B2")

        assert result.title_id == "B2"
        assert result.on_shelf == 1

    def test_availability_for_unknown_title(self, snapshot):
        """Unknown ids raise KeyError."""
        with pytest.raises(KeyError):
            availability_for(snapshot, "missing")

    def test_catalog_availability(self, snapshot):
        """One entry per title in catalog order."""
        results = catalog_availability(snapshot)
        assert [r.title_id for r in results] == ["B1", "B2"]
