"""Tests for the CLI interface.

No remote store is configured here, so every action is staged in the
offline queue and applied to the local mirror.
"""

from datetime import date, timedelta

import pytest
from typer.testing import CliRunner

from libris.circulation.cli import app
from libris.circulation.db.sqlite import get_db


@pytest.fixture(autouse=True)
def setup_test_db(cli_env):
    """Use a fresh database for each test."""
    yield


@pytest.fixture
def runner(cli_runner) -> CliRunner:
    return cli_runner


@pytest.fixture
def stocked(runner: CliRunner):
    """Catalog with one title and two members."""
    runner.invoke(app, ["add-title", "B1", "Emma", "--copies", "1"])
    runner.invoke(app, ["add-member", "Ann", "--id", "0001"])
    runner.invoke(app, ["add-member", "Ben", "--id", "0002"])


def text(result) -> str:
    """CLI output with line wrapping undone."""
    return " ".join(result.stdout.split())


def iso(days_from_today: int) -> str:
    return (date.today() + timedelta(days=days_from_today)).isoformat()


class TestCLIBasics:
    """Tests for basic CLI functionality."""

    def test_help(self, runner: CliRunner):
        """Help lists the app description."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Circulation desk" in text(result)

    def test_version(self, runner: CliRunner):
        """Version command prints the package version."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "0.1.0" in text(result)


class TestCatalogCommands:
    """Tests for catalog commands."""

    def test_add_title_is_queued_offline(self, runner: CliRunner):
        """Without a remote store the insert is staged."""
        result = runner.invoke(app, ["add-title", "B1", "Emma", "--copies", "2"])

        assert result.exit_code == 0
        assert "saved offline" in text(result)
        assert "B1" in get_db().load_snapshot().titles

    def test_titles_table(self, runner: CliRunner, stocked):
        """The titles table shows availability."""
        result = runner.invoke(app, ["titles"])

        assert result.exit_code == 0
        assert "Emma" in text(result)
        assert "On Shelf" in text(result)

    def test_titles_invalid_status(self, runner: CliRunner):
        """Unknown status filters are an error."""
        result = runner.invoke(app, ["titles", "--status", "Lost"])
        assert result.exit_code == 1

    def test_add_member_next_id(self, runner: CliRunner):
        """Members get the next free id."""
        runner.invoke(app, ["add-member", "Ann"])
        runner.invoke(app, ["add-member", "Ben"])

        assert set(get_db().load_snapshot().members) == {"0000", "0001"}

    def test_remove_title(self, runner: CliRunner, stocked):
        """Titles without loans can be removed."""
        result = runner.invoke(app, ["remove-title", "B1"])

        assert result.exit_code == 0
        assert get_db().load_snapshot().titles == {}

    def test_edit_title_copies(self, runner: CliRunner, stocked):
        """Adding a copy frees a shelf slot for a second borrower."""
        runner.invoke(app, ["checkout", "B1", "0001"])

        result = runner.invoke(app, ["edit-title", "B1", "--copies", "2"])
        assert result.exit_code == 0
        assert get_db().load_snapshot().titles["B1"].total_copies == 2
        assert runner.invoke(app, ["checkout", "B1", "0002"]).exit_code == 0

    def test_edit_title_below_checked_out(self, runner: CliRunner, stocked):
        """Copy counts cannot drop under the loans in flight."""
        runner.invoke(app, ["edit-title", "B1", "--copies", "2"])
        runner.invoke(app, ["checkout", "B1", "0001"])
        runner.invoke(app, ["checkout", "B1", "0002"])

        result = runner.invoke(app, ["edit-title", "B1", "--copies", "1"])
        assert result.exit_code == 1
        assert "checked out" in text(result)

    def test_edit_member(self, runner: CliRunner, stocked):
        """Member details can be changed."""
        result = runner.invoke(app, ["edit-member", "0001", "--email", "ann@example.org"])

        assert result.exit_code == 0
        assert get_db().load_snapshot().members["0001"].email == "ann@example.org"


class TestLoanCommands:
    """Tests for loan commands."""

    def test_checkout_and_checkin(self, runner: CliRunner, stocked):
        """A copy goes out and comes back."""
        out = runner.invoke(app, ["checkout", "B1", "0001"])
        assert out.exit_code == 0
        assert "Checked out" in text(out)

        loans = runner.invoke(app, ["loans"])
        assert "Emma" in text(loans)

        back = runner.invoke(app, ["checkin", "B1", "0001"])
        assert back.exit_code == 0
        assert "No open loans" in text(runner.invoke(app, ["loans"]))

    def test_checkout_unavailable(self, runner: CliRunner, stocked):
        """A second checkout of a single copy fails."""
        runner.invoke(app, ["checkout", "B1", "0001"])
        result = runner.invoke(app, ["checkout", "B1", "0002"])

        assert result.exit_code == 1
        assert "Error" in text(result)

    def test_checkout_bad_date(self, runner: CliRunner, stocked):
        """Malformed dates are rejected."""
        result = runner.invoke(app, ["checkout", "B1", "0001", "--due", "soon"])

        assert result.exit_code == 1
        assert "Invalid date" in text(result)

    def test_renew(self, runner: CliRunner, stocked):
        """Loans can be renewed by id."""
        runner.invoke(app, ["checkout", "B1", "0001"])
        loan_id = get_db().load_snapshot().events[0].id

        result = runner.invoke(app, ["renew", loan_id])

        assert result.exit_code == 0
        assert "renewed" in text(result)


class TestReservationCommands:
    """Tests for reservation commands."""

    def test_reserve_earliest(self, runner: CliRunner, stocked):
        """Without a date the earliest pickup is used."""
        result = runner.invoke(app, ["reserve", "B1", "0001"])

        assert result.exit_code == 0
        assert iso(1) in text(result)

    def test_earliest_pickup(self, runner: CliRunner, stocked):
        """Earliest pickup follows the loan's due date."""
        runner.invoke(app, ["checkout", "B1", "0001", "--due", iso(10)])

        result = runner.invoke(app, ["earliest-pickup", "B1"])

        assert result.exit_code == 0
        assert iso(10) in text(result)

    def test_gap_rule(self, runner: CliRunner, stocked):
        """Close pickups for the same member are rejected."""
        runner.invoke(app, ["add-title", "B2", "Persuasion"])
        runner.invoke(app, ["reserve", "B1", "0001", "--pickup", iso(5)])

        result = runner.invoke(app, ["reserve", "B2", "0001", "--pickup", iso(10)])

        assert result.exit_code == 1
        assert "15 days apart" in text(result)

    def test_edit_cancel_fulfil(self, runner: CliRunner, stocked):
        """A reservation can be moved, issued or cancelled."""
        runner.invoke(app, ["reserve", "B1", "0001", "--pickup", iso(5)])
        runner.invoke(app, ["reserve", "B1", "0002", "--pickup", iso(40)])
        first, second = sorted(
            get_db().load_snapshot().reservations, key=lambda r: r.pickup_date
        )

        moved = runner.invoke(app, ["edit-pickup", first.id, iso(7)])
        too_late = runner.invoke(app, ["edit-pickup", first.id, iso(30)])
        out_of_order = runner.invoke(app, ["fulfil", second.id])
        cancelled = runner.invoke(app, ["cancel", second.id, "--reason", "member"])

        assert moved.exit_code == 0
        assert too_late.exit_code == 1
        assert out_of_order.exit_code == 1
        assert cancelled.exit_code == 0

    def test_cancel_bad_reason(self, runner: CliRunner, stocked):
        """Unknown cancellation reasons are rejected."""
        result = runner.invoke(app, ["cancel", "R1", "--reason", "bored"])
        assert result.exit_code == 1


class TestReportAndSyncCommands:
    """Tests for reports, settings and the offline queue."""

    def test_overdue_nothing(self, runner: CliRunner, stocked):
        """Fresh catalogs have nothing overdue."""
        result = runner.invoke(app, ["overdue"])
        assert "Nothing overdue" in text(result)

    def test_settings_update(self, runner: CliRunner):
        """Settings can be shown and changed."""
        result = runner.invoke(app, ["settings", "--loan-period", "21"])

        assert result.exit_code == 0
        assert "21" in text(result)
        assert get_db().get_settings().loan_period_days == 21

    def test_queue_lists_staged_operations(self, runner: CliRunner, stocked):
        """Staged operations are listed in order."""
        result = runner.invoke(app, ["queue"])

        assert result.exit_code == 0
        assert "titles" in text(result)
        assert "members" in text(result)

    def test_history(self, runner: CliRunner, stocked):
        """Accepted actions are in the activity log."""
        result = runner.invoke(app, ["history"])
        assert "Add Book" in text(result)

    def test_sync_without_remote(self, runner: CliRunner, stocked):
        """Sync needs a remote store."""
        result = runner.invoke(app, ["sync"])

        assert result.exit_code == 1
        assert "not configured" in text(result)
