"""Pytest configuration and shared fixtures.

This module provides fixtures for testing libris, including in-memory
databases, record factories and a fake remote store.
"""

import tempfile
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Generator, Optional
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from libris.circulation.config import Config, reset_config
from libris.circulation.db.schemas import (
    EventKind,
    LoanEventRecord,
    MemberRecord,
    ReservationRecord,
    ReservationStatus,
    Settings,
    TitleRecord,
)
from libris.circulation.db.snapshot import CirculationSnapshot
from libris.circulation.db.sqlite import Database, reset_db

# Day 0 of every scheduling scenario
DAY_ZERO = date(2025, 3, 1)


def _day(n: int) -> date:
    """Scenario day ``n`` as a calendar date."""
    return date.fromordinal(DAY_ZERO.toordinal() + n)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(scope="function")
def db() -> Generator[Database, None, None]:
    """Create an in-memory database for testing."""
    reset_db()
    reset_config()

    database = Database(":memory:")
    database.create_tables()
    yield database

    reset_db()


@pytest.fixture
def config(temp_db_path: Path) -> Config:
    """Configuration with no remote store."""
    return Config(
        db_path=temp_db_path,
        remote_url=None,
        remote_api_key=None,
        remote_timeout=5.0,
        reservation_horizon_days=90,
        min_reservation_gap_days=15,
        enforce_max_renewals=True,
        log_level="WARNING",
    )


# ============================================================================
# Record Factories
# ============================================================================


@pytest.fixture
def day():
    """Convert a scenario day number to a date."""
    return _day


@pytest.fixture
def settings() -> Settings:
    """Default settings: 15-day loans, two renewals."""
    return Settings(loan_period_days=15, max_renewals=2)


@pytest.fixture
def make_title():
    """Factory for titles."""

    def _make(title_id: str = "B1", copies: int = 1, name: Optional[str] = None) -> TitleRecord:
        return TitleRecord(
            id=title_id,
            title=name or f"Title {title_id}",
            author="Test Author",
            total_copies=copies,
        )

    return _make


@pytest.fixture
def make_member():
    """Factory for members."""

    def _make(member_id: str = "0001", name: Optional[str] = None) -> MemberRecord:
        return MemberRecord(id=member_id, name=name or f"Member {member_id}")

    return _make


@pytest.fixture
def checkout():
    """Factory for CheckOut events on a scenario day."""

    def _make(
        title_id: str,
        member_id: str,
        on: int = 0,
        due: Optional[int] = None,
        event_id: Optional[str] = None,
        renewal_count: int = 0,
        at: time = time(10, 0),
    ) -> LoanEventRecord:
        return LoanEventRecord(
            id=event_id or f"T{uuid4().hex[:8]}",
            title_id=title_id,
            member_id=member_id,
            kind=EventKind.CHECK_OUT,
            timestamp=datetime.combine(_day(on), at, tzinfo=timezone.utc),
            due_date=_day(due) if due is not None else None,
            renewal_count=renewal_count,
        )

    return _make


@pytest.fixture
def checkin():
    """Factory for CheckIn events on a scenario day."""

    def _make(
        title_id: str,
        member_id: str,
        on: int = 0,
        event_id: Optional[str] = None,
        at: time = time(16, 0),
    ) -> LoanEventRecord:
        return LoanEventRecord(
            id=event_id or f"T{uuid4().hex[:8]}",
            title_id=title_id,
            member_id=member_id,
            kind=EventKind.CHECK_IN,
            timestamp=datetime.combine(_day(on), at, tzinfo=timezone.utc),
        )

    return _make


@pytest.fixture
def reservation():
    """Factory for reservations with a pickup on a scenario day."""

    def _make(
        title_id: str,
        member_id: str,
        pickup: int,
        reservation_id: Optional[str] = None,
        status: ReservationStatus = ReservationStatus.ACTIVE,
    ) -> ReservationRecord:
        return ReservationRecord(
            id=reservation_id or f"R{uuid4().hex[:8]}",
            title_id=title_id,
            member_id=member_id,
            created_at=datetime.combine(DAY_ZERO, time(9, 0), tzinfo=timezone.utc),
            pickup_date=_day(pickup),
            status=status,
        )

    return _make


@pytest.fixture
def snapshot(make_title, make_member, settings) -> CirculationSnapshot:
    """Small catalog: one single-copy and one two-copy title, three members."""
    return CirculationSnapshot.build(
        titles=[make_title("B1", copies=1), make_title("B2", copies=2)],
        members=[make_member("0001"), make_member("0002"), make_member("0003")],
        settings=settings,
    )


# ============================================================================
# Remote Store Fixtures
# ============================================================================


@pytest.fixture
def fake_remote() -> MagicMock:
    """Remote store double that accepts every operation."""
    remote = MagicMock()
    remote.execute.return_value = None
    return remote


# ============================================================================
# CLI Testing Fixtures
# ============================================================================


@pytest.fixture
def cli_env(temp_db_path: Path, monkeypatch) -> Generator[Path, None, None]:
    """Point the CLI at a fresh database with no remote store."""
    reset_db()
    reset_config()
    monkeypatch.setenv("LIBRIS_DB_PATH", str(temp_db_path))
    monkeypatch.delenv("LIBRIS_REMOTE_URL", raising=False)
    monkeypatch.delenv("LIBRIS_REMOTE_API_KEY", raising=False)
    yield temp_db_path
    reset_db()
    reset_config()


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner."""
    from typer.testing import CliRunner
    return CliRunner()
