"""In-memory snapshot of the circulation data.

A snapshot is rehydrated from the remote store (or the local mirror) at
explicit refresh points and handed by reference to every scheduling call.
Mutations accepted online or queued offline are applied to it so that the
next read reflects them.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from .schemas import (
    ActivityLogRecord,
    Entity,
    LoanEventRecord,
    MemberRecord,
    ReservationRecord,
    Settings,
    TitleRecord,
)

EntityRecord = Union[
    TitleRecord,
    MemberRecord,
    LoanEventRecord,
    ReservationRecord,
    Settings,
    ActivityLogRecord,
]


@dataclass
class CirculationSnapshot:
    """Titles, members, ledger and reservations at one point in time."""

    titles: dict[str, TitleRecord] = field(default_factory=dict)
    members: dict[str, MemberRecord] = field(default_factory=dict)
    events: list[LoanEventRecord] = field(default_factory=list)
    reservations: list[ReservationRecord] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)

    @classmethod
    def build(
        cls,
        titles: Iterable[TitleRecord] = (),
        members: Iterable[MemberRecord] = (),
        events: Iterable[LoanEventRecord] = (),
        reservations: Iterable[ReservationRecord] = (),
        settings: Optional[Settings] = None,
    ) -> "CirculationSnapshot":
        return cls(
            titles={t.id: t for t in titles},
            members={m.id: m for m in members},
            events=list(events),
            reservations=list(reservations),
            settings=settings or Settings(),
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def title(self, title_id: str) -> Optional[TitleRecord]:
        return self.titles.get(title_id)

    def member(self, member_id: str) -> Optional[MemberRecord]:
        return self.members.get(member_id)

    def event(self, event_id: str) -> Optional[LoanEventRecord]:
        return next((e for e in self.events if e.id == event_id), None)

    def reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        return next((r for r in self.reservations if r.id == reservation_id), None)

    def events_for_title(self, title_id: str) -> list[LoanEventRecord]:
        return [e for e in self.events if e.title_id == title_id]

    def active_reservations(self, title_id: Optional[str] = None) -> list[ReservationRecord]:
        """Active reservations, optionally for one title."""
        return [
            r
            for r in self.reservations
            if r.is_active and (title_id is None or r.title_id == title_id)
        ]

    # ------------------------------------------------------------------
    # Applying mutations
    # ------------------------------------------------------------------

    def upsert(self, entity: Entity, record: EntityRecord) -> None:
        """Insert or replace a record by id."""
        if entity == Entity.TITLES:
            self.titles[record.id] = record
        elif entity == Entity.MEMBERS:
            self.members[record.id] = record
        elif entity == Entity.LOAN_EVENTS:
            self.events = _replace_or_append(self.events, record)
        elif entity == Entity.RESERVATIONS:
            self.reservations = _replace_or_append(self.reservations, record)
        elif entity == Entity.SETTINGS:
            self.settings = record
        # activity log entries are not part of the scheduling snapshot

    def remove(self, entity: Entity, record_id: str) -> None:
        """Drop a record by id."""
        if entity == Entity.TITLES:
            self.titles.pop(record_id, None)
        elif entity == Entity.MEMBERS:
            self.members.pop(record_id, None)
        elif entity == Entity.LOAN_EVENTS:
            self.events = [e for e in self.events if e.id != record_id]
        elif entity == Entity.RESERVATIONS:
            self.reservations = [r for r in self.reservations if r.id != record_id]


def _replace_or_append(items: list, record) -> list:
    for i, existing in enumerate(items):
        if existing.id == record.id:
            return items[:i] + [record] + items[i + 1 :]
    return items + [record]
