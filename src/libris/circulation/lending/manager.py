"""Lending manager for circulation actions.

Every action validates against the current snapshot with the scheduling
engine, then issues exactly one remote mutation. When the remote store is
unreachable the mutation is staged in the offline queue instead. Accepted
mutations (sent or queued) are applied to the snapshot and the local mirror.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import date, timedelta
from typing import Generator, Optional
from uuid import uuid4

from pydantic import ValidationError

from ..config import Config, get_config
from ..db.schemas import (
    Entity,
    EventKind,
    LoanEventRecord,
    MemberRecord,
    ReservationRecord,
    ReservationStatus,
    Settings,
    TitleRecord,
    TitleStatus,
    utcnow,
)
from ..db.snapshot import CirculationSnapshot
from ..db.sqlite import Database, get_db
from ..scheduling import (
    PickupLimit,
    TitleAvailability,
    active_loans,
    apply_renewal,
    catalog_availability,
    compute_availability,
    earliest_pickup_date,
    find_active_loan,
    is_loan_open,
    latest_pickup_date,
    ledger_counts,
    member_has_open_loan,
    plan_renewal,
    propose_checkout_due_date,
    validate_reservation,
)
from ..scheduling.timeline import DueDateProposal
from ..sync import operations
from ..sync.operations import DeleteOperation, InsertOperation, Operation, UpdateOperation
from ..sync.queue import OfflineQueue, ProgressCallback, SyncProcessor, SyncResult
from ..sync.remote import RemoteStoreError, RemoteUnavailableError, RestRemoteStore
from .schemas import (
    ActionResult,
    MemberUpdate,
    OpenLoan,
    OverdueLoan,
    OverdueReservation,
    TitleUpdate,
)

logger = logging.getLogger(__name__)

MEMBER_ID_WIDTH = 4

SUBMISSION_IN_PROGRESS = "A submission for this action is already in progress."


def _new_id(prefix: str) -> str:
    return f"{prefix}{uuid4().hex[:12]}"


class LendingManager:
    """Manages checkout, check-in, renewal and reservation actions."""

    def __init__(
        self,
        db: Optional[Database] = None,
        remote: Optional[RestRemoteStore] = None,
        queue: Optional[OfflineQueue] = None,
        snapshot: Optional[CirculationSnapshot] = None,
        config: Optional[Config] = None,
    ):
        """Initialize lending manager.

        Args:
            db: Database for the local mirror and offline queue
            remote: Remote store client
            queue: Offline queue (created on ``db`` if not provided)
            snapshot: Starting snapshot (loaded from the mirror if not provided)
            config: Configuration (uses global if not provided)
        """
        self.db = db if db is not None else get_db()
        self.config = config or get_config()
        if remote is None:
            remote = RestRemoteStore(
                base_url=self.config.remote_url,
                api_key=self.config.remote_api_key,
                timeout=self.config.remote_timeout,
            )
        self.remote = remote
        self.queue = queue if queue is not None else OfflineQueue(self.db)
        self.snapshot = snapshot if snapshot is not None else self.db.load_snapshot()

        self._in_flight: set[tuple] = set()
        self._guard_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self.snapshot.settings

    def refresh(self) -> bool:
        """Pull a fresh snapshot from the remote store.

        Operations still waiting in the offline queue are replayed on top of
        the fetched rows, so staged actions stay visible until they sync.
        Falls back to the local mirror when the store cannot be read.

        Returns:
            True if the snapshot came from the remote store
        """
        try:
            snapshot = self.remote.fetch_snapshot()
        except RemoteStoreError as e:
            logger.warning("Refresh from remote store failed, using local mirror: %s", e)
            self.snapshot = self.db.load_snapshot()
            return False

        with self.queue.lock:
            pending = self.queue.load()
        for entry in pending:
            entry.operation.apply_to(snapshot)
        if pending:
            logger.debug("Overlaid %d queued operations on refreshed snapshot", len(pending))

        self.db.replace_snapshot(snapshot)
        self.snapshot = snapshot
        return True

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def availability(self, title_id: str) -> Optional[TitleAvailability]:
        """Shelf availability of a title, None if unknown."""
        title = self.snapshot.title(title_id)
        if not title:
            return None
        return compute_availability(title, self.snapshot.events, self.snapshot.reservations)

    def catalog(self) -> list[TitleAvailability]:
        """Availability of every title."""
        return catalog_availability(self.snapshot)

    def earliest_pickup(self, title_id: str, today: Optional[date] = None) -> Optional[date]:
        """Earliest pickup date a new reservation could get."""
        title = self.snapshot.title(title_id)
        if not title:
            return None
        return earliest_pickup_date(
            title,
            self.snapshot.events,
            self.snapshot.reservations,
            self.settings,
            today=today,
        )

    def latest_pickup(
        self, reservation_id: str, today: Optional[date] = None
    ) -> Optional[PickupLimit]:
        """Latest pickup date an Active reservation can be moved to."""
        reservation = self.snapshot.reservation(reservation_id)
        if not reservation:
            return None
        title = self.snapshot.title(reservation.title_id)
        if not title:
            return None
        return latest_pickup_date(
            reservation,
            title,
            self.snapshot.reservations,
            self.settings,
            today=today,
            horizon_days=self.config.reservation_horizon_days,
        )

    def propose_due_date(
        self, title_id: str, today: Optional[date] = None
    ) -> Optional[DueDateProposal]:
        """Due date a checkout of the title would get today."""
        title = self.snapshot.title(title_id)
        if not title:
            return None
        return propose_checkout_due_date(
            title,
            self.snapshot.events,
            self.snapshot.reservations,
            self.settings,
            today=today,
        )

    def open_loans(self, member_id: Optional[str] = None) -> list[OpenLoan]:
        """Open loans, optionally for one member, newest first."""
        period = self.settings.loan_period_days
        loans = active_loans(self.snapshot.events, member_id=member_id)
        return [
            OpenLoan(
                loan_id=loan.id,
                title_id=loan.title_id,
                title=self._title_name(loan.title_id),
                member_id=loan.member_id,
                member_name=self._member_name(loan.member_id),
                checked_out_on=loan.timestamp.date(),
                due_date=loan.effective_due_date(period),
                renewal_count=loan.renewal_count,
            )
            for loan in reversed(loans)
        ]

    def overdue_loans(self, today: Optional[date] = None) -> list[OverdueLoan]:
        """Open loans whose due date has passed, most overdue first."""
        today = today or date.today()
        overdue = [
            OverdueLoan(
                loan_id=loan.loan_id,
                title_id=loan.title_id,
                title=loan.title,
                member_id=loan.member_id,
                member_name=loan.member_name,
                due_date=loan.due_date,
                days_overdue=(today - loan.due_date).days,
            )
            for loan in self.open_loans()
            if loan.due_date < today
        ]
        return sorted(overdue, key=lambda o: o.days_overdue, reverse=True)

    def overdue_reservations(self, today: Optional[date] = None) -> list[OverdueReservation]:
        """Active reservations whose pickup date has passed."""
        today = today or date.today()
        return [
            OverdueReservation(
                reservation_id=r.id,
                title_id=r.title_id,
                title=self._title_name(r.title_id),
                member_id=r.member_id,
                member_name=self._member_name(r.member_id),
                pickup_date=r.pickup_date,
            )
            for r in sorted(self.snapshot.active_reservations(), key=lambda r: r.pickup_date)
            if r.pickup_date < today
        ]

    def next_member_id(self) -> str:
        """Next free fixed-width numeric member id."""
        numeric = [int(m) for m in self.snapshot.members if m.isdigit()]
        next_number = max(numeric) + 1 if numeric else 0
        return str(next_number).zfill(MEMBER_ID_WIDTH)

    # -------------------------------------------------------------------------
    # Loan Actions
    # -------------------------------------------------------------------------

    def checkout(
        self,
        title_id: str,
        member_id: str,
        due_date: Optional[date] = None,
        force: bool = False,
        today: Optional[date] = None,
    ) -> ActionResult:
        """Lend a copy of a title to a member.

        Args:
            title_id: Title to lend
            member_id: Borrowing member
            due_date: Requested due date (defaults to the proposed one)
            force: Lend even if the member has unreturned titles
            today: Reference day

        Returns:
            ActionResult with the new CheckOut event id
        """
        with self._submission("checkout", title_id, member_id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)

            today = today or date.today()
            title = self.snapshot.title(title_id)
            if not title:
                return ActionResult.rejected(f"Title '{title_id}' not found.")
            if not self.snapshot.member(member_id):
                return ActionResult.rejected(f"Member '{member_id}' not found.")

            availability = self.availability(title_id)
            if availability.status == TitleStatus.UNAVAILABLE:
                return ActionResult.rejected(f"No copies of '{title.title}' are on the shelf.")

            if not force and member_has_open_loan(self.snapshot.events, member_id):
                return ActionResult.rejected(
                    f"Member {member_id} already has titles checked out that have "
                    "not been returned."
                )

            proposal = self.propose_due_date(title_id, today=today)
            if due_date is None:
                due_date = proposal.due_date
            elif due_date < today:
                return ActionResult.rejected("Due date cannot be in the past.")
            elif proposal.max_due_date and due_date > proposal.max_due_date:
                return ActionResult.rejected(
                    f"Due date cannot be after {proposal.max_due_date.isoformat()}: "
                    "the title is needed for an upcoming reservation."
                )

            event = LoanEventRecord(
                id=_new_id("T"),
                title_id=title_id,
                member_id=member_id,
                kind=EventKind.CHECK_OUT,
                timestamp=utcnow(),
                due_date=due_date,
            )
            message = f"Checked out '{title.title}' to {member_id} until {due_date.isoformat()}."
            if proposal.note and due_date == proposal.due_date:
                message = f"{message} {proposal.note}"

            return self._dispatch(
                operations.insert(Entity.LOAN_EVENTS, event),
                message,
                activity=("Checkout", f"Issued {title.title} to {member_id}"),
            )

    def checkin(self, title_id: str, member_id: str) -> ActionResult:
        """Record the return of a copy; closes the member's oldest open loan."""
        with self._submission("checkin", title_id, member_id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)

            loan = find_active_loan(self.snapshot.events, member_id, title_id)
            if not loan:
                return ActionResult.rejected(
                    f"Member {member_id} has no open loan of title '{title_id}'."
                )

            title_name = self._title_name(title_id)
            event = LoanEventRecord(
                id=_new_id("T"),
                title_id=title_id,
                member_id=member_id,
                kind=EventKind.CHECK_IN,
                timestamp=utcnow(),
            )
            return self._dispatch(
                operations.insert(Entity.LOAN_EVENTS, event),
                f"'{title_name}' returned by {member_id}.",
                activity=("Check-in", f"Returned {title_name} from {member_id}"),
            )

    def renew(self, loan_id: str) -> ActionResult:
        """Extend an open loan, capped by queued reservations."""
        with self._submission("renew", loan_id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)

            loan = self.snapshot.event(loan_id)
            if not loan or not loan.is_checkout:
                return ActionResult.rejected(f"Loan '{loan_id}' not found.")
            if not is_loan_open(self.snapshot.events, loan_id):
                return ActionResult.rejected(f"Loan '{loan_id}' has already been returned.")

            title = self.snapshot.title(loan.title_id)
            if not title:
                return ActionResult.rejected(f"Title '{loan.title_id}' not found.")

            max_renewals = self.settings.max_renewals
            if self.config.enforce_max_renewals and loan.renewal_count >= max_renewals:
                return ActionResult.rejected(
                    f"Loan has reached the maximum of {max_renewals} renewals."
                )

            decision = plan_renewal(
                loan,
                title,
                self.snapshot.events,
                self.snapshot.reservations,
                self.settings,
            )
            if not decision.ok:
                return ActionResult.rejected(decision.message)

            renewed = apply_renewal(loan, decision)
            return self._dispatch(
                operations.update(Entity.LOAN_EVENTS, renewed),
                decision.message,
                activity=(
                    "Renew Loan",
                    f"Renewed {title.title} until {decision.new_due_date.isoformat()}",
                ),
            )

    # -------------------------------------------------------------------------
    # Reservation Actions
    # -------------------------------------------------------------------------

    def reserve(
        self,
        title_id: str,
        member_id: str,
        pickup_date: date,
        today: Optional[date] = None,
    ) -> ActionResult:
        """Queue a reservation for a future copy of a title."""
        with self._submission("reserve", title_id, member_id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)

            today = today or date.today()
            title = self.snapshot.title(title_id)
            if not title:
                return ActionResult.rejected(f"Title '{title_id}' not found.")
            if not self.snapshot.member(member_id):
                return ActionResult.rejected(
                    f"Cannot reserve title. Member ID '{member_id}' not found."
                )
            if pickup_date <= today:
                return ActionResult.rejected("Pickup date must be after today.")

            earliest = self.earliest_pickup(title_id, today=today)
            horizon = today + timedelta(days=self.config.reservation_horizon_days)
            if earliest > horizon:
                return ActionResult.rejected(
                    f"No copy of '{title.title}' becomes free within the next "
                    f"{self.config.reservation_horizon_days} days."
                )
            if pickup_date < earliest:
                return ActionResult.rejected(
                    f"Earliest available pickup date for '{title.title}' is "
                    f"{earliest.isoformat()}."
                )

            check = validate_reservation(
                member_id,
                title_id,
                pickup_date,
                self.snapshot.reservations,
                min_gap_days=self.config.min_reservation_gap_days,
                titles=self.snapshot.titles,
            )
            if not check.ok:
                return ActionResult.rejected(check.reason)

            reservation = ReservationRecord(
                id=_new_id("R"),
                title_id=title_id,
                member_id=member_id,
                created_at=utcnow(),
                pickup_date=pickup_date,
            )
            return self._dispatch(
                operations.insert(Entity.RESERVATIONS, reservation),
                f"Reserved '{title.title}' for {member_id}, pickup on {pickup_date.isoformat()}.",
                activity=("Reserve Book", f"Reserved {title.title} for {member_id}"),
            )

    def edit_pickup_date(
        self,
        reservation_id: str,
        new_date: date,
        today: Optional[date] = None,
    ) -> ActionResult:
        """Move an Active reservation to another pickup date."""
        with self._submission("edit_pickup", reservation_id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)

            today = today or date.today()
            reservation = self.snapshot.reservation(reservation_id)
            if not reservation or not reservation.is_active:
                return ActionResult.rejected(
                    f"No active reservation with id '{reservation_id}'."
                )
            if new_date <= today:
                return ActionResult.rejected("Pickup date must be after today.")

            limit = self.latest_pickup(reservation_id, today=today)
            if limit is None:
                return ActionResult.rejected(f"Title '{reservation.title_id}' not found.")
            if new_date > limit.max_date:
                reason = f"Pickup date cannot be after {limit.max_date.isoformat()}"
                if limit.limited_by:
                    reason += (
                        f": next reservation by {self._member_name(limit.limited_by.member_id)} "
                        f"on {limit.limited_by.pickup_date.isoformat()}"
                    )
                return ActionResult.rejected(reason + ".")

            check = validate_reservation(
                reservation.member_id,
                reservation.title_id,
                new_date,
                self.snapshot.reservations,
                exclude_id=reservation.id,
                min_gap_days=self.config.min_reservation_gap_days,
                titles=self.snapshot.titles,
            )
            if not check.ok:
                return ActionResult.rejected(f"Cannot update. {check.reason}")

            moved = reservation.model_copy(update={"pickup_date": new_date})
            return self._dispatch(
                operations.update(Entity.RESERVATIONS, moved),
                "Reservation date updated.",
                activity=(
                    "Edit Reservation",
                    f"Moved reservation {reservation.id} to {new_date.isoformat()}",
                ),
            )

    def cancel_reservation(
        self,
        reservation_id: str,
        status: ReservationStatus = ReservationStatus.CANCELLED,
    ) -> ActionResult:
        """Cancel an Active reservation with one of the cancellation statuses."""
        if not status.is_cancellation:
            return ActionResult.rejected(f"'{status.value}' is not a cancellation status.")

        with self._submission("cancel", reservation_id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)

            reservation = self.snapshot.reservation(reservation_id)
            if not reservation or not reservation.is_active:
                return ActionResult.rejected(
                    f"No active reservation with id '{reservation_id}'."
                )

            cancelled = reservation.model_copy(update={"status": status})
            return self._dispatch(
                operations.update(Entity.RESERVATIONS, cancelled),
                "Reservation cancelled.",
                activity=("Cancel Reservation", f"{reservation.id}: {status.value}"),
            )

    def fulfil_reservation(self, reservation_id: str, override: bool = False) -> ActionResult:
        """Mark a reservation as issued to its member.

        Refused when an earlier Active reservation for the same title is
        still waiting, unless ``override`` is set.
        """
        with self._submission("fulfil", reservation_id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)

            reservation = self.snapshot.reservation(reservation_id)
            if not reservation or not reservation.is_active:
                return ActionResult.rejected(
                    f"No active reservation with id '{reservation_id}'."
                )
            if not self.snapshot.member(reservation.member_id):
                return ActionResult.rejected(
                    f"Cannot issue title. Member (ID: {reservation.member_id}) not found."
                )

            if not override:
                ahead = sorted(
                    (
                        r
                        for r in self.snapshot.active_reservations(reservation.title_id)
                        if r.pickup_date < reservation.pickup_date
                    ),
                    key=lambda r: r.pickup_date,
                )
                if ahead:
                    first = ahead[0]
                    return ActionResult.rejected(
                        f"{self._member_name(first.member_id)} ({first.member_id}) has an "
                        f"earlier reservation for this title on {first.pickup_date.isoformat()}."
                    )

            fulfilled = reservation.model_copy(update={"status": ReservationStatus.FULFILLED})
            return self._dispatch(
                operations.update(Entity.RESERVATIONS, fulfilled),
                "Reserved title issued.",
                activity=(
                    "Issue Reservation",
                    f"Issued {self._title_name(reservation.title_id)} to {reservation.member_id}",
                ),
            )

    # -------------------------------------------------------------------------
    # Catalog and Member Maintenance
    # -------------------------------------------------------------------------

    def add_title(self, record: TitleRecord) -> ActionResult:
        """Add a title to the catalog."""
        with self._submission("add_title", record.id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)
            if self.snapshot.title(record.id):
                return ActionResult.rejected(f"Title '{record.id}' already exists.")
            return self._dispatch(
                operations.insert(Entity.TITLES, record),
                f"Added '{record.title}'.",
                activity=("Add Book", f"Added: {record.title} (ID: {record.id})"),
            )

    def add_member(self, record: MemberRecord) -> ActionResult:
        """Register a member."""
        with self._submission("add_member", record.id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)
            if self.snapshot.member(record.id):
                return ActionResult.rejected(f"Member '{record.id}' already exists.")
            return self._dispatch(
                operations.insert(Entity.MEMBERS, record),
                f"Added member {record.name}.",
                activity=("Add Member", f"Added: {record.name} (ID: {record.id})"),
            )

    def update_title(self, title_id: str, data: TitleUpdate) -> ActionResult:
        """Edit a title's details or copy count.

        Args:
            title_id: Title to edit
            data: Fields to change

        Returns:
            ActionResult; refused if fewer copies than are out on loan
        """
        with self._submission("update_title", title_id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)

            title = self.snapshot.title(title_id)
            if not title:
                return ActionResult.rejected(f"Title '{title_id}' not found.")

            changes = data.model_dump(exclude_unset=True, exclude_none=True)
            if not changes:
                return ActionResult.rejected("Nothing to update.")

            copies = changes.get("total_copies")
            if copies is not None:
                checked_out = ledger_counts(self.snapshot.events, title_id).checked_out
                if copies < checked_out:
                    return ActionResult.rejected(
                        f"Cannot set copies to {copies}: {checked_out} are checked out."
                    )

            updated = title.model_copy(update=changes)
            return self._dispatch(
                operations.update(Entity.TITLES, updated),
                f"Updated '{updated.title}'.",
                activity=(
                    "Edit Book",
                    f"{updated.title} (ID: {title_id}): {', '.join(sorted(changes))}",
                ),
            )

    def update_member(self, member_id: str, data: MemberUpdate) -> ActionResult:
        """Edit a member's contact details."""
        with self._submission("update_member", member_id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)

            member = self.snapshot.member(member_id)
            if not member:
                return ActionResult.rejected(f"Member '{member_id}' not found.")

            changes = data.model_dump(exclude_unset=True, exclude_none=True)
            if not changes:
                return ActionResult.rejected("Nothing to update.")

            updated = member.model_copy(update=changes)
            return self._dispatch(
                operations.update(Entity.MEMBERS, updated),
                f"Updated member {updated.name}.",
                activity=(
                    "Edit Member",
                    f"{updated.name} (ID: {member_id}): {', '.join(sorted(changes))}",
                ),
            )

    def remove_title(self, title_id: str) -> ActionResult:
        """Remove a title that has no copies out."""
        with self._submission("remove_title", title_id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)

            title = self.snapshot.title(title_id)
            if not title:
                return ActionResult.rejected(f"Title '{title_id}' not found.")
            if ledger_counts(self.snapshot.events, title_id).net > 0:
                return ActionResult.rejected(
                    "Cannot delete: title is issued to a member. Receive it first."
                )

            return self._dispatch(
                operations.delete(Entity.TITLES, title_id),
                f"Removed '{title.title}'.",
                activity=("Delete Book", f"{title.title} by {title.author}"),
            )

    def remove_member(self, member_id: str) -> ActionResult:
        """Remove a member who holds no open loan."""
        with self._submission("remove_member", member_id) as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)

            member = self.snapshot.member(member_id)
            if not member:
                return ActionResult.rejected(f"Member '{member_id}' not found.")
            if member_has_open_loan(self.snapshot.events, member_id):
                return ActionResult.rejected("Cannot delete: member has unreturned titles.")

            return self._dispatch(
                operations.delete(Entity.MEMBERS, member_id),
                f"Removed member {member.name}.",
                activity=("Delete Member", f"{member.name} (ID: {member.id})"),
            )

    def update_settings(
        self,
        loan_period_days: Optional[int] = None,
        max_renewals: Optional[int] = None,
    ) -> ActionResult:
        """Change the global circulation settings."""
        with self._submission("settings") as acquired:
            if not acquired:
                return ActionResult.rejected(SUBMISSION_IN_PROGRESS)

            changes = {}
            if loan_period_days is not None:
                changes["loan_period_days"] = loan_period_days
            if max_renewals is not None:
                changes["max_renewals"] = max_renewals
            try:
                settings = Settings.model_validate({**self.settings.model_dump(), **changes})
            except ValidationError as e:
                return ActionResult.rejected(f"Invalid settings: {e.errors()[0]['msg']}")

            return self._dispatch(
                operations.update(Entity.SETTINGS, settings),
                "Settings updated.",
                activity=(
                    "Update Settings",
                    f"Loan period {settings.loan_period_days} days, "
                    f"max renewals {settings.max_renewals}",
                ),
            )

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    def sync(
        self,
        on_progress: Optional[ProgressCallback] = None,
        show_progress: bool = False,
    ) -> SyncResult:
        """Replay the offline queue against the remote store."""
        processor = SyncProcessor(self.queue, self.remote, show_progress=show_progress)
        result = processor.sync(on_progress=on_progress)
        if result.total:
            self.db.add_activity(
                "Sync",
                f"Replayed {result.succeeded} of {result.total} queued operations",
            )
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @contextmanager
    def _submission(self, *key) -> Generator[bool, None, None]:
        """Claim an action key; yields False while an identical one is in flight."""
        with self._guard_lock:
            acquired = key not in self._in_flight
            if acquired:
                self._in_flight.add(key)
        try:
            yield acquired
        finally:
            if acquired:
                with self._guard_lock:
                    self._in_flight.discard(key)

    def _dispatch(
        self,
        operation: Operation,
        message: str,
        activity: tuple[str, str],
    ) -> ActionResult:
        """Send an operation, or stage it offline when the store is unreachable."""
        queued = False
        try:
            self.remote.execute(operation)
        except RemoteUnavailableError as e:
            logger.info("Remote store unreachable (%s), staging operation offline", e)
            self.queue.enqueue(operation)
            queued = True
        except RemoteStoreError as e:
            logger.error("Remote store rejected %s %s: %s", operation.kind.value, operation.entity.value, e)
            return ActionResult.rejected(f"Remote store error: {e}")

        self._apply_locally(operation)
        self.db.add_activity(*activity)

        if queued:
            message = f"{message} (saved offline, will sync later)"
        return ActionResult.accepted(message, record_id=operation.record_id, queued=queued)

    def _apply_locally(self, operation: Operation) -> None:
        """Reflect an accepted operation in the snapshot and the mirror."""
        operation.apply_to(self.snapshot)
        if isinstance(operation, (InsertOperation, UpdateOperation)):
            self.db.upsert_record(operation.entity, operation.record)
        elif isinstance(operation, DeleteOperation):
            self.db.delete_record(operation.entity, operation.record_id)

    def _title_name(self, title_id: str) -> str:
        title = self.snapshot.title(title_id)
        return title.title if title else "Unknown Title"

    def _member_name(self, member_id: str) -> str:
        member = self.snapshot.member(member_id)
        return member.name if member else "Unknown Member"
