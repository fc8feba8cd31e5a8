"""Command-line interface for the libris circulation desk.

Built with Typer for commands and Rich for output.
"""

import logging
from datetime import date
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import get_config
from .db import get_db
from .db.schemas import MemberRecord, ReservationStatus, TitleRecord, TitleStatus
from .lending import ActionResult, LendingManager, MemberUpdate, TitleUpdate

# Create the main app
app = typer.Typer(
    name="libris",
    help="Circulation desk for a multi-copy lending library.",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()

STATUS_STYLES = {
    TitleStatus.ON_SHELF: "green",
    TitleStatus.RESERVED: "yellow",
    TitleStatus.UNAVAILABLE: "red",
}

CANCEL_REASONS = {
    "librarian": ReservationStatus.CANCELLED,
    "overdue": ReservationStatus.CANCELLED_OVERDUE,
    "member": ReservationStatus.CANCELLED_BY_MEMBER,
}


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse a YYYY-MM-DD option, exiting on bad input."""
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        print_error(f"Invalid date: {value} (expected YYYY-MM-DD)")
        raise typer.Exit(1)


def get_manager(refresh: bool = True) -> LendingManager:
    """Build a manager on the local mirror, refreshed from the remote store."""
    config = get_config()
    manager = LendingManager(get_db(), config=config)
    if refresh and config.has_remote_config() and not manager.refresh():
        print_warning("Remote store unreachable, working from the local mirror.")
    return manager


def report(result: ActionResult) -> None:
    """Print an action result; rejected actions exit with status 1."""
    if not result.ok:
        print_error(result.reason)
        raise typer.Exit(1)
    if result.queued:
        print_warning(result.message)
    else:
        print_success(result.message)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging for every command."""
    level = "DEBUG" if verbose else get_config().log_level
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# ============================================================================
# Catalog Commands
# ============================================================================


@app.command()
def refresh() -> None:
    """Pull a fresh snapshot from the remote store into the local mirror."""
    config = get_config()
    if not config.has_remote_config():
        print_error("Remote store not configured. Set LIBRIS_REMOTE_URL.")
        raise typer.Exit(1)

    manager = get_manager(refresh=False)
    if not manager.refresh():
        print_error("Could not reach the remote store; local mirror unchanged.")
        raise typer.Exit(1)

    snapshot = manager.snapshot
    print_success(
        f"Pulled {len(snapshot.titles)} titles, {len(snapshot.members)} members, "
        f"{len(snapshot.events)} loan events, {len(snapshot.reservations)} reservations."
    )


@app.command()
def titles(
    status: Optional[str] = typer.Option(
        None, "--status", "-s", help="Filter by status (On Shelf, Reserved, Unavailable)"
    ),
) -> None:
    """Show the shelf availability of every title."""
    manager = get_manager()

    status_filter = None
    if status:
        try:
            status_filter = TitleStatus(status)
        except ValueError:
            print_error(f"Invalid status: {status}")
            console.print(f"[dim]Valid: {', '.join(s.value for s in TitleStatus)}[/dim]")
            raise typer.Exit(1)

    rows = [a for a in manager.catalog() if not status_filter or a.status == status_filter]
    if not rows:
        console.print("[dim]No titles found[/dim]")
        return

    table = Table(title="Titles", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan", max_width=40)
    table.add_column("Copies", justify="right")
    table.add_column("Out", justify="right")
    table.add_column("On Shelf", justify="right")
    table.add_column("Reserved", justify="right")
    table.add_column("Status")

    for availability in rows:
        title = manager.snapshot.title(availability.title_id)
        style = STATUS_STYLES[availability.status]
        table.add_row(
            availability.title_id,
            title.title,
            str(availability.total_copies),
            str(availability.checked_out),
            str(availability.on_shelf),
            str(availability.active_reservations),
            f"[{style}]{availability.status.value}[/{style}]",
        )

    console.print(table)


@app.command("add-title")
def add_title(
    title_id: str = typer.Argument(..., help="Title ID"),
    name: str = typer.Argument(..., help="Title"),
    copies: int = typer.Option(1, "--copies", "-c", help="Number of physical copies"),
    author: str = typer.Option("", "--author", "-a", help="Author"),
    isbn: Optional[str] = typer.Option(None, "--isbn", help="ISBN"),
    category: Optional[str] = typer.Option(None, "--category", help="Category"),
    language: Optional[str] = typer.Option(None, "--language", help="Language"),
) -> None:
    """Add a title to the catalog."""
    if copies < 1:
        print_error("A title needs at least one copy.")
        raise typer.Exit(1)

    manager = get_manager()
    record = TitleRecord(
        id=title_id,
        title=name,
        author=author,
        isbn=isbn,
        category=category,
        language=language,
        total_copies=copies,
    )
    report(manager.add_title(record))


@app.command("edit-title")
def edit_title(
    title_id: str = typer.Argument(..., help="Title ID"),
    name: Optional[str] = typer.Option(None, "--title", "-t", help="New title"),
    copies: Optional[int] = typer.Option(None, "--copies", "-c", help="Number of physical copies"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Author"),
    isbn: Optional[str] = typer.Option(None, "--isbn", help="ISBN"),
    category: Optional[str] = typer.Option(None, "--category", help="Category"),
    language: Optional[str] = typer.Option(None, "--language", help="Language"),
) -> None:
    """Edit a title's details or copy count."""
    if copies is not None and copies < 1:
        print_error("A title needs at least one copy.")
        raise typer.Exit(1)

    data = TitleUpdate(
        title=name,
        total_copies=copies,
        author=author,
        isbn=isbn,
        category=category,
        language=language,
    )
    report(get_manager().update_title(title_id, data))


@app.command("remove-title")
def remove_title(
    title_id: str = typer.Argument(..., help="Title ID"),
) -> None:
    """Remove a title that has no copies checked out."""
    report(get_manager().remove_title(title_id))


@app.command("add-member")
def add_member(
    name: str = typer.Argument(..., help="Member name"),
    member_id: Optional[str] = typer.Option(
        None, "--id", help="Member ID (next free number if omitted)"
    ),
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Email"),
    phone: Optional[str] = typer.Option(None, "--phone", "-p", help="Phone number"),
) -> None:
    """Register a library member."""
    manager = get_manager()
    record = MemberRecord(
        id=member_id or manager.next_member_id(),
        name=name,
        email=email,
        phone_number=phone,
        join_date=date.today(),
    )
    report(manager.add_member(record))


@app.command("edit-member")
def edit_member(
    member_id: str = typer.Argument(..., help="Member ID"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="New name"),
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Email"),
    phone: Optional[str] = typer.Option(None, "--phone", "-p", help="Phone number"),
) -> None:
    """Edit a member's contact details."""
    data = MemberUpdate(name=name, email=email, phone_number=phone)
    report(get_manager().update_member(member_id, data))


@app.command("remove-member")
def remove_member(
    member_id: str = typer.Argument(..., help="Member ID"),
) -> None:
    """Remove a member who has returned everything."""
    report(get_manager().remove_member(member_id))


# ============================================================================
# Loan Commands
# ============================================================================


@app.command()
def loans(
    member_id: Optional[str] = typer.Option(None, "--member", "-m", help="Only this member"),
) -> None:
    """List open loans."""
    manager = get_manager()
    open_loans = manager.open_loans(member_id=member_id)

    if not open_loans:
        console.print("[dim]No open loans[/dim]")
        return

    today = date.today()
    table = Table(title="Open Loans", show_header=True, header_style="bold magenta")
    table.add_column("Loan", style="dim")
    table.add_column("Title", style="cyan", max_width=30)
    table.add_column("Member")
    table.add_column("Since")
    table.add_column("Due")
    table.add_column("Renewals", justify="right")

    for loan in open_loans:
        due = loan.due_date.isoformat()
        if loan.due_date < today:
            due = f"[bold red]{due}[/bold red]"
        table.add_row(
            loan.loan_id,
            loan.title,
            f"{loan.member_name} ({loan.member_id})",
            loan.checked_out_on.isoformat(),
            due,
            str(loan.renewal_count),
        )

    console.print(table)


@app.command()
def checkout(
    title_id: str = typer.Argument(..., help="Title ID"),
    member_id: str = typer.Argument(..., help="Member ID"),
    due: Optional[str] = typer.Option(None, "--due", "-d", help="Due date (YYYY-MM-DD)"),
    force: bool = typer.Option(
        False, "--force", "-f", help="Lend even if the member has unreturned titles"
    ),
) -> None:
    """Check out a copy of a title to a member."""
    due_date = parse_date(due)
    manager = get_manager()

    if due_date is None:
        proposal = manager.propose_due_date(title_id)
        if proposal and proposal.shortened:
            print_warning(proposal.note)

    report(manager.checkout(title_id, member_id, due_date=due_date, force=force))


@app.command()
def checkin(
    title_id: str = typer.Argument(..., help="Title ID"),
    member_id: str = typer.Argument(..., help="Member ID"),
) -> None:
    """Check in a copy returned by a member."""
    report(get_manager().checkin(title_id, member_id))


@app.command()
def renew(
    loan_id: str = typer.Argument(..., help="Loan (CheckOut event) ID"),
) -> None:
    """Renew an open loan."""
    report(get_manager().renew(loan_id))


# ============================================================================
# Reservation Commands
# ============================================================================


@app.command()
def reserve(
    title_id: str = typer.Argument(..., help="Title ID"),
    member_id: str = typer.Argument(..., help="Member ID"),
    pickup: Optional[str] = typer.Option(
        None, "--pickup", "-p", help="Pickup date (YYYY-MM-DD, earliest possible if omitted)"
    ),
) -> None:
    """Reserve a title for future pickup."""
    pickup_date = parse_date(pickup)
    manager = get_manager()

    if pickup_date is None:
        pickup_date = manager.earliest_pickup(title_id)
        if pickup_date is None:
            print_error(f"Title '{title_id}' not found.")
            raise typer.Exit(1)
        print_info(f"Using earliest pickup date {pickup_date.isoformat()}")

    report(manager.reserve(title_id, member_id, pickup_date))


@app.command("earliest-pickup")
def earliest_pickup(
    title_id: str = typer.Argument(..., help="Title ID"),
) -> None:
    """Show the earliest pickup date a new reservation could get."""
    manager = get_manager()
    earliest = manager.earliest_pickup(title_id)
    if earliest is None:
        print_error(f"Title '{title_id}' not found.")
        raise typer.Exit(1)

    console.print(
        Panel(
            f"[bold]{earliest.isoformat()}[/bold]",
            title=f"Earliest pickup: {manager.snapshot.title(title_id).title}",
        )
    )


@app.command("edit-pickup")
def edit_pickup(
    reservation_id: str = typer.Argument(..., help="Reservation ID"),
    pickup: str = typer.Argument(..., help="New pickup date (YYYY-MM-DD)"),
) -> None:
    """Move a reservation to another pickup date."""
    new_date = parse_date(pickup)
    report(get_manager().edit_pickup_date(reservation_id, new_date))


@app.command()
def cancel(
    reservation_id: str = typer.Argument(..., help="Reservation ID"),
    reason: str = typer.Option(
        "librarian",
        "--reason",
        "-r",
        help="Why: librarian, overdue or member",
    ),
) -> None:
    """Cancel an active reservation."""
    status = CANCEL_REASONS.get(reason.lower())
    if status is None:
        print_error(f"Invalid reason: {reason}")
        console.print(f"[dim]Valid: {', '.join(CANCEL_REASONS)}[/dim]")
        raise typer.Exit(1)

    report(get_manager().cancel_reservation(reservation_id, status=status))


@app.command()
def fulfil(
    reservation_id: str = typer.Argument(..., help="Reservation ID"),
    override: bool = typer.Option(
        False, "--override", help="Issue even if an earlier reservation is waiting"
    ),
) -> None:
    """Issue a reserved title to its member."""
    report(get_manager().fulfil_reservation(reservation_id, override=override))


# ============================================================================
# Report Commands
# ============================================================================


@app.command()
def overdue() -> None:
    """Show overdue loans and reservations past their pickup date."""
    manager = get_manager()
    overdue_loans = manager.overdue_loans()
    overdue_reservations = manager.overdue_reservations()

    if not overdue_loans and not overdue_reservations:
        print_success("Nothing overdue!")
        return

    if overdue_loans:
        table = Table(title="Overdue Loans", show_header=True, header_style="bold red")
        table.add_column("Loan", style="dim")
        table.add_column("Title", style="cyan", max_width=30)
        table.add_column("Member")
        table.add_column("Due")
        table.add_column("Days", justify="right")
        for loan in overdue_loans:
            table.add_row(
                loan.loan_id,
                loan.title,
                f"{loan.member_name} ({loan.member_id})",
                loan.due_date.isoformat(),
                str(loan.days_overdue),
            )
        console.print(table)

    if overdue_reservations:
        table = Table(title="Missed Pickups", show_header=True, header_style="bold yellow")
        table.add_column("Reservation", style="dim")
        table.add_column("Title", style="cyan", max_width=30)
        table.add_column("Member")
        table.add_column("Pickup")
        for r in overdue_reservations:
            table.add_row(
                r.reservation_id,
                r.title,
                f"{r.member_name} ({r.member_id})",
                r.pickup_date.isoformat(),
            )
        console.print(table)


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of entries"),
) -> None:
    """Show recent circulation activity."""
    entries = get_db().list_activity(limit=limit)
    if not entries:
        console.print("[dim]No activity recorded[/dim]")
        return

    table = Table(title="Activity", show_header=True, header_style="bold magenta")
    table.add_column("When", style="dim")
    table.add_column("Action", style="cyan")
    table.add_column("Details")
    for entry in entries:
        table.add_row(entry.timestamp.strftime("%Y-%m-%d %H:%M"), entry.action, entry.details)
    console.print(table)


# ============================================================================
# Settings Commands
# ============================================================================


@app.command()
def settings(
    loan_period: Optional[int] = typer.Option(
        None, "--loan-period", help="Loan period in days"
    ),
    max_renewals: Optional[int] = typer.Option(
        None, "--max-renewals", help="Maximum renewals per loan"
    ),
) -> None:
    """Show or update the circulation settings."""
    manager = get_manager()

    if loan_period is not None or max_renewals is not None:
        report(manager.update_settings(loan_period_days=loan_period, max_renewals=max_renewals))

    current = manager.settings
    console.print(
        Panel(
            f"Loan period: [bold]{current.loan_period_days}[/bold] days\n"
            f"Max renewals: [bold]{current.max_renewals}[/bold]",
            title="Settings",
        )
    )


# ============================================================================
# Sync Commands
# ============================================================================


@app.command()
def queue() -> None:
    """Show operations waiting in the offline queue."""
    manager = get_manager(refresh=False)
    entries = manager.queue.load()

    if not entries:
        console.print("[green]✓[/green] Offline queue is empty.")
        return

    table = Table(title="Offline Queue", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Queued")
    table.add_column("Operation")
    table.add_column("Entity", style="cyan")
    table.add_column("Record")
    for i, entry in enumerate(entries, start=1):
        table.add_row(
            str(i),
            entry.enqueued_at.strftime("%Y-%m-%d %H:%M"),
            entry.kind.value,
            entry.entity.value,
            entry.operation.record_id,
        )
    console.print(table)


@app.command()
def sync() -> None:
    """Replay the offline queue against the remote store."""
    config = get_config()
    if not config.has_remote_config():
        print_error("Remote store not configured. Set LIBRIS_REMOTE_URL.")
        raise typer.Exit(1)

    manager = get_manager(refresh=False)
    pending = len(manager.queue)
    if pending == 0:
        console.print("[green]✓[/green] No queued changes to sync.")
        return

    console.print(f"[bold]Syncing {pending} queued operations...[/bold]")
    result = manager.sync(show_progress=True)

    console.print(f"\n  Synced: {result.succeeded} of {result.total}")
    if result.errors:
        print_error(f"{len(result.errors)} operations failed and stay queued")
        for item, error in result.errors[:5]:
            console.print(f"  [red]- {item}: {error}[/red]")
        raise typer.Exit(1)

    console.print("\n[green]✓ Sync successful![/green]")
    manager.refresh()


# ============================================================================
# Version Command
# ============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from .. import __version__

    console.print(f"libris version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
