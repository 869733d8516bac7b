"""Command-line interface for the circulation engine.

Built with Typer for commands and Rich for output. The caller's identity is
passed explicitly with ``--actor`` and ``--role``; the CLI never
authenticates anyone.
"""

from datetime import datetime
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import configure_logging, get_config
from .db import get_db
from .db.schemas import BookCreate
from .errors import CirculationError, InfrastructureError
from .lending.schemas import Actor, LoanState, LoanView, Role

# Create the main app
app = typer.Typer(
    name="circulation",
    help="Borrow, return and extend library loans.",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


@app.callback()
def _setup() -> None:
    """Apply logging configuration before any command runs."""
    configure_logging(get_config())


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


def fail(error: CirculationError) -> NoReturn:
    """Report a circulation error and exit non-zero."""
    print_error(error.message)
    if isinstance(error, InfrastructureError):
        console.print("[dim]The database was busy; try again.[/dim]")
    raise typer.Exit(1)


def parse_when(value: Optional[str]) -> Optional[datetime]:
    """Parse an optional ISO timestamp option."""
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        print_error(f"Invalid timestamp: {value} (expected ISO 8601)")
        raise typer.Exit(1)


def format_loan_table(loans: list[LoanView], title: str = "Loans") -> Table:
    """Create a rich table for displaying loans."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Book", style="cyan", max_width=8)
    table.add_column("Borrower")
    table.add_column("Borrowed")
    table.add_column("Due")
    table.add_column("Status")
    table.add_column("Fine", justify="right")

    for loan in loans:
        if loan.state == LoanState.RETURNED:
            status_str = "[dim]returned[/dim]"
        elif loan.state == LoanState.OVERDUE:
            status_str = f"[bold red]OVERDUE ({loan.days_overdue}d)[/bold red]"
        else:
            status_str = "[green]active[/green]"

        table.add_row(
            loan.id[:8],
            loan.book_id[:8],
            loan.borrower_id,
            loan.borrowed_at.date().isoformat(),
            loan.due_at.date().isoformat(),
            status_str,
            f"${loan.fine_amount}",
        )

    return table


ActorOption = typer.Option(..., "--actor", "-a", help="ID of the authenticated actor")
RoleOption = typer.Option(Role.MEMBER, "--role", "-r", help="Role of the actor")
NowOption = typer.Option(None, "--at", help="Evaluate at this ISO timestamp instead of now")


# ============================================================================
# Catalog Commands
# ============================================================================


@app.command("init-db")
def init_db() -> None:
    """Create the database tables."""
    db = get_db()
    print_success(f"Database ready at {db.db_path}")


@app.command("add-book")
def add_book(
    title: str = typer.Argument(..., help="Book title"),
    author: Optional[str] = typer.Option(None, "--author", help="Author name"),
    isbn: Optional[str] = typer.Option(None, "--isbn", "-i", help="ISBN"),
    copies: int = typer.Option(1, "--copies", "-c", min=1, help="Number of copies owned"),
) -> None:
    """Register a book and its copies."""
    from .catalog import CatalogManager

    manager = CatalogManager(get_db())
    try:
        book = manager.add_book(
            BookCreate(title=title, author=author, isbn=isbn, total_copies=copies)
        )
    except CirculationError as e:
        fail(e)

    print_success(f"Added '{book.title}' ({book.total_copies} copies)")
    console.print(f"[dim]ID: {book.id}[/dim]")


@app.command()
def availability(
    book_id: str = typer.Argument(..., help="Book ID"),
) -> None:
    """Show how many copies of a book are on the shelf."""
    from .catalog import CatalogManager

    manager = CatalogManager(get_db())
    try:
        info = manager.check_availability(book_id)
    except CirculationError as e:
        fail(e)

    style = "green" if info.is_available else "red"
    console.print(Panel(
        f"[bold]{info.title}[/bold]\n"
        f"Available: [{style}]{info.available_copies}[/{style}] / {info.total_copies}\n"
        f"On loan: {info.borrowed_copies}",
        title="Availability",
    ))


# ============================================================================
# Borrowing Commands
# ============================================================================


@app.command()
def borrow(
    book_id: str = typer.Argument(..., help="Book ID to borrow"),
    actor: str = ActorOption,
    role: Role = RoleOption,
    borrower: Optional[str] = typer.Option(
        None, "--for", help="Borrow on behalf of this user (librarians only)"
    ),
    borrower_role: Role = typer.Option(
        Role.MEMBER, "--for-role", help="Role of the --for user; sets their loan limit"
    ),
) -> None:
    """Borrow a copy of a book."""
    from .lending import BorrowingOrchestrator

    orchestrator = BorrowingOrchestrator(get_db())
    caller = Actor(id=actor, role=role)
    on_behalf = Actor(id=borrower, role=borrower_role) if borrower else None

    try:
        loan = orchestrator.borrow(caller, book_id, borrower=on_behalf)
    except CirculationError as e:
        fail(e)

    print_success("Book borrowed")
    console.print(f"[dim]Loan ID: {loan.id}[/dim]")
    console.print(f"Due: {loan.due_at.date().isoformat()}")


@app.command("return")
def return_loan(
    loan_id: str = typer.Argument(..., help="Loan ID to close"),
    actor: str = ActorOption,
    role: Role = RoleOption,
) -> None:
    """Return a borrowed book."""
    from .lending import BorrowingOrchestrator

    orchestrator = BorrowingOrchestrator(get_db())
    try:
        receipt = orchestrator.return_book(Actor(id=actor, role=role), loan_id)
    except CirculationError as e:
        fail(e)

    print_success("Book returned")
    if receipt.was_overdue:
        print_warning(
            f"{receipt.days_overdue} days overdue, fine ${receipt.fine_amount}"
        )


@app.command()
def extend(
    loan_id: str = typer.Argument(..., help="Loan ID to extend"),
    days: int = typer.Option(7, "--days", "-d", help="Days to extend (1-14)"),
    actor: str = ActorOption,
    role: Role = RoleOption,
) -> None:
    """Extend a loan's due date."""
    from .lending import BorrowingOrchestrator

    orchestrator = BorrowingOrchestrator(get_db())
    try:
        receipt = orchestrator.extend(Actor(id=actor, role=role), loan_id, days)
    except CirculationError as e:
        fail(e)

    print_success(
        f"Due date moved from {receipt.previous_due_at.date().isoformat()} "
        f"to {receipt.new_due_at.date().isoformat()}"
    )
    console.print(f"[dim]Total extension: {receipt.total_extension_days} days[/dim]")


@app.command()
def loans(
    actor: str = ActorOption,
    role: Role = RoleOption,
    borrower: Optional[str] = typer.Option(None, "--borrower", "-b", help="Borrower to list"),
) -> None:
    """List active loans."""
    from .lending import BorrowingOrchestrator

    orchestrator = BorrowingOrchestrator(get_db())
    try:
        views = orchestrator.list_active_loans(Actor(id=actor, role=role), borrower)
    except CirculationError as e:
        fail(e)

    if not views:
        console.print("[dim]No active loans[/dim]")
        return

    console.print(format_loan_table(views, title="Active Loans"))


@app.command()
def history(
    actor: str = ActorOption,
    role: Role = RoleOption,
    borrower: Optional[str] = typer.Option(None, "--borrower", "-b", help="Filter by borrower"),
    book_id: Optional[str] = typer.Option(None, "--book", help="Filter by book ID"),
    status: Optional[LoanState] = typer.Option(None, "--status", "-s", help="Filter by state"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1, help="Maximum loans to show"),
    at: Optional[str] = NowOption,
) -> None:
    """Show loan history, most recent first."""
    from .lending import BorrowingOrchestrator

    orchestrator = BorrowingOrchestrator(get_db())
    try:
        views = orchestrator.list_loans(
            Actor(id=actor, role=role),
            borrower_id=borrower,
            book_id=book_id,
            status=status,
            limit=limit,
            now=parse_when(at),
        )
    except CirculationError as e:
        fail(e)

    if not views:
        console.print("[dim]No loans found[/dim]")
        return

    console.print(format_loan_table(views, title="Loan History"))


@app.command()
def fine(
    loan_id: str = typer.Argument(..., help="Loan ID"),
    at: Optional[str] = NowOption,
) -> None:
    """Show the fine for a loan."""
    from .lending import BorrowingOrchestrator

    orchestrator = BorrowingOrchestrator(get_db())
    now = parse_when(at)
    try:
        amount = orchestrator.compute_fine(loan_id, now)
        overdue = orchestrator.is_overdue(loan_id, now)
    except CirculationError as e:
        fail(e)

    status = "[bold red]overdue[/bold red]" if overdue else "[green]not overdue[/green]"
    console.print(f"Fine: ${amount} ({status})")


# ============================================================================
# Report Commands
# ============================================================================


@app.command()
def overdue(
    actor: str = ActorOption,
    role: Role = RoleOption,
    at: Optional[str] = NowOption,
) -> None:
    """Show overdue loans."""
    from .reports import ReportsManager

    manager = ReportsManager(get_db())
    try:
        report = manager.overdue_report(Actor(id=actor, role=role), parse_when(at))
    except CirculationError as e:
        fail(e)

    if not report.loans:
        print_success("No overdue loans!")
        return

    console.print(Panel(
        f"[bold red]Overdue Loans: {report.total_overdue}[/bold red]\n"
        f"Oldest: {report.oldest_overdue_days} days overdue\n"
        f"Projected fines: ${report.total_fine_amount}",
        style="red",
    ))
    console.print(format_loan_table(report.loans, title="Overdue"))


@app.command()
def stats(
    actor: str = ActorOption,
    role: Role = RoleOption,
) -> None:
    """Show circulation statistics."""
    from .reports import ReportsManager

    manager = ReportsManager(get_db())
    try:
        result = manager.circulation_stats(Actor(id=actor, role=role))
    except CirculationError as e:
        fail(e)

    table = Table(title="Circulation", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Total loans", str(result.total_loans))
    table.add_row("Active", str(result.active_loans))
    table.add_row("Returned", str(result.returned_loans))
    table.add_row("Overdue", str(result.overdue_loans))
    table.add_row("Due today", str(result.due_today))
    if result.average_loan_duration_days is not None:
        table.add_row("Avg. loan (days)", f"{result.average_loan_duration_days:.1f}")
    console.print(table)


# ============================================================================
# Version Command
# ============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"circulation version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
