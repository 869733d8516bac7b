"""Borrowing orchestrator.

Each public mutation runs as one unit of work: load and lock, validate,
apply the ledger change, persist the loan, commit. Any failure before the
commit rolls the whole unit back, so a ledger change never survives
without its loan record and vice versa.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..db.models import Loan
from ..db.sqlite import Database, get_db
from ..errors import AlreadyBorrowedError, BusinessRuleError, ForbiddenError, NotFoundError
from ..inventory.ledger import InventoryLedger
from ..utils import ensure_utc, utcnow
from .fines import FineCalculator
from .policy import LoanLimitPolicy
from .schemas import Actor, ExtensionReceipt, LoanState, LoanView, ReturnReceipt
from .state import BorrowingStateMachine

logger = logging.getLogger(__name__)


class BorrowingOrchestrator:
    """Coordinates policy, state machine and ledger for borrow/return/extend."""

    def __init__(
        self,
        db: Optional[Database] = None,
        ledger: Optional[InventoryLedger] = None,
        policy: Optional[LoanLimitPolicy] = None,
        fines: Optional[FineCalculator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the orchestrator.

        Args:
            db: Database instance
            ledger: Inventory ledger (defaults to one over ``db``)
            policy: Loan limit policy
            fines: Fine calculator
            clock: Source of the current time
        """
        self.db = db or get_db()
        self.ledger = ledger or InventoryLedger(self.db)
        self.policy = policy or LoanLimitPolicy()
        self.fines = fines or FineCalculator()
        self.clock = clock
        self.state_machine = BorrowingStateMachine(self.policy, self.fines, clock)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def borrow(
        self,
        actor: Actor,
        book_id: str,
        borrower: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> LoanView:
        """Lend one copy of a book.

        Args:
            actor: Caller performing the operation
            book_id: Book to borrow
            borrower: Actor who will hold the loan; librarians only, when
                      different from ``actor``
            now: Borrow time (default: current time)

        Returns:
            View of the new loan
        """
        borrower = borrower or actor
        now = self._now(now)
        self._log_operation("borrow", actor, book_id=book_id, borrower_id=borrower.id)

        if borrower.id != actor.id and not actor.is_librarian:
            exc = ForbiddenError(
                "Only librarians can borrow books for other users",
                actor_id=actor.id,
                borrower_id=borrower.id,
            )
            self._log_rejection("borrow", exc)
            raise exc

        try:
            with self.db.get_session() as session:
                book = self.db.get_book(book_id, session, for_update=True)
                if book is None:
                    raise NotFoundError("Book", book_id)

                active = self.db.get_active_loans_for_borrower(borrower.id, session)
                loan = self.state_machine.borrow(book, borrower, now, active)

                # A failed flush expires the session's objects
                title = book.title
                self.ledger.reserve(session, book_id)
                try:
                    self.db.add_loan(loan, session)
                except IntegrityError as exc:
                    # Partial unique index on active (book, borrower) pairs
                    raise AlreadyBorrowedError(book_id, borrower.id, title) from exc

                return LoanView.from_loan(loan, now, self.fines)
        except BusinessRuleError as exc:
            self._log_rejection("borrow", exc)
            raise

    def return_book(
        self, actor: Actor, loan_id: str, now: Optional[datetime] = None
    ) -> ReturnReceipt:
        """Close a loan and put the copy back on the shelf.

        Only librarians check books back in.

        Args:
            actor: Caller performing the operation; must be a librarian
            loan_id: Loan to close
            now: Return time (default: current time)

        Returns:
            ReturnReceipt with overdue days and fine
        """
        now = self._now(now)
        self._log_operation("return_book", actor, loan_id=loan_id)

        try:
            if not actor.is_librarian:
                raise ForbiddenError(
                    "Only librarians can return books", actor_id=actor.id, loan_id=loan_id
                )

            with self.db.get_session() as session:
                loan = self._load_loan(session, loan_id, for_update=True)

                # Serialize with borrows of the same book
                self.db.get_book(loan.book_id, session, for_update=True)

                days_overdue = self.state_machine.return_loan(loan, now)
                self.ledger.release(session, loan.book_id)
                session.flush()

                return ReturnReceipt(
                    loan=LoanView.from_loan(loan, now, self.fines),
                    was_overdue=loan.returned_at_dt > loan.due_at_dt,
                    days_overdue=days_overdue,
                    fine_amount=self.fines.fine(loan, now),
                )
        except BusinessRuleError as exc:
            self._log_rejection("return_book", exc)
            raise

    def extend(
        self, actor: Actor, loan_id: str, days: int, now: Optional[datetime] = None
    ) -> ExtensionReceipt:
        """Push a loan's due date forward.

        Args:
            actor: Caller performing the operation
            loan_id: Loan to extend
            days: Days to add (1-14, cumulative cap 14)
            now: Evaluation time for the overdue check (default: current time)

        Returns:
            ExtensionReceipt with old and new due dates
        """
        now = self._now(now)
        self._log_operation("extend", actor, loan_id=loan_id, days=days)

        try:
            with self.db.get_session() as session:
                loan = self._load_loan(session, loan_id, for_update=True)
                self._ensure_can_access(actor, loan, "extend")

                previous_due = loan.due_at_dt
                total_extension = self.state_machine.extend(loan, days, now, actor)
                session.flush()

                return ExtensionReceipt(
                    loan=LoanView.from_loan(loan, now, self.fines),
                    previous_due_at=previous_due,
                    new_due_at=loan.due_at_dt,
                    extension_days=days,
                    total_extension_days=total_extension,
                )
        except BusinessRuleError as exc:
            self._log_rejection("extend", exc)
            raise

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_loan(self, actor: Actor, loan_id: str, now: Optional[datetime] = None) -> LoanView:
        """Get a loan visible to ``actor``."""
        now = self._now(now)
        with self.db.get_session() as session:
            loan = self._load_loan(session, loan_id)
            self._ensure_can_access(actor, loan, "view")
            return LoanView.from_loan(loan, now, self.fines)

    def list_active_loans(
        self,
        actor: Actor,
        borrower_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[LoanView]:
        """List a borrower's active loans, earliest due first.

        Members may only list their own loans.
        """
        now = self._now(now)
        borrower_id = borrower_id or actor.id
        if borrower_id != actor.id and not actor.is_librarian:
            raise ForbiddenError(
                "You can only view your own loans", actor_id=actor.id, borrower_id=borrower_id
            )

        with self.db.get_session() as session:
            loans = self.db.get_active_loans_for_borrower(borrower_id, session)
            return [LoanView.from_loan(loan, now, self.fines) for loan in loans]

    def list_loans(
        self,
        actor: Actor,
        borrower_id: Optional[str] = None,
        book_id: Optional[str] = None,
        status: Optional[LoanState] = None,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[LoanView]:
        """List loan history with optional filters, most recently borrowed first.

        Members see only their own loans; ``borrower_id`` defaults to them.
        Librarians see every borrower's loans unless ``borrower_id`` is given.

        Args:
            actor: Caller performing the query
            borrower_id: Filter by borrower
            book_id: Filter by book
            status: ``ACTIVE`` (all unreturned), ``OVERDUE`` or ``RETURNED``
            limit: Maximum number of loans to return
            now: Evaluation time for overdue state (default: current time)

        Returns:
            List of loan views
        """
        now = self._now(now)
        if not actor.is_librarian:
            borrower_id = borrower_id or actor.id
            if borrower_id != actor.id:
                raise ForbiddenError(
                    "You can only view your own loans", actor_id=actor.id, borrower_id=borrower_id
                )

        with self.db.get_session() as session:
            stmt = select(Loan)

            if borrower_id:
                stmt = stmt.where(Loan.borrower_id == borrower_id)
            if book_id:
                stmt = stmt.where(Loan.book_id == book_id)
            if status == LoanState.ACTIVE:
                stmt = stmt.where(Loan.active_clause())
            elif status == LoanState.OVERDUE:
                stmt = stmt.where(Loan.overdue_clause(now))
            elif status == LoanState.RETURNED:
                stmt = stmt.where(Loan.returned_at.isnot(None))

            stmt = stmt.order_by(Loan.borrowed_at.desc(), Loan.id)
            if limit is not None:
                stmt = stmt.limit(limit)

            loans = session.execute(stmt).scalars().all()
            return [LoanView.from_loan(loan, now, self.fines) for loan in loans]

    def compute_fine(self, loan_id: str, now: Optional[datetime] = None) -> Decimal:
        """Fine for a loan: historical if returned, projected otherwise."""
        now = self._now(now)
        with self.db.get_session() as session:
            loan = self._load_loan(session, loan_id)
            return self.fines.fine(loan, now)

    def is_overdue(self, loan_id: str, now: Optional[datetime] = None) -> bool:
        """Check whether a loan is overdue at ``now``."""
        now = self._now(now)
        with self.db.get_session() as session:
            loan = self._load_loan(session, loan_id)
            return loan.is_overdue_at(now)

    def has_active_loans(self, book_id: str) -> bool:
        """Check whether any copy of a book is on loan."""
        return self.db.has_active_loans(book_id)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else self.clock()

    def _load_loan(self, session, loan_id: str, for_update: bool = False) -> Loan:
        loan = self.db.get_loan(loan_id, session, for_update=for_update)
        if loan is None:
            raise NotFoundError("Loan", loan_id)
        return loan

    @staticmethod
    def _ensure_can_access(actor: Actor, loan: Loan, action: str) -> None:
        """Members may only touch their own loans; librarians may touch any."""
        if actor.is_librarian or loan.borrower_id == actor.id:
            return
        raise ForbiddenError(
            f"You can only {action} your own loans", actor_id=actor.id, loan_id=loan.id
        )

    @staticmethod
    def _log_operation(operation: str, actor: Actor, **context: Any) -> None:
        logger.info(
            "Borrowing operation: %s actor=%s role=%s %s",
            operation,
            actor.id,
            actor.role.value,
            " ".join(f"{key}={value}" for key, value in context.items()),
        )

    @staticmethod
    def _log_rejection(operation: str, exc: BusinessRuleError) -> None:
        logger.warning(
            "Borrowing operation rejected: %s %s %s",
            operation,
            type(exc).__name__,
            exc.context,
        )
