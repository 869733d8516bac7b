"""Loan lifecycle transitions.

A loan is either ``active`` or ``returned``; ``returned`` is terminal.
"Overdue" is not a state of its own but a view over an active loan whose
due date has passed, recomputed from the evaluation time on every read.

The transitions here validate and mutate in-memory objects only. Locking,
the ledger and persistence belong to the orchestrator.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from ..db.models import Book, Loan
from ..errors import (
    AlreadyBorrowedError,
    AlreadyReturnedError,
    BookUnavailableError,
    ExtensionLimitExceededError,
    InvalidBorrowDateError,
    InvalidExtensionDaysError,
    OverdueExtensionRequiresLibrarianError,
)
from ..utils import ensure_utc, to_iso, utcnow, whole_days_between
from .fines import FineCalculator
from .policy import LoanLimitPolicy
from .schemas import Actor

LOAN_PERIOD_DAYS = 14
MAX_EXTENSION_DAYS = 14  # cumulative, measured from the original due date
MIN_EXTENSION_REQUEST = 1
MAX_EXTENSION_REQUEST = 14

LOAN_PERIOD = timedelta(days=LOAN_PERIOD_DAYS)


def extension_so_far(loan: Loan) -> timedelta:
    """How far ``due_at`` has been pushed past the original loan period."""
    return loan.due_at_dt - loan.borrowed_at_dt - LOAN_PERIOD


class BorrowingStateMachine:
    """Validates and applies borrow, return and extend transitions."""

    def __init__(
        self,
        policy: Optional[LoanLimitPolicy] = None,
        fines: Optional[FineCalculator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.policy = policy or LoanLimitPolicy()
        self.fines = fines or FineCalculator()
        self.clock = clock

    def borrow(
        self, book: Book, borrower: Actor, now: datetime, active_loans: list[Loan]
    ) -> Loan:
        """Create a new active loan of ``book`` for ``borrower``.

        Args:
            book: Book being borrowed (counters as currently stored)
            borrower: Actor who will hold the loan
            now: Borrow time
            active_loans: Borrower's current active loans

        Returns:
            Unsaved Loan due ``LOAN_PERIOD_DAYS`` after ``now``
        """
        now = ensure_utc(now)
        if now > self.clock():
            raise InvalidBorrowDateError(
                "Borrowed date cannot be in the future", borrowed_at=to_iso(now)
            )

        if not book.is_available:
            raise BookUnavailableError(book.id, book.title)

        if any(loan.book_id == book.id for loan in active_loans):
            raise AlreadyBorrowedError(book.id, borrower.id, book.title)

        self.policy.check_under_limit(borrower.id, len(active_loans), borrower.role)

        return Loan(
            book_id=book.id,
            borrower_id=borrower.id,
            borrowed_at=to_iso(now),
            due_at=to_iso(now + LOAN_PERIOD),
            returned_at=None,
        )

    def return_loan(self, loan: Loan, now: datetime) -> int:
        """Close ``loan`` at ``now``.

        Returns:
            Whole days the loan was overdue (0 if returned on time)
        """
        if loan.is_returned:
            raise AlreadyReturnedError(loan.id, loan.returned_at)

        loan.returned_at = to_iso(ensure_utc(now))
        return self.fines.days_overdue(loan, now)

    def extend(
        self, loan: Loan, requested_days: int, now: datetime, requesting_actor: Actor
    ) -> int:
        """Push ``loan.due_at`` forward by ``requested_days``.

        Returns:
            Cumulative extension in days after this change
        """
        if loan.is_returned:
            raise AlreadyReturnedError(loan.id, loan.returned_at)

        if not MIN_EXTENSION_REQUEST <= requested_days <= MAX_EXTENSION_REQUEST:
            raise InvalidExtensionDaysError(
                requested_days, MIN_EXTENSION_REQUEST, MAX_EXTENSION_REQUEST
            )

        current = extension_so_far(loan)
        if current + timedelta(days=requested_days) > timedelta(days=MAX_EXTENSION_DAYS):
            raise ExtensionLimitExceededError(
                loan.id,
                max=MAX_EXTENSION_DAYS,
                current_extension_days=current.days,
                requested_days=requested_days,
            )

        now = ensure_utc(now)
        if loan.due_at_dt < now and not requesting_actor.is_librarian:
            raise OverdueExtensionRequiresLibrarianError(
                loan.id, whole_days_between(loan.due_at_dt, now)
            )

        loan.due_at = to_iso(loan.due_at_dt + timedelta(days=requested_days))
        return extension_so_far(loan).days
