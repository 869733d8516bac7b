"""Typed failures raised by the circulation engine.

Business-rule failures and infrastructure failures are separate branches of
the hierarchy so callers can tell "the request is not allowed" apart from
"the database could not serve the request right now". Every error carries a
``context`` dict with the ids, limits and counts needed to render a message.
"""

from typing import Any, Optional


class CirculationError(Exception):
    """Base exception for all circulation errors."""

    retryable = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


# ============================================================================
# Business Rule Failures
# ============================================================================


class BusinessRuleError(CirculationError):
    """A request violated a lending rule."""


class NotFoundError(BusinessRuleError):
    """Requested entity does not exist."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class ForbiddenError(BusinessRuleError):
    """Actor is not allowed to perform the operation."""

    def __init__(self, reason: str, **context: Any):
        super().__init__(reason, reason=reason, **context)
        self.reason = reason


class BookUnavailableError(BusinessRuleError):
    """No copy of the book is available for borrowing."""

    def __init__(self, book_id: str, title: Optional[str] = None):
        message = (
            f"Book '{title}' is not available for borrowing"
            if title
            else "Book is not available for borrowing"
        )
        super().__init__(message, book_id=book_id, title=title)
        self.book_id = book_id
        self.title = title


class AlreadyBorrowedError(BusinessRuleError):
    """Borrower already holds an active loan on this book."""

    def __init__(self, book_id: str, borrower_id: str, title: Optional[str] = None):
        super().__init__(
            "Borrower already has an active loan for this book",
            book_id=book_id,
            borrower_id=borrower_id,
            title=title,
        )
        self.book_id = book_id
        self.borrower_id = borrower_id


class LimitExceededError(BusinessRuleError):
    """Borrower has reached the maximum number of active loans."""

    def __init__(self, actor_id: str, max: int, current: int):
        super().__init__(
            f"Borrower has reached the maximum borrowing limit ({max} books)",
            actor_id=actor_id,
            max=max,
            current=current,
        )
        self.actor_id = actor_id
        self.max = max
        self.current = current


class InvalidBorrowDateError(BusinessRuleError):
    """Borrow timestamp lies in the future."""


class AlreadyReturnedError(BusinessRuleError):
    """Loan has already been returned."""

    def __init__(self, loan_id: str, returned_at: Optional[str] = None):
        super().__init__(
            "Book has already been returned", loan_id=loan_id, returned_at=returned_at
        )
        self.loan_id = loan_id


class InvalidExtensionDaysError(BusinessRuleError):
    """Requested extension is outside the allowed range."""

    def __init__(self, days: int, minimum: int, maximum: int):
        super().__init__(
            f"Extension days must be between {minimum} and {maximum}",
            days=days,
            minimum=minimum,
            maximum=maximum,
        )
        self.days = days


class ExtensionLimitExceededError(BusinessRuleError):
    """Extension would push the cumulative extension past the cap."""

    def __init__(self, loan_id: str, max: int, current_extension_days: int, requested_days: int):
        super().__init__(
            f"Extension would exceed maximum limit of {max} days",
            loan_id=loan_id,
            max=max,
            current_extension_days=current_extension_days,
            requested_days=requested_days,
        )
        self.max = max
        self.current_extension_days = current_extension_days
        self.requested_days = requested_days


class OverdueExtensionRequiresLibrarianError(BusinessRuleError):
    """Only librarians can extend overdue loans."""

    def __init__(self, loan_id: str, days_overdue: int):
        super().__init__(
            "Only librarians can extend overdue loans",
            loan_id=loan_id,
            days_overdue=days_overdue,
        )
        self.days_overdue = days_overdue


class BookHasActiveLoansError(BusinessRuleError):
    """Book cannot be removed while copies are on loan."""

    def __init__(self, book_id: str, active_loans: int, title: Optional[str] = None):
        super().__init__(
            "Cannot delete book with active loans",
            book_id=book_id,
            active_loans=active_loans,
            title=title,
        )
        self.active_loans = active_loans


class BookHasLoanHistoryError(BusinessRuleError):
    """Book cannot be removed while loan records still reference it."""

    def __init__(self, book_id: str, loans: int, title: Optional[str] = None):
        super().__init__(
            "Cannot delete book with loan history",
            book_id=book_id,
            loans=loans,
            title=title,
        )
        self.loans = loans


class InvalidCopyCountError(BusinessRuleError):
    """Total copy count is invalid for the book's current loans."""


class DuplicateBookError(BusinessRuleError):
    """A book with the same ISBN is already registered."""

    def __init__(self, isbn: str, existing_id: str):
        super().__init__(
            "A book with this ISBN already exists", isbn=isbn, existing_id=existing_id
        )


# ============================================================================
# Infrastructure Failures
# ============================================================================


class InfrastructureError(CirculationError):
    """The data store could not complete the unit of work."""

    retryable = True


class ContentionError(InfrastructureError):
    """Lock wait timed out, database busy, or deadlock detected."""


class StoreUnavailableError(InfrastructureError):
    """Connection to the data store was lost or could not be opened."""


# ============================================================================
# Invariant Violations
# ============================================================================


class InventoryCorruptionError(CirculationError):
    """Copy counters disagree with the loans that reference them."""
