"""Pydantic schemas for borrowing operations."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..db.models import Loan
from .fines import FineCalculator


class Role(str, Enum):
    """Role of an authenticated actor."""

    LIBRARIAN = "librarian"
    MEMBER = "member"


class LoanState(str, Enum):
    """Derived state of a loan at an evaluation time.

    As a listing filter, ``ACTIVE`` matches every unreturned loan, overdue
    ones included.
    """

    ACTIVE = "active"
    OVERDUE = "overdue"
    RETURNED = "returned"


def state_at(loan: Loan, now: datetime) -> LoanState:
    """Classify ``loan`` at ``now``."""
    if loan.is_returned:
        return LoanState.RETURNED
    if loan.is_overdue_at(now):
        return LoanState.OVERDUE
    return LoanState.ACTIVE


class Actor(BaseModel):
    """An already-authenticated caller, supplied by the identity layer."""

    id: str = Field(..., min_length=1)
    role: Role

    model_config = {"frozen": True}

    @property
    def is_librarian(self) -> bool:
        return self.role == Role.LIBRARIAN


class LoanView(BaseModel):
    """Schema for loan responses."""

    id: str
    book_id: str
    borrower_id: str
    borrowed_at: datetime
    due_at: datetime
    returned_at: Optional[datetime]
    state: LoanState
    is_overdue: bool
    days_overdue: int
    fine_amount: Decimal

    @classmethod
    def from_loan(cls, loan: Loan, now: datetime, fines: FineCalculator) -> "LoanView":
        """Build a view of ``loan`` with overdue state evaluated at ``now``."""
        return cls(
            id=loan.id,
            book_id=loan.book_id,
            borrower_id=loan.borrower_id,
            borrowed_at=loan.borrowed_at_dt,
            due_at=loan.due_at_dt,
            returned_at=loan.returned_at_dt,
            state=state_at(loan, now),
            is_overdue=loan.is_overdue_at(now),
            days_overdue=fines.days_overdue(loan, now),
            fine_amount=fines.fine(loan, now),
        )


class ReturnReceipt(BaseModel):
    """Outcome of returning a loan."""

    loan: LoanView
    was_overdue: bool
    days_overdue: int
    fine_amount: Decimal


class ExtensionReceipt(BaseModel):
    """Outcome of extending a loan."""

    loan: LoanView
    previous_due_at: datetime
    new_due_at: datetime
    extension_days: int
    total_extension_days: int
