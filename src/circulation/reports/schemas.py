"""Pydantic schemas for circulation reports."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from ..lending.schemas import LoanView


class OverdueReport(BaseModel):
    """Report of overdue loans."""

    loans: list[LoanView]
    total_overdue: int
    total_fine_amount: Decimal
    average_days_overdue: float
    oldest_overdue_days: int


class CirculationStats(BaseModel):
    """Overall circulation statistics."""

    total_loans: int
    active_loans: int
    returned_loans: int
    overdue_loans: int
    due_today: int
    average_loan_duration_days: Optional[float] = None


class MemberSummary(BaseModel):
    """Loan summary for a single borrower."""

    borrower_id: str
    active_loans: int
    overdue_loans: int
    total_loans: int
    outstanding_fines: Decimal
    loan_limit: Optional[int] = None
