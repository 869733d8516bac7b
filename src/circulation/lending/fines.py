"""Overdue fine calculation."""

from datetime import datetime
from decimal import Decimal

from ..db.models import Loan
from ..utils import ensure_utc, whole_days_between

DAILY_FINE = Decimal("1.00")


class FineCalculator:
    """Maps a loan and an evaluation time to a monetary penalty.

    Returned loans are fined as of their return time, active loans as of
    ``now``. Only whole 24-hour periods past the due date count.
    """

    def __init__(self, daily_fine: Decimal = DAILY_FINE):
        self.daily_fine = daily_fine

    def as_of(self, loan: Loan, now: datetime) -> datetime:
        """Effective evaluation time for ``loan``."""
        if loan.is_returned:
            return loan.returned_at_dt
        return ensure_utc(now)

    def days_overdue(self, loan: Loan, now: datetime) -> int:
        return whole_days_between(loan.due_at_dt, self.as_of(loan, now))

    def fine(self, loan: Loan, now: datetime) -> Decimal:
        """Fine owed for ``loan`` as of ``now``. Never negative."""
        return (self.daily_fine * self.days_overdue(loan, now)).quantize(Decimal("0.01"))
