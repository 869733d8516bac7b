"""Loan limit policy."""

from ..errors import LimitExceededError
from .schemas import Role

MAX_ACTIVE_LOANS = {
    Role.LIBRARIAN: 10,
    Role.MEMBER: 5,
}


class LoanLimitPolicy:
    """Maximum concurrent active loans per role.

    Pure: the caller supplies the borrower's current active-loan count.
    """

    def max_active_loans(self, role: Role) -> int:
        """Return the loan limit for ``role``."""
        return MAX_ACTIVE_LOANS[Role(role)]

    def check_under_limit(self, actor_id: str, current_active_count: int, role: Role) -> None:
        """Raise ``LimitExceededError`` if one more loan would exceed the limit."""
        limit = self.max_active_loans(role)
        if current_active_count >= limit:
            raise LimitExceededError(actor_id, max=limit, current=current_active_count)
