"""Book borrowing module.

Provides functionality for:
- Borrowing, returning and extending loans
- Per-role loan limits
- Due date and overdue computation
- Overdue fines
"""

from .fines import FineCalculator
from .manager import BorrowingOrchestrator
from .policy import LoanLimitPolicy
from .schemas import Actor, ExtensionReceipt, LoanState, LoanView, ReturnReceipt, Role
from .state import BorrowingStateMachine

__all__ = [
    "BorrowingOrchestrator",
    "BorrowingStateMachine",
    "FineCalculator",
    "LoanLimitPolicy",
    "LoanState",
    "Actor",
    "Role",
    "LoanView",
    "ReturnReceipt",
    "ExtensionReceipt",
]
