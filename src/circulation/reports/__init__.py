"""Circulation reports module.

Provides functionality for:
- Overdue loan reports with projected fines
- Due today / due soon lists
- Circulation statistics
- Per-borrower summaries
"""

from .manager import ReportsManager
from .schemas import CirculationStats, MemberSummary, OverdueReport

__all__ = [
    "ReportsManager",
    "CirculationStats",
    "MemberSummary",
    "OverdueReport",
]
