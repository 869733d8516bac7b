"""Read-only circulation reports.

Nothing here is cached or scheduled. "Overdue", "due today" and "due soon"
are evaluated against ``now`` on every call.
"""

from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import func, select

from ..db.models import Loan
from ..db.sqlite import Database, get_db
from ..errors import ForbiddenError
from ..lending.fines import FineCalculator
from ..lending.policy import LoanLimitPolicy
from ..lending.schemas import Actor, LoanView
from ..utils import ensure_utc, to_iso, utcnow
from .schemas import CirculationStats, MemberSummary, OverdueReport


class ReportsManager:
    """Builds overdue, due-date and statistics reports."""

    def __init__(
        self,
        db: Optional[Database] = None,
        fines: Optional[FineCalculator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize reports manager.

        Args:
            db: Database instance
            fines: Fine calculator
            clock: Source of the current time
        """
        self.db = db or get_db()
        self.fines = fines or FineCalculator()
        self.policy = LoanLimitPolicy()
        self.clock = clock

    def overdue_report(self, actor: Actor, now: Optional[datetime] = None) -> OverdueReport:
        """Get report of overdue loans, oldest due date first.

        Args:
            actor: Caller; must be a librarian
            now: Evaluation time

        Returns:
            OverdueReport with projected fines
        """
        self._require_librarian(actor)
        now = self._now(now)

        with self.db.get_session() as session:
            stmt = select(Loan).where(Loan.overdue_clause(now)).order_by(Loan.due_at)
            loans = session.execute(stmt).scalars().all()
            views = [LoanView.from_loan(loan, now, self.fines) for loan in loans]

        total_days = sum(view.days_overdue for view in views)
        return OverdueReport(
            loans=views,
            total_overdue=len(views),
            total_fine_amount=sum((view.fine_amount for view in views), Decimal("0.00")),
            average_days_overdue=round(total_days / len(views), 2) if views else 0.0,
            oldest_overdue_days=max((view.days_overdue for view in views), default=0),
        )

    def due_today(self, now: Optional[datetime] = None) -> list[LoanView]:
        """Get active loans due on the current UTC calendar day."""
        now = self._now(now)
        start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
        return self._active_due_between(start, start + timedelta(days=1), now)

    def due_soon(self, days: int = 3, now: Optional[datetime] = None) -> list[LoanView]:
        """Get active loans not yet overdue and due within ``days``.

        Args:
            days: Number of days to look ahead
            now: Evaluation time

        Returns:
            Loans ordered by due date
        """
        now = self._now(now)
        return self._active_due_between(now, now + timedelta(days=days), now)

    def circulation_stats(self, actor: Actor, now: Optional[datetime] = None) -> CirculationStats:
        """Get overall circulation statistics.

        Returns:
            CirculationStats with counts
        """
        self._require_librarian(actor)
        now = self._now(now)

        with self.db.get_session() as session:
            total = session.execute(select(func.count()).select_from(Loan)).scalar() or 0

            active = session.execute(
                select(func.count()).select_from(Loan).where(Loan.active_clause())
            ).scalar() or 0

            overdue = session.execute(
                select(func.count()).select_from(Loan).where(Loan.overdue_clause(now))
            ).scalar() or 0

            returned = session.execute(
                select(Loan).where(Loan.returned_at.isnot(None))
            ).scalars().all()
            durations = [
                (loan.returned_at_dt - loan.borrowed_at_dt) / timedelta(days=1)
                for loan in returned
            ]

        return CirculationStats(
            total_loans=total,
            active_loans=active,
            returned_loans=len(returned),
            overdue_loans=overdue,
            due_today=len(self.due_today(now)),
            average_loan_duration_days=(
                round(sum(durations) / len(durations), 2) if durations else None
            ),
        )

    def member_summary(
        self, actor: Actor, borrower: Optional[Actor] = None, now: Optional[datetime] = None
    ) -> MemberSummary:
        """Summarize one borrower's loans and outstanding fines.

        Members may only summarize themselves.
        """
        borrower = borrower or actor
        if borrower.id != actor.id and not actor.is_librarian:
            raise ForbiddenError(
                "You can only view your own loans", actor_id=actor.id, borrower_id=borrower.id
            )
        now = self._now(now)

        with self.db.get_session() as session:
            total = session.execute(
                select(func.count()).select_from(Loan).where(Loan.borrower_id == borrower.id)
            ).scalar() or 0
            active = self.db.get_active_loans_for_borrower(borrower.id, session)
            overdue = [loan for loan in active if loan.is_overdue_at(now)]
            outstanding = sum((self.fines.fine(loan, now) for loan in overdue), Decimal("0.00"))

        return MemberSummary(
            borrower_id=borrower.id,
            active_loans=len(active),
            overdue_loans=len(overdue),
            total_loans=total,
            outstanding_fines=outstanding,
            loan_limit=self.policy.max_active_loans(borrower.role),
        )

    def _active_due_between(
        self, start: datetime, end: datetime, now: datetime
    ) -> list[LoanView]:
        with self.db.get_session() as session:
            stmt = (
                select(Loan)
                .where(
                    Loan.active_clause(),
                    Loan.due_at >= to_iso(start),
                    Loan.due_at < to_iso(end),
                )
                .order_by(Loan.due_at)
            )
            loans = session.execute(stmt).scalars().all()
            return [LoanView.from_loan(loan, now, self.fines) for loan in loans]

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else self.clock()

    @staticmethod
    def _require_librarian(actor: Actor) -> None:
        if not actor.is_librarian:
            raise ForbiddenError("Only librarians can view circulation reports", actor_id=actor.id)
