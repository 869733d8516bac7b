"""Tests for ReportsManager."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from circulation.errors import ForbiddenError
from circulation.reports import ReportsManager

JAN_1 = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def reports(db, clock) -> ReportsManager:
    """Create a ReportsManager with test database."""
    return ReportsManager(db, clock=clock)


@pytest.fixture
def loans(orchestrator, make_book, member, other_member, librarian):
    """Three loans with staggered due dates; the last one is returned."""
    jan_1 = orchestrator.borrow(member, make_book(), now=JAN_1)  # due Jan 15
    jan_5 = orchestrator.borrow(other_member, make_book(), now=JAN_1 + timedelta(days=4))  # Jan 19
    done = orchestrator.borrow(member, make_book(), now=JAN_1)
    orchestrator.return_book(librarian, done.id, now=JAN_1 + timedelta(days=3))
    return jan_1, jan_5, done


class TestOverdueReport:
    """Tests for the overdue report."""

    def test_overdue_report(self, reports, loans, librarian):
        """Test overdue loans, oldest first, with projected fines."""
        jan_1, jan_5, _ = loans
        report = reports.overdue_report(librarian, datetime(2025, 1, 20, tzinfo=timezone.utc))

        assert [loan.id for loan in report.loans] == [jan_1.id, jan_5.id]
        assert report.total_overdue == 2
        assert report.oldest_overdue_days == 5
        assert report.total_fine_amount == Decimal("6.00")
        assert report.average_days_overdue == 3.0

    def test_nothing_overdue(self, reports, loans, librarian):
        """Test an empty report before anything is due."""
        report = reports.overdue_report(librarian, JAN_1 + timedelta(days=5))
        assert report.loans == []
        assert report.total_fine_amount == Decimal("0.00")
        assert report.oldest_overdue_days == 0

    def test_member_forbidden(self, reports, member):
        """Test members cannot run circulation reports."""
        with pytest.raises(ForbiddenError):
            reports.overdue_report(member)


class TestDueDates:
    """Tests for due today / due soon."""

    def test_due_today(self, reports, loans):
        """Test loans due on the current UTC day."""
        jan_1, _, _ = loans
        due = reports.due_today(datetime(2025, 1, 15, 0, 0, tzinfo=timezone.utc))
        assert [loan.id for loan in due] == [jan_1.id]

        assert reports.due_today(datetime(2025, 1, 16, tzinfo=timezone.utc)) == []

    def test_due_soon(self, reports, loans):
        """Test loans due within the window that are not yet overdue."""
        jan_1, jan_5, _ = loans
        now = datetime(2025, 1, 13, tzinfo=timezone.utc)

        assert [loan.id for loan in reports.due_soon(3, now)] == [jan_1.id]
        assert [loan.id for loan in reports.due_soon(7, now)] == [jan_1.id, jan_5.id]

    def test_due_soon_excludes_overdue(self, reports, loans):
        """Test an already overdue loan is not 'due soon'."""
        _, jan_5, _ = loans
        due = reports.due_soon(7, datetime(2025, 1, 16, tzinfo=timezone.utc))
        assert [loan.id for loan in due] == [jan_5.id]


class TestCirculationStats:
    """Tests for circulation statistics."""

    def test_stats(self, reports, loans, librarian):
        """Test counts across active, returned and overdue loans."""
        stats = reports.circulation_stats(librarian, datetime(2025, 1, 16, tzinfo=timezone.utc))

        assert stats.total_loans == 3
        assert stats.active_loans == 2
        assert stats.returned_loans == 1
        assert stats.overdue_loans == 1
        assert stats.due_today == 0
        assert stats.average_loan_duration_days == 3.0

    def test_empty(self, reports, librarian):
        """Test statistics with no loans."""
        stats = reports.circulation_stats(librarian)
        assert stats.total_loans == 0
        assert stats.average_loan_duration_days is None

    def test_member_forbidden(self, reports, member):
        """Test members cannot view statistics."""
        with pytest.raises(ForbiddenError):
            reports.circulation_stats(member)


class TestMemberSummary:
    """Tests for per-borrower summaries."""

    def test_own_summary(self, reports, loans, member):
        """Test a member's own summary."""
        summary = reports.member_summary(member, now=datetime(2025, 1, 17, tzinfo=timezone.utc))

        assert summary.borrower_id == member.id
        assert summary.total_loans == 2
        assert summary.active_loans == 1
        assert summary.overdue_loans == 1
        assert summary.outstanding_fines == Decimal("2.00")
        assert summary.loan_limit == 5

    def test_librarian_views_member(self, reports, loans, librarian, other_member):
        """Test a librarian can summarize any borrower."""
        summary = reports.member_summary(librarian, other_member, now=JAN_1)
        assert summary.active_loans == 1
        assert summary.outstanding_fines == Decimal("0.00")

    def test_member_cannot_view_other(self, reports, member, other_member):
        """Test a member cannot summarize someone else."""
        with pytest.raises(ForbiddenError):
            reports.member_summary(member, other_member)
