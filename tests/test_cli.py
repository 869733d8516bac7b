"""Tests for the CLI interface."""

import os
import re
import tempfile
from pathlib import Path

import pytest
from typer.testing import CliRunner

from circulation.cli import app
from circulation.config import reset_config
from circulation.db.sqlite import reset_db


@pytest.fixture(autouse=True)
def setup_test_db():
    """Set up a test database for each test."""
    reset_db()
    reset_config()

    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    os.environ["CIRCULATION_DB_PATH"] = db_path

    yield

    # Cleanup
    reset_db()
    reset_config()
    if "CIRCULATION_DB_PATH" in os.environ:
        del os.environ["CIRCULATION_DB_PATH"]
    if Path(db_path).exists():
        Path(db_path).unlink()


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


def add_book(runner: CliRunner, title: str = "CLI Book", copies: int = 1) -> str:
    """Add a book through the CLI and return its ID."""
    result = runner.invoke(app, ["add-book", title, "--copies", str(copies)])
    assert result.exit_code == 0
    return re.search(r"ID: ([0-9a-f-]{36})", result.stdout).group(1)


def borrow(runner: CliRunner, book_id: str, actor: str = "m1") -> str:
    """Borrow through the CLI and return the loan ID."""
    result = runner.invoke(app, ["borrow", book_id, "--actor", actor])
    assert result.exit_code == 0
    return re.search(r"Loan ID: ([0-9a-f-]{36})", result.stdout).group(1)


class TestCLIBasics:
    """Tests for basic CLI functionality."""

    def test_help(self, runner: CliRunner):
        """Test that help command works."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Borrow, return and extend" in result.stdout

    def test_version(self, runner: CliRunner):
        """Test version command."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.stdout

    def test_init_db(self, runner: CliRunner):
        """Test database initialization."""
        result = runner.invoke(app, ["init-db"])
        assert result.exit_code == 0
        assert "Database ready" in result.stdout


class TestCatalogCommands:
    """Tests for add-book and availability."""

    def test_add_book(self, runner: CliRunner):
        """Test adding a book."""
        result = runner.invoke(app, ["add-book", "Middlemarch", "--copies", "3"])
        assert result.exit_code == 0
        assert "Added 'Middlemarch' (3 copies)" in result.stdout

    def test_availability(self, runner: CliRunner):
        """Test availability after a borrow."""
        book_id = add_book(runner, copies=2)
        borrow(runner, book_id)

        result = runner.invoke(app, ["availability", book_id])
        assert result.exit_code == 0
        assert "1 / 2" in result.stdout

    def test_availability_unknown(self, runner: CliRunner):
        """Test availability of an unknown book."""
        result = runner.invoke(app, ["availability", "missing"])
        assert result.exit_code == 1
        assert "Book not found" in result.stdout


class TestBorrowingCommands:
    """Tests for borrow, return and extend."""

    def test_borrow_and_return(self, runner: CliRunner):
        """Test a full borrow/return cycle."""
        book_id = add_book(runner)
        loan_id = borrow(runner, book_id)

        result = runner.invoke(app, ["return", loan_id, "--actor", "lib", "--role", "librarian"])
        assert result.exit_code == 0
        assert "Book returned" in result.stdout

    def test_member_cannot_return(self, runner: CliRunner):
        """Test members cannot check books in, even their own."""
        loan_id = borrow(runner, add_book(runner), actor="m1")

        result = runner.invoke(app, ["return", loan_id, "--actor", "m1"])
        assert result.exit_code == 1
        assert "Only librarians" in result.stdout

    def test_borrow_for_librarian(self, runner: CliRunner):
        """Test --for-role applies the borrower's own loan limit."""
        for i in range(5):
            result = runner.invoke(app, [
                "borrow", add_book(runner, title=f"Book {i}"),
                "--actor", "lib", "--role", "librarian",
                "--for", "lib2", "--for-role", "librarian",
            ])
            assert result.exit_code == 0

        # A member would be at their limit of 5 here
        result = runner.invoke(app, [
            "borrow", add_book(runner, title="Sixth"),
            "--actor", "lib", "--role", "librarian",
            "--for", "lib2", "--for-role", "librarian",
        ])
        assert result.exit_code == 0
        assert "Book borrowed" in result.stdout

    def test_borrow_for_defaults_to_member(self, runner: CliRunner):
        """Test --for without --for-role lends under member limits."""
        for i in range(5):
            runner.invoke(app, [
                "borrow", add_book(runner, title=f"Book {i}"),
                "--actor", "lib", "--role", "librarian", "--for", "m9",
            ])

        result = runner.invoke(app, [
            "borrow", add_book(runner, title="Sixth"),
            "--actor", "lib", "--role", "librarian", "--for", "m9",
        ])
        assert result.exit_code == 1

    def test_borrow_unavailable(self, runner: CliRunner):
        """Test borrowing the only copy twice."""
        book_id = add_book(runner, title="Scarce")
        borrow(runner, book_id, actor="m1")

        result = runner.invoke(app, ["borrow", book_id, "--actor", "m2"])
        assert result.exit_code == 1
        assert "not available" in result.stdout

    def test_return_someone_elses_loan(self, runner: CliRunner):
        """Test a member cannot return another member's loan."""
        loan_id = borrow(runner, add_book(runner), actor="m1")

        result = runner.invoke(app, ["return", loan_id, "--actor", "m2"])
        assert result.exit_code == 1
        assert "Only librarians" in result.stdout

    def test_extend(self, runner: CliRunner):
        """Test extending a loan."""
        loan_id = borrow(runner, add_book(runner))

        result = runner.invoke(app, ["extend", loan_id, "--days", "5", "--actor", "m1"])
        assert result.exit_code == 0
        assert "Total extension: 5 days" in result.stdout

    def test_extend_too_far(self, runner: CliRunner):
        """Test the extension cap via the CLI."""
        loan_id = borrow(runner, add_book(runner))

        runner.invoke(app, ["extend", loan_id, "--days", "10", "--actor", "m1"])
        result = runner.invoke(app, ["extend", loan_id, "--days", "5", "--actor", "m1"])
        assert result.exit_code == 1
        assert "maximum limit of 14 days" in result.stdout

    def test_loans(self, runner: CliRunner):
        """Test listing active loans."""
        borrow(runner, add_book(runner), actor="m1")

        result = runner.invoke(app, ["loans", "--actor", "m1"])
        assert result.exit_code == 0
        assert "Active Loans" in result.stdout

    def test_loans_empty(self, runner: CliRunner):
        """Test listing with no loans."""
        result = runner.invoke(app, ["loans", "--actor", "m1"])
        assert result.exit_code == 0
        assert "No active loans" in result.stdout

    def test_history(self, runner: CliRunner):
        """Test returned loans appear in the history."""
        loan_id = borrow(runner, add_book(runner), actor="m1")
        runner.invoke(app, ["return", loan_id, "--actor", "lib", "--role", "librarian"])

        result = runner.invoke(app, ["history", "--actor", "m1", "--status", "returned"])
        assert result.exit_code == 0
        assert "Loan History" in result.stdout
        assert "returned" in result.stdout

        result = runner.invoke(app, ["history", "--actor", "m1", "--status", "active"])
        assert result.exit_code == 0
        assert "No loans found" in result.stdout

    def test_history_other_member_forbidden(self, runner: CliRunner):
        """Test a member cannot read another member's history."""
        result = runner.invoke(app, ["history", "--actor", "m1", "--borrower", "m2"])
        assert result.exit_code == 1
        assert "your own loans" in result.stdout

    def test_fine(self, runner: CliRunner):
        """Test a projected fine far in the future."""
        loan_id = borrow(runner, add_book(runner))

        result = runner.invoke(app, ["fine", loan_id])
        assert result.exit_code == 0
        assert "$0.00" in result.stdout

    def test_fine_bad_timestamp(self, runner: CliRunner):
        """Test an unparseable --at value."""
        loan_id = borrow(runner, add_book(runner))

        result = runner.invoke(app, ["fine", loan_id, "--at", "yesterday"])
        assert result.exit_code == 1
        assert "Invalid timestamp" in result.stdout


class TestReportCommands:
    """Tests for overdue and stats."""

    def test_overdue_none(self, runner: CliRunner):
        """Test the overdue report with nothing overdue."""
        borrow(runner, add_book(runner))

        result = runner.invoke(app, ["overdue", "--actor", "lib", "--role", "librarian"])
        assert result.exit_code == 0
        assert "No overdue loans" in result.stdout

    def test_overdue_member_forbidden(self, runner: CliRunner):
        """Test members cannot run the overdue report."""
        result = runner.invoke(app, ["overdue", "--actor", "m1"])
        assert result.exit_code == 1
        assert "Only librarians" in result.stdout

    def test_stats(self, runner: CliRunner):
        """Test circulation statistics."""
        borrow(runner, add_book(runner))

        result = runner.invoke(app, ["stats", "--actor", "lib", "--role", "librarian"])
        assert result.exit_code == 0
        assert "Total loans" in result.stdout
