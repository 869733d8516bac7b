"""Pytest configuration and shared fixtures.

This module provides fixtures for testing the circulation engine,
including temporary databases, actors, a fixed clock and book factories.
"""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generator

import pytest

from circulation.config import reset_config
from circulation.db.schemas import BookCreate
from circulation.db.sqlite import Database, reset_db
from circulation.lending import BorrowingOrchestrator
from circulation.lending.schemas import Actor, Role

# Wall clock used by every orchestrator in the tests. Scenario timestamps
# are earlier than this, so they are never "in the future".
CLOCK_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Shorthand for an aware UTC datetime."""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    for suffix in ("", "-journal", "-wal", "-shm"):
        path = Path(str(db_path) + suffix)
        if path.exists():
            path.unlink()


@pytest.fixture(scope="function")
def db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create a test database instance backed by a temporary file."""
    # Reset any global state
    reset_db()
    reset_config()

    # Set environment variable for test database
    os.environ["CIRCULATION_DB_PATH"] = str(temp_db_path)

    database = Database(str(temp_db_path))
    database.create_tables()
    yield database

    # Cleanup
    database.engine.dispose()
    reset_db()
    reset_config()
    if "CIRCULATION_DB_PATH" in os.environ:
        del os.environ["CIRCULATION_DB_PATH"]


@pytest.fixture
def memory_db() -> Database:
    """Create an in-memory database for single-threaded tests."""
    database = Database(":memory:")
    database.create_tables()
    return database


# ============================================================================
# Actor Fixtures
# ============================================================================


@pytest.fixture
def member() -> Actor:
    """A regular library member."""
    return Actor(id="member-1", role=Role.MEMBER)


@pytest.fixture
def other_member() -> Actor:
    """A second member, for cross-member access checks."""
    return Actor(id="member-2", role=Role.MEMBER)


@pytest.fixture
def librarian() -> Actor:
    """A librarian."""
    return Actor(id="librarian-1", role=Role.LIBRARIAN)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """A clock frozen at ``CLOCK_NOW``."""
    return lambda: CLOCK_NOW


@pytest.fixture
def make_book(db: Database) -> Callable[..., str]:
    """Factory that registers a book and returns its ID."""
    counter = {"n": 0}

    def _make(title: str = None, total_copies: int = 1) -> str:
        counter["n"] += 1
        data = BookCreate(
            title=title or f"Test Book {counter['n']}",
            author="Test Author",
            total_copies=total_copies,
        )
        return db.create_book(data).id

    return _make


@pytest.fixture
def orchestrator(db: Database, clock) -> BorrowingOrchestrator:
    """Create a BorrowingOrchestrator with the test database and clock."""
    return BorrowingOrchestrator(db, clock=clock)
