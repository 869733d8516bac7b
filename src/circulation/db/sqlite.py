"""SQLite database operations.

Handles database connection, session management, and the narrow set of
catalog and loan accessors the circulation core needs.

Every session is one unit of work. On SQLite each transaction is opened
with ``BEGIN IMMEDIATE`` so that writers take the database write lock up
front and concurrent units of work queue behind it (up to the configured
lock timeout) instead of interleaving their reads and writes.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, func, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from ..errors import ContentionError, StoreUnavailableError
from .models import Base, Book, Loan
from .schemas import BookCreate

logger = logging.getLogger(__name__)

_CONTENTION_MARKERS = (
    "database is locked",
    "database table is locked",
    "database is busy",
    "deadlock detected",
    "lock timeout",
    "could not obtain lock",
    "could not serialize access",
)
_UNAVAILABLE_MARKERS = (
    "unable to open database",
    "disk i/o error",
    "server closed the connection",
    "connection refused",
    "could not connect",
)


def translate_db_error(exc: DBAPIError) -> Optional[Exception]:
    """Map a driver error to a retryable infrastructure error, if it is one."""
    message = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
    if any(marker in message for marker in _CONTENTION_MARKERS):
        return ContentionError("Could not acquire database lock", detail=message)
    if exc.connection_invalidated or any(m in message for m in _UNAVAILABLE_MARKERS):
        return StoreUnavailableError("Data store unavailable", detail=message)
    return None


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None, lock_timeout: Optional[float] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     CIRCULATION_DB_PATH env var or default location.
            lock_timeout: Seconds to wait for the write lock. If None,
                          uses CIRCULATION_LOCK_TIMEOUT.
        """
        config = get_config()
        if db_path is None:
            db_path = str(config.db_path)
        if lock_timeout is None:
            lock_timeout = config.lock_timeout

        self.db_path = Path(db_path)
        self.lock_timeout = lock_timeout
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False, "timeout": lock_timeout},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False, "timeout": lock_timeout},
            )
        self._install_transaction_hooks()
        self.SessionLocal = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _install_transaction_hooks(self) -> None:
        """Take over BEGIN from pysqlite so transactions start IMMEDIATE."""

        @event.listens_for(self.engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            # pysqlite must not emit its own BEGIN
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(self.engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager.

        Commits on normal exit and rolls back on any exception. Lock
        timeouts and connection failures are re-raised as
        ``ContentionError`` / ``StoreUnavailableError``.
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except DBAPIError as exc:
            session.rollback()
            translated = translate_db_error(exc)
            if translated is None:
                raise
            logger.warning("Unit of work aborted: %s", translated.context.get("detail"))
            raise translated from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Book Operations
    # ========================================================================

    def create_book(self, book: BookCreate, session: Optional[Session] = None) -> Book:
        """Create a new book record with every copy available."""

        def _create(s: Session) -> Book:
            db_book = Book(
                title=book.title,
                author=book.author,
                isbn=book.isbn,
                total_copies=book.total_copies,
                available_copies=book.total_copies,
            )
            s.add(db_book)
            s.flush()
            return db_book

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                book = _create(s)
                s.expunge(book)
                return book

    def get_book(
        self, book_id: str, session: Optional[Session] = None, for_update: bool = False
    ) -> Optional[Book]:
        """Get a book by ID, optionally row-locked for the rest of the unit of work."""

        def _get(s: Session) -> Optional[Book]:
            stmt = select(Book).where(Book.id == book_id)
            if for_update:
                stmt = stmt.with_for_update()
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                book = _get(s)
                if book:
                    s.expunge(book)
                return book

    def get_book_by_isbn(self, isbn: str, session: Optional[Session] = None) -> Optional[Book]:
        """Get a book by ISBN."""

        def _get(s: Session) -> Optional[Book]:
            return s.execute(select(Book).where(Book.isbn == isbn)).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                book = _get(s)
                if book:
                    s.expunge(book)
                return book

    def adjust_available_copies(self, book_id: str, delta: int, session: Session) -> bool:
        """Atomically shift ``available_copies`` by ``delta`` within its bounds.

        The bounds are part of the UPDATE's WHERE clause, so the change is
        applied only if ``0 <= available + delta <= total`` at the moment the
        row is written. Returns False when no row was changed.
        """
        stmt = (
            update(Book)
            .where(
                Book.id == book_id,
                Book.available_copies + delta >= 0,
                Book.available_copies + delta <= Book.total_copies,
            )
            .values(available_copies=Book.available_copies + delta)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        changed = result.rowcount == 1

        # Make a loaded Book re-read its counters on next access
        cached = session.identity_map.get(Session.identity_key(Book, book_id))
        if changed and cached is not None:
            session.expire(cached, ["available_copies", "updated_at"])
        return changed

    def delete_book(self, book_id: str, session: Optional[Session] = None) -> bool:
        """Delete a book record. Callers check ``count_loans_for_book`` first."""

        def _delete(s: Session) -> bool:
            book = s.get(Book, book_id)
            if not book:
                return False
            s.delete(book)
            return True

        if session:
            return _delete(session)
        else:
            with self.get_session() as s:
                return _delete(s)

    # ========================================================================
    # Loan Operations
    # ========================================================================

    def add_loan(self, loan: Loan, session: Session) -> Loan:
        """Insert a loan and flush so constraint violations surface here."""
        session.add(loan)
        session.flush()
        return loan

    def get_loan(
        self, loan_id: str, session: Optional[Session] = None, for_update: bool = False
    ) -> Optional[Loan]:
        """Get a loan by ID."""

        def _get(s: Session) -> Optional[Loan]:
            stmt = select(Loan).where(Loan.id == loan_id)
            if for_update:
                stmt = stmt.with_for_update()
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                loan = _get(s)
                if loan:
                    s.expunge(loan)
                return loan

    def get_active_loan(
        self, book_id: str, borrower_id: str, session: Optional[Session] = None
    ) -> Optional[Loan]:
        """Get the borrower's active loan on a book, if any."""

        def _get(s: Session) -> Optional[Loan]:
            stmt = select(Loan).where(
                Loan.book_id == book_id,
                Loan.borrower_id == borrower_id,
                Loan.active_clause(),
            )
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                loan = _get(s)
                if loan:
                    s.expunge(loan)
                return loan

    def get_active_loans_for_borrower(
        self, borrower_id: str, session: Optional[Session] = None
    ) -> list[Loan]:
        """Get all active loans held by a borrower, earliest due first."""

        def _get(s: Session) -> list[Loan]:
            stmt = (
                select(Loan)
                .where(Loan.borrower_id == borrower_id, Loan.active_clause())
                .order_by(Loan.due_at)
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                loans = _get(s)
                for loan in loans:
                    s.expunge(loan)
                return loans

    def count_active_loans_for_book(self, book_id: str, session: Optional[Session] = None) -> int:
        """Count active loans referencing a book."""

        def _count(s: Session) -> int:
            stmt = select(func.count()).select_from(Loan).where(
                Loan.book_id == book_id, Loan.active_clause()
            )
            return s.execute(stmt).scalar() or 0

        if session:
            return _count(session)
        else:
            with self.get_session() as s:
                return _count(s)

    def count_loans_for_book(self, book_id: str, session: Optional[Session] = None) -> int:
        """Count every loan ever recorded against a book, returned ones included."""

        def _count(s: Session) -> int:
            stmt = select(func.count()).select_from(Loan).where(Loan.book_id == book_id)
            return s.execute(stmt).scalar() or 0

        if session:
            return _count(session)
        else:
            with self.get_session() as s:
                return _count(s)

    def has_active_loans(self, book_id: str, session: Optional[Session] = None) -> bool:
        """Check whether any copy of the book is on loan."""
        return self.count_active_loans_for_book(book_id, session) > 0


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    if _db is not None:
        _db.engine.dispose()
    _db = None
