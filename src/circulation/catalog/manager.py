"""Catalog manager for the inventory side of book records.

Only the operations that touch copy counts live here: registering a book,
changing how many copies the library owns, removing a book, and checking
availability. Everything else about a book belongs to the catalog proper.
"""

import logging
from typing import Optional

from ..db.models import Book
from ..db.schemas import AvailabilityResponse, BookCreate, BookResponse
from ..db.sqlite import Database, get_db
from ..errors import (
    BookHasActiveLoansError,
    BookHasLoanHistoryError,
    DuplicateBookError,
    ForbiddenError,
    InvalidCopyCountError,
    NotFoundError,
)
from ..lending.schemas import Actor

logger = logging.getLogger(__name__)


class CatalogManager:
    """Manages book inventory records."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize catalog manager.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    def add_book(self, data: BookCreate) -> BookResponse:
        """Register a book with all of its copies on the shelf.

        Args:
            data: Book creation data

        Returns:
            Created book
        """
        with self.db.get_session() as session:
            if data.isbn:
                existing = self.db.get_book_by_isbn(data.isbn, session)
                if existing:
                    raise DuplicateBookError(data.isbn, existing.id)

            book = self.db.create_book(data, session)
            logger.info("Registered book %s (%d copies)", book.id, book.total_copies)
            return BookResponse.model_validate(book)

    def get_book(self, book_id: str) -> BookResponse:
        """Get a book by ID.

        Raises:
            NotFoundError: If the book does not exist
        """
        with self.db.get_session() as session:
            return BookResponse.model_validate(self._load(session, book_id))

    def set_total_copies(self, actor: Actor, book_id: str, total_copies: int) -> BookResponse:
        """Change how many copies the library owns.

        Copies on loan stay on loan; ``available_copies`` becomes the new
        total minus the active loans.

        Args:
            actor: Caller; must be a librarian
            book_id: Book ID
            total_copies: New total (>= 1 and >= copies on loan)

        Returns:
            Updated book
        """
        self._require_librarian(actor, "change copy counts")

        with self.db.get_session() as session:
            book = self._load(session, book_id, for_update=True)
            on_loan = self.db.count_active_loans_for_book(book_id, session)

            if total_copies < 1:
                raise InvalidCopyCountError(
                    "Total copies must be greater than 0",
                    book_id=book_id,
                    total_copies=total_copies,
                )
            if total_copies < on_loan:
                raise InvalidCopyCountError(
                    f"Cannot set total copies below borrowed copies ({on_loan})",
                    book_id=book_id,
                    total_copies=total_copies,
                    borrowed_copies=on_loan,
                )

            book.total_copies = total_copies
            book.available_copies = total_copies - on_loan
            session.flush()

            logger.info(
                "Book %s now has %d copies (%d on loan)", book_id, total_copies, on_loan
            )
            return BookResponse.model_validate(book)

    def delete_book(self, actor: Actor, book_id: str) -> bool:
        """Remove a book that has never been lent.

        Returned loans keep referencing their book, so a book with any
        loan history stays in the catalog.

        Args:
            actor: Caller; must be a librarian
            book_id: Book ID

        Returns:
            True if deleted
        """
        self._require_librarian(actor, "delete books")

        with self.db.get_session() as session:
            book = self._load(session, book_id, for_update=True)
            active = self.db.count_active_loans_for_book(book_id, session)
            if active:
                raise BookHasActiveLoansError(book_id, active, book.title)
            history = self.db.count_loans_for_book(book_id, session)
            if history:
                raise BookHasLoanHistoryError(book_id, history, book.title)

            deleted = self.db.delete_book(book_id, session)
            logger.info("Deleted book %s", book_id)
            return deleted

    def check_availability(self, book_id: str) -> AvailabilityResponse:
        """Report how many copies of a book are on the shelf."""
        with self.db.get_session() as session:
            book = self._load(session, book_id)
            return AvailabilityResponse(
                book_id=book.id,
                title=book.title,
                is_available=book.is_available,
                total_copies=book.total_copies,
                available_copies=book.available_copies,
                borrowed_copies=self.db.count_active_loans_for_book(book_id, session),
            )

    def _load(self, session, book_id: str, for_update: bool = False) -> Book:
        book = self.db.get_book(book_id, session, for_update=for_update)
        if book is None:
            raise NotFoundError("Book", book_id)
        return book

    @staticmethod
    def _require_librarian(actor: Actor, action: str) -> None:
        if not actor.is_librarian:
            raise ForbiddenError(f"Only librarians can {action}", actor_id=actor.id)
