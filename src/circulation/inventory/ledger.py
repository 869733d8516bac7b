"""Inventory ledger for book copy counters.

The ledger is the only code that moves ``available_copies``. Each reserve
or release is one conditional UPDATE executed inside the caller's session,
so it commits or rolls back together with the loan record it pairs with.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..config import get_config
from ..db.sqlite import Database
from ..errors import BookUnavailableError, InventoryCorruptionError, NotFoundError
from .schemas import LedgerCheck

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Bounded increment/decrement of a book's available copies."""

    def __init__(self, db: Database, strict: Optional[bool] = None):
        """Initialize the ledger.

        Args:
            db: Database instance
            strict: Raise ``InventoryCorruptionError`` when a release would
                    exceed the total. Defaults to CIRCULATION_STRICT_INVENTORY.
        """
        self.db = db
        self.strict = get_config().strict_inventory if strict is None else strict

    def reserve(self, session: Session, book_id: str) -> None:
        """Take one copy off the shelf.

        Raises:
            BookUnavailableError: No copy is available. Nothing is changed.
            NotFoundError: Book does not exist.
        """
        if self.db.adjust_available_copies(book_id, -1, session):
            return

        book = self.db.get_book(book_id, session)
        if book is None:
            raise NotFoundError("Book", book_id)
        raise BookUnavailableError(book_id, book.title)

    def release(self, session: Session, book_id: str) -> None:
        """Put one copy back on the shelf, never above ``total_copies``.

        Raises:
            InventoryCorruptionError: In strict mode, when every copy is
                already on the shelf.
            NotFoundError: Book does not exist.
        """
        if self.db.adjust_available_copies(book_id, 1, session):
            return

        book = self.db.get_book(book_id, session)
        if book is None:
            raise NotFoundError("Book", book_id)

        logger.error(
            "Ledger invariant violated: release on book %s with %d/%d copies available",
            book_id,
            book.available_copies,
            book.total_copies,
        )
        if self.strict:
            raise InventoryCorruptionError(
                "Release would exceed total copies",
                book_id=book_id,
                available_copies=book.available_copies,
                total_copies=book.total_copies,
            )

    def verify(self, session: Session, book_id: str) -> LedgerCheck:
        """Compare the counter pair with the number of active loans."""
        book = self.db.get_book(book_id, session)
        if book is None:
            raise NotFoundError("Book", book_id)

        active = self.db.count_active_loans_for_book(book_id, session)
        check = LedgerCheck(
            book_id=book_id,
            total_copies=book.total_copies,
            available_copies=book.available_copies,
            active_loans=active,
            consistent=(
                0 <= book.available_copies <= book.total_copies
                and book.total_copies - book.available_copies == active
            ),
        )
        if not check.consistent:
            logger.error(
                "Ledger mismatch on book %s: total=%d available=%d active_loans=%d",
                book_id,
                book.total_copies,
                book.available_copies,
                active,
            )
        return check
