"""SQLAlchemy ORM models for the circulation database.

Tables:
- books: Inventory-bearing catalog records (copy counters)
- loans: Individual loan records

A loan has no stored status column. Whether it is active, returned or
overdue is derived from ``returned_at`` and ``due_at`` every time it is
read.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ..utils import ensure_utc, from_iso, to_iso, utcnow


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


class Book(Base):
    """Book model - the copy counters the ledger protects."""

    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("total_copies >= 1", name="ck_books_total_positive"),
        CheckConstraint("available_copies >= 0", name="ck_books_available_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies", name="ck_books_available_within_total"
        ),
    )

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Core fields
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[Optional[str]] = mapped_column(String(500))
    isbn: Mapped[Optional[str]] = mapped_column(String(13), unique=True)

    # Inventory
    total_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    available_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Timestamps
    created_at: Mapped[str] = mapped_column(
        String(32), default=lambda: to_iso(utcnow())
    )
    updated_at: Mapped[str] = mapped_column(
        String(32),
        default=lambda: to_iso(utcnow()),
        onupdate=lambda: to_iso(utcnow()),
    )

    def __repr__(self) -> str:
        return (
            f"<Book(id={self.id}, title='{self.title}', "
            f"available={self.available_copies}/{self.total_copies})>"
        )

    @property
    def borrowed_copies(self) -> int:
        """Copies currently out on loan according to the counters."""
        return self.total_copies - self.available_copies

    @property
    def is_available(self) -> bool:
        """Check if at least one copy can be borrowed."""
        return self.available_copies > 0


class Loan(Base):
    """Loan model - one copy of a book lent to one borrower."""

    __tablename__ = "loans"
    __table_args__ = (
        # At most one active loan per (book, borrower)
        Index(
            "uq_loans_active_book_borrower",
            "book_id",
            "borrower_id",
            unique=True,
            sqlite_where=text("returned_at IS NULL"),
            postgresql_where=text("returned_at IS NULL"),
        ),
        Index("ix_loans_borrower_returned", "borrower_id", "returned_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    book_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("books.id"),
        nullable=False,
        index=True,
    )

    # Resolved by the identity collaborator; no users table here
    borrower_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # Dates (fixed-width ISO 8601, UTC)
    borrowed_at: Mapped[str] = mapped_column(String(32), nullable=False)
    due_at: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    returned_at: Mapped[Optional[str]] = mapped_column(String(32), index=True)

    # Timestamps
    created_at: Mapped[str] = mapped_column(
        String(32), default=lambda: to_iso(utcnow())
    )
    updated_at: Mapped[str] = mapped_column(
        String(32),
        default=lambda: to_iso(utcnow()),
        onupdate=lambda: to_iso(utcnow()),
    )

    # Relationships
    book: Mapped["Book"] = relationship("Book")

    def __repr__(self) -> str:
        return (
            f"<Loan(id={self.id}, book_id={self.book_id}, "
            f"borrower_id={self.borrower_id}, returned={self.is_returned})>"
        )

    @property
    def borrowed_at_dt(self) -> datetime:
        return from_iso(self.borrowed_at)

    @property
    def due_at_dt(self) -> datetime:
        return from_iso(self.due_at)

    @property
    def returned_at_dt(self) -> Optional[datetime]:
        return from_iso(self.returned_at)

    @property
    def is_returned(self) -> bool:
        """Check if the loan has been closed."""
        return self.returned_at is not None

    @property
    def is_active(self) -> bool:
        return self.returned_at is None

    def is_overdue_at(self, now: datetime) -> bool:
        """Check if loan is overdue at ``now``."""
        return self.is_active and ensure_utc(now) > self.due_at_dt

    @classmethod
    def active_clause(cls):
        """SQL filter for active loans."""
        return cls.returned_at.is_(None)

    @classmethod
    def overdue_clause(cls, now: datetime):
        """SQL filter for loans overdue at ``now``."""
        return cls.returned_at.is_(None) & (cls.due_at < to_iso(now))
