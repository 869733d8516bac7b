"""Pydantic schemas for inventory checks."""

from pydantic import BaseModel


class LedgerCheck(BaseModel):
    """Result of comparing a book's counters with its active loans."""

    book_id: str
    total_copies: int
    available_copies: int
    active_loans: int
    consistent: bool
