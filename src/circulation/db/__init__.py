"""Database module for local SQLite storage."""

from .models import Book, Loan
from .schemas import AvailabilityResponse, BookCreate, BookResponse
from .sqlite import Database, get_db

__all__ = [
    "Book",
    "Loan",
    "AvailabilityResponse",
    "BookCreate",
    "BookResponse",
    "Database",
    "get_db",
]
