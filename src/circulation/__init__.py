"""Borrowing lifecycle and inventory consistency engine for a library."""

__version__ = "0.1.0"
