"""Inventory ledger module.

Owns the ``total_copies`` / ``available_copies`` pair of each book.
"""

from .ledger import InventoryLedger
from .schemas import LedgerCheck

__all__ = [
    "InventoryLedger",
    "LedgerCheck",
]
