"""Catalog inventory module.

Registers books, adjusts copy totals and guards deletion while copies are
on loan.
"""

from .manager import CatalogManager

__all__ = [
    "CatalogManager",
]
