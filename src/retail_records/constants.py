"""Enumerations shared across the retail records modules.

Keeps table identifiers, sheet names and storage states in one place so the
data access layer, the tabular store and the console front-end agree on them.
"""

from __future__ import annotations

from enum import Enum, IntEnum


SUPPORTED_EXTENSIONS: tuple[str, ...] = (".xls", ".xlsx")
HEADER_ROW = 1
FIRST_DATA_ROW = HEADER_ROW + 1


class TableId(IntEnum):
    """Numeric table identifiers exposed to the caller (menu items 1..4)."""

    PRODUCT_MOVEMENTS = 1
    PRODUCTS = 2
    CATEGORIES = 3
    STORES = 4


class SheetName(str, Enum):
    """Enumerate the worksheet names backing each table."""

    PRODUCT_MOVEMENTS = "ProductMovements"
    PRODUCTS = "Products"
    CATEGORIES = "Categories"
    STORES = "Stores"


class StorageState(str, Enum):
    """Lifecycle of a table storage: ``UNOPENED -> OPEN -> CLOSED``."""

    UNOPENED = "unopened"
    OPEN = "open"
    CLOSED = "closed"


__all__ = [
    "SUPPORTED_EXTENSIONS",
    "HEADER_ROW",
    "FIRST_DATA_ROW",
    "TableId",
    "SheetName",
    "StorageState",
]
