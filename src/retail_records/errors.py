"""Error kinds raised by the retail records layers."""

from __future__ import annotations


class RecordStoreError(Exception):
    """Base class for every error raised by the record store."""


class ArgumentError(RecordStoreError, ValueError):
    """Raised when a caller supplies an invalid path, table, record, or field."""


class InvalidTableError(ArgumentError):
    """Raised when a table id is outside the supported range."""


class DuplicateKeyError(ArgumentError):
    """Raised when appending a record whose primary key already exists."""


class ResourceUnavailableError(RecordStoreError):
    """Raised when the backing workbook cannot be opened or is incomplete."""


class NotFoundError(RecordStoreError, LookupError):
    """Raised when no row matches the requested primary key."""


class PersistenceFailure(RecordStoreError):
    """Raised when flushing the workbook to disk fails."""


class MalformedRowError(RecordStoreError):
    """Raised when a stored row cannot be read back as a record.

    Attributes:
        sheet (str): Worksheet holding the row.
        row (int): One-based worksheet row number.
    """

    def __init__(self, sheet: str, row: int, detail: str):
        super().__init__(f"{sheet} row {row} is malformed: {detail}")
        self.sheet = sheet
        self.row = row


__all__ = [
    "RecordStoreError",
    "ArgumentError",
    "InvalidTableError",
    "DuplicateKeyError",
    "ResourceUnavailableError",
    "NotFoundError",
    "PersistenceFailure",
    "MalformedRowError",
]
