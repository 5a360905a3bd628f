"""Parse and validate console input before it reaches the record store.

Every function takes the raw text typed by the user and returns a
:class:`ParseResult`. Nothing here prompts or raises; the caller decides
whether to ask again.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Generic, Optional, TypeVar

from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from .constants import TableId
from .records import NO_TOKENS, YES_TOKENS


T = TypeVar("T")

DATE_FORMATS: tuple[str, ...] = ("%d.%m.%Y", "%Y-%m-%d")
PACKAGE_COUNT_RANGE = (1, 1000)
DISCOUNT_RANGE = (0, 100)


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """Outcome of parsing one input value: either ``value`` or ``error``."""

    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "ParseResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "ParseResult[Any]":
        return cls(error=error)


def _clean(raw: Optional[str]) -> str:
    return (raw or "").strip()


def parse_non_empty(raw: Optional[str]) -> ParseResult[str]:
    text = _clean(raw)
    if not text:
        return ParseResult.failure("Input must not be empty")
    if ILLEGAL_CHARACTERS_RE.search(text):
        return ParseResult.failure("Input must not contain control characters")
    return ParseResult.success(text)


def parse_int_in_range(raw: Optional[str], minimum: int, maximum: int) -> ParseResult[int]:
    """Parse a whole number and check ``minimum <= value <= maximum``."""

    text = _clean(raw)
    try:
        value = int(text)
    except ValueError:
        return ParseResult.failure("Enter a whole number")
    if not minimum <= value <= maximum:
        return ParseResult.failure(f"Number must be between {minimum} and {maximum}")
    return ParseResult.success(value)


def parse_positive_decimal(raw: Optional[str]) -> ParseResult[Decimal]:
    """Parse a decimal amount greater than zero.

    A leading currency sign and thousands separators are tolerated, and a
    comma is accepted as the decimal separator when no dot is present.
    """

    text = _clean(raw).lstrip("$€₽").replace(" ", "")
    if "," in text and "." not in text:
        text = text.replace(",", ".")
    else:
        text = text.replace(",", "")
    try:
        value = Decimal(text)
    except InvalidOperation:
        return ParseResult.failure("Enter a number")
    if not value.is_finite():
        return ParseResult.failure("Enter a number")
    if value <= 0:
        return ParseResult.failure("Number must be greater than 0")
    return ParseResult.success(value)


def parse_date(raw: Optional[str]) -> ParseResult[date]:
    """Parse ``DD.MM.YYYY`` (or ISO ``YYYY-MM-DD``) into a date."""

    text = _clean(raw)
    for fmt in DATE_FORMATS:
        try:
            return ParseResult.success(datetime.strptime(text, fmt).date())
        except ValueError:
            continue
    return ParseResult.failure("Enter a date as DD.MM.YYYY")


def parse_yes_no(raw: Optional[str]) -> ParseResult[bool]:
    token = _clean(raw).lower()
    if token in YES_TOKENS:
        return ParseResult.success(True)
    if token in NO_TOKENS:
        return ParseResult.success(False)
    return ParseResult.failure("Enter 'yes' or 'no'")


def parse_table_id(raw: Optional[str]) -> ParseResult[TableId]:
    result = parse_int_in_range(raw, int(min(TableId)), int(max(TableId)))
    if not result.ok:
        return ParseResult.failure(result.error or "Invalid table id")
    return ParseResult.success(TableId(result.value))
