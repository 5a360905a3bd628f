"""Unit tests for the result-typed input parsers."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from retail_records import validation
from retail_records.constants import TableId


def test_parse_non_empty_strips_whitespace():
    result = validation.parse_non_empty("  S1 ")
    assert result.ok
    assert result.value == "S1"


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_parse_non_empty_rejects_blank(raw):
    result = validation.parse_non_empty(raw)
    assert not result.ok
    assert result.value is None


def test_parse_non_empty_rejects_control_characters():
    result = validation.parse_non_empty("North\x07")
    assert not result.ok
    assert "control characters" in result.error


@pytest.mark.parametrize("raw, expected", [("1", 1), ("1000", 1000), (" 42 ", 42)])
def test_parse_int_in_range_accepts(raw, expected):
    assert validation.parse_int_in_range(raw, 1, 1000).value == expected


@pytest.mark.parametrize("raw", ["0", "1001", "1.5", "ten", ""])
def test_parse_int_in_range_rejects(raw):
    assert not validation.parse_int_in_range(raw, 1, 1000).ok


def test_parse_int_in_range_reports_bounds():
    assert validation.parse_int_in_range("101", 0, 100).error == "Number must be between 0 and 100"


@pytest.mark.parametrize(
    "raw, expected",
    [("12.50", Decimal("12.50")), ("12,5", Decimal("12.5")), ("$1,200.00", Decimal("1200.00"))],
)
def test_parse_positive_decimal_accepts(raw, expected):
    assert validation.parse_positive_decimal(raw).value == expected


@pytest.mark.parametrize("raw", ["0", "-3", "abc", "", "NaN", "Infinity"])
def test_parse_positive_decimal_rejects(raw):
    assert not validation.parse_positive_decimal(raw).ok


@pytest.mark.parametrize("raw", ["01.08.2024", "2024-08-01"])
def test_parse_date_formats(raw):
    assert validation.parse_date(raw).value == date(2024, 8, 1)


def test_parse_date_rejects_nonsense():
    assert not validation.parse_date("31.02.2024").ok


@pytest.mark.parametrize("raw, expected", [("yes", True), ("Да", True), ("n", False), ("нет", False)])
def test_parse_yes_no(raw, expected):
    assert validation.parse_yes_no(raw).value is expected


def test_parse_yes_no_rejects_other_text():
    assert not validation.parse_yes_no("sometimes").ok


def test_parse_table_id():
    assert validation.parse_table_id("4").value is TableId.STORES
    assert not validation.parse_table_id("5").ok
