"""Unit tests for record schemas and cell conversions."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from retail_records import records
from retail_records.constants import SheetName, TableId


def test_every_table_has_a_schema():
    assert set(records.TABLE_SCHEMAS) == set(TableId)
    assert {schema.sheet_name for schema in records.TABLE_SCHEMAS.values()} == {s.value for s in SheetName}


@pytest.mark.parametrize(
    "table_id, editable",
    [
        (TableId.PRODUCT_MOVEMENTS, {"date", "operation_type"}),
        (TableId.PRODUCTS, {"product_name"}),
        (TableId.CATEGORIES, {"age_limit"}),
        (TableId.STORES, {"address"}),
    ],
)
def test_editable_field_subsets(table_id, editable):
    assert records.TABLE_SCHEMAS[table_id].editable_fields == editable


def test_schema_columns_follow_record_fields():
    schema = records.TABLE_SCHEMAS[TableId.PRODUCTS]
    assert schema.key_field == "article_id"
    assert schema.columns[0] == "ArticleId"
    assert schema.column_index("product_name") == 3
    with pytest.raises(KeyError):
        schema.column_index("colour")


def test_serialize_product_movement_renders_flag(movement):
    assert records.serialize_product_movement(movement) == [
        "OP1",
        date(2024, 8, 2),
        "S1",
        "P1",
        "Sale",
        3,
        "Yes",
    ]


def test_deserialize_product_movement_from_sheet_types():
    """openpyxl hands dates back as datetimes and numbers as floats."""

    record = records.deserialize_product_movement(
        [1001.0, datetime(2024, 8, 3, 0, 0), "S1", "P1", "Return", 2.0, "Нет"]
    )
    assert record.operation_id == "1001"
    assert record.date == date(2024, 8, 3)
    assert record.package_count == 2
    assert record.has_client_card is False


def test_deserialize_product_normalizes_decimals():
    record = records.deserialize_product(["P1", "C1", "Widget", 10.5, 20, 15])
    assert record.purchase_price == Decimal("10.5")
    assert record.sale_price == Decimal("20")
    assert record.discount_percent == 15


def test_deserialize_pads_short_rows():
    record = records.deserialize_store(["S1", "North"])
    assert record == records.StoreRow(store_id="S1", district="North", address="")


@pytest.mark.parametrize(
    "raw, expected",
    [(None, None), ("abc", "abc"), (101.0, "101"), (101.5, "101.5"), (7, "7")],
)
def test_normalize_key(raw, expected):
    assert records.normalize_key(raw) == expected


@pytest.mark.parametrize("raw", ["Yes", "да", "Y", True])
def test_decode_bool_true(raw):
    assert records.decode_bool(raw) is True


def test_decode_bool_rejects_garbage():
    with pytest.raises(ValueError):
        records.decode_bool("perhaps")


def test_decode_date_accepts_iso_text():
    assert records.decode_date("2024-08-01") == date(2024, 8, 1)


def test_encode_cell_uses_field_encoder():
    schema = records.TABLE_SCHEMAS[TableId.PRODUCT_MOVEMENTS]
    assert schema.encode_cell("has_client_card", False) == "No"
    assert schema.encode_cell("operation_type", "Sale") == "Sale"
