"""Record types and fixed table schemas for the retail workbook.

Each worksheet is a fixed-schema table whose first column is the primary key.
This module describes those schemas and converts between the typed record
dataclasses and the raw cell values stored in the sheets. It performs no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from .constants import SheetName, TableId


YES_TOKENS = frozenset({"yes", "y", "да", "д", "true"})
NO_TOKENS = frozenset({"no", "n", "нет", "н", "false"})


@dataclass(frozen=True)
class ProductMovementRow:
    """In-memory view of a row from the ``ProductMovements`` sheet."""

    operation_id: str
    date: date
    store_id: str
    article_id: str
    operation_type: str
    package_count: int
    has_client_card: bool


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    article_id: str
    category_id: str
    product_name: str
    purchase_price: Decimal
    sale_price: Decimal
    discount_percent: int


@dataclass(frozen=True)
class CategoryRow:
    """In-memory view of a row from the ``Categories`` sheet."""

    category_id: str
    category_name: str
    age_limit: str


@dataclass(frozen=True)
class StoreRow:
    """In-memory view of a row from the ``Stores`` sheet."""

    store_id: str
    district: str
    address: str


Record = Union[ProductMovementRow, ProductRow, CategoryRow, StoreRow]


@dataclass(frozen=True)
class TableSchema:
    """Describe one fixed-schema table and how its rows map to records.

    ``fields`` and ``columns`` are parallel: ``fields[i]`` is the record
    attribute stored under header ``columns[i]``. The first entry of each is
    the primary key.
    """

    table_id: TableId
    sheet_name: str
    title: str
    columns: tuple[str, ...]
    fields: tuple[str, ...]
    record_type: type
    editable_fields: frozenset[str]
    serialize: Callable[[Any], list[object]]
    deserialize: Callable[[Sequence[object]], Any]
    cell_encoders: Mapping[str, Callable[[Any], object]]

    @property
    def key_field(self) -> str:
        return self.fields[0]

    def column_index(self, field_name: str) -> int:
        """Return the 1-based worksheet column holding ``field_name``."""

        try:
            return self.fields.index(field_name) + 1
        except ValueError as exc:
            raise KeyError(f"Unknown {self.title} field: {field_name}") from exc

    def encode_cell(self, field_name: str, value: Any) -> object:
        """Convert a single field value into its stored cell representation."""

        encoder = self.cell_encoders.get(field_name)
        return encoder(value) if encoder is not None else value


def normalize_key(raw: object) -> Optional[str]:
    """Render a primary-key cell as the text used for exact comparisons.

    Spreadsheets may store numeric-looking identifiers as numbers; integral
    floats are rendered without the trailing ``.0`` so that ``101.0`` matches
    the key ``"101"``. Empty cells yield ``None``.
    """

    if raw is None:
        return None
    if isinstance(raw, bool):
        return str(raw)
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return str(raw)


def encode_bool(value: bool) -> str:
    return "Yes" if value else "No"


def decode_bool(raw: object) -> bool:
    """Interpret a stored yes/no cell, accepting real booleans and text."""

    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    token = str(raw).strip().lower()
    if token in YES_TOKENS:
        return True
    if token in NO_TOKENS:
        return False
    raise ValueError(f"Not a yes/no value: {raw!r}")


def decode_date(raw: object) -> date:
    """Coerce a stored date cell (datetime, date or ISO text) into a date."""

    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw).strip()[:10])


def decode_decimal(raw: object) -> Decimal:
    return Decimal(str(raw)) if raw is not None else Decimal("0")


def decode_int(raw: object) -> int:
    if raw is None:
        return 0
    if isinstance(raw, float):
        return int(raw)
    return int(str(raw).strip())


def decode_text(raw: object) -> str:
    return normalize_key(raw) or ""


def serialize_product_movement(record: ProductMovementRow) -> list[object]:
    """Convert a product movement into the worksheet column ordering.

    Args:
        record (ProductMovementRow): Structured movement data to transform.

    Returns:
        list[object]: ``[OperationId, Date, StoreId, ArticleId, OperationType,
        PackageCount, HasClientCard]`` with the flag rendered as ``Yes``/``No``.
    """

    return [
        record.operation_id,
        record.date,
        record.store_id,
        record.article_id,
        record.operation_type,
        record.package_count,
        encode_bool(record.has_client_card),
    ]


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product into ``[ArticleId, CategoryId, ProductName,
    PurchasePrice, SalePrice, DiscountPercent]``."""

    return [
        record.article_id,
        record.category_id,
        record.product_name,
        record.purchase_price,
        record.sale_price,
        record.discount_percent,
    ]


def serialize_category(record: CategoryRow) -> list[object]:
    return [record.category_id, record.category_name, record.age_limit]


def serialize_store(record: StoreRow) -> list[object]:
    return [record.store_id, record.district, record.address]


def _pad(raw_row: Sequence[object], width: int) -> list[object]:
    values = list(raw_row[:width])
    values.extend([None] * (width - len(values)))
    return values


def deserialize_product_movement(raw_row: Sequence[object]) -> ProductMovementRow:
    """Convert a raw worksheet row into a typed product movement.

    Dates come back from openpyxl as ``datetime`` objects and are narrowed to
    ``date``. The client-card flag accepts the stored ``Yes``/``No`` text as
    well as the Russian ``Да``/``Нет`` used by older workbooks.

    Args:
        raw_row (Sequence[object]): Raw cell values in worksheet order.

    Returns:
        ProductMovementRow: Dataclass with normalized Python values.
    """

    (
        operation_id,
        date_raw,
        store_id,
        article_id,
        operation_type,
        package_raw,
        card_raw,
    ) = _pad(raw_row, 7)

    return ProductMovementRow(
        operation_id=decode_text(operation_id),
        date=decode_date(date_raw),
        store_id=decode_text(store_id),
        article_id=decode_text(article_id),
        operation_type=decode_text(operation_type),
        package_count=decode_int(package_raw),
        has_client_card=decode_bool(card_raw),
    )


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a typed product record.

    Prices are normalized into :class:`~decimal.Decimal` through ``str`` so a
    float such as ``12.5`` becomes ``Decimal("12.5")`` rather than its binary
    approximation.
    """

    article_id, category_id, name, purchase_raw, sale_raw, discount_raw = _pad(raw_row, 6)
    return ProductRow(
        article_id=decode_text(article_id),
        category_id=decode_text(category_id),
        product_name=decode_text(name),
        purchase_price=decode_decimal(purchase_raw),
        sale_price=decode_decimal(sale_raw),
        discount_percent=decode_int(discount_raw),
    )


def deserialize_category(raw_row: Sequence[object]) -> CategoryRow:
    category_id, category_name, age_limit = _pad(raw_row, 3)
    return CategoryRow(
        category_id=decode_text(category_id),
        category_name=decode_text(category_name),
        age_limit=decode_text(age_limit),
    )


def deserialize_store(raw_row: Sequence[object]) -> StoreRow:
    store_id, district, address = _pad(raw_row, 3)
    return StoreRow(
        store_id=decode_text(store_id),
        district=decode_text(district),
        address=decode_text(address),
    )


def _field_names(record_type: type) -> tuple[str, ...]:
    return tuple(f.name for f in fields(record_type))


TABLE_SCHEMAS: Mapping[TableId, TableSchema] = {
    TableId.PRODUCT_MOVEMENTS: TableSchema(
        table_id=TableId.PRODUCT_MOVEMENTS,
        sheet_name=SheetName.PRODUCT_MOVEMENTS.value,
        title="Product movements",
        columns=(
            "OperationId",
            "Date",
            "StoreId",
            "ArticleId",
            "OperationType",
            "PackageCount",
            "HasClientCard",
        ),
        fields=_field_names(ProductMovementRow),
        record_type=ProductMovementRow,
        editable_fields=frozenset({"date", "operation_type"}),
        serialize=serialize_product_movement,
        deserialize=deserialize_product_movement,
        cell_encoders={"has_client_card": encode_bool},
    ),
    TableId.PRODUCTS: TableSchema(
        table_id=TableId.PRODUCTS,
        sheet_name=SheetName.PRODUCTS.value,
        title="Products",
        columns=(
            "ArticleId",
            "CategoryId",
            "ProductName",
            "PurchasePrice",
            "SalePrice",
            "DiscountPercent",
        ),
        fields=_field_names(ProductRow),
        record_type=ProductRow,
        editable_fields=frozenset({"product_name"}),
        serialize=serialize_product,
        deserialize=deserialize_product,
        cell_encoders={},
    ),
    TableId.CATEGORIES: TableSchema(
        table_id=TableId.CATEGORIES,
        sheet_name=SheetName.CATEGORIES.value,
        title="Categories",
        columns=("CategoryId", "CategoryName", "AgeLimit"),
        fields=_field_names(CategoryRow),
        record_type=CategoryRow,
        editable_fields=frozenset({"age_limit"}),
        serialize=serialize_category,
        deserialize=deserialize_category,
        cell_encoders={},
    ),
    TableId.STORES: TableSchema(
        table_id=TableId.STORES,
        sheet_name=SheetName.STORES.value,
        title="Stores",
        columns=("StoreId", "District", "Address"),
        fields=_field_names(StoreRow),
        record_type=StoreRow,
        editable_fields=frozenset({"address"}),
        serialize=serialize_store,
        deserialize=deserialize_store,
        cell_encoders={},
    ),
}


SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    schema.sheet_name: schema.columns for schema in TABLE_SCHEMAS.values()
}


__all__ = [
    "ProductMovementRow",
    "ProductRow",
    "CategoryRow",
    "StoreRow",
    "Record",
    "TableSchema",
    "TABLE_SCHEMAS",
    "SHEET_COLUMNS",
    "normalize_key",
    "decode_bool",
    "decode_date",
]
