"""Tabular record store for the retail workbook.

Treats each worksheet as a fixed-schema table keyed by its first column and
implements list/find/append/update/delete on top of a
:class:`~retail_records.data_manager.TableStorage`. Every mutation is flushed
before the call returns; when the flush fails the in-memory change is undone
so the table is left as it was.

Values reaching this layer are assumed to be validated already (see
:mod:`retail_records.validation`); only table ids, record types and the
editable-field subset are checked here.
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Union

from . import log
from .constants import StorageState, TableId
from .data_manager import PersistedWorkbook, TableStorage
from .errors import (
    ArgumentError,
    DuplicateKeyError,
    InvalidTableError,
    MalformedRowError,
    NotFoundError,
    PersistenceFailure,
)
from .records import (
    TABLE_SCHEMAS,
    CategoryRow,
    ProductMovementRow,
    ProductRow,
    Record,
    StoreRow,
    TableSchema,
    normalize_key,
)


TableRef = Union[int, TableId, TableSchema]


@dataclass(frozen=True)
class RowMatch:
    """Result of a primary-key scan.

    ``position`` is the worksheet row index at the time of the scan. It is not
    a stable identity: any delete shifts the rows below it.
    """

    position: int
    record: Any


def decode_row(schema: TableSchema, row_index: int, raw: tuple[object, ...]) -> Any:
    """Deserialize one stored row, naming the sheet and row when it is unreadable."""

    try:
        return schema.deserialize(raw)
    except (ValueError, TypeError, ArithmeticError) as exc:
        log.warning("Unreadable %s row %d: %s", schema.sheet_name, row_index, exc)
        raise MalformedRowError(schema.sheet_name, row_index, str(exc)) from exc


class RowListing:
    """Restartable lazy view over the rows of one table.

    Each call to ``iter()`` rescans the sheet, so the listing always reflects
    the current storage order.
    """

    def __init__(self, storage: TableStorage, schema: TableSchema):
        self._storage = storage
        self._schema = schema

    @property
    def schema(self) -> TableSchema:
        return self._schema

    def __iter__(self) -> Iterator[Any]:
        width = len(self._schema.columns)
        for row_index, raw in self._storage.iter_rows(self._schema.sheet_name, width):
            yield decode_row(self._schema, row_index, raw)

    def __repr__(self) -> str:
        return f"RowListing(table={self._schema.sheet_name!r})"


class TabularStore:
    """CRUD access to the four fixed-schema tables with write-through saves.

    Args:
        storage (TableStorage): Open storage backing the tables. The store
            does not own it; closing is the caller's responsibility (see
            :func:`open_store`).
        reject_duplicate_keys (bool): When ``True`` (the default) appending a
            record whose key already exists raises
            :class:`~retail_records.errors.DuplicateKeyError`. When ``False``
            duplicates are accepted and lookups return the first match.
    """

    def __init__(self, storage: TableStorage, *, reject_duplicate_keys: bool = True):
        self._storage = storage
        self.reject_duplicate_keys = reject_duplicate_keys

    @property
    def storage(self) -> TableStorage:
        return self._storage

    @property
    def is_open(self) -> bool:
        return self._storage.state is StorageState.OPEN

    def get_table(self, table_id: TableRef) -> TableSchema:
        """Resolve a table id (1..4) into its schema handle.

        Args:
            table_id (int | TableId | TableSchema): Numeric id as chosen in the
                menu. A schema is returned unchanged.

        Returns:
            TableSchema: Schema bound to the requested table.

        Raises:
            InvalidTableError: If ``table_id`` is not one of ``1..4``.
        """

        if isinstance(table_id, TableSchema):
            return table_id
        if isinstance(table_id, bool):
            raise InvalidTableError(f"Table id must be between 1 and 4, got {table_id!r}")
        try:
            return TABLE_SCHEMAS[TableId(table_id)]
        except (ValueError, TypeError) as exc:
            raise InvalidTableError(f"Table id must be between 1 and 4, got {table_id!r}") from exc

    def list_rows(self, table: TableRef) -> RowListing:
        """Return a lazy, restartable listing of every row in storage order."""

        return RowListing(self._storage, self.get_table(table))

    def find_row_by_id(self, table: TableRef, key: str) -> Optional[RowMatch]:
        """Scan a table from first to last row for ``key``.

        Primary keys are compared as case-sensitive exact strings. A missing
        key is not an error here; callers decide how to report it.

        Args:
            table (int | TableId | TableSchema): Table to scan.
            key (str): Primary-key value to look for.

        Returns:
            RowMatch | None: First matching row, or ``None`` when absent.
        """

        schema = self.get_table(table)
        width = len(schema.columns)
        for row_index, raw in self._storage.iter_rows(schema.sheet_name, width):
            if normalize_key(raw[0]) == key:
                log.debug("Found %s '%s' at row %d", schema.title, key, row_index)
                return RowMatch(position=row_index, record=decode_row(schema, row_index, raw))
        return None

    def get_row(self, table: TableRef, key: str) -> Any:
        """Return the record stored under ``key`` or raise ``NotFoundError``."""

        schema = self.get_table(table)
        return self._require_match(schema, key).record

    def _require_match(self, schema: TableSchema, key: str) -> RowMatch:
        match = self.find_row_by_id(schema, key)
        if match is None:
            log.warning("%s lookup failed for id '%s'", schema.title, key)
            raise NotFoundError(f"{schema.title}: no record with id '{key}'")
        return match

    def flush(self) -> None:
        """Force the in-memory table state to the backing file.

        Raises:
            PersistenceFailure: If the storage cannot be written.
        """

        try:
            self._storage.save()
        except PersistenceFailure:
            raise
        except OSError as exc:
            raise PersistenceFailure(f"Unable to save {self._storage.path}: {exc}") from exc

    def _flush_or_revert(self, undo: Callable[[], None], action: str) -> None:
        try:
            self.flush()
        except PersistenceFailure:
            log.error("Flush failed after %s; reverting in-memory change", action)
            undo()
            raise

    def append_row(self, table: TableRef, record: Record) -> RowMatch:
        """Append ``record`` after the last row of ``table`` and flush.

        Args:
            table (int | TableId | TableSchema): Target table.
            record (Record): Validated record of the table's record type.

        Returns:
            RowMatch: Position and record of the new row.

        Raises:
            InvalidTableError: If the table id is out of range.
            ArgumentError: If ``record`` is not of the table's record type or
                holds a value the workbook cannot store; nothing is written.
            DuplicateKeyError: If the key exists and duplicates are rejected.
            PersistenceFailure: If the flush fails; the row is removed again.
        """

        schema = self.get_table(table)
        if not isinstance(record, schema.record_type):
            raise ArgumentError(
                f"{schema.title} expects {schema.record_type.__name__}, got {type(record).__name__}"
            )

        key = getattr(record, schema.key_field)
        if self.reject_duplicate_keys and self.find_row_by_id(schema, key) is not None:
            log.warning("Rejected duplicate %s id '%s'", schema.title, key)
            raise DuplicateKeyError(f"{schema.title}: id '{key}' already exists")

        position = self._storage.append_row(schema.sheet_name, schema.serialize(record))
        self._flush_or_revert(
            lambda: self._storage.delete_row(schema.sheet_name, position),
            f"appending {schema.title} '{key}'",
        )
        log.info("Appended %s '%s' at row %d", schema.title, key, position)
        return RowMatch(position=position, record=record)

    def update_row(self, table: TableRef, key: str, field_update: Mapping[str, Any]) -> Any:
        """Overwrite editable fields of the row stored under ``key`` and flush.

        Only the table's editable subset may change (movements: ``date`` and
        ``operation_type``; products: ``product_name``; categories:
        ``age_limit``; stores: ``address``). All other cells stay untouched.

        Args:
            table (int | TableId | TableSchema): Target table.
            key (str): Primary key of the row to change.
            field_update (Mapping[str, Any]): Field names mapped to new
                values.

        Returns:
            Record: The record as stored after the update.

        Raises:
            ArgumentError: If ``field_update`` is empty or names a field that
                is unknown or not editable.
            NotFoundError: If no row has ``key``.
            PersistenceFailure: If the flush fails; the old values are
                restored.
        """

        schema = self.get_table(table)
        if not field_update:
            raise ArgumentError(f"{schema.title}: no fields to update")
        rejected = sorted(set(field_update) - schema.editable_fields)
        if rejected:
            raise ArgumentError(
                f"{schema.title}: fields not editable: {', '.join(rejected)}"
                f" (editable: {', '.join(sorted(schema.editable_fields))})"
            )

        match = self._require_match(schema, key)
        width = len(schema.columns)
        previous = self._storage.read_row(schema.sheet_name, match.position, width)
        cells = {
            schema.column_index(name): schema.encode_cell(name, value)
            for name, value in field_update.items()
        }
        old_cells = {col: previous[col - 1] for col in cells}

        self._storage.write_cells(schema.sheet_name, match.position, cells)
        self._flush_or_revert(
            lambda: self._storage.write_cells(schema.sheet_name, match.position, old_cells),
            f"updating {schema.title} '{key}'",
        )
        updated = replace(match.record, **field_update)
        log.info("Updated %s '%s' (%s)", schema.title, key, ", ".join(sorted(field_update)))
        return updated

    def delete_row(self, table: TableRef, key: str) -> Any:
        """Remove the row stored under ``key`` and flush.

        Later rows shift up by one position.

        Returns:
            Record: The deleted record.

        Raises:
            NotFoundError: If no row has ``key``; the table is unchanged.
            PersistenceFailure: If the flush fails; the row is re-inserted at
                its old position.
        """

        schema = self.get_table(table)
        match = self._require_match(schema, key)
        previous = self._storage.read_row(schema.sheet_name, match.position, len(schema.columns))

        self._storage.delete_row(schema.sheet_name, match.position)
        self._flush_or_revert(
            lambda: self._storage.insert_row(schema.sheet_name, match.position, previous),
            f"deleting {schema.title} '{key}'",
        )
        log.info("Deleted %s '%s' from row %d", schema.title, key, match.position)
        return match.record


@contextlib.contextmanager
def open_store(
    data_file: Union[str, Path],
    *,
    reject_duplicate_keys: bool = True,
) -> Iterator[TabularStore]:
    """Open the workbook, yield a :class:`TabularStore`, and always close it.

    Args:
        data_file (str | Path): Workbook location.
        reject_duplicate_keys (bool): Forwarded to :class:`TabularStore`.

    Yields:
        TabularStore: Store bound to the open workbook.

    Raises:
        ArgumentError: If the path is blank or has an unsupported extension.
        ResourceUnavailableError: If the workbook cannot be opened.
    """

    with PersistedWorkbook.open(data_file) as storage:
        yield TabularStore(storage, reject_duplicate_keys=reject_duplicate_keys)


@dataclass(frozen=True)
class DemoQuery:
    """Parameters of the fixed demonstration report."""

    category_name: str = "Radio-controlled toys"
    age_limit: str = "12+"
    district: str = "Khodunkovy"
    start_date: date = date(2024, 8, 1)
    end_date: date = date(2024, 8, 5)


@dataclass(frozen=True)
class DemoQueryResult:
    """Aggregates produced by :func:`run_demo_query`."""

    query: DemoQuery
    movement_count: int
    package_count: int
    total_value: Decimal


def run_demo_query(store: TabularStore, query: Optional[DemoQuery] = None) -> DemoQueryResult:
    """Total the movements of one category in one district over a date range.

    Movements are joined to stores by ``store_id`` (matching ``district``),
    to products by ``article_id`` and to categories by ``category_id``
    (matching ``category_name`` and ``age_limit``). The value of a movement is
    ``package_count * sale_price`` reduced by the product discount. Movements
    that reference unknown stores, products or categories are skipped.

    This is one hardcoded report, not a general query facility.
    """

    query = query or DemoQuery()
    stores: Dict[str, StoreRow] = {}
    for row in store.list_rows(TableId.STORES):
        stores.setdefault(row.store_id, row)
    products: Dict[str, ProductRow] = {}
    for row in store.list_rows(TableId.PRODUCTS):
        products.setdefault(row.article_id, row)
    categories: Dict[str, CategoryRow] = {}
    for row in store.list_rows(TableId.CATEGORIES):
        categories.setdefault(row.category_id, row)

    movement_count = 0
    package_count = 0
    total_value = Decimal("0")
    for movement in store.list_rows(TableId.PRODUCT_MOVEMENTS):
        if not _movement_matches(movement, query, stores, products, categories):
            continue
        product = products[movement.article_id]
        discount = Decimal(100 - product.discount_percent) / Decimal(100)
        movement_count += 1
        package_count += movement.package_count
        total_value += product.sale_price * movement.package_count * discount

    log.info(
        "Demo query matched %d movements (%d packages)",
        movement_count,
        package_count,
    )
    return DemoQueryResult(
        query=query,
        movement_count=movement_count,
        package_count=package_count,
        total_value=total_value.quantize(Decimal("0.01")),
    )


def _movement_matches(
    movement: ProductMovementRow,
    query: DemoQuery,
    stores: Mapping[str, StoreRow],
    products: Mapping[str, ProductRow],
    categories: Mapping[str, CategoryRow],
) -> bool:
    if not query.start_date <= movement.date <= query.end_date:
        return False
    shop = stores.get(movement.store_id)
    if shop is None or shop.district != query.district:
        return False
    product = products.get(movement.article_id)
    if product is None:
        return False
    category = categories.get(product.category_id)
    return (
        category is not None
        and category.category_name == query.category_name
        and category.age_limit == query.age_limit
    )


__all__ = [
    "RowMatch",
    "RowListing",
    "decode_row",
    "TabularStore",
    "open_store",
    "DemoQuery",
    "DemoQueryResult",
    "run_demo_query",
]
