"""Shared pytest fixtures and utilities for retail records tests."""

from __future__ import annotations

import sys
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from retail_records import core_logic, data_manager, records  # noqa: E402
from retail_records.setup_excel import create_master_workbook  # noqa: E402

_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "LogFile = {log_file}\n\n"
    "[Store]\n"
    "RejectDuplicateKeys = {reject}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    log_path: Path


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an empty four-table workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        filename: str = "retail_data.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(*, make_relative: bool = False, reject_duplicates: str = "yes") -> ConfigBundle:
        bundle_dir_name = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / bundle_dir_name
        workbook_path = workbook_factory(subdir=bundle_dir_name)
        log_path = bundle_dir / "actions.log"
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=workbook_path.name if make_relative else str(workbook_path),
                log_file=log_path.name if make_relative else str(log_path),
                reject=reject_duplicates,
            ),
            encoding="utf-8",
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            log_path=log_path,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def storage(master_workbook_path: Path) -> Iterator[data_manager.PersistedWorkbook]:
    """Open the fresh workbook and close it after the test."""

    with data_manager.PersistedWorkbook.open(master_workbook_path) as opened:
        yield opened


@pytest.fixture
def store(storage: data_manager.PersistedWorkbook) -> core_logic.TabularStore:
    """Tabular store over the fresh workbook, rejecting duplicate keys."""

    return core_logic.TabularStore(storage)


# ---------------------------------------------------------------------------
# Sample records
# ---------------------------------------------------------------------------


@pytest.fixture
def movement() -> records.ProductMovementRow:
    return records.ProductMovementRow(
        operation_id="OP1",
        date=date(2024, 8, 2),
        store_id="S1",
        article_id="P1",
        operation_type="Sale",
        package_count=3,
        has_client_card=True,
    )


@pytest.fixture
def product() -> records.ProductRow:
    return records.ProductRow(
        article_id="P1",
        category_id="C1",
        product_name="Widget",
        purchase_price=Decimal("10.50"),
        sale_price=Decimal("20.00"),
        discount_percent=10,
    )


@pytest.fixture
def category() -> records.CategoryRow:
    return records.CategoryRow(category_id="C1", category_name="Radio-controlled toys", age_limit="12+")


@pytest.fixture
def shop() -> records.StoreRow:
    return records.StoreRow(store_id="S1", district="North", address="1 Main St")
