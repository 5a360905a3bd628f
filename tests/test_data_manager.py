"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from pathlib import Path

import openpyxl
import pytest

from retail_records import data_manager
from retail_records.constants import SheetName, StorageState
from retail_records.errors import ArgumentError, PersistenceFailure, ResourceUnavailableError
from retail_records.setup_excel import create_master_workbook


STORES = SheetName.STORES.value


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    assert data_manager.find_config_file(config_file) == config_file


def test_find_config_file_discovers_in_parent(tmp_path, monkeypatch):
    """Auto-discovery should walk up from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=retail_data.xlsx")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    """Absent configuration should surface a clear FileNotFoundError."""

    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True)
    parser = data_manager.read_config(bundle.config_path)
    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)

    assert settings.data_file == bundle.workbook_path.resolve()
    assert settings.log_file == bundle.log_path.resolve()
    assert settings.reject_duplicate_keys is True


def test_parse_settings_defaults_optional_entries(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[System]\nDataFile = data.xlsx\n")
    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings.log_file == (tmp_path / data_manager.DEFAULT_LOG_FILE).resolve()
    assert settings.reject_duplicate_keys is True


def test_parse_settings_reads_duplicate_policy(config_factory):
    bundle = config_factory(reject_duplicates="no")
    settings = data_manager.load_settings(bundle.config_path)
    assert settings.reject_duplicate_keys is False


def test_parse_settings_requires_data_file(tmp_path):
    """Missing keys should result in a descriptive KeyError."""

    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_parse_settings_rejects_bad_boolean(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[System]\nDataFile = d.xlsx\n[Store]\nRejectDuplicateKeys = maybe\n")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


@pytest.mark.parametrize("name", ["data.xlsx", "DATA.XLSX", "legacy.xls"])
def test_validate_workbook_path_accepts_spreadsheets(tmp_path, name):
    assert data_manager.validate_workbook_path(tmp_path / name) == (tmp_path / name).resolve()


@pytest.mark.parametrize("raw", ["", "   ", "data.csv", "data"])
def test_validate_workbook_path_rejects_other_paths(raw):
    with pytest.raises(ArgumentError):
        data_manager.validate_workbook_path(raw)


def test_open_missing_workbook_is_unavailable(tmp_path):
    with pytest.raises(ResourceUnavailableError):
        data_manager.PersistedWorkbook.open(tmp_path / "missing.xlsx")


def test_open_unreadable_workbook_is_unavailable(tmp_path):
    """A file that is not a real workbook must not produce a storage."""

    bogus = tmp_path / "bogus.xlsx"
    bogus.write_text("not a spreadsheet")
    with pytest.raises(ResourceUnavailableError):
        data_manager.PersistedWorkbook.open(bogus)


def test_open_workbook_missing_sheets_is_unavailable(tmp_path):
    path = tmp_path / "partial.xlsx"
    workbook = openpyxl.Workbook()
    workbook.active.title = STORES
    workbook.save(path)

    with pytest.raises(ResourceUnavailableError, match="missing sheets"):
        data_manager.PersistedWorkbook.open(path)


def test_open_sets_state_and_close_is_idempotent(master_workbook_path):
    storage = data_manager.PersistedWorkbook.open(master_workbook_path)
    assert storage.state is StorageState.OPEN

    storage.close()
    storage.close()
    assert storage.state is StorageState.CLOSED


def test_constructed_storage_starts_unopened(master_workbook_path):
    storage = data_manager.PersistedWorkbook(master_workbook_path)
    assert storage.state is StorageState.UNOPENED


def test_context_manager_closes_on_error(master_workbook_path):
    with pytest.raises(RuntimeError):
        with data_manager.PersistedWorkbook.open(master_workbook_path) as storage:
            raise RuntimeError("boom")
    assert storage.state is StorageState.CLOSED


def test_closed_storage_refuses_access(master_workbook_path):
    storage = data_manager.PersistedWorkbook.open(master_workbook_path)
    storage.close()
    with pytest.raises(ResourceUnavailableError):
        list(storage.iter_rows(STORES, 3))
    with pytest.raises(ResourceUnavailableError):
        storage.save()


def test_append_and_save_persist_rows(storage, master_workbook_path):
    assert storage.append_row(STORES, ["S1", "North", "1 Main St"]) == 2
    assert storage.append_row(STORES, ["S2", "South", "2 Side St"]) == 3
    storage.save()

    reloaded = openpyxl.load_workbook(master_workbook_path)
    rows = list(reloaded[STORES].iter_rows(min_row=2, values_only=True))
    assert rows == [("S1", "North", "1 Main St"), ("S2", "South", "2 Side St")]


def test_iter_rows_skips_blank_rows(storage):
    storage.append_row(STORES, ["S1", "North", "1 Main St"])
    storage.write_cells(STORES, 4, {1: "S3", 2: "East", 3: "3 Far St"})

    assert [index for index, _ in storage.iter_rows(STORES, 3)] == [2, 4]


def test_append_after_delete_reuses_no_gap(storage):
    """Appends go right after the last used row, also after deletions."""

    for key in ("S1", "S2", "S3"):
        storage.append_row(STORES, [key, "d", "a"])
    storage.delete_row(STORES, 4)

    assert storage.append_row(STORES, ["S4", "d", "a"]) == 4


def test_delete_row_shifts_later_rows_up(storage):
    for key in ("S1", "S2", "S3"):
        storage.append_row(STORES, [key, "d", "a"])
    storage.delete_row(STORES, 2)

    assert [row[0] for _, row in storage.iter_rows(STORES, 3)] == ["S2", "S3"]


def test_insert_row_restores_position(storage):
    for key in ("S1", "S3"):
        storage.append_row(STORES, [key, "d", "a"])
    storage.insert_row(STORES, 3, ["S2", "d", "a"])

    assert [row[0] for _, row in storage.iter_rows(STORES, 3)] == ["S1", "S2", "S3"]


def test_write_cells_and_read_row(storage):
    storage.append_row(STORES, ["S1", "North", "1 Main St"])
    storage.write_cells(STORES, 2, {3: "9 New St"})

    assert storage.read_row(STORES, 2, 3) == ("S1", "North", "9 New St")


def test_append_with_control_character_writes_nothing(storage, master_workbook_path):
    with pytest.raises(ArgumentError):
        storage.append_row(STORES, ["S1", "North\x07", "1 Main St"])

    assert list(storage.iter_rows(STORES, 3)) == []
    assert storage.append_row(STORES, ["S2", "South", "2 Main St"]) == 2
    storage.save()

    reloaded = openpyxl.load_workbook(master_workbook_path)
    rows = list(reloaded[STORES].iter_rows(min_row=2, values_only=True))
    assert [row for row in rows if any(cell is not None for cell in row)] == [
        ("S2", "South", "2 Main St")
    ]


def test_write_cells_rejection_restores_earlier_columns(storage):
    storage.append_row(STORES, ["S1", "North", "1 Main St"])

    with pytest.raises(ArgumentError):
        storage.write_cells(STORES, 2, {2: "South", 3: "bad\x01"})

    assert storage.read_row(STORES, 2, 3) == ("S1", "North", "1 Main St")


def test_insert_row_rejection_removes_inserted_row(storage):
    for key in ("S1", "S3"):
        storage.append_row(STORES, [key, "d", "a"])

    with pytest.raises(ArgumentError):
        storage.insert_row(STORES, 3, ["S2", "d\x02", "a"])

    assert [row[0] for _, row in storage.iter_rows(STORES, 3)] == ["S1", "S3"]


def test_create_master_workbook_refuses_legacy_extension(tmp_path):
    target = tmp_path / "legacy.xls"
    with pytest.raises(ArgumentError):
        create_master_workbook(target)
    assert not target.exists()


def test_save_failure_raises_persistence_failure(storage, monkeypatch):
    def _fail(path):
        raise PermissionError("locked")

    monkeypatch.setattr(storage._workbook, "save", _fail)
    with pytest.raises(PersistenceFailure):
        storage.save()
