"""Data access layer for the retail records workbook.

This module provides the low-level helpers that read from and write to the
spreadsheet file. Record semantics (primary keys, editable fields, rollback)
belong to :mod:`retail_records.core_logic`.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: validating the path, opening, saving and closing the
   Excel file exactly once.
3. Positional sheet primitives: iterating, appending, overwriting, inserting
   and deleting rows by 1-based worksheet index.
"""


from __future__ import annotations

import configparser
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Iterable, Iterator, Mapping, Optional, Sequence, Union

import openpyxl
from openpyxl.utils.exceptions import IllegalCharacterError, InvalidFileException
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from . import log
from .constants import FIRST_DATA_ROW, SUPPORTED_EXTENSIONS, StorageState
from .errors import ArgumentError, PersistenceFailure, ResourceUnavailableError
from .records import SHEET_COLUMNS


CONFIG_FILE_NAME = "config.ini"
DEFAULT_LOG_FILE = "retail_actions.log"

PathLike = Union[str, Path]


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    log_file: Path
    reject_duplicate_keys: bool = True


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match wins.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no parent directory contains
            ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def _anchor(raw: str, base_path: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        path = (base_path / path).resolve()
    return path


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``System.DataFile`` is required. ``System.LogFile`` defaults to
    ``DEFAULT_LOG_FILE`` and ``Store.RejectDuplicateKeys`` defaults to
    ``True``. Relative paths are anchored at ``base_path`` (usually the
    directory holding ``config.ini``) or the current working directory.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to resolve relative paths.

    Returns:
        ConfigSettings: Immutable settings with resolved file paths.

    Raises:
        KeyError: If a required section or option is missing, or a boolean
            option cannot be parsed.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    log_file_raw = parser.get("System", "LogFile", fallback=DEFAULT_LOG_FILE)
    try:
        reject_duplicates = parser.getboolean("Store", "RejectDuplicateKeys", fallback=True)
    except ValueError as exc:
        raise KeyError(f"Invalid Store.RejectDuplicateKeys value: {exc}") from exc

    return ConfigSettings(
        data_file=_anchor(data_file_raw, base_path),
        log_file=_anchor(log_file_raw, base_path),
        reject_duplicate_keys=reject_duplicates,
    )


def load_settings(config_path: Optional[Path] = None) -> ConfigSettings:
    """Discover, read and parse ``config.ini`` in one step."""

    located = Path(find_config_file(config_path)).expanduser().resolve()
    parser = read_config(located)
    return parse_settings(parser, base_path=located.parent)


def validate_workbook_path(data_file: PathLike) -> Path:
    """Check that ``data_file`` names a spreadsheet the storage can accept.

    Only the shape of the path is checked here; existence is verified when
    the workbook is opened.

    Args:
        data_file (str | Path): Candidate workbook path.

    Returns:
        Path: Expanded, absolute path.

    Raises:
        ArgumentError: If the path is blank or the extension is not one of
            ``SUPPORTED_EXTENSIONS``.
    """

    if data_file is None or not str(data_file).strip():
        raise ArgumentError("Workbook path must not be empty")

    path = Path(str(data_file).strip()).expanduser()
    if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        raise ArgumentError(
            f"Workbook must be one of {', '.join(SUPPORTED_EXTENSIONS)}: {path}"
        )
    return path.resolve()


def _is_blank(values: Sequence[object]) -> bool:
    return all(cell is None for cell in values)


def _write_row_cells(sheet: Worksheet, row_index: int, cells: Mapping[int, object]) -> None:
    """Write ``cells`` into one row, all or nothing.

    Raises:
        ArgumentError: If openpyxl refuses a value, for example text holding
            control characters; cells already written are put back.
    """

    previous = {col: sheet.cell(row=row_index, column=col).value for col in cells}
    try:
        for col, value in cells.items():
            sheet.cell(row=row_index, column=col, value=value)
    except (IllegalCharacterError, ValueError, TypeError) as exc:
        for col, value in previous.items():
            sheet.cell(row=row_index, column=col, value=value)
        log.warning("Rejected value for %s row %d: %s", sheet.title, row_index, exc)
        raise ArgumentError(
            f"{sheet.title} row {row_index}: value cannot be stored in a workbook ({exc})"
        ) from exc


class TableStorage(ABC):
    """Positional row storage behind the tabular store.

    Rows are addressed by 1-based worksheet index with the header in row 1.
    Implementations own the backing resource and follow the
    ``UNOPENED -> OPEN -> CLOSED`` lifecycle; ``close`` must be idempotent.
    """

    @property
    @abstractmethod
    def state(self) -> StorageState:
        """Current lifecycle state."""

    @property
    @abstractmethod
    def path(self) -> Path:
        """Location of the backing file."""

    @abstractmethod
    def iter_rows(self, sheet_name: str, width: int) -> Iterator[tuple[int, tuple[object, ...]]]:
        """Yield ``(row_index, values)`` for every non-empty data row."""

    @abstractmethod
    def read_row(self, sheet_name: str, row_index: int, width: int) -> tuple[object, ...]:
        """Return the raw values of one row."""

    @abstractmethod
    def append_row(self, sheet_name: str, values: Sequence[object]) -> int:
        """Write ``values`` after the last used row and return its index.

        A value the backend cannot store raises ``ArgumentError`` and leaves
        the sheet unchanged; the same holds for the other writers.
        """

    @abstractmethod
    def write_cells(self, sheet_name: str, row_index: int, cells: Mapping[int, object]) -> None:
        """Overwrite the given 1-based columns of one row."""

    @abstractmethod
    def insert_row(self, sheet_name: str, row_index: int, values: Sequence[object]) -> None:
        """Insert a row at ``row_index``, shifting later rows down."""

    @abstractmethod
    def delete_row(self, sheet_name: str, row_index: int) -> None:
        """Remove a row, shifting later rows up."""

    @abstractmethod
    def save(self) -> None:
        """Persist the in-memory state to the backing file."""

    @abstractmethod
    def close(self) -> None:
        """Release the backing resource."""

    def __enter__(self) -> "TableStorage":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()


class PersistedWorkbook(TableStorage):
    """``openpyxl``-backed storage that reads and writes the file directly.

    Instances are produced by :meth:`open`; a failed open never yields an
    object. ``close`` releases the workbook once and is safe to repeat, and
    the ``with`` statement guarantees it on every exit path.
    """

    def __init__(self, data_file: PathLike):
        self._path = validate_workbook_path(data_file)
        self._workbook: Optional[Workbook] = None
        self._state = StorageState.UNOPENED

    @classmethod
    def open(
        cls,
        data_file: PathLike,
        *,
        required_sheets: Iterable[str] = tuple(SHEET_COLUMNS),
    ) -> "PersistedWorkbook":
        """Open the workbook at ``data_file`` and verify its sheets.

        Args:
            data_file (str | Path): Workbook location (``.xls``/``.xlsx``).
            required_sheets (Iterable[str]): Sheet names that must exist.

        Returns:
            PersistedWorkbook: Storage in the ``OPEN`` state.

        Raises:
            ArgumentError: If the path is blank or has an unsupported
                extension.
            ResourceUnavailableError: If the file is missing, cannot be read
                as a workbook, or lacks one of ``required_sheets``.
        """

        storage = cls(data_file)
        storage._load(tuple(required_sheets))
        return storage

    def _load(self, required_sheets: Sequence[str]) -> None:
        if not self._path.exists():
            raise ResourceUnavailableError(f"Workbook not found: {self._path}")

        try:
            workbook = openpyxl.load_workbook(self._path)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as exc:
            log.error("Unable to read workbook '%s': %s", self._path, exc)
            raise ResourceUnavailableError(
                f"Unable to read workbook {self._path}: {exc}"
            ) from exc

        missing = [name for name in required_sheets if name not in workbook.sheetnames]
        if missing:
            workbook.close()
            raise ResourceUnavailableError(
                f"Workbook {self._path} is missing sheets: {', '.join(missing)}"
            )

        self._workbook = workbook
        self._state = StorageState.OPEN
        log.info("Opened workbook '%s'", self._path)

    @property
    def state(self) -> StorageState:
        return self._state

    @property
    def path(self) -> Path:
        return self._path

    def _sheet(self, sheet_name: str) -> Worksheet:
        if self._state is not StorageState.OPEN or self._workbook is None:
            raise ResourceUnavailableError(
                f"Workbook {self._path} is {self._state.value}, not open"
            )
        return self._workbook[sheet_name]

    def _last_used_row(self, sheet: Worksheet) -> int:
        # max_row also counts cells that exist but hold None
        last = FIRST_DATA_ROW - 1
        for row_idx, row in enumerate(sheet.iter_rows(min_row=FIRST_DATA_ROW, values_only=True), start=FIRST_DATA_ROW):
            if not _is_blank(row):
                last = row_idx
        return last

    def iter_rows(self, sheet_name: str, width: int) -> Iterator[tuple[int, tuple[object, ...]]]:
        sheet = self._sheet(sheet_name)
        rows = sheet.iter_rows(min_row=FIRST_DATA_ROW, max_col=width, values_only=True)
        for row_idx, raw in enumerate(rows, start=FIRST_DATA_ROW):
            if not _is_blank(raw):
                yield row_idx, tuple(raw)

    def read_row(self, sheet_name: str, row_index: int, width: int) -> tuple[object, ...]:
        sheet = self._sheet(sheet_name)
        return tuple(sheet.cell(row=row_index, column=col).value for col in range(1, width + 1))

    def append_row(self, sheet_name: str, values: Sequence[object]) -> int:
        sheet = self._sheet(sheet_name)
        row_index = self._last_used_row(sheet) + 1
        _write_row_cells(sheet, row_index, dict(enumerate(values, start=1)))
        return row_index

    def write_cells(self, sheet_name: str, row_index: int, cells: Mapping[int, object]) -> None:
        _write_row_cells(self._sheet(sheet_name), row_index, cells)

    def insert_row(self, sheet_name: str, row_index: int, values: Sequence[object]) -> None:
        sheet = self._sheet(sheet_name)
        sheet.insert_rows(row_index, amount=1)
        try:
            _write_row_cells(sheet, row_index, dict(enumerate(values, start=1)))
        except ArgumentError:
            sheet.delete_rows(row_index, amount=1)
            raise

    def delete_row(self, sheet_name: str, row_index: int) -> None:
        sheet = self._sheet(sheet_name)
        sheet.delete_rows(row_index, amount=1)

    def save(self) -> None:
        """Write the workbook back to its own path.

        Raises:
            PersistenceFailure: If the file cannot be written, for example
                because another program holds a lock on it.
        """

        if self._state is not StorageState.OPEN or self._workbook is None:
            raise ResourceUnavailableError(
                f"Workbook {self._path} is {self._state.value}, not open"
            )
        try:
            self._workbook.save(self._path)
        except OSError as exc:
            log.error("Failed to save workbook '%s': %s", self._path, exc)
            raise PersistenceFailure(f"Unable to save workbook {self._path}: {exc}") from exc
        log.debug("Saved workbook '%s'", self._path)

    def close(self) -> None:
        if self._state is StorageState.CLOSED:
            return
        workbook, self._workbook = self._workbook, None
        self._state = StorageState.CLOSED
        if workbook is not None:
            workbook.close()
            log.info("Closed workbook '%s'", self._path)

    def __enter__(self) -> "PersistedWorkbook":
        return self

    def __repr__(self) -> str:
        return f"PersistedWorkbook(path={str(self._path)!r}, state={self._state.value!r})"


__all__ = [
    "CONFIG_FILE_NAME",
    "ConfigSettings",
    "find_config_file",
    "read_config",
    "parse_settings",
    "load_settings",
    "validate_workbook_path",
    "TableStorage",
    "PersistedWorkbook",
]
