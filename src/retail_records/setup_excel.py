"""Utility for initializing an empty retail records workbook.

Used by the ``init`` CLI command and by the test-suite so the sheet layout is
created the same way everywhere.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Sequence

import openpyxl
from openpyxl.styles import Font

from . import log
from .errors import ArgumentError
from .records import SHEET_COLUMNS


def create_master_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create the workbook at ``destination`` with one sheet per table.

    Each sheet receives a bold header row and no data. When ``overwrite`` is
    ``False`` (the default) an existing file is left alone and
    ``FileExistsError`` is raised.

    Args:
        destination (Path): Target ``.xlsx`` path.
        sheet_columns (Mapping[str, Sequence[str]]): Sheet names mapped to
            header titles. Overridable for tests.
        overwrite (bool): Replace an existing file.

    Returns:
        Path: Resolved location of the new workbook.

    Raises:
        ArgumentError: If ``destination`` does not end in ``.xlsx``; openpyxl
            cannot produce the legacy ``.xls`` format.
        FileExistsError: If ``destination`` exists and ``overwrite`` is off.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.suffix.lower() != ".xlsx":
        raise ArgumentError(f"New workbooks must use the .xlsx extension: {destination}")
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing workbook: {destination}"
        )

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    workbook.save(destination)
    log.info("Created workbook '%s'", destination)
    return destination
