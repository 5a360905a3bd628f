"""Append-only action log kept next to the workbook.

Each entry is written as ``"<timestamp>: <message>"`` on its own line. Writing
the log must never interrupt the session: failures are reported on the
console and otherwise ignored.
"""

from __future__ import annotations

import logging
import sys
from itertools import count
from pathlib import Path
from typing import Optional, TextIO


ENTRY_FORMAT = "%(asctime)s: %(message)s"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_instance_ids = count(1)


class _ConsoleReportingFileHandler(logging.FileHandler):
    """File handler that reports write errors in one line instead of a traceback."""

    def __init__(self, filename: Path, *, console: TextIO):
        super().__init__(filename, mode="a", encoding="utf-8", delay=True)
        self._console = console

    def emit(self, record: logging.LogRecord) -> None:
        # opening the file lazily happens outside StreamHandler's own guard
        try:
            super().emit(record)
        except OSError:
            self.handleError(record)

    def handleError(self, record: logging.LogRecord) -> None:
        exc = sys.exc_info()[1]
        print(f"Error writing to action log '{self.baseFilename}': {exc}", file=self._console)


class ActionLog:
    """User-facing log of what happened during a session.

    Args:
        path (Path | None): File receiving the entries. ``None`` disables
            file output, which is useful for read-only commands.
        console (TextIO): Stream used to report write failures.
    """

    def __init__(self, path: Optional[Path], *, console: TextIO = sys.stderr):
        self.path = Path(path).expanduser().resolve() if path is not None else None
        self._logger = logging.getLogger(f"retail_records.actions.{next(_instance_ids)}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False
        self._handler: Optional[logging.Handler] = None

        if self.path is None:
            self._logger.addHandler(logging.NullHandler())
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(exist_ok=True)
        except OSError as exc:
            print(f"Warning: unable to create action log at '{self.path}': {exc}", file=console)
        handler = _ConsoleReportingFileHandler(self.path, console=console)
        handler.setFormatter(logging.Formatter(fmt=ENTRY_FORMAT, datefmt=TIMESTAMP_FORMAT))
        self._logger.addHandler(handler)
        self._handler = handler

    def record(self, message: str) -> None:
        """Append one entry."""

        self._logger.info("%s", message)

    def close(self) -> None:
        if self._handler is not None:
            self._logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None

    def __enter__(self) -> "ActionLog":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
