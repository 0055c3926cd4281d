"""File transport: appends one JSON line per event to a single file."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import BinaryIO, Optional, Sequence, Union

from loguru import logger

from ..config.settings import ErrorHandler
from ..core.events import BaseEvent
from ..exceptions import ConfigurationError, LocalIOError
from .base import Transport, encode_line


def open_append(path: Path, permissions: int) -> BinaryIO:
    """Open ``path`` for binary append and apply ``permissions``."""
    handle = open(path, "ab")
    try:
        os.chmod(path, permissions)
    except OSError:
        handle.close()
        raise
    return handle


def write_line(handle: Optional[BinaryIO], content: bytes) -> None:
    """Write one encoded record, raising ``LocalIOError`` on any shortfall."""
    if handle is None or handle.closed:
        raise LocalIOError("File handle unavailable")

    try:
        written = handle.write(content)
        handle.flush()
    except (OSError, ValueError) as e:
        raise LocalIOError(f"Write failed: {e}") from e

    if written != len(content):
        raise LocalIOError(f"Short write: {written} of {len(content)} bytes")


class FileTransport(Transport):
    """Writes track, identify and alias calls to a file as line-delimited JSON."""

    name = "File"

    def __init__(
        self,
        filename: Union[str, Path],
        file_permissions: int = 0o777,
        error_handler: Optional[ErrorHandler] = None,
        name: Optional[str] = None,
    ):
        """Open the target file.

        Args:
            filename: Where to log the analytics calls
            file_permissions: Mode applied to the file after opening
            error_handler: Error channel for construction and write failures
            name: Transport identity override

        Raises:
            ConfigurationError: the file cannot be opened or chmod'ed
        """
        super().__init__(error_handler=error_handler, name=name)
        self.filename = Path(filename)
        self.file_permissions = file_permissions
        self._lock = threading.Lock()
        self._handle: Optional[BinaryIO] = None

        try:
            self._handle = open_append(self.filename, self.file_permissions)
        except OSError as e:
            error = ConfigurationError(f"Cannot open {self.filename}: {e}")
            self.report_error(error)
            raise error from e

        logger.debug(f"Opened {self.filename} for {self.name} transport")

    def deliver(self, events: Sequence[BaseEvent]) -> None:
        with self._lock:
            for event in events:
                write_line(self._handle, encode_line(event.to_dict()))

    def close(self) -> None:
        with self._lock:
            if self._handle is not None and not self._handle.closed:
                self._handle.close()
                logger.debug(f"Closed {self.filename}")
            self._handle = None
        super().close()
