"""Windowed file transport with time-bucketed rotation.

Every process writes to ``<base_path>/<pid>_<window_start>.ldjson``. All
writes inside one window land in the same file, and the first write after
a window boundary opens a fresh one.
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Optional, Sequence, Union

from loguru import logger

from ..config.settings import ErrorHandler
from ..core.events import BaseEvent, EventAction
from ..exceptions import ConfigurationError, LocalIOError
from .base import Transport, encode_line
from .file_transport import open_append, write_line

DEFAULT_WINDOW_SECONDS = 300
MISSING_DOMAIN_PREFIX = "MissingDomain"


def window_start(now: float, window_seconds: int = DEFAULT_WINDOW_SECONDS) -> int:
    """Round ``now`` down to the start of its window, in epoch seconds."""
    return int(now // window_seconds) * window_seconds


def window_filename(base_path: Union[str, Path], pid: int, now: float, window_seconds: int = DEFAULT_WINDOW_SECONDS) -> Path:
    """Path of the file a process writes to during the window holding ``now``."""
    return Path(base_path) / f"{pid}_{window_start(now, window_seconds)}.ldjson"


class WindowedFileTransport(Transport):
    """Writes enriched records to per-process, per-window ldjson files."""

    name = "WindowedFile"

    def __init__(
        self,
        base_path: Union[str, Path],
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        file_permissions: int = 0o777,
        default_properties: Optional[Dict[str, Any]] = None,
        default_context: Optional[Dict[str, Any]] = None,
        anonymous_id: Optional[str] = None,
        error_handler: Optional[ErrorHandler] = None,
        name: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        pid: Optional[int] = None,
    ):
        """Open the file for the current window.

        Args:
            base_path: Directory holding the window files
            window_seconds: Window size used for rotation
            file_permissions: Mode applied to each file after opening
            default_properties: Properties added to track events unless already set
            default_context: Context added to every event unless already set
            anonymous_id: Written as ``anonymousId`` on every record when set
            error_handler: Error channel for construction and write failures
            name: Transport identity override
            clock: Source of the current time in epoch seconds
            pid: Process id used in file names (defaults to the live pid)

        Raises:
            ConfigurationError: the first window file cannot be opened or chmod'ed
        """
        super().__init__(error_handler=error_handler, name=name)
        self.base_path = Path(base_path)
        self.window_seconds = window_seconds
        self.file_permissions = file_permissions
        self.default_properties = dict(default_properties or {})
        self.default_context = dict(default_context or {})
        self.anonymous_id = anonymous_id
        self._clock = clock
        self._pid = pid
        self._lock = threading.Lock()
        self._handle: Optional[BinaryIO] = None
        self._current_path: Optional[Path] = None

        path = self.current_filename()
        try:
            self._handle = open_append(path, self.file_permissions)
        except OSError as e:
            error = ConfigurationError(f"Cannot open {path}: {e}")
            self.report_error(error)
            raise error from e

        self._current_path = path
        logger.debug(f"Opened window file {path}")

    @property
    def current_path(self) -> Optional[Path]:
        return self._current_path

    def current_filename(self) -> Path:
        pid = self._pid if self._pid is not None else os.getpid()
        return window_filename(self.base_path, pid, self._clock(), self.window_seconds)

    def enrich(self, event: BaseEvent) -> Dict[str, Any]:
        """Build the wire record for ``event`` with defaults and coercions applied.

        Works on a copy; the shared event is never mutated.
        """
        record = event.to_dict()

        if self.default_context:
            context = dict(self.default_context)
            context.update(record.get("context") or {})
            record["context"] = context

        if event.action == EventAction.TRACK:
            properties = record.get("properties")
            if properties is not None and not isinstance(properties, Mapping):
                properties = {"value": properties}

            if self.default_properties:
                merged = dict(self.default_properties)
                merged.update(properties or {})
                properties = merged

            if properties:
                record["properties"] = dict(properties)

            name = record.get("event") or ""
            if "." not in name:
                record["event"] = f"{MISSING_DOMAIN_PREFIX}.{name}"

        if self.anonymous_id:
            record["anonymousId"] = self.anonymous_id

        return record

    def deliver(self, events: Sequence[BaseEvent]) -> None:
        with self._lock:
            for event in events:
                self._rotate_if_needed()
                write_line(self._handle, encode_line(self.enrich(event)))

    def close(self) -> None:
        with self._lock:
            self._close_handle()
        super().close()

    def _rotate_if_needed(self) -> None:
        if self._closed:
            raise LocalIOError("Transport is closed")

        path = self.current_filename()
        if path == self._current_path and self._handle is not None:
            return

        self._close_handle()
        try:
            self._handle = open_append(path, self.file_permissions)
        except OSError as e:
            raise LocalIOError(f"Cannot open {path}: {e}") from e

        self._current_path = path
        logger.info(f"Rotated {self.name} transport to {path}")

    def _close_handle(self) -> None:
        if self._handle is not None and not self._handle.closed:
            self._handle.close()
        self._handle = None
        self._current_path = None
