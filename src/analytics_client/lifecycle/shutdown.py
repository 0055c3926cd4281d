from __future__ import annotations

import atexit
import os
import signal
import sys
import threading
import weakref
from types import FrameType
from typing import Protocol

from loguru import logger


class Closable(Protocol):
    def close(self) -> None: ...


class ShutdownManager:
    """Close registered clients at interpreter exit or on an exit signal."""

    #: Exit signals we hook when asked to
    _BASE_SIGNALS = [signal.SIGINT, signal.SIGTERM]
    if hasattr(signal, "SIGHUP"):
        _BASE_SIGNALS.append(signal.SIGHUP)

    #: Windows-specific mapping (Ctrl-Break, log-off, shutdown)
    if os.name == "nt" and hasattr(signal, "SIGBREAK"):
        _BASE_SIGNALS.append(signal.SIGBREAK)  # type: ignore[attr-defined]

    def __init__(self) -> None:
        self._closables: "weakref.WeakSet[Closable]" = weakref.WeakSet()
        self._lock = threading.Lock()
        self._atexit_installed = False
        self._signals_installed = False
        self.signal_received = False
        self.received_signal: str | None = None

    def register(self, closable: Closable) -> None:
        with self._lock:
            self._closables.add(closable)

    def unregister(self, closable: Closable) -> None:
        with self._lock:
            self._closables.discard(closable)

    def registered(self) -> int:
        with self._lock:
            return len(self._closables)

    def install_atexit(self) -> None:
        with self._lock:
            if self._atexit_installed:
                return
            atexit.register(self.shutdown_all)
            self._atexit_installed = True

    def shutdown_all(self) -> int:
        """Close every registered object that is still alive.

        Returns:
            Number of objects closed
        """
        with self._lock:
            closables = list(self._closables)
            self._closables.clear()

        for closable in closables:
            try:
                closable.close()
            except Exception:  # noqa: BLE001
                logger.exception(f"Closing {closable!r} raised")

        if closables:
            logger.info(f"Shut down {len(closables)} analytics clients")
        return len(closables)

    def install_signal_handlers(self) -> None:
        if self._signals_installed:
            return
        for sig in self._BASE_SIGNALS:
            try:
                signal.signal(sig, self._handle_exit)  # type: ignore[arg-type]
            except (ValueError, OSError):  # not allowed in threads / rare OSes
                logger.warning(f"Could not hook signal {sig}")
        self._signals_installed = True

    def _handle_exit(self, signum: int, frame: FrameType | None) -> None:  # noqa: ANN001
        if self.signal_received:
            sys.exit(0)
        signal_name = signal.Signals(signum).name
        logger.info(f"Received {signal_name}, flushing analytics before exit")
        self.signal_received = True
        self.received_signal = signal_name

        self.shutdown_all()

        sys.exit(0)

    def is_signal_received(self) -> bool:
        return self.signal_received


_shutdown_manager = ShutdownManager()


def get_shutdown_manager() -> ShutdownManager:
    """Get the process-wide shutdown manager."""
    return _shutdown_manager
