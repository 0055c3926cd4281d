"""Shared fixtures for the analytics client tests."""

from __future__ import annotations

import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import pytest

from analytics_client.config import AnalyticsConfig
from analytics_client.core.events import BaseEvent
from analytics_client.exceptions import TransientDeliveryError
from analytics_client.lifecycle import ShutdownManager
from analytics_client.transport.base import Transport


class RecordingTransport(Transport):
    """Transport that records delivered batches and can simulate failures."""

    name = "Recording"

    def __init__(
        self,
        name: Optional[str] = None,
        failures: int = 0,
        always_fail: bool = False,
        error_cls: type = TransientDeliveryError,
        delay: float = 0.0,
    ):
        super().__init__(name=name)
        self.batches: List[List[BaseEvent]] = []
        self.attempts = 0
        self.failures = failures
        self.always_fail = always_fail
        self.error_cls = error_cls
        self.delay = delay
        self.close_calls = 0
        self._lock = threading.Lock()

    def deliver(self, events: Sequence[BaseEvent]) -> None:
        with self._lock:
            self.attempts += 1
            attempt = self.attempts
        if self.delay:
            time.sleep(self.delay)
        if self.always_fail or attempt <= self.failures:
            raise self.error_cls(f"simulated failure on attempt {attempt}")
        with self._lock:
            self.batches.append(list(events))

    @property
    def events(self) -> List[BaseEvent]:
        with self._lock:
            return [event for batch in self.batches for event in batch]

    def close(self) -> None:
        self.close_calls += 1
        super().close()


class _CollectorHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(length)
        self.server.requests.append({"path": self.path, "headers": dict(self.headers), "body": json.loads(body)})

        payload = b"{}"
        self.send_response(self.server.status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        pass


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep ANALYTICS_* variables from the outer environment out of tests."""
    for name in (
        "ANALYTICS_TRANSPORTS",
        "ANALYTICS_HOST",
        "ANALYTICS_PORT",
        "ANALYTICS_BATCH_SIZE",
        "ANALYTICS_FLUSH_INTERVAL",
        "ANALYTICS_MAX_ATTEMPTS",
        "ANALYTICS_BASE_PATH",
        "ANALYTICS_ANONYMOUS_ID",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def recording_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def shutdown_manager() -> ShutdownManager:
    return ShutdownManager()


@pytest.fixture
def collector():
    """Local HTTP collector that records every POST."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _CollectorHandler)
    server.daemon_threads = True
    server.requests = []
    server.status = 200
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def unused_port() -> int:
    """A local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., AnalyticsConfig]:
    """Build a config that writes under ``tmp_path`` and skips atexit hooks."""

    def _make(**overrides) -> AnalyticsConfig:
        settings = {
            "transports": [],
            "filename": tmp_path / "analytics.log",
            "windowed_base_path": tmp_path,
            "register_atexit": False,
            "flush_interval_seconds": 60.0,
            "retry_backoff_base": 0.0,
        }
        settings.update(overrides)
        return AnalyticsConfig(**settings)

    return _make
