"""Persistent socket transport.

Keeps one connection to the collector open and writes every batch as a
framed HTTP/1.1 request on the calling thread. A broken connection is
reopened once before the delivery is reported as failed.
"""

from __future__ import annotations

import http.client
import json
import socket
import ssl
import threading
from typing import Callable, Optional, Sequence

from loguru import logger

from ..config.settings import ErrorHandler
from ..core.events import BaseEvent, EventBatch
from ..exceptions import DeliveryError, RejectedDeliveryError, TransientDeliveryError
from ..sender import basic_auth_header
from .base import Transport

ConnectionFactory = Callable[[], socket.socket]


def write_all(sock: socket.socket, payload: bytes) -> int:
    """Write ``payload`` completely, looping over partial sends.

    Returns:
        Number of bytes written
    """
    view = memoryview(payload)
    total = 0
    while total < len(payload):
        sent = sock.send(view[total:])
        if sent == 0:
            raise ConnectionError("Socket connection broken")
        total += sent
    return total


class SocketTransport(Transport):
    """Writes batches over a single keep-alive connection."""

    name = "Socket"

    def __init__(
        self,
        host: str,
        port: int = 443,
        secret: str = "",
        endpoint: str = "/v1/import",
        use_ssl: bool = True,
        timeout_seconds: float = 0.5,
        read_response: bool = True,
        library_name: str = "analytics-client",
        connection_factory: Optional[ConnectionFactory] = None,
        error_handler: Optional[ErrorHandler] = None,
        name: Optional[str] = None,
    ):
        """Initialize the transport. The connection is opened on first use.

        Args:
            host: Collector host
            port: Collector port
            secret: Write key sent as basic auth
            endpoint: Request path for batches
            use_ssl: Wrap the connection in TLS
            timeout_seconds: Connect, write and read timeout
            read_response: Read the status line and body after each request
            connection_factory: Returns a connected socket; replaces the default connector
        """
        super().__init__(error_handler=error_handler, name=name)
        self.host = host
        self.port = port
        self.secret = secret
        self.endpoint = endpoint
        self.use_ssl = use_ssl
        self.timeout_seconds = timeout_seconds
        self.read_response = read_response
        self.library_name = library_name
        self._connection_factory = connection_factory
        self._sock: Optional[socket.socket] = None
        self._lock = threading.Lock()

        # Statistics
        self._total_connects = 0
        self._total_reconnects = 0

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def build_request(self, body: bytes) -> bytes:
        """Frame ``body`` as an HTTP/1.1 POST."""
        lines = [
            f"POST {self.endpoint} HTTP/1.1",
            f"Host: {self.host}",
            "Content-Type: application/json",
            "Accept: application/json",
            f"Authorization: {basic_auth_header(self.secret)}",
            f"User-Agent: {self.library_name}",
            f"Content-Length: {len(body)}",
            "Connection: keep-alive",
        ]
        return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + body

    def deliver(self, events: Sequence[BaseEvent]) -> None:
        if self._closed:
            raise DeliveryError(f"{self.name} transport is closed")

        batch = EventBatch(events=list(events))
        request = self.build_request(json.dumps(batch.to_dict(), default=str).encode("utf-8"))

        with self._lock:
            try:
                status = self._request(request)
            except (OSError, http.client.HTTPException) as e:
                logger.warning(f"Socket delivery of {batch.batch_id} failed ({e}), reconnecting")
                self._disconnect()
                self._total_reconnects += 1
                try:
                    status = self._request(request)
                except (OSError, http.client.HTTPException) as retry_error:
                    self._disconnect()
                    raise TransientDeliveryError(f"Socket delivery failed after reconnect: {retry_error}") from retry_error

        self._check_status(status)
        logger.debug(f"Wrote batch {batch.batch_id} with {batch.size()} events")

    def close(self) -> None:
        with self._lock:
            self._disconnect()
        super().close()

    def _connect(self) -> socket.socket:
        if self._connection_factory is not None:
            sock = self._connection_factory()
        else:
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout_seconds)
            if self.use_ssl:
                context = ssl.create_default_context()
                sock = context.wrap_socket(sock, server_hostname=self.host)

        self._total_connects += 1
        logger.debug(f"Connected to {self.host}:{self.port}")
        return sock

    def _disconnect(self) -> None:
        if self._sock is None:
            return
        try:
            self._sock.close()
        except OSError as e:
            logger.debug(f"Error closing socket: {e}")
        self._sock = None

    def _request(self, request: bytes) -> Optional[int]:
        if self._sock is None:
            self._sock = self._connect()

        write_all(self._sock, request)

        if not self.read_response:
            return None

        response = http.client.HTTPResponse(self._sock, method="POST")
        try:
            response.begin()
            response.read()
        finally:
            response.close()

        if response.will_close:
            self._disconnect()
        return response.status

    @staticmethod
    def _check_status(status: Optional[int]) -> None:
        if status is None or 200 <= status < 300:
            return
        if status == 429 or status >= 500:
            raise TransientDeliveryError(f"Collector returned HTTP {status}")
        raise RejectedDeliveryError(f"Collector rejected batch with HTTP {status}", status=status)

    def get_stats(self):
        stats = super().get_stats()
        stats.update(connected=self.connected, total_connects=self._total_connects, total_reconnects=self._total_reconnects)
        return stats
