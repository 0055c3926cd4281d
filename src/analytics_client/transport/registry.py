"""Transport selection.

Names from configuration resolve through ``TransportKind``. Every name is
validated before any transport opens a file or socket.
"""

from __future__ import annotations

from enum import Enum
from typing import List

from loguru import logger

from ..batcher import BatcherConfig, BatchingQueue
from ..config.settings import AnalyticsConfig
from ..exceptions import ConfigurationError
from ..sender import SenderConfig
from .base import Consumer, Transport
from .file_transport import FileTransport
from .fork_transport import ForkingHTTPTransport
from .socket_transport import SocketTransport
from .windowed_file import WindowedFileTransport


class TransportKind(str, Enum):
    """Transports that can be named in configuration."""

    SOCKET = "socket"
    FORK_HTTP = "fork_http"
    FILE = "file"
    WINDOWED_FILE = "windowed_file"

    @property
    def queued(self) -> bool:
        """Network transports always sit behind a batching queue."""
        return self in (TransportKind.SOCKET, TransportKind.FORK_HTTP)

    @classmethod
    def parse(cls, name: str) -> "TransportKind":
        try:
            return cls(name.strip().lower())
        except (ValueError, AttributeError):
            valid = ", ".join(kind.value for kind in cls)
            raise ConfigurationError(f"Unknown transport {name!r}, expected one of: {valid}") from None


def create_transport(kind: TransportKind, secret: str, config: AnalyticsConfig) -> Transport:
    """Build the transport for ``kind`` from configuration."""
    if kind is TransportKind.SOCKET:
        return SocketTransport(
            host=config.host,
            port=config.port,
            secret=secret,
            endpoint=config.endpoint,
            use_ssl=config.use_ssl,
            timeout_seconds=config.timeout_seconds,
            read_response=config.read_response,
            library_name=config.library_name,
            error_handler=config.error_handler,
        )

    if kind is TransportKind.FORK_HTTP:
        return ForkingHTTPTransport(
            sender_config=SenderConfig(**config.get_sender_config(secret)),
            isolation=config.fork_isolation,
            start_method=config.fork_start_method,
            max_workers=config.fork_max_workers,
            close_timeout_seconds=config.close_timeout_seconds,
            error_handler=config.error_handler,
        )

    if kind is TransportKind.FILE:
        return FileTransport(
            filename=config.filename,
            file_permissions=config.file_permissions,
            error_handler=config.error_handler,
        )

    return WindowedFileTransport(
        base_path=config.windowed_base_path,
        window_seconds=config.window_seconds,
        file_permissions=config.file_permissions,
        default_properties=config.default_properties,
        default_context=config.default_context,
        anonymous_id=config.anonymous_id,
        error_handler=config.error_handler,
    )


def create_consumers(secret: str, config: AnalyticsConfig) -> List[Consumer]:
    """Build every configured consumer, in configuration order.

    Raises:
        ConfigurationError: an unknown or duplicated transport name, or a
            transport that cannot be constructed
    """
    kinds = [TransportKind.parse(name) for name in config.transport_names()]

    duplicates = sorted({kind.value for kind in kinds if kinds.count(kind) > 1})
    if duplicates:
        raise ConfigurationError(f"Transports configured more than once: {', '.join(duplicates)}")

    consumers: List[Consumer] = []
    try:
        for kind in kinds:
            transport = create_transport(kind, secret, config)
            if kind.queued or config.queue_file_transports:
                consumers.append(BatchingQueue(transport, BatcherConfig(**config.get_batcher_config()), error_handler=config.error_handler))
            else:
                consumers.append(transport)
            logger.debug(f"Configured {transport.name} transport")
    except Exception:
        for consumer in consumers:
            consumer.close()
        raise

    return consumers
