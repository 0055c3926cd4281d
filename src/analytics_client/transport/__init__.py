"""Delivery transports and transport selection."""

from .base import Consumer, Transport, encode_line, report_error
from .file_transport import FileTransport
from .fork_transport import ForkingHTTPTransport
from .socket_transport import SocketTransport
from .windowed_file import WindowedFileTransport, window_filename, window_start
from .registry import TransportKind, create_consumers, create_transport

__all__ = [
    "Consumer",
    "Transport",
    "encode_line",
    "report_error",
    "FileTransport",
    "ForkingHTTPTransport",
    "SocketTransport",
    "WindowedFileTransport",
    "window_filename",
    "window_start",
    "TransportKind",
    "create_consumers",
    "create_transport",
]
