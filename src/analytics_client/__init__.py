"""Analytics client - track, identify and alias calls delivered through pluggable transports."""

from .config import AnalyticsConfig, setup_logging
from .core.client import AnalyticsClient
from .default_client import alias, flush, get_client, identify, init, shutdown, track
from .exceptions import (
    AnalyticsError,
    ConfigurationError,
    DeliveryError,
    LocalIOError,
    QueueOverflowError,
    RecordDecodeError,
    RejectedDeliveryError,
    TransientDeliveryError,
)

__version__ = "1.0.0"

__all__ = [
    "AnalyticsClient",
    "AnalyticsConfig",
    "setup_logging",
    # Module-level facade
    "init",
    "get_client",
    "track",
    "identify",
    "alias",
    "flush",
    "shutdown",
    # Errors
    "AnalyticsError",
    "ConfigurationError",
    "DeliveryError",
    "TransientDeliveryError",
    "RejectedDeliveryError",
    "LocalIOError",
    "QueueOverflowError",
    "RecordDecodeError",
]
