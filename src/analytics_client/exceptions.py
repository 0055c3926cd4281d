"""Error taxonomy for the analytics client.

Construction problems are fatal and raised to the caller. Delivery problems
never leave a transport boundary: they are caught by the queue or client and
turned into a ``False`` delivery outcome.
"""

from __future__ import annotations

from typing import Callable, Optional

from loguru import logger


class AnalyticsError(Exception):
    """Base class for all analytics client errors."""


class ConfigurationError(AnalyticsError):
    """Unknown transport, duplicate transport, or unusable sink path."""


class DeliveryError(AnalyticsError):
    """A transport could not deliver a batch."""

    retryable = False


class TransientDeliveryError(DeliveryError):
    """Network timeout or temporary socket failure."""

    retryable = True


class RejectedDeliveryError(DeliveryError):
    """The collector answered with a client error (4xx)."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class LocalIOError(DeliveryError):
    """Short write or missing file handle."""


class QueueOverflowError(DeliveryError):
    """An event was dropped because the buffer was full."""


class RecordDecodeError(AnalyticsError, ValueError):
    """A line-delimited record could not be decoded."""


def report_error(error: Exception, error_handler: Optional[Callable[[Exception], None]], source: str) -> None:
    """Route an error to the configured handler, or log it."""
    if error_handler is None:
        logger.error(f"{source}: {error}")
        return

    try:
        error_handler(error)
    except Exception:
        logger.exception(f"{source}: error handler raised while handling {error!r}")
