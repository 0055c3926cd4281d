"""Dispatch client: the user-facing entry point.

Each call is built into one canonical event and handed to every configured
consumer. The result is always a mapping from transport name to outcome,
even for zero or one configured transports.
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from loguru import logger

from ..config.settings import AnalyticsConfig
from ..exceptions import ConfigurationError
from ..lifecycle import ShutdownManager, get_shutdown_manager
from ..transport.registry import create_consumers
from .events import BaseEvent
from .messages import Timestamp, build_alias, build_identify, build_track

if TYPE_CHECKING:
    from ..transport.base import Consumer

Outcomes = Dict[str, bool]


def _close_consumers(consumers: List["Consumer"]) -> None:
    """Drain and release consumers. Must not reference the client."""
    for consumer in consumers:
        try:
            consumer.close()
        except Exception:
            logger.exception(f"Closing {consumer.name} raised")


class AnalyticsClient:
    """Client for tracking user actions across one or more transports."""

    def __init__(
        self,
        secret: str,
        config: Optional[AnalyticsConfig] = None,
        consumers: Optional[Sequence["Consumer"]] = None,
        shutdown_manager: Optional[ShutdownManager] = None,
    ):
        """Create a client with your write secret.

        Args:
            secret: Write key; only ever sent as an auth header
            config: Client configuration (defaults to a socket transport)
            consumers: Prebuilt transports or queues, used instead of ``config.transports``
            shutdown_manager: Manager that closes this client at exit

        Raises:
            ConfigurationError: invalid settings, or an unknown, duplicated
                or unusable transport
        """
        self.secret = secret
        self.config = config or AnalyticsConfig()

        is_valid, errors = self.config.validate()
        if not is_valid:
            raise ConfigurationError(f"Invalid analytics configuration: {'; '.join(errors)}")

        if consumers is None:
            consumers = create_consumers(secret, self.config)

        names = [consumer.name for consumer in consumers]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Transport names must be unique, got {names}")

        self._consumers: List["Consumer"] = list(consumers)
        self._closed = False
        self._lock = threading.Lock()

        # Runs on close(), when the client is garbage collected, or at exit
        self._finalizer = weakref.finalize(self, _close_consumers, self._consumers)
        self._finalizer.atexit = self.config.register_atexit

        self._shutdown_manager = shutdown_manager or get_shutdown_manager()
        if self.config.register_atexit:
            self._shutdown_manager.register(self)
            self._shutdown_manager.install_atexit()

        logger.info(f"Analytics client ready with transports: {', '.join(names) or 'none'}")

    @property
    def closed(self) -> bool:
        return self._closed

    def consumer_names(self) -> List[str]:
        """Names of the configured transports, in configuration order."""
        return [consumer.name for consumer in self._consumers]

    def track(
        self,
        user_id: str,
        event: str,
        properties: Optional[Mapping] = None,
        timestamp: Timestamp = None,
        context: Optional[Mapping] = None,
    ) -> Outcomes:
        """Track a user action.

        Args:
            user_id: User id string
            event: Name of the event
            properties: Properties associated with the event
            timestamp: Unix seconds, datetime or ISO string (defaults to now)
            context: Extra context merged under the library context

        Returns:
            Mapping of transport name to whether it accepted the event
        """
        return self._dispatch(build_track(user_id, event, properties, timestamp, context, self.config.library_name))

    def identify(
        self,
        user_id: str,
        traits: Optional[Mapping] = None,
        timestamp: Timestamp = None,
        context: Optional[Mapping] = None,
    ) -> Outcomes:
        """Tag traits about the user."""
        return self._dispatch(build_identify(user_id, traits, timestamp, context, self.config.library_name))

    def alias(
        self,
        from_id: str,
        to_id: str,
        timestamp: Timestamp = None,
        context: Optional[Mapping] = None,
    ) -> Outcomes:
        """Alias from one user id to another."""
        return self._dispatch(build_alias(from_id, to_id, timestamp, context, self.config.library_name))

    def flush(self) -> Outcomes:
        """Flush every consumer synchronously."""
        results: Outcomes = {}
        for consumer in self._consumers:
            try:
                results[consumer.name] = bool(consumer.flush())
            except Exception:
                logger.exception(f"Flushing {consumer.name} raised")
                results[consumer.name] = False
        return results

    def close(self) -> None:
        """Flush and release every consumer. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._finalizer()
        self._shutdown_manager.unregister(self)
        logger.info("Analytics client closed")

    def get_stats(self) -> Dict[str, Any]:
        """Get per-consumer statistics where available."""
        return {consumer.name: consumer.get_stats() for consumer in self._consumers if hasattr(consumer, "get_stats")}

    def __enter__(self) -> "AnalyticsClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _dispatch(self, event: BaseEvent) -> Outcomes:
        if self._closed:
            logger.warning(f"Client is closed, dropping {event.action.value} event")
            return {name: False for name in self.consumer_names()}

        results: Outcomes = {}
        for consumer in self._consumers:
            try:
                results[consumer.name] = bool(consumer.submit(event))
            except Exception:
                logger.exception(f"{consumer.name} raised while accepting {event.action.value} event")
                results[consumer.name] = False
        return results
