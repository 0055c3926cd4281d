"""Module-level facade over a single default client.

    import analytics_client as analytics

    analytics.init("write-key", transports=["file", "socket"])
    analytics.track("user-1", "auth.signup", {"plan": "pro"})
    analytics.shutdown()
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Optional

from .config.settings import AnalyticsConfig
from .core.client import AnalyticsClient, Outcomes
from .exceptions import ConfigurationError

_default_client: Optional[AnalyticsClient] = None
_lock = threading.Lock()


def init(secret: str, config: Optional[AnalyticsConfig] = None, **overrides: Any) -> AnalyticsClient:
    """Create (or replace) the default client.

    Keyword overrides are applied on top of ``config`` using
    ``AnalyticsConfig`` field names.
    """
    global _default_client

    if config is None:
        config = AnalyticsConfig(**overrides)
    elif overrides:
        config = replace(config, **overrides)

    with _lock:
        previous, _default_client = _default_client, None
    if previous is not None:
        previous.close()

    client = AnalyticsClient(secret, config)
    with _lock:
        _default_client = client
    return client


def get_client() -> AnalyticsClient:
    """Return the default client.

    Raises:
        ConfigurationError: ``init`` has not been called
    """
    client = _default_client
    if client is None:
        raise ConfigurationError("Analytics is not initialized, call init() first")
    return client


def track(user_id, event, properties=None, timestamp=None, context=None) -> Outcomes:
    return get_client().track(user_id, event, properties, timestamp, context)


def identify(user_id, traits=None, timestamp=None, context=None) -> Outcomes:
    return get_client().identify(user_id, traits, timestamp, context)


def alias(from_id, to_id, timestamp=None, context=None) -> Outcomes:
    return get_client().alias(from_id, to_id, timestamp, context)


def flush() -> Outcomes:
    return get_client().flush()


def shutdown() -> None:
    """Close the default client, if any."""
    global _default_client

    with _lock:
        client, _default_client = _default_client, None
    if client is not None:
        client.close()
