"""Configuration for the analytics client.

Values come from constructor arguments and may be overridden through
``ANALYTICS_*`` environment variables.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger

ErrorHandler = Callable[[Exception], None]

FORK_ISOLATION_MODES = ("process", "thread")


@dataclass
class AnalyticsConfig:
    """Complete analytics client configuration."""

    # Transport selection: a single name or a list of names
    transports: Union[str, List[str]] = "socket"
    library_name: str = "analytics-client"

    # Collector settings
    host: str = "api.segment.io"
    port: int = 443
    use_ssl: bool = True
    endpoint: str = "/v1/import"
    timeout_seconds: float = 0.5  # Persistent socket connect/write timeout
    sender_timeout_seconds: float = 10.0  # Forked worker POST timeout
    read_response: bool = True

    # Batching settings
    batch_size: int = 100
    max_queue_size: int = 10000
    flush_interval_seconds: float = 10.0
    max_attempts: int = 3
    retry_backoff_base: float = 0.5
    retry_backoff_max: float = 10.0
    close_timeout_seconds: float = 5.0
    queue_file_transports: bool = False

    # File sinks
    filename: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "analytics.log")
    file_permissions: int = 0o777
    windowed_base_path: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    window_seconds: int = 300

    # Windowed enrichment
    default_properties: Dict[str, Any] = field(default_factory=dict)
    default_context: Dict[str, Any] = field(default_factory=dict)
    anonymous_id: Optional[str] = None

    # Forking sender
    fork_isolation: str = "thread"  # "process" re-imports the caller's __main__ under spawn
    fork_start_method: str = "spawn"
    fork_max_workers: int = 4

    # Lifecycle and error channel
    error_handler: Optional[ErrorHandler] = None
    register_atexit: bool = True

    def __post_init__(self):
        """Normalize paths and apply environment variable overrides."""
        self.filename = Path(self.filename)
        self.windowed_base_path = Path(self.windowed_base_path)
        self._apply_env_overrides()

    def _apply_env_overrides(self):
        """Apply configuration overrides from environment variables."""
        if transports := os.getenv("ANALYTICS_TRANSPORTS"):
            self.transports = [name.strip() for name in transports.split(",") if name.strip()]

        if host := os.getenv("ANALYTICS_HOST"):
            self.host = host

        if port := os.getenv("ANALYTICS_PORT"):
            try:
                self.port = int(port)
            except ValueError:
                logger.warning(f"Invalid collector port: {port}")

        if batch_size := os.getenv("ANALYTICS_BATCH_SIZE"):
            try:
                self.batch_size = int(batch_size)
            except ValueError:
                logger.warning(f"Invalid batch size: {batch_size}")

        if flush_interval := os.getenv("ANALYTICS_FLUSH_INTERVAL"):
            try:
                self.flush_interval_seconds = float(flush_interval)
            except ValueError:
                logger.warning(f"Invalid flush interval: {flush_interval}")

        if max_attempts := os.getenv("ANALYTICS_MAX_ATTEMPTS"):
            try:
                self.max_attempts = int(max_attempts)
            except ValueError:
                logger.warning(f"Invalid max attempts: {max_attempts}")

        if base_path := os.getenv("ANALYTICS_BASE_PATH"):
            self.windowed_base_path = Path(base_path)

        if anonymous_id := os.getenv("ANALYTICS_ANONYMOUS_ID"):
            self.anonymous_id = anonymous_id

    def transport_names(self) -> List[str]:
        """Return the configured transport names as a list."""
        if isinstance(self.transports, str):
            return [self.transports]
        return list(self.transports)

    def get_batcher_config(self) -> dict:
        """Get configuration for batching queues."""
        return {
            "batch_size": self.batch_size,
            "max_queue_size": self.max_queue_size,
            "flush_interval_seconds": self.flush_interval_seconds,
            "max_attempts": self.max_attempts,
            "retry_backoff_base": self.retry_backoff_base,
            "retry_backoff_max": self.retry_backoff_max,
            "close_timeout_seconds": self.close_timeout_seconds,
        }

    def get_sender_config(self, secret: str) -> dict:
        """Get configuration for the HTTP sender used by forked workers."""
        return {
            "host": self.host,
            "port": self.port,
            "use_ssl": self.use_ssl,
            "endpoint": self.endpoint,
            "secret": secret,
            "timeout_seconds": self.sender_timeout_seconds,
            "library_name": self.library_name,
        }

    def validate(self) -> tuple[bool, list[str]]:
        """Validate the configuration.

        Returns:
            Tuple of (is_valid, error_messages)
        """
        errors = []

        if self.batch_size <= 0:
            errors.append("Batch size must be positive")

        if self.max_queue_size <= 0:
            errors.append("Max queue size must be positive")

        if self.flush_interval_seconds <= 0:
            errors.append("Flush interval must be positive")

        if self.max_attempts < 1:
            errors.append("Max attempts must be at least 1")

        if self.window_seconds <= 0:
            errors.append("Window size must be positive")

        if self.fork_isolation not in FORK_ISOLATION_MODES:
            errors.append(f"Fork isolation must be one of {', '.join(FORK_ISOLATION_MODES)}")

        if not self.host:
            errors.append("Collector host is required")

        return len(errors) == 0, errors
