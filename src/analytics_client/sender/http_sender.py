"""HTTP sender for posting serialized batches to the collector.

Forked workers use this to perform their one POST. Retries are the
batching queue's job, so each call makes exactly one request.
"""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from loguru import logger


@dataclass
class SenderConfig:
    """Configuration for the HTTP sender."""

    host: str = "api.segment.io"
    port: int = 443
    use_ssl: bool = True
    endpoint: str = "/v1/import"  # Batch ingestion endpoint
    secret: str = ""  # Sent as basic auth, never in the body
    timeout_seconds: float = 10.0  # Request timeout
    library_name: str = "analytics-client"

    @property
    def url(self) -> str:
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.host}:{self.port}{self.endpoint}"


def basic_auth_header(secret: str) -> str:
    """Authorization header value carrying the write secret."""
    token = base64.b64encode(f"{secret}:".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


class HTTPSender:
    """Posts request bodies to the collector, one attempt per call."""

    def __init__(self, config: Optional[SenderConfig] = None):
        """Initialize the HTTP sender.

        Args:
            config: Sender configuration
        """
        self.config = config or SenderConfig()

        # Statistics
        self._total_requests_sent = 0
        self._total_requests_failed = 0
        self._total_send_time = 0.0
        self._last_successful_send: Optional[datetime] = None
        self._last_error: Optional[str] = None

    def post(self, body: bytes) -> Tuple[bool, str]:
        """Post an already serialized body.

        Returns:
            Tuple of (success, error_message)
        """
        start_time = time.time()
        success, error_msg = self._send_request(body)
        self._total_send_time += time.time() - start_time

        if success:
            self._total_requests_sent += 1
            self._last_successful_send = datetime.now()
            self._last_error = None
        else:
            self._total_requests_failed += 1
            self._last_error = error_msg

        return success, error_msg

    def get_stats(self) -> Dict[str, Any]:
        """Get sender statistics.

        Returns:
            Dictionary with sender statistics
        """
        attempts = self._total_requests_sent + self._total_requests_failed

        return {
            "total_requests_sent": self._total_requests_sent,
            "total_requests_failed": self._total_requests_failed,
            "success_rate": self._total_requests_sent / max(1, attempts),
            "average_send_time_seconds": self._total_send_time / max(1, attempts),
            "last_successful_send": self._last_successful_send.isoformat() if self._last_successful_send else None,
            "last_error": self._last_error,
        }

    def _send_request(self, body: bytes) -> Tuple[bool, str]:
        """Send a single HTTP request.

        Returns:
            Tuple of (success, error_message)
        """
        try:
            req = Request(
                self.config.url,
                data=body,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    "Authorization": basic_auth_header(self.config.secret),
                    "User-Agent": self.config.library_name,
                },
                method="POST",
            )

            with urlopen(req, timeout=self.config.timeout_seconds) as response:
                if 200 <= response.status < 300:
                    response.read()
                    logger.debug(f"Successful response: {response.status}")
                    return True, ""

                return False, f"HTTP {response.status}: {response.reason}"

        except HTTPError as e:
            return False, f"HTTP error: {e.code} {e.reason}"

        except URLError as e:
            return False, f"Network error: {e.reason}"

        except (OSError, ValueError) as e:
            return False, f"Request error: {e}"
