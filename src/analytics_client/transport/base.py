"""Transport interface shared by every delivery mechanism."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Optional, Protocol, Sequence, runtime_checkable

from ..config.settings import ErrorHandler
from ..core.events import BaseEvent
from ..exceptions import DeliveryError, report_error


@runtime_checkable
class Consumer(Protocol):
    """What the client fans out to: a transport or a batching queue."""

    name: str

    def submit(self, event: BaseEvent) -> bool: ...

    def flush(self) -> bool: ...

    def close(self) -> None: ...


def encode_line(record: Dict[str, Any]) -> bytes:
    """Encode one record as a line of JSON."""
    return (json.dumps(record, default=str) + "\n").encode("utf-8")


class Transport(ABC):
    """Base class for all transports.

    Subclasses implement ``deliver``, which raises a ``DeliveryError``
    subclass on failure. ``send`` wraps it into a single-attempt boolean
    outcome for transports used without a queue.
    """

    name: ClassVar[str] = "Transport"

    def __init__(self, error_handler: Optional[ErrorHandler] = None, name: Optional[str] = None):
        if name:
            self.name = name
        self._error_handler = error_handler
        self._closed = False

        # Statistics
        self._total_events_sent = 0
        self._total_failures = 0

    @abstractmethod
    def deliver(self, events: Sequence[BaseEvent]) -> None:
        """Deliver events in order or raise ``DeliveryError``."""

    def send(self, event: BaseEvent) -> bool:
        """Deliver a single event, reporting failures instead of raising."""
        try:
            self.deliver([event])
        except DeliveryError as e:
            self._total_failures += 1
            self.report_error(e)
            return False

        self._total_events_sent += 1
        return True

    def submit(self, event: BaseEvent) -> bool:
        return self.send(event)

    def flush(self) -> bool:
        return True

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def report_error(self, error: Exception) -> None:
        report_error(error, self._error_handler, self.name)

    def get_stats(self) -> Dict[str, Any]:
        """Get transport statistics."""
        return {
            "name": self.name,
            "closed": self._closed,
            "total_events_sent": self._total_events_sent,
            "total_failures": self._total_failures,
        }
