"""Event models for the analytics client.

This module defines the canonical messages that flow through the pipeline:
Client → Message Builder → Batching Queue → Transport → collector or file
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class EventAction(str, Enum):
    """The three primitive calls a client can make."""

    TRACK = "track"
    IDENTIFY = "identify"
    ALIAS = "alias"


@dataclass
class BaseEvent(ABC):
    """Base class for all events in the analytics pipeline."""

    action: EventAction
    timestamp: str = ""
    context: Dict[str, Any] = field(default_factory=dict)

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Convert event to its wire record."""
        pass

    def to_batch_item(self) -> Dict[str, Any]:
        """Convert to format suitable for a batch payload."""
        return self.to_dict()


@dataclass
class TrackEvent(BaseEvent):
    """A user performed an action."""

    action: EventAction = EventAction.TRACK
    user_id: str = ""
    event: str = ""
    properties: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {"userId": self.user_id, "event": self.event}
        if self.properties is not None:
            record["properties"] = self.properties
        record.update(timestamp=self.timestamp, context=self.context, action=self.action.value)
        return record


@dataclass
class IdentifyEvent(BaseEvent):
    """Traits attached to a user."""

    action: EventAction = EventAction.IDENTIFY
    user_id: str = ""
    traits: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {"userId": self.user_id}
        if self.traits is not None:
            record["traits"] = self.traits
        record.update(timestamp=self.timestamp, context=self.context, action=self.action.value)
        return record


@dataclass
class AliasEvent(BaseEvent):
    """Two user identities merged into one."""

    action: EventAction = EventAction.ALIAS
    from_id: str = ""
    to_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_id,
            "to": self.to_id,
            "timestamp": self.timestamp,
            "context": self.context,
            "action": self.action.value,
        }


@dataclass
class EventBatch:
    """A batch of events handed to a transport in one call."""

    events: list[BaseEvent] = field(default_factory=list)
    batch_id: str = field(default_factory=lambda: f"batch_{int(time.time() * 1000)}")
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def add_event(self, event: BaseEvent) -> None:
        """Add an event to this batch."""
        self.events.append(event)

    def size(self) -> int:
        """Return the number of events in this batch."""
        return len(self.events)

    def to_dict(self) -> Dict[str, Any]:
        """Convert batch to the collector request body."""
        return {
            "batch": [event.to_batch_item() for event in self.events],
            "sentAt": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }
