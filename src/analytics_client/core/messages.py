"""Message builder: pure functions that assemble canonical events.

Nothing here touches the network or a buffer. The client builds each event
once and shares it across every configured transport.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Dict, Optional, Union

from loguru import logger

from .events import AliasEvent, IdentifyEvent, TrackEvent

DEFAULT_LIBRARY_NAME = "analytics-client"

Timestamp = Union[None, int, float, str, datetime]


def format_timestamp(timestamp: Timestamp = None) -> str:
    """Render a timestamp as ISO-8601 with a UTC offset.

    Accepts unix seconds, a ``datetime`` (naive values are taken as local
    time) or an ISO string. ``None`` means now.
    """
    if timestamp is None:
        moment = datetime.now().astimezone()
    elif isinstance(timestamp, datetime):
        moment = timestamp if timestamp.tzinfo is not None else timestamp.astimezone()
    elif isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
        try:
            moment = datetime.fromtimestamp(timestamp).astimezone()
        except (ValueError, OverflowError, OSError) as e:
            logger.warning(f"Timestamp {timestamp!r} out of range ({e}), using current time")
            moment = datetime.now().astimezone()
    elif isinstance(timestamp, str):
        try:
            parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable timestamp {timestamp!r}, using current time")
            parsed = datetime.now()
        moment = parsed if parsed.tzinfo is not None else parsed.astimezone()
    else:
        logger.warning(f"Unsupported timestamp type {type(timestamp).__name__}, using current time")
        moment = datetime.now().astimezone()

    return moment.isoformat(timespec="seconds")


def library_context(library_name: str = DEFAULT_LIBRARY_NAME) -> Dict[str, Any]:
    """Context keys that identify this library."""
    return {"library": library_name}


def merge_context(context: Optional[Mapping] = None, library_name: str = DEFAULT_LIBRARY_NAME) -> Dict[str, Any]:
    """Merge caller context with library context; library keys win."""
    merged = dict(context or {})
    merged.update(library_context(library_name))
    return merged


def normalize_payload(payload: Any) -> Any:
    """Collapse ``None`` and empty collections to ``None``.

    An empty mapping must not reach the wire as ``{}`` (or ``[]``); the
    field is omitted instead. Non-empty non-mapping values pass through
    untouched so sinks can coerce them.
    """
    if payload is None:
        return None
    if isinstance(payload, Mapping):
        return dict(payload) if payload else None
    if isinstance(payload, (list, tuple, set)) and len(payload) == 0:
        return None
    return payload


def build_track(
    user_id: str,
    event: str,
    properties: Optional[Mapping] = None,
    timestamp: Timestamp = None,
    context: Optional[Mapping] = None,
    library_name: str = DEFAULT_LIBRARY_NAME,
) -> TrackEvent:
    """Build a track event."""
    return TrackEvent(
        user_id=user_id,
        event=event,
        properties=normalize_payload(properties),
        timestamp=format_timestamp(timestamp),
        context=merge_context(context, library_name),
    )


def build_identify(
    user_id: str,
    traits: Optional[Mapping] = None,
    timestamp: Timestamp = None,
    context: Optional[Mapping] = None,
    library_name: str = DEFAULT_LIBRARY_NAME,
) -> IdentifyEvent:
    """Build an identify event."""
    return IdentifyEvent(
        user_id=user_id,
        traits=normalize_payload(traits),
        timestamp=format_timestamp(timestamp),
        context=merge_context(context, library_name),
    )


def build_alias(
    from_id: str,
    to_id: str,
    timestamp: Timestamp = None,
    context: Optional[Mapping] = None,
    library_name: str = DEFAULT_LIBRARY_NAME,
) -> AliasEvent:
    """Build an alias event."""
    return AliasEvent(
        from_id=from_id,
        to_id=to_id,
        timestamp=format_timestamp(timestamp),
        context=merge_context(context, library_name),
    )
