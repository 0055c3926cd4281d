"""Core analytics components: event models, message builder and wire records.

The dispatch client lives in ``core.client`` and is exported from the
package root.
"""

from .events import AliasEvent, BaseEvent, EventAction, EventBatch, IdentifyEvent, TrackEvent
from .messages import build_alias, build_identify, build_track, format_timestamp, merge_context, normalize_payload
from .records import AliasRecord, IdentifyRecord, TrackRecord, WireRecord, decode_record, read_records

__all__ = [
    # Event model
    "BaseEvent",
    "TrackEvent",
    "IdentifyEvent",
    "AliasEvent",
    "EventAction",
    "EventBatch",
    # Message builder
    "build_track",
    "build_identify",
    "build_alias",
    "format_timestamp",
    "merge_context",
    "normalize_payload",
    # Wire records
    "TrackRecord",
    "IdentifyRecord",
    "AliasRecord",
    "WireRecord",
    "decode_record",
    "read_records",
]
