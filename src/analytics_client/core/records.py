"""Pydantic models for decoding line-delimited wire records."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..exceptions import RecordDecodeError


class _WireRecord(BaseModel):
    """Fields shared by every wire record."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    timestamp: str = Field(..., min_length=1, description="ISO-8601 timestamp with offset")
    context: Dict[str, Any] = Field(default_factory=dict, description="Merged caller and library context")
    anonymous_id: Optional[str] = Field(None, alias="anonymousId", description="Configured anonymous identifier")

    @field_validator("context", mode="before")
    @classmethod
    def empty_context(cls, v: Any) -> Any:
        """Accept ``[]`` or ``null`` for an empty context."""
        if v is None or v == []:
            return {}
        return v


class TrackRecord(_WireRecord):
    action: Literal["track"]
    user_id: str = Field(..., alias="userId")
    event: str
    properties: Optional[Any] = None


class IdentifyRecord(_WireRecord):
    action: Literal["identify"]
    user_id: str = Field(..., alias="userId")
    traits: Optional[Any] = None


class AliasRecord(_WireRecord):
    action: Literal["alias"]
    from_id: str = Field(..., alias="from")
    to_id: str = Field(..., alias="to")


WireRecord = Union[TrackRecord, IdentifyRecord, AliasRecord]

_RECORD_MODELS = {
    "track": TrackRecord,
    "identify": IdentifyRecord,
    "alias": AliasRecord,
}


def decode_record(line: Union[str, bytes]) -> WireRecord:
    """Decode one line of a line-delimited JSON sink.

    Raises:
        RecordDecodeError: the line is not JSON, has an unknown action, or
            misses required fields
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise RecordDecodeError(f"Invalid JSON record: {e}") from e

    if not isinstance(data, dict):
        raise RecordDecodeError(f"Record must be a JSON object, got {type(data).__name__}")

    action = data.get("action")
    model = _RECORD_MODELS.get(action) if isinstance(action, str) else None
    if model is None:
        raise RecordDecodeError(f"Unknown record action: {action!r}")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise RecordDecodeError(f"Invalid {data['action']} record: {e}") from e


def read_records(path: Union[str, Path]) -> List[WireRecord]:
    """Read every record from an ldjson file, skipping blank lines."""
    with open(path, "r", encoding="utf-8") as f:
        return [decode_record(line) for line in f if line.strip()]
