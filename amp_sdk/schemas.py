"""Wire schemas for the telemetry ingestion API.

Records are built as plain dicts by ``Span.to_data`` / ``Trace.to_data``; these models
describe the same shapes so payloads and responses can be validated at the edges
(the development ingestion service, and response parsing in the delivery queue).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from amp_sdk.spans.attributes import SpanStatus, SpanType

MetadataValue = str | int | float | bool


class SpanEventRecord(BaseModel):
    name: str
    timestamp: str
    attributes: dict[str, Any] | None = None


class SpanRecord(BaseModel):
    """One span as sent to the backend."""

    span_id: str = Field(pattern=r'^[0-9a-f]{16}$')
    trace_id: str
    parent_span_id: str | None = None
    name: str
    type: SpanType
    start_time: str
    end_time: str | None = None
    status: SpanStatus
    status_message: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, MetadataValue] | None = None
    events: list[SpanEventRecord] | None = None


class TraceRecord(BaseModel):
    """One finalized trace with its flattened spans."""

    trace_id: str = Field(pattern=r'^[0-9a-f]{32}$')
    trace_name: str
    session_id: str
    start_time: str
    end_time: str | None = None
    status: SpanStatus
    spans: list[SpanRecord] = Field(default_factory=list)
    metadata: dict[str, MetadataValue] | None = None


class MessageRole(str, Enum):
    USER = 'user'
    ASSISTANT = 'assistant'
    SYSTEM = 'system'
    TOOL = 'tool'


class Message(BaseModel):
    role: MessageRole
    content: str
    timestamp: str | None = None
    metadata: dict[str, MetadataValue] | None = None


class TranscriptRecord(BaseModel):
    """A conversation turn in transcript format."""

    session_id: str
    conversation_id: str
    conversation_turn: int = Field(ge=1)
    messages: list[Message]
    metadata: dict[str, MetadataValue] | None = None


class TelemetryPayload(BaseModel):
    accountId: str | None = None
    traces: list[TraceRecord] | None = None
    transcripts: list[TranscriptRecord] | None = None


class RecordCounts(BaseModel):
    traces: int = 0
    transcripts: int = 0


class StoredCounts(BaseModel):
    model_config = ConfigDict(extra='allow')

    records: int = 0
    queued: int = 0


class TelemetryResponse(BaseModel):
    """Ingestion API response. Parsed leniently: the backend may add fields."""

    model_config = ConfigDict(extra='allow')

    status: Literal['accepted', 'partial', 'failed'] | str = 'accepted'
    message: str | None = None
    timestamp: str | None = None
    accepted: RecordCounts = Field(default_factory=RecordCounts)
    rejected: RecordCounts = Field(default_factory=RecordCounts)
    stored: StoredCounts = Field(default_factory=StoredCounts)
    duration: float = 0
    batchId: str | None = None
