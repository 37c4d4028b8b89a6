"""AMP SDK: client-side telemetry for AI applications.

Build traces and spans around LLM calls, tool invocations, retrieval and agent steps;
finalized traces are batched and delivered to the AMP ingestion API.
"""

from amp_sdk.client import AMP, Session
from amp_sdk.config import AMPSettings
from amp_sdk.constants import SDK_NAME, SDK_VERSION
from amp_sdk.core.errors import (
    AMPError,
    AttributeValidationError,
    ConfigurationError,
    DeliveryError,
    UnsupportedOperationError,
    UsageError,
)
from amp_sdk.core.ids import generate_session_id, generate_span_id, generate_trace_id, now_iso
from amp_sdk.runtime.batcher import DeliveryQueue
from amp_sdk.schemas import Message, TelemetryResponse, TranscriptRecord
from amp_sdk.spans import Span, SpanStatus, SpanType, Trace
from amp_sdk.transport import HttpxTransport, Transport

__version__ = SDK_VERSION

__all__ = [
    'AMP',
    'AMPError',
    'AMPSettings',
    'AttributeValidationError',
    'ConfigurationError',
    'DeliveryError',
    'DeliveryQueue',
    'HttpxTransport',
    'Message',
    'SDK_NAME',
    'SDK_VERSION',
    'Session',
    'Span',
    'SpanStatus',
    'SpanType',
    'TelemetryResponse',
    'Trace',
    'Transport',
    'TranscriptRecord',
    'UnsupportedOperationError',
    'UsageError',
    'generate_session_id',
    'generate_span_id',
    'generate_trace_id',
    'now_iso',
]
