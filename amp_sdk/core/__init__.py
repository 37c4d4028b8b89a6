from .errors import (
    AMPError,
    AttributeValidationError,
    ConfigurationError,
    DeliveryError,
    UnsupportedOperationError,
    UsageError,
)
from .ids import generate_id, generate_session_id, generate_span_id, generate_trace_id, now_iso
