# ---------------------------------
# TYPED EXCEPTIONS
# ---------------------------------

from __future__ import annotations

from typing import Any


class AMPError(Exception):
    """Base class for every error raised by the SDK."""


class ConfigurationError(AMPError, ValueError):
    """Raised at construction time when the SDK is misconfigured."""


class UsageError(AMPError, RuntimeError):
    """Raised when a trace or span is used after it has ended."""


class AttributeValidationError(AMPError, ValueError):
    """Raised when a setter receives input it cannot turn into attributes."""


class DeliveryError(AMPError):
    """Raised when a batch could not be delivered to the ingestion endpoint."""

    def __init__(self, message: str, *, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class UnsupportedOperationError(AMPError, NotImplementedError):
    """Raised when a transport lacks an optional capability (e.g. GET for health checks)."""
