"""Transports.

This package contains ONLY the HTTP seam used to ship telemetry.

Rules:
- No batching here.
- No retries here.

Those belong in the delivery queue.
"""
from .base import Transport
from .http import HttpxTransport
