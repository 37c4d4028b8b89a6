"""Structured logging for the SDK.

Every log line is a single JSON object (``{"event": ..., **fields}``) sent through the
``amp_sdk`` logger, so host applications decide where SDK output goes.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger('amp_sdk')

_debug_handler: logging.Handler | None = None


def log_event(event: str, *, level: int = logging.DEBUG, **fields: Any) -> None:
    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {'event': event, **fields}
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))


def enable_debug_logging() -> None:
    """Attach a stderr handler at DEBUG level to the SDK logger (once per process)."""
    global _debug_handler
    if _debug_handler is not None:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('[AMP SDK] %(levelname)s %(message)s'))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    _debug_handler = handler
