"""Exponential backoff retry for delivery attempts."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from amp_sdk.observability.logging import log_event

T = TypeVar('T')

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay_ms(attempt: int, base_delay_ms: float) -> float:
    """Delay before retrying after failed attempt number ``attempt`` (0-based)."""
    return base_delay_ms * (2 ** attempt)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    base_delay_ms: float,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Call ``fn`` up to ``max_retries + 1`` times.

    Waits ``base_delay_ms * 2**attempt`` between attempts (no jitter) and re-raises the
    last error once every attempt has failed.

    Raises:
        ValueError: If ``max_retries`` is negative.
    """
    if max_retries < 0:
        raise ValueError(f'max_retries must be >= 0, got {max_retries}')

    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except Exception as exc:  # noqa: BLE001 - every delivery failure is retryable
            if attempt >= max_retries:
                raise
            delay_ms = backoff_delay_ms(attempt, base_delay_ms)
            log_event('delivery.retry', attempt=attempt + 1, delay_ms=delay_ms, error=str(exc))
            await sleep(delay_ms / 1000.0)

    raise AssertionError('unreachable: the final attempt returns or re-raises')
