from __future__ import annotations

import pytest

from amp_sdk.core.errors import DeliveryError
from amp_sdk.runtime.retry import backoff_delay_ms, retry_with_backoff
from tests.fixtures.transport_stubs import RecordingSleep


def test_backoff_doubles_per_attempt() -> None:
    assert [backoff_delay_ms(n, 500) for n in range(4)] == [500, 1000, 2000, 4000]


@pytest.mark.asyncio
async def test_retry_returns_first_success() -> None:
    # Arrange
    attempts: list[int] = []
    sleep = RecordingSleep()

    async def flaky() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise DeliveryError('HTTP 503', status_code=503)
        return 'ok'

    # Act
    result = await retry_with_backoff(flaky, max_retries=3, base_delay_ms=500, sleep=sleep)

    # Assert
    assert result == 'ok'
    assert len(attempts) == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_retry_reraises_last_error_after_all_attempts() -> None:
    calls: list[int] = []
    sleep = RecordingSleep()

    async def always_fails() -> None:
        calls.append(1)
        raise DeliveryError(f'failure {len(calls)}')

    with pytest.raises(DeliveryError, match='failure 4'):
        await retry_with_backoff(always_fails, max_retries=3, base_delay_ms=100, sleep=sleep)

    assert len(calls) == 4
    assert sleep.delays == [0.1, 0.2, 0.4]


@pytest.mark.asyncio
async def test_zero_retries_means_single_attempt() -> None:
    calls: list[int] = []
    sleep = RecordingSleep()

    async def always_fails() -> None:
        calls.append(1)
        raise DeliveryError('nope')

    with pytest.raises(DeliveryError):
        await retry_with_backoff(always_fails, max_retries=0, base_delay_ms=500, sleep=sleep)

    assert calls == [1]
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_negative_retries_are_rejected() -> None:
    async def never_called() -> None:
        raise AssertionError('should not run')

    with pytest.raises(ValueError, match='max_retries'):
        await retry_with_backoff(never_called, max_retries=-1, base_delay_ms=500)
