# ------------------------------------------------------------------------------
# Stub transports for delivery queue tests
# ------------------------------------------------------------------------------
from __future__ import annotations

import asyncio
import copy
from typing import Any, Mapping

from amp_sdk.config import AMPSettings
from amp_sdk.core.errors import DeliveryError
from amp_sdk.transport.base import Transport


def ok_response(traces: int = 1) -> dict[str, Any]:
    return {
        'status': 'accepted',
        'timestamp': '2024-01-01T00:00:00.000Z',
        'accepted': {'traces': traces, 'transcripts': 0},
        'rejected': {'traces': 0, 'transcripts': 0},
        'stored': {'records': traces, 'queued': 0},
        'duration': 1.5,
        'batchId': 'batch_test',
    }


def make_settings(**overrides: Any) -> AMPSettings:
    values: dict[str, Any] = {
        'api_key': 'test-key',
        'base_url': 'http://test',
        'batch_size': 100,
        'batch_timeout': 5000,
        'max_retries': 3,
        'retry_base_delay': 500,
        'disable_auto_flush': True,
    }
    values.update(overrides)
    return AMPSettings(**values)


def trace_record(trace_id: str) -> dict[str, Any]:
    return {
        'trace_id': trace_id,
        'trace_name': f'trace-{trace_id}',
        'session_id': 'sess_test',
        'start_time': '2024-01-01T00:00:00.000Z',
        'end_time': '2024-01-01T00:00:01.000Z',
        'status': 'ok',
        'spans': [],
    }


class RecordingTransport(Transport):
    """Records every POST and replays scripted outcomes (exceptions are raised)."""

    def __init__(self, outcomes: list[Any] | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self._outcomes = list(outcomes or [])

    async def post(self, url: str, body: Mapping[str, Any], headers: Mapping[str, str]) -> dict[str, Any]:
        self.calls.append({'url': url, 'body': copy.deepcopy(dict(body)), 'headers': dict(headers)})
        if self._outcomes:
            outcome = self._outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return ok_response(len(body.get('traces') or []))

    def trace_ids(self, call: int = 0) -> list[str]:
        return [t['trace_id'] for t in self.calls[call]['body']['traces']]


class FailingTransport(RecordingTransport):
    """Rejects every request."""

    async def post(self, url: str, body: Mapping[str, Any], headers: Mapping[str, str]) -> dict[str, Any]:
        self.calls.append({'url': url, 'body': copy.deepcopy(dict(body)), 'headers': dict(headers)})
        raise DeliveryError('HTTP 503', status_code=503)


class GatedTransport(RecordingTransport):
    """Holds each request open until ``release()``; then succeeds or fails."""

    def __init__(self, *, fail: bool = False) -> None:
        super().__init__()
        self.fail = fail
        self.started = asyncio.Event()
        self._gate = asyncio.Event()

    def release(self) -> None:
        self._gate.set()

    async def post(self, url: str, body: Mapping[str, Any], headers: Mapping[str, str]) -> dict[str, Any]:
        self.calls.append({'url': url, 'body': copy.deepcopy(dict(body)), 'headers': dict(headers)})
        self.started.set()
        await self._gate.wait()
        if self.fail:
            raise DeliveryError('HTTP 500', status_code=500)
        return ok_response(len(body.get('traces') or []))


class RecordingSleep:
    """Backoff sleep replacement that records delays (seconds) without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
