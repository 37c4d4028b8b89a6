"""Delivery queue: batches finalized traces and ships them to the ingestion API.

Behaviour:
- traces queue until ``batch_size`` is reached or ``batch_timeout`` ms pass
- at most one flush is in flight per queue (single-flight)
- every flush retries with exponential backoff before giving up
- a failed or cancelled batch goes back to the front of the queue; nothing is dropped
- records still queued when a flush settles re-arm the batch timer (on the running loop)
- ``shutdown`` stops intake and performs a final flush; exit hooks call it on exit

All state lives on one asyncio event loop thread. ``flush`` is split into a synchronous
"take batch" step and an asynchronous "deliver" step so a threshold flush started from
``enqueue`` swaps the queue out before ``enqueue`` returns.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Mapping

from pydantic import ValidationError

from amp_sdk.config import AMPSettings
from amp_sdk.observability.logging import log_event
from amp_sdk.runtime.exit_hooks import ExitHooks
from amp_sdk.runtime.retry import Sleep, retry_with_backoff
from amp_sdk.schemas import TelemetryResponse
from amp_sdk.spans.trace import Trace
from amp_sdk.transport.base import Transport
from amp_sdk.transport.http import HttpxTransport

TraceData = dict[str, Any]


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class DeliveryQueue:
    """Queues trace records and sends them in batches."""

    def __init__(
        self,
        settings: AMPSettings,
        transport: Transport | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._transport = transport or HttpxTransport(settings.timeout)
        self._sleep = sleep

        self._queue: list[TraceData] = []
        self._timer: asyncio.TimerHandle | None = None
        self._timer_loop: asyncio.AbstractEventLoop | None = None
        self._is_flushing = False
        self._is_shutdown = False
        self._tasks: set[asyncio.Task[None]] = set()
        self._exit_hooks = ExitHooks(self._drain_on_exit)

    # -------------------------
    # Introspection
    # -------------------------

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def is_flushing(self) -> bool:
        return self._is_flushing

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None and not self._timer_is_stale()

    def snapshot(self) -> list[TraceData]:
        """Copy of the queued records, oldest first."""
        return list(self._queue)

    # -------------------------
    # Intake
    # -------------------------

    def enqueue(self, trace: Trace | Mapping[str, Any]) -> None:
        """Queue a finalized trace; may start a background flush or arm the batch timer."""
        if self._is_shutdown:
            log_event('queue.rejected', level=logging.WARNING, reason='queue is shut down')
            return

        record = trace.to_data() if isinstance(trace, Trace) else dict(trace)
        self._queue.append(record)
        log_event('queue.enqueued', trace_id=record.get('trace_id'), queue_size=len(self._queue))

        if len(self._queue) >= self._settings.batch_size:
            self._flush_in_background()
        if self._queue and not self._timer_is_live():
            self._arm_timer()

    def _timer_is_stale(self) -> bool:
        """True when the timer belongs to a closed loop or to a loop other than the running one."""
        loop = self._timer_loop
        if loop is None or loop.is_closed():
            return True
        running = _running_loop()
        return running is not None and running is not loop

    def _timer_is_live(self) -> bool:
        if self._timer is None:
            return False
        if self._timer_is_stale():
            log_event('queue.stale_timer_dropped', queue_size=len(self._queue))
            self._timer = None
            self._timer_loop = None
            return False
        return True

    def _arm_timer(self) -> None:
        loop = _running_loop()
        if loop is None:
            log_event('queue.no_event_loop', queue_size=len(self._queue))
            return
        self._timer = loop.call_later(self._settings.batch_timeout / 1000.0, self._on_timer)
        self._timer_loop = loop

    def _cancel_timer(self) -> None:
        # handles owned by another loop are dropped, not cancelled
        if self._timer is not None and not self._timer_is_stale():
            self._timer.cancel()
        self._timer = None
        self._timer_loop = None

    def _on_timer(self) -> None:
        self._timer = None
        self._timer_loop = None
        self._flush_in_background()

    def _flush_in_background(self) -> None:
        loop = _running_loop()
        if loop is None:
            log_event('queue.no_event_loop', queue_size=len(self._queue))
            return

        batch = self._take_batch()
        if batch is None:
            return

        task = loop.create_task(self._deliver_quietly(batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # -------------------------
    # Flushing
    # -------------------------

    async def flush(self) -> TelemetryResponse | None:
        """Send everything queued right now.

        Returns:
            The ingestion response, or ``None`` when the queue is empty or another
            flush is already in flight.

        Raises:
            Exception: The last delivery error once retries are exhausted. The batch is
                back at the front of the queue when this propagates.
        """
        batch = self._take_batch()
        if batch is None:
            return None
        return await self._deliver(batch)

    def _take_batch(self) -> list[TraceData] | None:
        self._cancel_timer()
        if not self._queue or self._is_flushing:
            return None

        self._is_flushing = True
        batch, self._queue = self._queue, []
        log_event('queue.flush', traces=len(batch))
        return batch

    async def _deliver(self, batch: list[TraceData]) -> TelemetryResponse:
        cancelled = False
        try:
            data = await self._send_batch(batch)
        except asyncio.CancelledError:
            # loop teardown (asyncio.run returning); the exit drain delivers the batch
            log_event('queue.flush_cancelled', level=logging.WARNING, traces=len(batch))
            cancelled = True
            self._queue = batch + self._queue
            raise
        except Exception as exc:
            log_event('queue.flush_failed', level=logging.ERROR, traces=len(batch), error=str(exc))
            # failed batch goes ahead of anything queued while it was in flight
            self._queue = batch + self._queue
            raise
        finally:
            self._is_flushing = False
            if self._queue and not cancelled and not self._is_shutdown and not self._timer_is_live():
                self._arm_timer()

        response = _parse_response(data)
        log_event('queue.flush_ok', traces=len(batch), accepted=response.accepted.traces)
        return response

    async def _deliver_quietly(self, batch: list[TraceData]) -> None:
        try:
            await self._deliver(batch)
        except Exception:  # noqa: BLE001 - no caller awaits automatic flushes; already logged
            return

    async def _send_batch(self, batch: list[TraceData]) -> dict[str, Any]:
        payload: dict[str, Any] = {'traces': batch}
        if self._settings.account_id:
            payload['accountId'] = self._settings.account_id

        url = self._settings.ingest_url
        headers = self._settings.auth_headers()
        log_event('queue.post', url=url, traces=len(batch))

        return await retry_with_backoff(
            lambda: self._transport.post(url, payload, headers),
            max_retries=self._settings.max_retries,
            base_delay_ms=self._settings.retry_base_delay,
            sleep=self._sleep,
        )

    async def join(self) -> None:
        """Wait for background flushes started on the current event loop."""
        loop = asyncio.get_running_loop()
        pending = [t for t in self._tasks if t.get_loop() is loop]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # -------------------------
    # Lifecycle
    # -------------------------

    async def shutdown(self) -> None:
        """Stop accepting traces and flush what is left. Never raises."""
        self._is_shutdown = True
        self._cancel_timer()

        await self.join()
        if self._queue:
            try:
                await self.flush()
            except Exception as exc:  # noqa: BLE001 - shutdown must not raise
                log_event('queue.final_flush_failed', level=logging.ERROR, error=str(exc))

        log_event('queue.shutdown_complete', remaining=len(self._queue))

    def register_exit_hooks(self) -> None:
        self._exit_hooks.register()

    def unregister_exit_hooks(self) -> None:
        self._exit_hooks.unregister()

    @property
    def exit_hooks_registered(self) -> bool:
        return self._exit_hooks.registered

    def _drain_on_exit(self) -> None:
        """Best-effort synchronous shutdown for atexit and signal handlers."""
        if self._is_shutdown:
            return

        if _running_loop() is None:
            asyncio.run(self.shutdown())
            return

        # A signal interrupted a running loop on this thread; it cannot be re-entered,
        # so drain on a helper thread with its own loop while this one is blocked.
        worker = threading.Thread(
            target=asyncio.run,
            args=(self.shutdown(),),
            name='amp-sdk-exit-flush',
            daemon=True,
        )
        worker.start()
        worker.join()


def _parse_response(data: Mapping[str, Any]) -> TelemetryResponse:
    try:
        return TelemetryResponse.model_validate(data)
    except ValidationError as exc:
        log_event('queue.unexpected_response', level=logging.WARNING, error=str(exc))
        return TelemetryResponse(message='unparsed response')
