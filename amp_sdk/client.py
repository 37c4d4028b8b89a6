"""AMP client: the SDK entry point.

Usage:
    amp = AMP(api_key='sk_...')

    trace = amp.trace('user-query')
    span = trace.start_llm_span('llm.completion', 'openai', 'gpt-4')
    span.set_tokens(150, 75)
    span.end()
    trace.end()          # queued for batched delivery

    await amp.shutdown() # flush what is left

The client wires trace finalization to its ``DeliveryQueue`` and owns the queue's
process-exit hooks.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from amp_sdk.config import AMPSettings
from amp_sdk.core.errors import ConfigurationError
from amp_sdk.core.ids import generate_session_id
from amp_sdk.observability.logging import enable_debug_logging, log_event
from amp_sdk.runtime.batcher import DeliveryQueue
from amp_sdk.runtime.retry import Sleep
from amp_sdk.schemas import Message, TelemetryResponse, TranscriptRecord
from amp_sdk.spans.span import Span
from amp_sdk.spans.trace import MetadataValue, Trace
from amp_sdk.transport.base import Transport
from amp_sdk.transport.http import HttpxTransport


class Session:
    """Groups the traces and transcript turns of one multi-turn conversation."""

    def __init__(
        self,
        client: AMP,
        *,
        session_id: str | None = None,
        user_id: str | None = None,
        metadata: Mapping[str, MetadataValue] | None = None,
    ) -> None:
        self._client = client
        self._session_id = session_id or generate_session_id()
        self._user_id = user_id
        self._metadata: dict[str, MetadataValue] = dict(metadata or {})
        self._conversation_turn = 0

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def conversation_turn(self) -> int:
        return self._conversation_turn

    def trace(
        self,
        name: str,
        *,
        trace_id: str | None = None,
        metadata: Mapping[str, MetadataValue] | None = None,
    ) -> Trace:
        return self._client.trace(name, trace_id=trace_id, session_id=self._session_id, metadata=metadata)

    async def add_turn(self, messages: Iterable[Message | Mapping[str, Any]]) -> TelemetryResponse:
        """Send one conversation turn in transcript format."""
        self._conversation_turn += 1
        transcript = TranscriptRecord(
            session_id=self._session_id,
            conversation_id=self._session_id,
            conversation_turn=self._conversation_turn,
            messages=[m if isinstance(m, Message) else Message.model_validate(m) for m in messages],
            metadata=self._metadata or None,
        )
        return await self._client.send_transcript(transcript)

    def end(self) -> None:
        """Sessions are implicit; there is nothing to close server-side."""


class AMP:
    """Main SDK client."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        settings: AMPSettings | None = None,
        transport: Transport | None = None,
        sleep: Sleep | None = None,
        **options: Any,
    ) -> None:
        """Create a client.

        Args:
            api_key: Ingestion API key. Falls back to ``AMP_API_KEY``.
            settings: Fully built settings; ``api_key``/``options`` override its fields.
            transport: Optional transport (defaults to ``HttpxTransport``).
            sleep: Optional backoff sleep function, for tests.
            **options: Any ``AMPSettings`` field, e.g. ``batch_size=10``.

        Raises:
            ConfigurationError: If no API key is available or an option is invalid.
        """
        overrides = dict(options)
        if api_key is not None:
            overrides['api_key'] = api_key
        try:
            if settings is None:
                settings = AMPSettings(**overrides)
            elif overrides:
                settings = AMPSettings(**{**settings.model_dump(), **overrides})
        except ValidationError as exc:
            raise ConfigurationError(f'AMP SDK: invalid settings: {exc}') from exc

        if not settings.api_key:
            raise ConfigurationError('AMP SDK: api_key is required')

        self._settings = settings
        if settings.debug:
            enable_debug_logging()

        self._transport = transport or HttpxTransport(settings.timeout)
        queue_kwargs = {'sleep': sleep} if sleep is not None else {}
        self._queue = DeliveryQueue(settings, self._transport, **queue_kwargs)
        if not settings.disable_auto_flush:
            self._queue.register_exit_hooks()

        log_event('client.init', base_url=settings.base_url, batch_size=settings.batch_size)

    @property
    def settings(self) -> AMPSettings:
        return self._settings

    @property
    def queue(self) -> DeliveryQueue:
        return self._queue

    @property
    def queue_size(self) -> int:
        return self._queue.queue_size

    # -------------------------
    # Traces and sessions
    # -------------------------

    def trace(
        self,
        name: str,
        *,
        trace_id: str | None = None,
        session_id: str | None = None,
        metadata: Mapping[str, MetadataValue] | None = None,
    ) -> Trace:
        """Start a trace that is queued for delivery when it ends."""
        trace = Trace(name, trace_id=trace_id, session_id=session_id, metadata=metadata)
        trace.on_end(self._on_trace_end)
        log_event('trace.start', trace_id=trace.trace_id, name=name)
        return trace

    def llm_trace(
        self,
        name: str,
        system: str,
        model: str,
        *,
        session_id: str | None = None,
        metadata: Mapping[str, MetadataValue] | None = None,
    ) -> tuple[Trace, Span]:
        trace = self.trace(name, session_id=session_id, metadata=metadata)
        return trace, trace.start_llm_span('llm.completion', system, model)

    def session(
        self,
        *,
        session_id: str | None = None,
        user_id: str | None = None,
        metadata: Mapping[str, MetadataValue] | None = None,
    ) -> Session:
        session = Session(self, session_id=session_id, user_id=user_id, metadata=metadata)
        log_event('session.start', session_id=session.session_id)
        return session

    def _on_trace_end(self, trace: Trace) -> None:
        if self._settings.print_traces:
            log_event('trace.finalized', level=logging.INFO, trace=trace.to_data())
        self._queue.enqueue(trace)

    # -------------------------
    # Direct sends (no batching)
    # -------------------------

    async def send(self, traces: Iterable[Trace]) -> TelemetryResponse:
        """Send traces immediately, bypassing the queue and its retries."""
        payload: dict[str, Any] = {'traces': [t.to_data() for t in traces]}
        if self._settings.account_id:
            payload['accountId'] = self._settings.account_id
        data = await self._transport.post(self._settings.ingest_url, payload, self._settings.auth_headers())
        return TelemetryResponse.model_validate(data)

    async def send_transcript(self, transcript: TranscriptRecord | Mapping[str, Any]) -> TelemetryResponse:
        record = (
            transcript if isinstance(transcript, TranscriptRecord) else TranscriptRecord.model_validate(transcript)
        )
        payload = {'transcripts': [record.model_dump(mode='json', exclude_none=True)]}
        data = await self._transport.post(self._settings.transcript_url, payload, self._settings.auth_headers())
        return TelemetryResponse.model_validate(data)

    # -------------------------
    # Batch control
    # -------------------------

    async def flush(self) -> TelemetryResponse | None:
        return await self._queue.flush()

    async def health(self) -> dict[str, Any]:
        """Query the backend health endpoint.

        Raises:
            UnsupportedOperationError: If the configured transport cannot send GET requests.
        """
        return await self._transport.get(self._settings.health_url)

    async def shutdown(self) -> None:
        """Flush remaining traces and release the exit hooks."""
        log_event('client.shutdown')
        await self._queue.shutdown()
        self._queue.unregister_exit_hooks()

    async def __aenter__(self) -> AMP:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()
