"""Trace: a container for causally related spans.

Spans are kept in one flat, creation-ordered index regardless of nesting; parent/child
structure is carried only by ``parent_span_id``. Ending a trace ends every open span,
derives the trace status from them, and fires the ``on_end`` callback once.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from amp_sdk.core.errors import UsageError
from amp_sdk.core.ids import generate_session_id, generate_trace_id, now_iso
from amp_sdk.observability.logging import log_event
from amp_sdk.spans.attributes import AttributeValue, SpanStatus, SpanType
from amp_sdk.spans.span import Span

MetadataValue = str | int | float | bool


class Trace:
    """One end-to-end operation (e.g. user request -> response)."""

    def __init__(
        self,
        name: str,
        *,
        trace_id: str | None = None,
        session_id: str | None = None,
        metadata: Mapping[str, MetadataValue] | None = None,
    ) -> None:
        self._trace_id = trace_id or generate_trace_id()
        self._session_id = session_id or generate_session_id()
        self._name = name
        self._start_time = now_iso()
        self._end_time: str | None = None
        self._status = SpanStatus.UNSET
        self._spans: dict[str, Span] = {}
        self._metadata: dict[str, MetadataValue] = dict(metadata or {})
        self._ended = False
        self._on_end: Callable[[Trace], None] | None = None

    @property
    def trace_id(self) -> str:
        return self._trace_id

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def status(self) -> SpanStatus:
        return self._status

    @property
    def start_time(self) -> str:
        return self._start_time

    @property
    def end_time(self) -> str | None:
        return self._end_time

    @property
    def is_ended(self) -> bool:
        return self._ended

    @property
    def span_count(self) -> int:
        return len(self._spans)

    @property
    def spans(self) -> list[Span]:
        return list(self._spans.values())

    def get_span(self, span_id: str) -> Span | None:
        return self._spans.get(span_id)

    # -------------------------
    # Span creation
    # -------------------------

    def register_span(self, span: Span) -> None:
        """Add a span (root or descendant) to this trace's index."""
        if self._ended:
            raise UsageError(f'Cannot add span to ended trace {self._trace_id}')
        if span.span_id in self._spans:
            raise UsageError(f'Span {span.span_id} is already registered with trace {self._trace_id}')
        self._spans[span.span_id] = span

    def start_span(
        self,
        name: str,
        *,
        span_type: SpanType | str = SpanType.CUSTOM,
        span_id: str | None = None,
        parent_span_id: str | None = None,
        attributes: Mapping[str, AttributeValue] | None = None,
        metadata: Mapping[str, MetadataValue] | None = None,
    ) -> Span:
        if self._ended:
            raise UsageError(f'Cannot add span to ended trace {self._trace_id}')

        span = Span(
            name,
            self._trace_id,
            span_id=span_id,
            parent_span_id=parent_span_id,
            span_type=span_type,
            attributes=attributes,
            metadata=metadata,
            trace=self,
        )
        self.register_span(span)
        return span

    def start_llm_span(self, name: str, system: str, model: str) -> Span:
        return self.start_span(name, span_type=SpanType.LLM).set_llm(system, model)

    def start_tool_span(self, name: str, tool_name: str, tool_type: str = 'function') -> Span:
        span = self.start_span(name, span_type=SpanType.TOOL)
        return span.set_attribute('tool.name', tool_name).set_attribute('tool.type', tool_type)

    def start_rag_span(self, name: str, db_system: str, method: str = 'vector_search') -> Span:
        # documents_retrieved is filled in later by set_retrieved_context
        return self.start_span(name, span_type=SpanType.RAG).set_rag(db_system, method, 0)

    def start_agent_span(self, name: str, agent_name: str, agent_type: str) -> Span:
        return self.start_span(name, span_type=SpanType.AGENT).set_agent(agent_name, agent_type)

    # -------------------------
    # Metadata / status
    # -------------------------

    def _ensure_open(self) -> None:
        if self._ended:
            raise UsageError(f'Trace {self._trace_id} has already ended')

    def set_metadata(self, key: str, value: MetadataValue) -> Trace:
        self._ensure_open()
        self._metadata[key] = value
        return self

    def set_metadata_all(self, metadata: Mapping[str, MetadataValue]) -> Trace:
        self._ensure_open()
        self._metadata.update(metadata)
        return self

    def set_ok(self) -> Trace:
        self._ensure_open()
        self._status = SpanStatus.OK
        return self

    def set_error(self) -> Trace:
        self._ensure_open()
        self._status = SpanStatus.ERROR
        return self

    # -------------------------
    # Lifecycle
    # -------------------------

    def on_end(self, callback: Callable[[Trace], None]) -> None:
        """Register the callback fired once when the trace ends (used for batching)."""
        self._on_end = callback

    def end(self) -> None:
        if self._ended:
            log_event('trace.already_ended', level=logging.WARNING, trace_id=self._trace_id)
            return

        for span in self._spans.values():
            if not span.is_ended:
                span.end()

        self._end_time = now_iso()
        self._ended = True

        if self._status == SpanStatus.UNSET:
            failed = any(s.status == SpanStatus.ERROR for s in self._spans.values())
            self._status = SpanStatus.ERROR if failed else SpanStatus.OK

        log_event(
            'trace.end',
            trace_id=self._trace_id,
            status=self._status.value,
            spans=len(self._spans),
        )

        if self._on_end is not None:
            self._on_end(self)

    def __enter__(self) -> Trace:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._ended:
            return
        if exc is not None:
            self._status = SpanStatus.ERROR
        self.end()

    # -------------------------
    # Serialization
    # -------------------------

    def to_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            'trace_id': self._trace_id,
            'trace_name': self._name,
            'session_id': self._session_id,
            'start_time': self._start_time,
        }
        if self._end_time is not None:
            data['end_time'] = self._end_time
        data['status'] = self._status.value
        data['spans'] = [s.to_data() for s in self._spans.values()]
        if self._metadata:
            data['metadata'] = dict(self._metadata)
        return data

    def __repr__(self) -> str:
        return f'Trace(name={self._name!r}, trace_id={self._trace_id!r}, spans={len(self._spans)})'
