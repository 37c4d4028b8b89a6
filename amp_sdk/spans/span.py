"""Span: one timed unit of work inside a trace.

A span accumulates a flat attribute map, point-in-time events and a tri-state status.
Domain setters (LLM, tool, RAG, agent, chain, service) write fixed attribute keys and,
where the backend reads two spellings, every alias from ``ATTRIBUTE_ALIASES``.

Usage:
    span = trace.start_span('llm.completion', span_type=SpanType.LLM)
    span.set_llm('openai', 'gpt-4').set_tokens(150, 75).set_cost(0.0082)
    span.end()

Spans are also context managers; an exception escaping the block is recorded on the
span before it ends.
"""

from __future__ import annotations

import json
import logging
import traceback
import weakref
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from amp_sdk.core.errors import AttributeValidationError, UsageError
from amp_sdk.core.ids import generate_span_id, now_iso
from amp_sdk.observability.logging import log_event
from amp_sdk.spans.attributes import (
    AttributeValue,
    SpanStatus,
    SpanType,
    aliased_keys,
    canonical_key,
    normalize_operation,
    normalize_tool_status,
)

if TYPE_CHECKING:
    from amp_sdk.spans.trace import Trace


def _as_json_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)


class Span:
    """A single operation (LLM call, tool execution, retrieval, agent step, ...)."""

    def __init__(
        self,
        name: str,
        trace_id: str,
        *,
        span_id: str | None = None,
        parent_span_id: str | None = None,
        span_type: SpanType | str = SpanType.CUSTOM,
        attributes: Mapping[str, AttributeValue] | None = None,
        metadata: Mapping[str, str | int | float | bool] | None = None,
        trace: Trace | None = None,
    ) -> None:
        self._span_id = span_id or generate_span_id()
        self._trace_id = trace_id
        self._parent_span_id = parent_span_id
        self._name = name
        self._type = SpanType(span_type)
        self._start_time = now_iso()
        self._end_time: str | None = None
        self._status = SpanStatus.UNSET
        self._status_message: str | None = None
        self._attributes: dict[str, AttributeValue] = dict(attributes or {})
        self._metadata: dict[str, str | int | float | bool] = dict(metadata or {})
        self._events: list[dict[str, Any]] = []
        self._ended = False
        self._trace_ref = weakref.ref(trace) if trace is not None else None

    # -------------------------
    # Accessors
    # -------------------------

    @property
    def span_id(self) -> str:
        return self._span_id

    @property
    def trace_id(self) -> str:
        return self._trace_id

    @property
    def parent_span_id(self) -> str | None:
        return self._parent_span_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def type(self) -> SpanType:
        return self._type

    @property
    def status(self) -> SpanStatus:
        return self._status

    @property
    def status_message(self) -> str | None:
        return self._status_message

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
    def attributes(self) -> Mapping[str, AttributeValue]:
        return MappingProxyType(self._attributes)

    @property
    def metadata(self) -> Mapping[str, str | int | float | bool]:
        return MappingProxyType(self._metadata)

    @property
    def events(self) -> list[dict[str, Any]]:
        return [dict(e) for e in self._events]

    def get_attribute(self, key: str, default: Any = None) -> Any:
        """Look up an attribute by its canonical key or any alias of it."""
        if key in self._attributes:
            return self._attributes[key]
        return self._attributes.get(canonical_key(key), default)

    # -------------------------
    # Child spans
    # -------------------------

    def start_child(
        self,
        name: str,
        *,
        span_type: SpanType | str = SpanType.CUSTOM,
        span_id: str | None = None,
        attributes: Mapping[str, AttributeValue] | None = None,
        metadata: Mapping[str, str | int | float | bool] | None = None,
    ) -> Span:
        """Start a span nested under this one and register it with the owning trace."""
        if self._ended:
            raise UsageError(f'Cannot create child span on ended span {self._span_id}')

        trace = self._trace_ref() if self._trace_ref is not None else None
        child = Span(
            name,
            self._trace_id,
            span_id=span_id,
            parent_span_id=self._span_id,
            span_type=span_type,
            attributes=attributes,
            metadata=metadata,
            trace=trace,
        )
        if trace is not None:
            trace.register_span(child)
        return child

    def start_child_llm_span(self, name: str, provider: str, model: str) -> Span:
        return self.start_child(name, span_type=SpanType.LLM).set_llm(provider, model)

    def start_child_tool_span(self, name: str, tool_name: str, tool_type: str = 'function') -> Span:
        span = self.start_child(name, span_type=SpanType.TOOL)
        return span.set_attribute('tool.name', tool_name).set_attribute('tool.type', tool_type)

    def start_child_rag_span(self, name: str, db_system: str, method: str = 'vector_search') -> Span:
        return self.start_child(name, span_type=SpanType.RAG).set_rag(db_system, method, 0)

    # -------------------------
    # Attribute writes
    # -------------------------

    def _ensure_open(self) -> None:
        if self._ended:
            raise UsageError(f'Span {self._span_id} has already ended')

    def _write(self, key: str, value: AttributeValue) -> None:
        self._ensure_open()
        self._attributes[key] = value

    def _write_aliased(self, key: str, value: AttributeValue) -> None:
        self._ensure_open()
        for k in aliased_keys(key):
            self._attributes[k] = value

    def _retype(self, span_type: SpanType) -> None:
        self._ensure_open()
        self._type = span_type

    # LLM

    def set_llm(self, provider: str, model: str, response_model: str | None = None) -> Span:
        self._retype(SpanType.LLM)
        self._write_aliased('gen_ai.provider.name', provider)
        self._write('gen_ai.request.model', model)
        if response_model:
            self._write('gen_ai.response.model', response_model)
        return self

    def set_tokens(self, input_tokens: int, output_tokens: int) -> Span:
        self._write_aliased('gen_ai.usage.input_tokens', input_tokens)
        self._write_aliased('gen_ai.usage.output_tokens', output_tokens)
        self._write_aliased('gen_ai.usage.total_tokens', input_tokens + output_tokens)
        return self

    def set_llm_params(
        self,
        *,
        temperature: float | None = None,
        top_p: float | None = None,
        max_tokens: int | None = None,
        frequency_penalty: float | None = None,
        presence_penalty: float | None = None,
        stop_sequences: list[str] | None = None,
    ) -> Span:
        params = {
            'gen_ai.request.temperature': temperature,
            'gen_ai.request.top_p': top_p,
            'gen_ai.request.max_tokens': max_tokens,
            'gen_ai.request.frequency_penalty': frequency_penalty,
            'gen_ai.request.presence_penalty': presence_penalty,
            'gen_ai.request.stop_sequences': stop_sequences,
        }
        for key, value in params.items():
            if value is not None:
                self._write(key, value)
        return self

    def set_llm_response(self, finish_reason: str, response_id: str | None = None) -> Span:
        self._write('gen_ai.response.finish_reason', finish_reason)
        if response_id:
            self._write('gen_ai.response.id', response_id)
        return self

    def set_operation(self, operation: str) -> Span:
        self._write('gen_ai.operation.name', normalize_operation(operation))
        return self

    def set_cost(self, cost_usd: float) -> Span:
        self._write('span_cost_usd', cost_usd)
        return self

    def set_conversation_id(self, conversation_id: str) -> Span:
        self._write('gen_ai.conversation.id', conversation_id)
        return self

    def set_messages(self, input_messages: list[dict[str, Any]], output_messages: list[dict[str, Any]]) -> Span:
        self._write('llm_input_messages', _as_json_text(input_messages))
        self._write('llm_output_messages', _as_json_text(output_messages))
        return self

    def set_system_prompt(self, system_prompt: str) -> Span:
        self._write('llm_system_instructions', system_prompt)
        return self

    # Tool

    def set_tool(self, name: str, params: Any = None, result: Any = None) -> Span:
        self._retype(SpanType.TOOL)
        self._write('tool.name', name)
        if params is not None:
            self._write('tool.parameters', _as_json_text(params))
        if result is not None:
            self._write('tool.result', _as_json_text(result))
        return self

    def set_tool_info(self, tool_type: str, description: str | None = None, call_id: str | None = None) -> Span:
        self._write('tool.type', tool_type)
        if description:
            self._write('gen_ai.tool.description', description)
        if call_id:
            self._write('gen_ai.tool.call.id', call_id)
        return self

    def set_tool_status(
        self,
        status: str,
        latency_ms: float | None = None,
        error_message: str | None = None,
    ) -> Span:
        self._write('tool.status', normalize_tool_status(status))
        if latency_ms is not None:
            self._write('tool.latency_ms', latency_ms)
        if error_message:
            self._write('tool.error_message', error_message)
        return self

    # RAG

    def set_rag(self, vector_db: str, method: str, documents_retrieved: int) -> Span:
        self._retype(SpanType.RAG)
        self._write('vector_db', vector_db)
        self._write_aliased('retrieval.method', method)
        self._write_aliased('documents_retrieved', documents_retrieved)
        return self

    def set_user_query(self, query: str) -> Span:
        self._write_aliased('user_query', query)
        return self

    def set_rag_params(
        self,
        *,
        top_k: int | None = None,
        similarity_threshold: float | None = None,
        embedding_model: str | None = None,
        index_name: str | None = None,
        data_source_id: str | None = None,
    ) -> Span:
        if top_k is not None:
            self._write('retrieval.top_k', top_k)
        if similarity_threshold is not None:
            self._write('similarity.threshold', similarity_threshold)
        if embedding_model:
            self._write('embedding_model', embedding_model)
        if index_name:
            self._write('index_name', index_name)
        if data_source_id:
            self._write('gen_ai.data_source.id', data_source_id)
        return self

    def set_retrieved_context(self, docs: Iterable[Mapping[str, Any]]) -> Span:
        """Record retrieved documents (``doc_id``, ``content``, ``score`` each).

        Raises:
            AttributeValidationError: If ``docs`` is empty or a document lacks content/score.
        """
        documents = [dict(d) for d in docs]
        if not documents:
            raise AttributeValidationError('set_retrieved_context requires at least one document')
        try:
            context_length = sum(len(d['content']) for d in documents)
            top_score = max(d['score'] for d in documents)
        except (KeyError, TypeError) as exc:
            raise AttributeValidationError(f'Invalid retrieved document: {exc}') from exc

        self._write('retrieved_context', _as_json_text(documents))
        self._write('context_length', context_length)
        self._write('top_score', top_score)
        self._write_aliased('documents_retrieved', len(documents))
        return self

    # Agent

    def set_agent(self, name: str, agent_type: str, goal: str | None = None) -> Span:
        self._retype(SpanType.AGENT)
        self._write('gen_ai.agent.name', name)
        self._write('agent.type', agent_type)
        if goal:
            self._write('agent.goal', goal)
        return self

    def set_agent_details(
        self,
        *,
        agent_id: str | None = None,
        description: str | None = None,
        role: str | None = None,
        status: str | None = None,
        steps: int | None = None,
        max_iterations: int | None = None,
    ) -> Span:
        if agent_id:
            self._write('gen_ai.agent.id', agent_id)
        if description:
            self._write('gen_ai.agent.description', description)
        if role:
            self._write('agent.role', role)
        if status:
            self._write('agent.status', status)
        if steps is not None:
            self._write('agent.steps', steps)
        if max_iterations is not None:
            self._write('agent.max_iterations', max_iterations)
        return self

    def set_framework(self, framework: str, version: str | None = None) -> Span:
        self._write('framework', framework)
        if version:
            self._write('framework.version', version)
        return self

    def set_crew(self, crew_id: str, crew_name: str) -> Span:
        self._write('crew.id', crew_id)
        self._write('crew.name', crew_name)
        return self

    # Chain / service

    def set_chain(self, chain_type: str) -> Span:
        # chains are reported as orchestration spans
        self._retype(SpanType.ORCHESTRATION)
        self._write_aliased('chain.type', chain_type)
        return self

    def set_service(self, name: str, version: str | None = None, environment: str | None = None) -> Span:
        self._write('service.name', name)
        if version:
            self._write('service.version', version)
        if environment:
            self._write('deployment.environment', environment)
        return self

    def set_user_id(self, user_id: str) -> Span:
        self._write('user.id', user_id)
        return self

    # Generic

    def set_attribute(self, key: str, value: AttributeValue) -> Span:
        self._write(key, value)
        return self

    def set_attributes(self, attributes: Mapping[str, AttributeValue]) -> Span:
        for key, value in attributes.items():
            self._write(key, value)
        return self

    def set_metadata(self, key: str, value: str | int | float | bool) -> Span:
        self._ensure_open()
        self._metadata[key] = value
        return self

    def set_latency(self, latency_ms: float) -> Span:
        self._write('latency_ms', latency_ms)
        return self

    # -------------------------
    # Events
    # -------------------------

    def add_event(self, name: str, attributes: Mapping[str, Any] | None = None) -> Span:
        self._ensure_open()
        event: dict[str, Any] = {'name': name, 'timestamp': now_iso()}
        if attributes is not None:
            event['attributes'] = dict(attributes)
        self._events.append(event)
        return self

    def record_prompt(self, content: str) -> Span:
        return self.add_event('gen_ai.content.prompt', {'content': content})

    def record_completion(self, content: str) -> Span:
        return self.add_event('gen_ai.content.completion', {'content': content})

    def record_inference_details(
        self,
        input_messages: list[dict[str, Any]],
        output_messages: list[dict[str, Any]],
    ) -> Span:
        return self.add_event(
            'gen_ai.client.inference.operation.details',
            {
                'gen_ai.input.messages': _as_json_text(input_messages),
                'gen_ai.output.messages': _as_json_text(output_messages),
            },
        )

    # -------------------------
    # Status
    # -------------------------

    def set_ok(self) -> Span:
        self._ensure_open()
        self._status = SpanStatus.OK
        return self

    def set_error(self, message: str | None = None) -> Span:
        self._ensure_open()
        self._status = SpanStatus.ERROR
        if message:
            self._status_message = message
        return self

    def record_exception(self, error: BaseException) -> Span:
        """Mark the span as failed and attach an ``exception`` event."""
        message = str(error)
        self.set_error(message)
        stacktrace = ''.join(traceback.format_exception(type(error), error, error.__traceback__))
        return self.add_event(
            'exception',
            {
                'exception.type': type(error).__name__,
                'exception.message': message,
                'exception.stacktrace': stacktrace,
            },
        )

    # -------------------------
    # Lifecycle
    # -------------------------

    def end(self) -> None:
        if self._ended:
            log_event('span.already_ended', level=logging.WARNING, span_id=self._span_id)
            return

        self._end_time = now_iso()
        self._ended = True
        if self._status == SpanStatus.UNSET:
            self._status = SpanStatus.OK

    def __enter__(self) -> Span:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._ended:
            return
        if exc is not None:
            self.record_exception(exc)
        self.end()

    # -------------------------
    # Serialization
    # -------------------------

    def to_data(self) -> dict[str, Any]:
        """Project the span into its wire record.

        ``end_time`` and ``status_message`` are left out while unset; ``metadata`` and
        ``events`` are left out entirely when empty.
        """
        data: dict[str, Any] = {
            'span_id': self._span_id,
            'trace_id': self._trace_id,
            'parent_span_id': self._parent_span_id,
            'name': self._name,
            'type': self._type.value,
            'start_time': self._start_time,
        }
        if self._end_time is not None:
            data['end_time'] = self._end_time
        data['status'] = self._status.value
        if self._status_message is not None:
            data['status_message'] = self._status_message
        data['attributes'] = dict(self._attributes)

        if self._metadata:
            data['metadata'] = dict(self._metadata)
        if self._events:
            data['events'] = self.events
        return data

    def __repr__(self) -> str:
        return f'Span(name={self._name!r}, span_id={self._span_id!r}, type={self._type.value!r})'
