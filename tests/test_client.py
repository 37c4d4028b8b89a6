from __future__ import annotations

import logging
import re

import httpx
import pytest

from amp_sdk import AMP, AMPError, ConfigurationError, Message, UnsupportedOperationError
from amp_sdk.server import create_app
from amp_sdk.transport.http import HttpxTransport
from tests.fixtures.transport_stubs import RecordingSleep, RecordingTransport, make_settings


def _client(transport, **options) -> AMP:
    options.setdefault('disable_auto_flush', True)
    return AMP(api_key='test-key', base_url='http://test', transport=transport, **options)


def test_missing_api_key_is_a_configuration_error(monkeypatch) -> None:
    monkeypatch.delenv('AMP_API_KEY', raising=False)

    with pytest.raises(ConfigurationError, match='api_key is required'):
        AMP()


@pytest.mark.parametrize('options', [{'batch_size': 0}, {'timeout': 0}, {'max_retries': -1}])
def test_invalid_options_are_configuration_errors(options) -> None:
    with pytest.raises(ConfigurationError, match='invalid settings') as exc_info:
        AMP('test-key', disable_auto_flush=True, transport=RecordingTransport(), **options)

    assert isinstance(exc_info.value, AMPError)


def test_invalid_override_of_prebuilt_settings_is_a_configuration_error() -> None:
    settings = make_settings()

    with pytest.raises(ConfigurationError):
        AMP(settings=settings, transport=RecordingTransport(), batch_size=0)


def test_api_key_can_come_from_environment(monkeypatch) -> None:
    monkeypatch.setenv('AMP_API_KEY', 'env-key')

    amp = AMP(disable_auto_flush=True, transport=RecordingTransport())

    assert amp.settings.api_key == 'env-key'


@pytest.mark.asyncio
async def test_ended_trace_is_queued_and_flushed() -> None:
    # Arrange
    transport = RecordingTransport()
    amp = _client(transport)
    trace = amp.trace('user-query', metadata={'env': 'test'})
    span = trace.start_llm_span('llm.completion', 'openai', 'gpt-4')
    span.set_tokens(150, 75)
    span.end()

    # Act
    trace.end()
    queued = amp.queue_size
    response = await amp.flush()

    # Assert
    assert queued == 1
    assert response is not None and response.accepted.traces == 1
    sent = transport.calls[0]['body']['traces'][0]
    assert sent['trace_id'] == trace.trace_id
    assert sent['metadata'] == {'env': 'test'}
    assert sent['spans'][0]['attributes']['gen_ai.usage.total_tokens'] == 225
    assert amp.queue_size == 0


@pytest.mark.asyncio
async def test_llm_trace_returns_trace_and_llm_span() -> None:
    amp = _client(RecordingTransport())

    trace, span = amp.llm_trace('chat', 'anthropic', 'claude-3')

    assert span.trace_id == trace.trace_id
    assert span.attributes['gen_ai.request.model'] == 'claude-3'
    assert trace.span_count == 1


@pytest.mark.asyncio
async def test_session_traces_share_session_id() -> None:
    amp = _client(RecordingTransport())
    session = amp.session(user_id='u-1')

    first = session.trace('turn-1')
    second = session.trace('turn-2')

    assert re.fullmatch(r'sess_\d+_[0-9a-f]{8}', session.session_id)
    assert first.session_id == second.session_id == session.session_id
    assert session.user_id == 'u-1'


@pytest.mark.asyncio
async def test_batch_size_option_triggers_automatic_flush() -> None:
    transport = RecordingTransport()
    amp = _client(transport, batch_size=2)

    amp.trace('a').end()
    amp.trace('b').end()
    await amp.queue.join()

    assert len(transport.calls) == 1
    assert len(transport.calls[0]['body']['traces']) == 2


@pytest.mark.asyncio
async def test_custom_sleep_is_used_for_backoff() -> None:
    from amp_sdk.core.errors import DeliveryError

    sleep = RecordingSleep()
    transport = RecordingTransport([DeliveryError('HTTP 502', status_code=502)])
    amp = _client(transport, sleep=sleep)
    amp.trace('retry').end()

    await amp.flush()

    assert sleep.delays == [0.5]
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_print_traces_logs_finalized_record(caplog) -> None:
    amp = _client(RecordingTransport(), print_traces=True)

    with caplog.at_level(logging.INFO, logger='amp_sdk'):
        trace = amp.trace('printed')
        trace.end()

    assert 'trace.finalized' in caplog.text
    assert trace.trace_id in caplog.text


@pytest.mark.asyncio
async def test_exit_hooks_registered_until_shutdown() -> None:
    # Arrange
    transport = RecordingTransport()
    amp = AMP(api_key='test-key', base_url='http://test', transport=transport)
    amp.trace('pending').end()

    # Act
    registered = amp.queue.exit_hooks_registered
    await amp.shutdown()

    # Assert
    assert registered is True
    assert amp.queue.exit_hooks_registered is False
    assert amp.queue_size == 0
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_async_context_manager_flushes_on_exit() -> None:
    transport = RecordingTransport()

    async with _client(transport) as amp:
        amp.trace('scoped').end()

    assert amp.queue.is_shutdown
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_end_to_end_against_ingestion_stub() -> None:
    # Arrange
    app = create_app(api_key='test-key')
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as http_client:
        amp = _client(HttpxTransport(client=http_client), account_id='acct_9')
        trace = amp.trace('agent-run')
        agent = trace.start_agent_span('agent', 'planner', 'react')
        tool = agent.start_child_tool_span('Tool: Search', 'web_search')
        tool.set_tool_status('success', latency_ms=12)
        try:
            raise TimeoutError('search timed out')
        except TimeoutError as exc:
            tool.record_exception(exc)
        trace.end()

        # Act
        response = await amp.flush()
        health = await amp.health()

    # Assert
    assert response is not None
    assert response.status == 'accepted'
    assert response.accepted.traces == 1
    received = app.state.received[0]
    assert received['accountId'] == 'acct_9'
    stored = received['traces'][0]
    assert stored['status'] == 'error'
    assert [s.get('parent_span_id') for s in stored['spans']] == [None, agent.span_id]
    assert stored['spans'][1]['events'][0]['name'] == 'exception'
    assert health['status'] == 'ok'


@pytest.mark.asyncio
async def test_session_turns_are_sent_as_transcripts() -> None:
    # Arrange
    app = create_app()
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as http_client:
        amp = _client(HttpxTransport(client=http_client))
        session = amp.session(session_id='sess_fixed', metadata={'channel': 'web'})

        # Act
        first = await session.add_turn(
            [{'role': 'user', 'content': 'Hi'}, Message(role='assistant', content='Hello!')]
        )
        await session.add_turn([{'role': 'user', 'content': 'Bye'}])

    # Assert
    assert first.accepted.transcripts == 1
    assert session.conversation_turn == 2
    turns = [r['transcripts'][0] for r in app.state.received]
    assert [t['conversation_turn'] for t in turns] == [1, 2]
    assert turns[0]['session_id'] == 'sess_fixed'
    assert turns[0]['messages'][1] == {'role': 'assistant', 'content': 'Hello!'}
    assert turns[0]['metadata'] == {'channel': 'web'}


@pytest.mark.asyncio
async def test_send_bypasses_the_queue() -> None:
    transport = RecordingTransport()
    amp = _client(transport)
    trace = amp.trace('direct')
    trace.on_end(lambda t: None)
    trace.end()

    response = await amp.send([trace])

    assert response.accepted.traces == 1
    assert amp.queue_size == 0
    assert transport.trace_ids() == [trace.trace_id]


@pytest.mark.asyncio
async def test_health_without_get_support_is_a_typed_error() -> None:
    amp = _client(RecordingTransport())

    with pytest.raises(UnsupportedOperationError, match='RecordingTransport does not support GET'):
        await amp.health()
