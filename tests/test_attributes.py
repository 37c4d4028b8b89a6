from __future__ import annotations

from amp_sdk.spans.attributes import (
    ATTRIBUTE_ALIASES,
    aliased_keys,
    canonical_key,
    normalize_operation,
    normalize_tool_status,
)


def test_aliased_keys_lists_canonical_key_first() -> None:
    assert aliased_keys('gen_ai.usage.input_tokens') == (
        'gen_ai.usage.input_tokens',
        'gen_ai.usage.prompt_tokens',
        'gen_ai.prompt_tokens',
    )


def test_keys_without_aliases_map_to_themselves() -> None:
    assert aliased_keys('tool.name') == ('tool.name',)
    assert canonical_key('tool.name') == 'tool.name'


def test_every_alias_resolves_back_to_its_canonical_key() -> None:
    for canonical, aliases in ATTRIBUTE_ALIASES.items():
        for alias in aliases:
            assert canonical_key(alias) == canonical


def test_operation_and_tool_status_normalisation() -> None:
    assert normalize_operation('completion') == 'text_completion'
    assert normalize_operation('embedding') == 'embeddings'
    assert normalize_operation('chat') == 'chat'
    assert normalize_tool_status('success') == 'SUCCESS'
    assert normalize_tool_status('error') == 'ERROR'
    assert normalize_tool_status('TIMEOUT') == 'TIMEOUT'
