"""Span attribute taxonomy.

The ingestion backend reads attributes under two naming conventions: the OTEL GenAI
semantic conventions and an older AMP spelling. Domain setters write every value under
its canonical key plus the alternate spellings listed in ``ATTRIBUTE_ALIASES``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Union


class SpanType(str, Enum):
    """High-level category of an AI operation (not the OTEL SpanKind)."""

    LLM = 'llm'
    TOOL = 'tool'
    RAG = 'rag'
    ORCHESTRATION = 'orchestration'
    AGENT = 'agent'
    CUSTOM = 'custom'


class SpanStatus(str, Enum):
    UNSET = 'unset'
    OK = 'ok'
    ERROR = 'error'


AttributeValue = Union[str, int, float, bool, list[str], dict[str, Any]]

ATTRIBUTE_ALIASES: dict[str, tuple[str, ...]] = {
    'gen_ai.provider.name': ('gen_ai.system',),
    'gen_ai.usage.input_tokens': ('gen_ai.usage.prompt_tokens', 'gen_ai.prompt_tokens'),
    'gen_ai.usage.output_tokens': ('gen_ai.usage.completion_tokens', 'gen_ai.completion_tokens'),
    'gen_ai.usage.total_tokens': ('gen_ai.total_tokens',),
    'retrieval.method': ('retrieval_method',),
    'documents_retrieved': ('context_count',),
    'user_query': ('query',),
    'chain.type': ('chain_type',),
}

_CANONICAL_BY_ALIAS: dict[str, str] = {
    alias: canonical
    for canonical, aliases in ATTRIBUTE_ALIASES.items()
    for alias in aliases
}

OPERATION_ALIASES: dict[str, str] = {
    'completion': 'text_completion',
    'embedding': 'embeddings',
}

TOOL_STATUS_ALIASES: dict[str, str] = {
    'success': 'SUCCESS',
    'error': 'ERROR',
}


def aliased_keys(key: str) -> tuple[str, ...]:
    """Return ``key`` followed by every alternate spelling the backend expects."""
    return (key, *ATTRIBUTE_ALIASES.get(key, ()))


def canonical_key(key: str) -> str:
    return _CANONICAL_BY_ALIAS.get(key, key)


def normalize_operation(operation: str) -> str:
    return OPERATION_ALIASES.get(operation, operation)


def normalize_tool_status(status: str) -> str:
    return TOOL_STATUS_ALIASES.get(status, status)
