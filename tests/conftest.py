"""
Shared fixtures and fakes for the test suite.
"""

from typing import List, Sequence

import pytest

from rag_agent.config import DEFAULT_CONFIG, resolve_provider
from rag_agent.models import Chunk, Completion, IndexEntry, ToolCall
from rag_agent.utils import merge_config


class CharTokenizer:
    """One token per character, so token offsets are easy to reason about."""

    def encode(self, text: str) -> List[int]:
        return [ord(char) for char in text]

    def decode(self, tokens: Sequence[int]) -> str:
        return "".join(chr(token) for token in tokens)


class ScriptedLLM:
    """Generation backend returning queued completions and recording every call."""

    def __init__(self, *completions: Completion):
        self.completions = list(completions)
        self.calls = []

    async def complete(self, system_prompt, conversation, user_prompt, tools=None, tool_exchanges=()):
        self.calls.append({
            'system_prompt': system_prompt,
            'conversation': list(conversation),
            'user_prompt': user_prompt,
            'tools': tools,
            'tool_exchanges': list(tool_exchanges)
        })
        if not self.completions:
            raise AssertionError("ScriptedLLM ran out of completions")
        return self.completions.pop(0)


def text_completion(text: str) -> Completion:
    return Completion(text=text)


def tool_completion(name: str, arguments: dict, call_id: str = "call_1") -> Completion:
    return Completion(tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments)])


def make_entry(text: str, embedding: List[float], source: str = "doc.txt", index: int = 0) -> IndexEntry:
    chunk = Chunk(
        doc_id="doc-1",
        text=text,
        chunk_index=index,
        token_start=0,
        token_end=len(text),
        source=source,
        path=f"/docs/{source}"
    )
    return IndexEntry.from_chunk(chunk, embedding)


@pytest.fixture
def tokenizer():
    return CharTokenizer()


@pytest.fixture
def config(tmp_path):
    """Full configuration with fast retries and a temporary documents directory."""
    return merge_config(DEFAULT_CONFIG, {
        'llm': {
            'provider': 'openai',
            'retries': {'max_attempts': 3, 'initial_delay': 0.0, 'max_delay': 0.0}
        },
        'document_processing': {
            'documents_path': str(tmp_path / 'documents'),
            'chunk_size': 40,
            'chunk_overlap': 10,
            'min_chunk_size': 5,
            'max_chunk_size': 60
        },
        'agent': {'max_tool_rounds': 5, 'timeout_seconds': 5.0},
        'router': {'timeout_seconds': 5.0}
    })


@pytest.fixture
def provider():
    return resolve_provider('openai', env={'OPENAI_API_KEY': 'test-key'})
