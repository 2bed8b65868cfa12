"""
Integration tests for the RAG pipeline, with both backends served by httpx.MockTransport.
"""

import json
from unittest.mock import patch

import httpx
import pytest

from rag_agent.rag_pipeline import RAGPipeline
from rag_agent.retrieval_service import NO_RESULTS_MESSAGE
from rag_agent.router import ROUTER_PROMPT

from conftest import CharTokenizer

ENV = {'PROVIDER': 'openai', 'OPENAI_API_KEY': 'test-key'}


class FakeBackend:
    """Serves embeddings and chat completions; the router is always told DATA."""

    def __init__(self):
        self.chat_payloads = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if request.url.path.endswith('/embeddings'):
            data = [
                {'index': i, 'embedding': [1.0, 0.0] if 'premium' in text.lower() else [0.0, 1.0]}
                for i, text in enumerate(payload['input'])
            ]
            return httpx.Response(200, json={'data': data})

        self.chat_payloads.append(payload)
        system_prompt = payload['messages'][0]['content']
        content = "  data  " if system_prompt == ROUTER_PROMPT else "Premiums are paid yearly."
        return httpx.Response(200, json={'choices': [{'message': {'role': 'assistant', 'content': content}}]})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def pipeline(config, backend):
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    return RAGPipeline(config=config, env=ENV, http_client=client, tokenizer=CharTokenizer())


@pytest.fixture
def documents(config, tmp_path):
    root = tmp_path / 'documents'
    root.mkdir()
    (root / 'policy.txt').write_text("The premium is paid once a year.")
    (root / 'recipe.txt').write_text("Boil the pasta for ten minutes.")
    return root


class TestRAGPipeline:
    """Test cases for RAGPipeline."""

    @patch('rag_agent.rag_pipeline.load_config')
    def test_initialization_from_yaml(self, mock_load_config):
        mock_load_config.return_value = {'retrieval': {'top_k': 3, 'similarity_threshold': 0.5}}

        pipeline = RAGPipeline(env=ENV)

        mock_load_config.assert_called_once_with("config/config.yaml")
        assert pipeline.retrieval_service.top_k == 3
        assert pipeline.retrieval_service.similarity_threshold == 0.5
        # Unset sections keep their defaults
        assert pipeline.agent.max_tool_rounds == 5
        assert pipeline.chunker.chunk_size == 800

    def test_provider_from_config_when_env_unset(self):
        pipeline = RAGPipeline(config={'llm': {'provider': 'groq'}}, env={})
        assert pipeline.provider.name == 'groq'

    def test_components_wired(self, pipeline):
        assert pipeline.provider.name == 'openai'
        assert pipeline.tool_registry.names() == ['search_documents', 'analyze_data']
        assert pipeline.orchestrator.specialist_for(pipeline.router.normalize("SUMMARY").label) is pipeline.agent

    @pytest.mark.asyncio
    async def test_ingest_then_chat(self, pipeline, documents, backend):
        count = await pipeline.ingest_all(documents)
        assert count == 2

        response = await pipeline.chat("When is the premium paid?")

        assert response.answer == "Premiums are paid yearly."
        assert response.context_used == "[Source: policy.txt]\nThe premium is paid once a year."
        assert response.history_length == 2
        prompt = backend.chat_payloads[0]['messages'][-1]['content']
        assert "The premium is paid once a year." in prompt
        assert "Boil the pasta" not in prompt

    @pytest.mark.asyncio
    async def test_chat_without_documents_uses_sentinel(self, pipeline):
        response = await pipeline.chat("When is the premium paid?")
        assert response.context_used == NO_RESULTS_MESSAGE

    @pytest.mark.asyncio
    async def test_orchestrate(self, pipeline, documents):
        await pipeline.ingest_all(documents)

        response = await pipeline.orchestrate("Average premium?")

        assert response.selected_specialist == "DATA"
        assert response.answer == "Premiums are paid yearly."

    @pytest.mark.asyncio
    async def test_sessions_have_separate_histories(self, pipeline):
        await pipeline.chat("premium?", session_id="alice")
        await pipeline.chat("premium?", session_id="alice")
        response = await pipeline.chat("premium?", session_id="bob")

        assert response.history_length == 2
        assert len(pipeline.sessions.get("alice")) == 4
        assert len(pipeline.agent.history) == 0

    @pytest.mark.asyncio
    async def test_reset(self, pipeline):
        await pipeline.chat("premium?")
        await pipeline.chat("premium?", session_id="alice")

        await pipeline.reset()
        assert len(pipeline.agent.history) == 0
        assert len(pipeline.sessions.get("alice")) == 2

        await pipeline.reset("alice")
        assert len(pipeline.sessions.get("alice")) == 0

        response = await pipeline.chat("hi")
        assert response.history_length == 2

    @pytest.mark.asyncio
    async def test_ingest_uploaded_bytes(self, pipeline):
        count = await pipeline.ingest_document(b"Premium discounts apply to annual plans.", "upload.txt")

        assert count == 1
        assert pipeline.vector_index.get_stats()['sources'] == ['upload.txt']

    def test_session_limit_from_config(self, config, backend):
        config['agent']['max_sessions'] = 2
        client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
        pipeline = RAGPipeline(config=config, env=ENV, http_client=client, tokenizer=CharTokenizer())

        assert pipeline.sessions.max_sessions == 2

    @pytest.mark.asyncio
    async def test_reset_forgets_session(self, pipeline):
        await pipeline.chat("premium?", session_id="alice")

        await pipeline.reset("alice")

        assert "alice" not in pipeline.sessions
        assert pipeline.get_system_status()['sessions'] == 0

    @pytest.mark.asyncio
    async def test_clear_cache(self, config, backend, tmp_path):
        cache_dir = tmp_path / 'cache'
        config['cache'] = {'enable_embedding_cache': True, 'cache_directory': str(cache_dir)}
        client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
        pipeline = RAGPipeline(config=config, env=ENV, http_client=client, tokenizer=CharTokenizer())
        await pipeline.embedding_service.embed_query("premium?")
        assert list(cache_dir.glob("embedding_*.pkl"))

        pipeline.clear_cache()

        assert list(cache_dir.glob("embedding_*.pkl")) == []

    def test_get_system_status(self, pipeline):
        status = pipeline.get_system_status()

        assert status['pipeline_status'] == 'healthy'
        assert status['provider']['provider'] == 'openai'
        assert status['vector_index']['entry_count'] == 0
        assert 'embedding_service' in status
        assert status['configuration']['similarity_threshold'] == 0.7
