"""
Tests for provider resolution.
"""

import pytest

from rag_agent.config import DEFAULT_CONFIG, PROVIDERS, resolve_provider


class TestResolveProvider:

    @pytest.mark.parametrize("name", sorted(PROVIDERS))
    def test_known_providers(self, name):
        provider = resolve_provider(name, env={})
        assert provider.name == name
        assert provider.chat_url.startswith("http")
        assert provider.chat_url.endswith("/chat/completions")
        assert "/v1/v1" not in provider.chat_url

    def test_default_is_ollama(self):
        provider = resolve_provider(env={})
        assert provider.name == 'ollama'
        assert provider.chat_url == "http://localhost:11434/v1/chat/completions"
        assert provider.api_key == 'ollama'

    def test_provider_from_environment(self):
        assert resolve_provider(env={'PROVIDER': 'groq'}).name == 'groq'

    def test_explicit_name_wins_over_environment(self):
        assert resolve_provider('openai', env={'PROVIDER': 'groq'}).name == 'openai'

    def test_unknown_falls_back_to_ollama(self, caplog):
        provider = resolve_provider('nonexistent', env={})
        assert provider.name == 'ollama'
        assert "Unknown provider" in caplog.text

    def test_name_is_case_insensitive(self):
        assert resolve_provider('Gemini', env={}).name == 'gemini'

    def test_environment_overrides(self):
        provider = resolve_provider('openai', env={
            'OPENAI_BASE_URL': 'https://proxy.example.com',
            'OPENAI_API_KEY': 'sk-123',
            'MODEL': 'custom-model',
            'CHAT_COMPLETIONS_PATH': '/chat',
            'EMBEDDING_BASE_URL': 'http://embed.local',
            'EMBEDDING_MODEL': 'embed-model',
            'EMBEDDING_API_KEY': 'emb-key'
        })

        assert provider.chat_url == 'https://proxy.example.com/chat'
        assert provider.api_key == 'sk-123'
        assert provider.chat_model == 'custom-model'
        assert provider.embeddings_url == 'http://embed.local/v1/embeddings'
        assert provider.embedding_model == 'embed-model'
        assert provider.embedding_api_key == 'emb-key'

    def test_blank_overrides_ignored(self):
        provider = resolve_provider('openai', env={'MODEL': '   '})
        assert provider.chat_model == PROVIDERS['openai'].chat_model

    def test_chat_and_embeddings_on_separate_hosts(self):
        provider = resolve_provider('groq', env={'OPENAI_API_KEY': 'gsk'})
        assert provider.chat_url.startswith('https://api.groq.com')
        assert provider.embeddings_url.startswith('http://localhost:11434')
        assert provider.embedding_api_key == 'ollama'
        assert provider.embedding_needs_ollama

    def test_info_has_no_secrets(self):
        info = resolve_provider('openai', env={'OPENAI_API_KEY': 'sk-secret'}).info()
        assert info['provider'] == 'openai'
        assert set(info) == {'provider', 'label', 'chatModel', 'embeddingModel', 'baseUrl'}
        assert 'sk-secret' not in info.values()


class TestDefaultConfig:

    def test_retrieval_defaults(self):
        assert DEFAULT_CONFIG['retrieval'] == {'top_k': 5, 'similarity_threshold': 0.7}

    def test_chunking_defaults(self):
        doc_config = DEFAULT_CONFIG['document_processing']
        assert doc_config['chunk_size'] == 800
        assert doc_config['chunk_overlap'] == 200
        assert doc_config['min_chunk_size'] == 5
        assert doc_config['max_chunk_size'] == 1000
