# config.py

import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

# --- Application Configuration ---
# Values here are the defaults; config/config.yaml is merged on top of them.

DEFAULT_CONFIG: Dict[str, Any] = {
    'llm': {
        # Key into PROVIDERS. The PROVIDER environment variable takes precedence.
        'provider': 'ollama',
        'temperature': 0.2,
        'max_tokens': 1024,
        'timeout': 60.0,
        'retries': {
            'max_attempts': 3,
            'initial_delay': 1.0,
            'max_delay': 10.0
        }
    },
    'embedding': {
        # 'provider' calls the resolved provider's embeddings endpoint,
        # 'sentence-transformers' runs model_name locally.
        'backend': 'provider',
        'model_name': 'sentence-transformers/all-MiniLM-L6-v2',
        'device': 'cpu',
        'batch_size': 32
    },
    'cache': {
        'enable_embedding_cache': False,
        'cache_directory': './data/cache'
    },
    'document_processing': {
        'documents_path': './documents',
        'supported_formats': ['pdf', 'docx', 'eml', 'txt', 'md'],
        'chunk_size': 800,
        'chunk_overlap': 200,
        'min_chunk_size': 5,
        'max_chunk_size': 1000,
        'keep_separators': True,
        'encoding_name': 'cl100k_base'
    },
    'retrieval': {
        'top_k': 5,
        'similarity_threshold': 0.7
    },
    'agent': {
        'max_tool_rounds': 5,
        'timeout_seconds': 120.0,
        'max_sessions': 1000
    },
    'router': {
        'timeout_seconds': 30.0
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        # Set to a path to also write logs to a file.
        'file': None
    }
}


# --- Provider Configuration ---

@dataclass(frozen=True)
class ProviderConfig:
    """Endpoints and models of one OpenAI-compatible backend.

    Chat and embeddings may live on different hosts: providers without an
    embeddings API point ``embedding_base_url`` at a local Ollama.
    """

    name: str
    label: str
    base_url: str
    chat_model: str
    completions_path: str = '/v1/chat/completions'
    embedding_base_url: Optional[str] = None
    embedding_model: str = 'nomic-embed-text'
    embeddings_path: str = '/v1/embeddings'
    embedding_api_key: Optional[str] = None
    default_api_key: Optional[str] = None
    api_key: str = ''

    @property
    def chat_url(self) -> str:
        return self.base_url.rstrip('/') + self.completions_path

    @property
    def embeddings_url(self) -> str:
        return (self.embedding_base_url or self.base_url).rstrip('/') + self.embeddings_path

    @property
    def embedding_needs_ollama(self) -> bool:
        return self.embedding_base_url is not None and 'localhost:11434' in self.embedding_base_url

    def info(self) -> Dict[str, str]:
        """Non-secret description of the provider, safe to expose over HTTP."""
        return {
            'provider': self.name,
            'label': self.label,
            'chatModel': self.chat_model,
            'embeddingModel': self.embedding_model,
            'baseUrl': self.base_url
        }


OLLAMA_URL = 'http://localhost:11434'

PROVIDERS: Dict[str, ProviderConfig] = {
    'ollama': ProviderConfig(
        name='ollama', label='Ollama (local)',
        base_url=OLLAMA_URL, chat_model='llama3.1',
        default_api_key='ollama'
    ),
    'groq': ProviderConfig(
        name='groq', label='Groq Cloud',
        base_url='https://api.groq.com/openai', chat_model='llama-3.1-70b-versatile',
        embedding_base_url=OLLAMA_URL, embedding_api_key='ollama'
    ),
    'gemini': ProviderConfig(
        name='gemini', label='Google Gemini',
        base_url='https://generativelanguage.googleapis.com/v1beta/openai',
        chat_model='gemini-2.0-flash', completions_path='/chat/completions',
        embedding_base_url=OLLAMA_URL, embedding_api_key='ollama'
    ),
    'openai': ProviderConfig(
        name='openai', label='OpenAI',
        base_url='https://api.openai.com', chat_model='gpt-4o-mini',
        embedding_model='text-embedding-3-small'
    ),
    'github': ProviderConfig(
        name='github', label='GitHub Models',
        base_url='https://models.inference.ai.azure.com', chat_model='gpt-4o-mini',
        completions_path='/chat/completions',
        embedding_base_url=OLLAMA_URL, embedding_api_key='ollama'
    )
}

DEFAULT_PROVIDER = 'ollama'


def _env(env: Mapping[str, str], key: str) -> Optional[str]:
    value = env.get(key)
    if value is None or not value.strip():
        return None
    return value.strip()


def resolve_provider(name: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> ProviderConfig:
    """
    Resolve a provider name to concrete endpoints, models and keys.

    Args:
        name: Key into PROVIDERS; PROVIDER from ``env`` is used when omitted
        env: Variables that may override individual fields (defaults to os.environ)

    Returns:
        A ProviderConfig with every override applied
    """
    env = os.environ if env is None else env
    provider_name = (name or _env(env, 'PROVIDER') or DEFAULT_PROVIDER).lower()

    base = PROVIDERS.get(provider_name)
    if base is None:
        logger.warning(f"Unknown provider '{provider_name}', falling back to '{DEFAULT_PROVIDER}'")
        base = PROVIDERS[DEFAULT_PROVIDER]

    api_key = _env(env, 'OPENAI_API_KEY') or base.default_api_key or ''
    embedding_api_key = _env(env, 'EMBEDDING_API_KEY') or base.embedding_api_key or api_key

    resolved = replace(
        base,
        base_url=_env(env, 'OPENAI_BASE_URL') or base.base_url,
        chat_model=_env(env, 'MODEL') or base.chat_model,
        completions_path=_env(env, 'CHAT_COMPLETIONS_PATH') or base.completions_path,
        embedding_base_url=_env(env, 'EMBEDDING_BASE_URL') or base.embedding_base_url,
        embedding_model=_env(env, 'EMBEDDING_MODEL') or base.embedding_model,
        embedding_api_key=embedding_api_key,
        api_key=api_key
    )

    logger.info(
        f"Provider: {resolved.label} | chat model: {resolved.chat_model} | "
        f"embedding model: {resolved.embedding_model}"
    )
    if resolved.embedding_needs_ollama:
        logger.warning(
            f"{resolved.label} does not serve embeddings; using local Ollama at "
            f"{resolved.embedding_base_url} (run 'ollama pull {resolved.embedding_model}')"
        )
    return resolved
