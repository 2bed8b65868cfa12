"""
Embedding service for generating vector representations of text.

Two backends are supported: the resolved provider's OpenAI-compatible
embeddings endpoint, or a local sentence-transformers model.
"""

import asyncio
import hashlib
import logging
import os
import pickle
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from .config import ProviderConfig
from .exceptions import BackendUnavailableError, ConfigurationError
from .llm_service import post_json_with_retries
from .utils import Timer, create_directories

BACKENDS = ('provider', 'sentence-transformers')


class EmbeddingService:
    """Service for generating and caching text embeddings."""

    def __init__(
        self,
        config: Dict[str, Any],
        provider: Optional[ProviderConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.config = config
        self.embedding_config = config.get('embedding', {})
        self.backend = self.embedding_config.get('backend', 'provider')
        if self.backend not in BACKENDS:
            raise ConfigurationError(f"Unknown embedding backend '{self.backend}', expected one of {BACKENDS}")
        if self.backend == 'provider' and provider is None:
            raise ConfigurationError("The 'provider' embedding backend needs a resolved provider")

        self.provider = provider
        self.local_model_name = self.embedding_config.get('model_name', 'sentence-transformers/all-MiniLM-L6-v2')
        self.device = self.embedding_config.get('device', 'cpu')
        self.batch_size = self.embedding_config.get('batch_size', 32)

        retry_config = config.get('llm', {}).get('retries', {})
        self.max_attempts = retry_config.get('max_attempts', 3)
        self.initial_delay = retry_config.get('initial_delay', 1.0)
        self.max_delay = retry_config.get('max_delay', 10.0)

        self.cache_config = config.get('cache', {})
        self.enable_cache = self.cache_config.get('enable_embedding_cache', False)
        self.cache_dir = self.cache_config.get('cache_directory', './data/cache')

        self.model = None
        self.dimension: Optional[int] = None
        self._client = http_client
        if self.backend == 'provider' and self._client is None:
            self._client = httpx.AsyncClient(timeout=config.get('llm', {}).get('timeout', 60.0))
        self.logger = logging.getLogger(__name__)

        if self.enable_cache:
            create_directories([self.cache_dir])

    @property
    def model_name(self) -> str:
        if self.backend == 'provider':
            return self.provider.embedding_model
        return self.local_model_name

    def load_model(self) -> None:
        """Load the local sentence transformer model."""
        if self.model is not None:
            return

        from sentence_transformers import SentenceTransformer

        self.logger.info(f"Loading embedding model: {self.local_model_name} on {self.device}")
        try:
            with Timer(f"Loading model {self.local_model_name}"):
                self.model = SentenceTransformer(self.local_model_name, device=self.device)
        except Exception as e:
            self.logger.error(f"Failed to load model {self.local_model_name}: {e}")
            raise

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: Text strings to encode

        Returns:
            One embedding per input text, in input order
        """
        if not texts:
            return []

        self.logger.info(f"Encoding {len(texts)} texts with {self.model_name}")
        with Timer(f"Encoding {len(texts)} texts"):
            if self.backend == 'provider':
                embeddings = await self._embed_remote(texts)
            else:
                loop = asyncio.get_running_loop()
                embeddings = await loop.run_in_executor(None, self._encode_local, texts)

        if embeddings:
            self.dimension = len(embeddings[0])
        return embeddings

    async def embed_query(self, text: str) -> List[float]:
        """Generate the embedding of a single query string."""
        if not text.strip():
            return []

        if self.enable_cache:
            cached_embedding = self._get_cached_embedding(text)
            if cached_embedding is not None:
                return cached_embedding

        embeddings = await self.embed_texts([text])
        embedding = embeddings[0] if embeddings else []

        if self.enable_cache and embedding:
            self._cache_embedding(text, embedding)

        return embedding

    def _encode_local(self, texts: List[str]) -> List[List[float]]:
        if self.model is None:
            self.load_model()

        embeddings = self.model.encode(
            texts,
            batch_size=self.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=True
        )
        return [list(map(float, row)) for row in embeddings]

    async def _embed_remote(self, texts: List[str]) -> List[List[float]]:
        headers = {'Content-Type': 'application/json'}
        if self.provider.embedding_api_key:
            headers['Authorization'] = f"Bearer {self.provider.embedding_api_key}"

        embeddings: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            data = await post_json_with_retries(
                self._client,
                self.provider.embeddings_url,
                {'model': self.provider.embedding_model, 'input': batch},
                headers,
                max_attempts=self.max_attempts,
                initial_delay=self.initial_delay,
                max_delay=self.max_delay
            )
            items = sorted(data.get('data', []), key=lambda item: item.get('index', 0))
            if len(items) != len(batch):
                raise BackendUnavailableError(
                    f"Embedding backend returned {len(items)} vectors for {len(batch)} inputs"
                )
            embeddings.extend([float(v) for v in item['embedding']] for item in items)

        return embeddings

    def _get_cache_path(self, text: str) -> str:
        """Generate cache file path for a text."""
        text_hash = hashlib.md5(f"{self.model_name}\x00{text}".encode()).hexdigest()
        return os.path.join(self.cache_dir, f"embedding_{text_hash}.pkl")

    def _get_cached_embedding(self, text: str) -> Optional[List[float]]:
        """Retrieve cached embedding for text."""
        cache_path = self._get_cache_path(text)

        if os.path.exists(cache_path):
            try:
                with open(cache_path, 'rb') as f:
                    return pickle.load(f)
            except Exception as e:
                self.logger.warning(f"Failed to load cached embedding: {e}")

        return None

    def _cache_embedding(self, text: str, embedding: List[float]) -> None:
        """Cache embedding for text."""
        cache_path = self._get_cache_path(text)

        try:
            with open(cache_path, 'wb') as f:
                pickle.dump(embedding, f)
        except Exception as e:
            self.logger.warning(f"Failed to cache embedding: {e}")

    def clear_cache(self) -> None:
        """Clear all cached embeddings."""
        if not self.enable_cache:
            return

        for cache_file in Path(self.cache_dir).glob("embedding_*.pkl"):
            try:
                cache_file.unlink()
            except OSError as e:
                self.logger.warning(f"Failed to delete cache file {cache_file}: {e}")

        self.logger.info("Embedding cache cleared")

    def get_model_info(self) -> Dict[str, Any]:
        """Get information about the embedding backend."""
        return {
            'backend': self.backend,
            'model_name': self.model_name,
            'endpoint': self.provider.embeddings_url if self.backend == 'provider' else None,
            'model_loaded': self.model is not None,
            'embedding_dimension': self.dimension
        }

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
