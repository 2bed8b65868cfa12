"""
Semantic search over the vector index, with citation formatting for prompts.
"""

import logging
from typing import Any, Dict, List, Optional

from .embedding_service import EmbeddingService
from .models import SearchResult
from .vector_index import VectorIndex

NO_RESULTS_MESSAGE = "No relevant documents found."
RESULT_SEPARATOR = "\n\n---\n\n"
DEFAULT_TOP_K = 5
DEFAULT_SIMILARITY_THRESHOLD = 0.7


class RetrievalService:
    """Embeds queries and looks them up in the vector index."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_index: VectorIndex,
        config: Optional[Dict[str, Any]] = None
    ):
        self.embedding_service = embedding_service
        self.vector_index = vector_index
        retrieval_config = (config or {}).get('retrieval', {})
        self.top_k = retrieval_config.get('top_k', DEFAULT_TOP_K)
        self.similarity_threshold = retrieval_config.get('similarity_threshold', DEFAULT_SIMILARITY_THRESHOLD)
        self.logger = logging.getLogger(__name__)

    async def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        similarity_threshold: Optional[float] = None
    ) -> List[SearchResult]:
        """Return up to ``top_k`` chunks scoring at least ``similarity_threshold``."""
        top_k = self.top_k if top_k is None else top_k
        threshold = self.similarity_threshold if similarity_threshold is None else similarity_threshold

        query_embedding = await self.embedding_service.embed_query(query)
        results = self.vector_index.search(query_embedding, top_k=top_k, similarity_threshold=threshold)
        self.logger.info(f"Retrieved {len(results)} chunks for query (top_k={top_k}, threshold={threshold})")
        return results

    async def search_and_format(self, query: str, top_k: Optional[int] = None) -> str:
        """
        Search and render the results as a context block for a prompt.

        Each result is rendered as ``[Source: <source>]`` followed by the
        chunk text; results are separated by a horizontal rule. When nothing
        passes the threshold the NO_RESULTS_MESSAGE sentinel is returned.
        """
        results = await self.search(query, top_k=top_k)
        if not results:
            return NO_RESULTS_MESSAGE

        return RESULT_SEPARATOR.join(
            f"[Source: {result.source}]\n{result.chunk.text}" for result in results
        )
