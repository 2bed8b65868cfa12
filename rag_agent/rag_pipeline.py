import logging
import os
from pathlib import Path
from typing import Any, BinaryIO, Dict, Mapping, Optional, Union

import httpx
from dotenv import load_dotenv

from .agent import RAGAgent
from .chunking import TokenChunker, Tokenizer
from .config import DEFAULT_CONFIG, resolve_provider
from .conversation import ConversationHistory, SessionStore
from .document_processor import DocumentProcessor
from .embedding_service import EmbeddingService
from .ingestion import IngestionService
from .llm_service import LLMService
from .models import AgentResponse, OrchestratorResponse
from .retrieval_service import RetrievalService
from .router import MultiAgentOrchestrator, QueryRouter
from .tools import ToolRegistry
from .utils import load_config, merge_config, setup_logging
from .vector_index import VectorIndex


class RAGPipeline:
    """Wires ingestion, retrieval, the RAG agent and the router from configuration."""

    def __init__(
        self,
        config_path: str = "config/config.yaml",
        config: Optional[Dict[str, Any]] = None,
        env: Optional[Mapping[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        tokenizer: Optional[Tokenizer] = None
    ):
        """
        Build every component of the pipeline.

        Args:
            config_path: YAML file merged over the default configuration
            config: Explicit configuration used instead of the YAML file
            env: Environment for provider resolution (os.environ after loading .env when omitted)
            http_client: Shared client for the generation and embedding backends
            tokenizer: Tokenizer for the chunker (tiktoken when omitted)
        """
        overrides = config if config is not None else load_config(config_path)
        self.config = merge_config(DEFAULT_CONFIG, overrides)

        if env is None:
            load_dotenv()
            env = os.environ

        setup_logging(self.config)
        self.logger = logging.getLogger(__name__)

        provider_name = env.get('PROVIDER') or self.config['llm'].get('provider')
        self.provider = resolve_provider(provider_name, env=env)

        self.document_processor = DocumentProcessor(self.config)
        self.chunker = TokenChunker.from_config(self.config, tokenizer=tokenizer)
        self.embedding_service = EmbeddingService(self.config, self.provider, http_client=http_client)
        self.vector_index = VectorIndex(self.config)
        self.llm_service = LLMService(self.config, self.provider, http_client=http_client)

        self.retrieval_service = RetrievalService(self.embedding_service, self.vector_index, self.config)
        self.tool_registry = ToolRegistry.default(self.retrieval_service)
        self.agent = RAGAgent(self.llm_service, self.retrieval_service, self.tool_registry, self.config)
        self.router = QueryRouter(self.llm_service)
        self.orchestrator = MultiAgentOrchestrator.with_single_agent(self.router, self.agent, self.config)

        self.ingestion_service = IngestionService(
            self.config, self.document_processor, self.chunker, self.embedding_service, self.vector_index
        )
        self.sessions = SessionStore(self.config['agent'].get('max_sessions', 1000))

        self.logger.info(f"RAG pipeline initialized with {self.provider.label}")

    def _history(self, session_id: Optional[str]) -> ConversationHistory:
        if session_id is None:
            return self.agent.history
        return self.sessions.get(session_id)

    async def ingest_all(self, directory: Optional[Union[str, Path]] = None) -> int:
        return await self.ingestion_service.ingest_all(directory)

    async def ingest_document(
        self,
        resource: Union[str, Path, bytes, BinaryIO],
        filename: Optional[str] = None
    ) -> int:
        return await self.ingestion_service.ingest_document(resource, filename)

    async def chat(self, query: str, session_id: Optional[str] = None) -> AgentResponse:
        return await self.agent.chat(query, history=self._history(session_id))

    async def orchestrate(self, query: str, session_id: Optional[str] = None) -> OrchestratorResponse:
        return await self.orchestrator.orchestrate(query, history=self._history(session_id))

    async def reset(self, session_id: Optional[str] = None) -> None:
        """Clear one session's history, or the default history when no session is given."""
        if session_id is None:
            await self.agent.reset()
        else:
            await self.sessions.reset(session_id)

    def clear_cache(self) -> None:
        """Delete cached query embeddings, e.g. after switching embedding models."""
        self.embedding_service.clear_cache()

    def provider_info(self) -> Dict[str, str]:
        return self.provider.info()

    def get_system_status(self) -> Dict[str, Any]:
        """Get status of all pipeline components."""
        return {
            'pipeline_status': 'healthy',
            'provider': self.provider_info(),
            'vector_index': self.vector_index.get_stats(),
            'embedding_service': self.embedding_service.get_model_info(),
            'sessions': len(self.sessions),
            'configuration': {
                'top_k': self.retrieval_service.top_k,
                'similarity_threshold': self.retrieval_service.similarity_threshold,
                'max_tool_rounds': self.agent.max_tool_rounds,
                'tools': self.tool_registry.names(),
                'supported_formats': self.document_processor.get_supported_formats()
            }
        }

    async def aclose(self) -> None:
        await self.llm_service.aclose()
        await self.embedding_service.aclose()
