"""
Document RAG Agent

Answers natural-language questions from a private document corpus with
retrieval-augmented generation, optionally routed through a multi-agent
router that picks a specialist before generation.
"""

__version__ = "1.0.0"

from .agent import RAGAgent
from .chunking import TokenChunker
from .document_processor import DocumentProcessor
from .embedding_service import EmbeddingService
from .ingestion import IngestionService
from .llm_service import LLMService
from .rag_pipeline import RAGPipeline
from .retrieval_service import RetrievalService
from .router import MultiAgentOrchestrator, QueryRouter, SpecialistLabel
from .tools import ToolRegistry
from .vector_index import VectorIndex

__all__ = [
    "DocumentProcessor",
    "TokenChunker",
    "EmbeddingService",
    "VectorIndex",
    "RetrievalService",
    "LLMService",
    "ToolRegistry",
    "RAGAgent",
    "QueryRouter",
    "MultiAgentOrchestrator",
    "SpecialistLabel",
    "IngestionService",
    "RAGPipeline"
]
