"""
Token-window chunker with overlap.

Splits document text into windows of ``chunk_size`` tokens that advance by
``chunk_size - overlap`` tokens, so consecutive chunks repeat ``overlap``
tokens and retrieval keeps context across a boundary. A trailing window that
adds fewer than ``min_chunk_size`` new tokens is folded into the previous
chunk, and no chunk grows past ``max_chunk_size`` tokens.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import tiktoken

from .exceptions import ConfigurationError
from .models import Chunk, Document

logger = logging.getLogger(__name__)


class Tokenizer(Protocol):
    def encode(self, text: str) -> List[int]: ...

    def decode(self, tokens: Sequence[int]) -> str: ...


class TokenChunker:
    """Sliding-window chunker over tiktoken tokens."""

    def __init__(
        self,
        chunk_size: int = 800,
        overlap: int = 200,
        min_chunk_size: int = 5,
        max_chunk_size: int = 1000,
        keep_separators: bool = True,
        encoding_name: str = "cl100k_base",
        tokenizer: Optional[Tokenizer] = None
    ):
        self._validate(chunk_size, overlap, min_chunk_size, max_chunk_size)
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.min_chunk_size = min_chunk_size
        self.max_chunk_size = max_chunk_size
        self.keep_separators = keep_separators
        self.encoding_name = encoding_name
        self._tokenizer = tokenizer

    @classmethod
    def from_config(cls, config: Dict[str, Any], tokenizer: Optional[Tokenizer] = None) -> "TokenChunker":
        doc_config = config.get('document_processing', {})
        return cls(
            chunk_size=doc_config.get('chunk_size', 800),
            overlap=doc_config.get('chunk_overlap', 200),
            min_chunk_size=doc_config.get('min_chunk_size', 5),
            max_chunk_size=doc_config.get('max_chunk_size', 1000),
            keep_separators=doc_config.get('keep_separators', True),
            encoding_name=doc_config.get('encoding_name', 'cl100k_base'),
            tokenizer=tokenizer
        )

    @property
    def tokenizer(self) -> Tokenizer:
        # Loaded lazily: the first get_encoding call may download the BPE file
        if self._tokenizer is None:
            self._tokenizer = tiktoken.get_encoding(self.encoding_name)
        return self._tokenizer

    @staticmethod
    def _validate(chunk_size: int, overlap: int, min_chunk_size: int, max_chunk_size: int) -> None:
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0:
            raise ConfigurationError(f"overlap must not be negative, got {overlap}")
        if overlap >= chunk_size:
            raise ConfigurationError(
                f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})"
            )
        if min_chunk_size < 0:
            raise ConfigurationError(f"min_chunk_size must not be negative, got {min_chunk_size}")
        if max_chunk_size < chunk_size:
            raise ConfigurationError(
                f"max_chunk_size ({max_chunk_size}) must be at least chunk_size ({chunk_size})"
            )

    def chunk_document(self, document: Document, **overrides: Any) -> List[Chunk]:
        """Chunk a Document, copying its source, path and id onto every chunk."""
        return self.chunk_text(
            document.text,
            source=document.source,
            path=document.path,
            doc_id=document.doc_id,
            **overrides
        )

    def chunk_text(
        self,
        text: str,
        source: str,
        path: str,
        doc_id: str,
        chunk_size: Optional[int] = None,
        overlap: Optional[int] = None,
        min_chunk_size: Optional[int] = None,
        max_chunk_size: Optional[int] = None,
        keep_separators: Optional[bool] = None
    ) -> List[Chunk]:
        """
        Split text into overlapping token windows.

        Args:
            text: Extracted document text
            source: Citation label copied onto each chunk
            path: Origin path copied onto each chunk
            doc_id: Identifier of the parent Document
            chunk_size, overlap, min_chunk_size, max_chunk_size, keep_separators:
                Per-call overrides of the constructor values

        Returns:
            Chunks in document order

        Raises:
            ConfigurationError: If the effective parameters are inconsistent
        """
        chunk_size = self.chunk_size if chunk_size is None else chunk_size
        overlap = self.overlap if overlap is None else overlap
        min_chunk_size = self.min_chunk_size if min_chunk_size is None else min_chunk_size
        max_chunk_size = self.max_chunk_size if max_chunk_size is None else max_chunk_size
        keep_separators = self.keep_separators if keep_separators is None else keep_separators
        self._validate(chunk_size, overlap, min_chunk_size, max_chunk_size)

        if not text or not text.strip():
            logger.warning(f"Empty text provided for chunking: {source}")
            return []

        tokens = self.tokenizer.encode(text)
        spans = self._window_spans(len(tokens), chunk_size, overlap, min_chunk_size, max_chunk_size)

        chunks = []
        for index, (start, end) in enumerate(spans):
            chunk_text = self.tokenizer.decode(tokens[start:end])
            if not keep_separators:
                chunk_text = re.sub(r'\n+', ' ', chunk_text)
            chunks.append(Chunk(
                doc_id=doc_id,
                text=chunk_text,
                chunk_index=index,
                token_start=start,
                token_end=end,
                source=source,
                path=path
            ))

        logger.info(f"Created {len(chunks)} chunks ({len(tokens)} tokens) for document: {source}")
        return chunks

    @staticmethod
    def _window_spans(
        total: int,
        chunk_size: int,
        overlap: int,
        min_chunk_size: int,
        max_chunk_size: int
    ) -> List[Tuple[int, int]]:
        """Token [start, end) offsets of every chunk for a stream of ``total`` tokens."""
        if total == 0:
            return []

        step = chunk_size - overlap
        spans: List[Tuple[int, int]] = []
        start = 0
        while True:
            end = min(start + chunk_size, total)
            if spans and end >= total:
                prev_start, prev_end = spans[-1]
                new_tokens = end - prev_end
                if new_tokens < min_chunk_size and end - prev_start <= max_chunk_size:
                    spans[-1] = (prev_start, end)
                    break
            spans.append((start, end))
            if end >= total:
                break
            start += step

        return spans
