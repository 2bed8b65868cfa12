import asyncio
import logging
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Union

from .chunking import TokenChunker
from .document_processor import DocumentProcessor
from .embedding_service import EmbeddingService
from .exceptions import ExtractionError
from .models import Chunk, Document, IndexEntry
from .utils import Timer, create_directories
from .vector_index import VectorIndex


class IngestionService:
    """Extracts, chunks, embeds and indexes documents."""

    def __init__(
        self,
        config: Dict[str, Any],
        document_processor: DocumentProcessor,
        chunker: TokenChunker,
        embedding_service: EmbeddingService,
        vector_index: VectorIndex
    ):
        self.config = config
        self.documents_path = config.get('document_processing', {}).get('documents_path', './documents')
        self.document_processor = document_processor
        self.chunker = chunker
        self.embedding_service = embedding_service
        self.vector_index = vector_index
        self.logger = logging.getLogger(__name__)

    async def ingest_all(self, directory: Optional[Union[str, Path]] = None) -> int:
        """
        Ingest every file under a directory, recursively.

        A missing directory is created and yields 0 chunks. Files that
        cannot be extracted are logged and skipped.

        Returns:
            Number of chunks added to the index
        """
        root = Path(directory or self.documents_path)
        if not root.exists():
            self.logger.info(f"Documents directory {root} does not exist, creating it")
            create_directories([str(root)])
            return 0

        file_paths = sorted(path for path in root.rglob('*') if path.is_file())
        self.logger.info(f"Found {len(file_paths)} files in {root}")

        loop = asyncio.get_running_loop()
        chunks: List[Chunk] = []
        checksums: Dict[str, str] = {}
        failed = 0
        with Timer(f"Ingesting {root}"):
            for file_path in file_paths:
                try:
                    document = await loop.run_in_executor(None, self.document_processor.extract, file_path)
                except ExtractionError as e:
                    failed += 1
                    self.logger.warning(f"Skipping {file_path}: {e.message}")
                    continue
                chunks.extend(self._chunk(document))
                checksums[document.doc_id] = document.checksum

            added = await self._index_chunks(chunks, checksums)

        self.logger.info(
            f"Ingested {len(file_paths) - failed} of {len(file_paths)} files into {added} chunks"
        )
        return added

    async def ingest_document(
        self,
        resource: Union[str, Path, bytes, BinaryIO],
        filename: Optional[str] = None
    ) -> int:
        """
        Ingest a single document from a path, raw bytes or a binary stream.

        Raises:
            ExtractionError: If the document cannot be read
        """
        loop = asyncio.get_running_loop()
        if isinstance(resource, (str, Path)):
            document = await loop.run_in_executor(
                None, self.document_processor.extract, resource, filename
            )
        else:
            if not filename:
                raise ExtractionError("A filename is required when ingesting raw content")
            document = await loop.run_in_executor(
                None, self.document_processor.extract_bytes, resource, filename
            )

        added = await self._index_chunks(self._chunk(document), {document.doc_id: document.checksum})
        self.logger.info(f"Ingested {document.source}: {added} chunks")
        return added

    def _chunk(self, document: Document) -> List[Chunk]:
        return self.chunker.chunk_document(document)

    async def _index_chunks(self, chunks: List[Chunk], checksums: Dict[str, str]) -> int:
        """Embed chunks and add them to the index, tagged with their file's checksum."""
        if not chunks:
            return 0

        embeddings = await self.embedding_service.embed_texts([chunk.text for chunk in chunks])
        entries = [
            IndexEntry.from_chunk(chunk, embedding, checksum=checksums.get(chunk.doc_id, ''))
            for chunk, embedding in zip(chunks, embeddings)
        ]
        self.vector_index.add(entries)
        return len(entries)
