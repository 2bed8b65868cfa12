import logging
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .models import IndexEntry, SearchResult
from .utils import Timer


class _Snapshot:
    """Immutable view of the index contents: entries plus their unit-normalized matrix."""

    __slots__ = ('entries', 'matrix')

    def __init__(self, entries: Tuple[IndexEntry, ...], matrix: Optional[np.ndarray]):
        self.entries = entries
        self.matrix = matrix

    @property
    def dimension(self) -> Optional[int]:
        return None if self.matrix is None else self.matrix.shape[1]


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    # Zero vectors stay zero and therefore score 0 against everything
    safe_norms = np.where(norms == 0.0, 1.0, norms)
    return matrix / safe_norms


class VectorIndex:
    """In-memory, append-only store of chunk embeddings searched by cosine similarity."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self._lock = threading.Lock()
        self._snapshot = _Snapshot((), None)
        self.logger = logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._snapshot.entries)

    @property
    def dimension(self) -> Optional[int]:
        return self._snapshot.dimension

    def add(self, entries: Sequence[IndexEntry]) -> None:
        """
        Append entries to the index.

        Entries are never deduplicated; adding the same chunk twice stores
        it twice.

        Raises:
            ValueError: If an embedding is empty or its dimension differs
                from the vectors already stored
        """
        entries = list(entries)
        if not entries:
            return

        vectors = np.asarray([entry.embedding for entry in entries], dtype=np.float64)
        if vectors.ndim != 2 or vectors.shape[1] == 0:
            raise ValueError("All embeddings in a batch must be non-empty and of equal length")

        with Timer(f"Indexing {len(entries)} chunks"):
            normalized = _normalize_rows(vectors)
            with self._lock:
                current = self._snapshot
                if current.dimension is not None and current.dimension != normalized.shape[1]:
                    raise ValueError(
                        f"Embedding dimension {normalized.shape[1]} does not match index dimension {current.dimension}"
                    )
                matrix = normalized if current.matrix is None else np.vstack([current.matrix, normalized])
                self._snapshot = _Snapshot(current.entries + tuple(entries), matrix)

        self.logger.info(f"Added {len(entries)} entries, index size is now {len(self)}")

    def search(
        self,
        query_embedding: Sequence[float],
        top_k: int = 5,
        similarity_threshold: float = 0.0
    ) -> List[SearchResult]:
        """
        Rank stored chunks by cosine similarity to a query embedding.

        Results below ``similarity_threshold`` are dropped before the top-k
        cut, so fewer than ``top_k`` results may come back. Ties keep
        insertion order.
        """
        snapshot = self._snapshot
        if top_k <= 0 or snapshot.matrix is None:
            return []

        query = np.asarray(query_embedding, dtype=np.float64)
        if query.size == 0:
            return []
        if query.ndim != 1 or query.shape[0] != snapshot.dimension:
            raise ValueError(
                f"Query dimension {query.shape[-1]} does not match index dimension {snapshot.dimension}"
            )

        query_norm = np.linalg.norm(query)
        if query_norm == 0.0:
            scores = np.zeros(len(snapshot.entries), dtype=np.float64)
        else:
            scores = np.clip(snapshot.matrix @ (query / query_norm), 0.0, 1.0)

        order = np.argsort(-scores, kind='stable')
        results = []
        for position in order:
            score = float(scores[position])
            if score < similarity_threshold:
                # Sorted descending, nothing further can pass
                break
            entry = snapshot.entries[position]
            results.append(SearchResult(chunk=entry.chunk, score=score, metadata=dict(entry.metadata)))
            if len(results) == top_k:
                break

        self.logger.debug(f"Search returned {len(results)} of {len(snapshot.entries)} entries")
        return results

    def get_stats(self) -> Dict[str, Any]:
        snapshot = self._snapshot
        return {
            'entry_count': len(snapshot.entries),
            'embedding_dimension': snapshot.dimension,
            'sources': sorted({entry.metadata.get('source', '') for entry in snapshot.entries}),
            'distance_metric': 'cosine'
        }
