"""Exact cosine-similarity search over the cached corpus.

The engine keeps an immutable snapshot of the loaded chunks and their
embedding matrix. ``load()`` builds a new snapshot completely and then
swaps the reference, so queries never observe a partially loaded corpus.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from observability import metrics
from pipelines.models import EmbeddedChunk, SearchResult
from .cache_store import CacheStore
from .errors import DimensionMismatchError, NotLoadedError

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero norm.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))


@dataclass(frozen=True)
class _Corpus:
    """One fully built, read-only view of the cache."""
    chunks: Tuple[EmbeddedChunk, ...]
    matrix: np.ndarray
    norms: np.ndarray
    timestamp: str

    @property
    def dimension(self) -> Optional[int]:
        return self.matrix.shape[1] if self.chunks else None

    @classmethod
    def build(cls, chunks: Sequence[EmbeddedChunk], timestamp: str = "") -> '_Corpus':
        if chunks:
            matrix = np.array([chunk.embedding for chunk in chunks], dtype=np.float64)
        else:
            matrix = np.zeros((0, 0), dtype=np.float64)
        matrix.setflags(write=False)
        norms = np.linalg.norm(matrix, axis=1) if chunks else np.zeros(0)
        return cls(chunks=tuple(chunks), matrix=matrix, norms=norms, timestamp=timestamp)


class SearchEngine:
    """Loads embedded chunks once and answers top-K similarity queries."""

    def __init__(self, cache_store: CacheStore):
        self.cache_store = cache_store
        self._corpus: Optional[_Corpus] = None
        self._load_lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._corpus is not None

    def load(self) -> None:
        """Load (or reload) the corpus from the cache store.

        Raises:
            CacheLoadError: if the cache is missing or invalid; the previously
                loaded corpus, if any, stays active
        """
        with self._load_lock:
            cache_data = self.cache_store.load()
            corpus = _Corpus.build(cache_data.chunks, cache_data.timestamp)
            self._corpus = corpus

        metrics.corpus_chunks.set(len(corpus.chunks))
        logger.info(f"Search engine loaded {len(corpus.chunks)} chunks (dimension: {corpus.dimension})")

    def search(self, query_vector: Sequence[float], top_k: int = 10, min_score: float = 0.1) -> List[SearchResult]:
        """Rank the corpus against ``query_vector``.

        Results have ``score >= min_score``, are sorted by score descending,
        and chunks with equal scores keep their corpus order.

        Raises:
            NotLoadedError: if called before ``load()``
            DimensionMismatchError: if the query length differs from the corpus
        """
        corpus = self._corpus
        if corpus is None:
            raise NotLoadedError("Search engine not loaded. Call load() first.")
        if not corpus.chunks:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        if query.ndim != 1 or query.shape[0] != corpus.dimension:
            raise DimensionMismatchError(corpus.dimension, int(query.size))

        with metrics.timed(metrics.search_duration):
            scores = self._scores(corpus, query)
            candidates = np.nonzero(scores >= min_score)[0]
            # lexsort: last key is primary, so score desc then corpus position asc
            order = candidates[np.lexsort((candidates, -scores[candidates]))]
            top = order[:max(int(top_k), 0)]

        results = [SearchResult(chunk=corpus.chunks[i], score=float(scores[i])) for i in top]
        metrics.search_results_count.observe(len(results))
        return results

    @staticmethod
    def _scores(corpus: _Corpus, query: np.ndarray) -> np.ndarray:
        query_norm = np.linalg.norm(query)
        denominators = corpus.norms * query_norm
        dots = corpus.matrix @ query
        scores = np.zeros_like(dots)
        np.divide(dots, denominators, out=scores, where=denominators != 0)
        return np.clip(scores, -1.0, 1.0)

    def stats(self) -> Dict[str, object]:
        corpus = self._corpus
        return {
            "totalChunks": len(corpus.chunks) if corpus else 0,
            "isLoaded": corpus is not None,
        }
