from typing import List

from pipelines.models import Chunk, EmbeddedChunk


def make_chunk(chunk_id: str = "Page#section", content: str = "Some content.",
               page_name: str = "Page", href: str = "Page.html") -> Chunk:
    return Chunk(id=chunk_id, page_name=page_name, href=href, full_content=content)


def make_embedded(chunk_id: str, embedding: List[float], content: str = "Some content.",
                  page_name: str = "Page", href: str = "Page.html") -> EmbeddedChunk:
    return EmbeddedChunk(id=chunk_id, page_name=page_name, href=href,
                         full_content=content, embedding=embedding)


class RecordingEmbedder:
    """Async embed function that records every request.

    Each text maps to ``[len(text), 1.0]`` so results can be matched back
    to their inputs.
    """

    def __init__(self, failures: int = 0, error: Exception = None):
        self.calls: List[List[str]] = []
        self.failures = failures
        self.error = error or RuntimeError("rate limited")

    async def __call__(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.failures > 0:
            self.failures -= 1
            raise self.error
        return [[float(len(t)), 1.0] for t in texts]


def loaded_engine(cache_dir, chunks: List[EmbeddedChunk]):
    """Save ``chunks`` as a cache under ``cache_dir`` and load a search engine from it."""
    from indexer.cache_store import CacheStore
    from indexer.search import SearchEngine

    store = CacheStore(cache_dir)
    store.save(chunks)
    engine = SearchEngine(store)
    engine.load()
    return engine
