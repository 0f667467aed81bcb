"""Data model shared by the ingestion pipeline, the cache and the search engine.

Field names follow Python conventions; ``to_dict``/``from_dict`` map them to
the camelCase keys used in the persisted cache file.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List


@dataclass(frozen=True)
class Page:
    """One entry of the documentation page list."""
    name: str
    href: str

    def __post_init__(self):
        if not self.name:
            raise ValueError("Page name cannot be empty")
        if not self.href:
            raise ValueError("Page href cannot be empty")


@dataclass
class ScrapedPage:
    """Raw HTML body fetched for one page."""
    href: str
    html: str


@dataclass
class Chunk:
    """A heading-bounded (or whole-page) unit of extracted document text."""
    id: str
    page_name: str
    href: str
    full_content: str

    def with_content(self, chunk_id: str, content: str) -> 'Chunk':
        """Return a sibling chunk of the same page with new id and content."""
        return replace(self, id=chunk_id, full_content=content)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pageName": self.page_name,
            "href": self.href,
            "fullContent": self.full_content,
        }


@dataclass
class EmbeddedChunk(Chunk):
    """A chunk enriched with its embedding vector."""
    embedding: List[float] = field(default_factory=list)

    @classmethod
    def from_chunk(cls, chunk: Chunk, embedding: List[float]) -> 'EmbeddedChunk':
        return cls(
            id=chunk.id,
            page_name=chunk.page_name,
            href=chunk.href,
            full_content=chunk.full_content,
            embedding=[float(x) for x in embedding],
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EmbeddedChunk':
        return cls(
            id=data["id"],
            page_name=data["pageName"],
            href=data["href"],
            full_content=data["fullContent"],
            embedding=[float(x) for x in data["embedding"]],
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["embedding"] = list(self.embedding)
        return data


@dataclass
class CacheData:
    """Contents of the persisted cache file."""
    timestamp: str
    version: str
    chunks: List[EmbeddedChunk]

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "version": self.version,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "totalChunks": self.total_chunks,
        }


@dataclass
class SearchResult:
    """One ranked hit for a query; never persisted."""
    chunk: EmbeddedChunk
    score: float
