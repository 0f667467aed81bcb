"""Persistent JSON cache of embedded chunks.

The cache is written to a temporary file and renamed into place, so readers
see either the previous complete cache or the new complete cache.
"""

import json
import logging
import math
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from numbers import Real
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from config.settings import CACHE_FILENAME
from pipelines.models import CacheData, EmbeddedChunk
from .errors import CacheLoadError, CacheSaveError

logger = logging.getLogger(__name__)

CACHE_VERSION = "1.0"
REQUIRED_CHUNK_FIELDS = ("id", "pageName", "href", "fullContent", "embedding")


@dataclass
class CacheInfo:
    """Cache file status for reporting."""
    exists: bool
    path: Path
    size: Optional[str] = None
    timestamp: Optional[str] = None


def _format_size(num_bytes: int) -> str:
    return f"{num_bytes / (1024 * 1024):.2f} MB"


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def parse_cache_data(data: Any) -> CacheData:
    """Validate a decoded cache document and build ``CacheData``.

    Raises:
        CacheLoadError: if the structure is invalid
    """
    if not isinstance(data, dict):
        raise CacheLoadError("Invalid cache format: top level must be an object")

    raw_chunks = data.get("chunks")
    if not isinstance(raw_chunks, list):
        raise CacheLoadError("Invalid cache format: missing chunks array")

    chunks: List[EmbeddedChunk] = []
    dimension: Optional[int] = None
    for position, raw in enumerate(raw_chunks):
        if not isinstance(raw, dict):
            raise CacheLoadError(f"Invalid chunk structure in cache at position {position}")
        for field_name in REQUIRED_CHUNK_FIELDS:
            if not raw.get(field_name):
                raise CacheLoadError(f"Invalid chunk structure in cache: chunk {position} missing '{field_name}'")
        for field_name in REQUIRED_CHUNK_FIELDS[:-1]:
            if not isinstance(raw[field_name], str):
                raise CacheLoadError(f"Invalid chunk structure in cache: chunk {position} '{field_name}' is not a string")

        embedding = raw["embedding"]
        if not isinstance(embedding, list) or not all(_is_number(x) for x in embedding):
            raise CacheLoadError(f"Invalid embedding format in cache for chunk {raw['id']}")
        if dimension is None:
            dimension = len(embedding)
        elif len(embedding) != dimension:
            raise CacheLoadError(
                f"Embedding dimension mismatch in cache: chunk {raw['id']} has {len(embedding)}, expected {dimension}"
            )

        chunks.append(EmbeddedChunk.from_dict(raw))

    return CacheData(
        timestamp=str(data.get("timestamp", "")),
        version=str(data.get("version", "")),
        chunks=chunks,
    )


class CacheStore:
    """Owns the on-disk cache file."""

    def __init__(self, cache_dir: Union[str, Path]):
        self.cache_dir = Path(cache_dir).expanduser()

    @property
    def cache_path(self) -> Path:
        return self.cache_dir / CACHE_FILENAME

    @property
    def temp_path(self) -> Path:
        return self.cache_path.with_name(self.cache_path.name + ".tmp")

    def save(self, chunks: Sequence[EmbeddedChunk]) -> CacheData:
        """Atomically write the cache.

        Raises:
            CacheSaveError: if the file could not be written; any previous
                cache is left untouched
        """
        cache_data = CacheData(
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            version=CACHE_VERSION,
            chunks=list(chunks),
        )
        logger.info(f"Saving {len(cache_data.chunks)} embedded chunks to cache at {self.cache_path}")

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with open(self.temp_path, "w", encoding="utf-8") as f:
                json.dump(cache_data.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(self.temp_path, self.cache_path)
        except (OSError, TypeError, ValueError) as e:
            self._discard_temp()
            raise CacheSaveError(f"Failed to save cache: {e}") from e

        logger.info(f"Cache saved successfully ({_format_size(self.cache_path.stat().st_size)})")
        return cache_data

    def _discard_temp(self) -> None:
        try:
            self.temp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temporary cache file {self.temp_path}: {e}")

    def load(self) -> CacheData:
        """Read and validate the cache.

        Raises:
            CacheLoadError: if the file is missing or invalid
        """
        if not self.cache_path.exists():
            raise CacheLoadError(f"Cache not found at {self.cache_path}. Run setup first.")

        logger.info(f"Loading cache from {self.cache_path}")
        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise CacheLoadError(f"Invalid cache format: {e}") from e
        except OSError as e:
            raise CacheLoadError(f"Failed to read cache: {e}") from e

        cache_data = parse_cache_data(data)
        logger.info(f"Loaded {cache_data.total_chunks} chunks from cache (saved: {cache_data.timestamp})")
        return cache_data

    def try_load(self) -> Optional[List[EmbeddedChunk]]:
        """Load the cache, returning None instead of raising."""
        try:
            return self.load().chunks
        except CacheLoadError as e:
            logger.error(f"Failed to load cache: {e}")
            return None

    def clear(self) -> bool:
        """Delete the cache file; returns whether one existed."""
        try:
            self.cache_path.unlink()
        except FileNotFoundError:
            logger.info("No cache file to clear")
            return False
        logger.info("Cache cleared successfully")
        return True

    def info(self) -> CacheInfo:
        if not self.cache_path.exists():
            return CacheInfo(exists=False, path=self.cache_path)

        size = _format_size(self.cache_path.stat().st_size)
        timestamp = None
        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                timestamp = data.get("timestamp")
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Could not read cache timestamp: {e}")

        return CacheInfo(exists=True, path=self.cache_path, size=size, timestamp=timestamp)
