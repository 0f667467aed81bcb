"""Configuration module for the GMAT docs search server.

Provides settings for embedding, batching, scraping and cache location.
"""

from .settings import (
    CACHE_FILENAME,
    BatchingConfig,
    EmbeddingProvider,
    ScrapeConfig,
    Settings,
)

__all__ = [
    'CACHE_FILENAME',
    'BatchingConfig',
    'EmbeddingProvider',
    'ScrapeConfig',
    'Settings',
]
