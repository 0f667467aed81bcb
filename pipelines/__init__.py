"""Pipelines package.

Provides the data model, page scraping, heading-aware segmentation and
token-budgeted chunk splitting.
"""

from .models import Page, ScrapedPage, Chunk, EmbeddedChunk, CacheData, SearchResult
from .chunker import CHARS_PER_TOKEN, estimate_tokens, split_by_sentences, hard_slice_by_characters, split_chunk
from .segmenter import ContentSegmenter, parse_and_chunk, clean_text, slugify_heading

__all__ = [
    # Models
    'Page',
    'ScrapedPage',
    'Chunk',
    'EmbeddedChunk',
    'CacheData',
    'SearchResult',

    # Chunker
    'CHARS_PER_TOKEN',
    'estimate_tokens',
    'split_by_sentences',
    'hard_slice_by_characters',
    'split_chunk',

    # Segmenter
    'ContentSegmenter',
    'parse_and_chunk',
    'clean_text',
    'slugify_heading',
]
