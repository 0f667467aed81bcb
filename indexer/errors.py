"""Exception taxonomy for ingestion and search."""


class GmatDocsError(Exception):
    """Base class for all errors raised by this package."""


class FetchError(GmatDocsError):
    """A documentation page could not be fetched; the page is skipped."""

    def __init__(self, href: str, message: str):
        super().__init__(f"Failed to scrape {href}: {message}")
        self.href = href


class EmbeddingBatchError(GmatDocsError):
    """An embedding batch failed after all retries; fatal to the run."""

    def __init__(self, message: str, batch_number: int = 0, attempts: int = 0):
        super().__init__(message)
        self.batch_number = batch_number
        self.attempts = attempts


class CacheLoadError(GmatDocsError):
    """The cache file is missing or structurally invalid."""


class CacheSaveError(GmatDocsError):
    """The cache file could not be written."""


class NotLoadedError(GmatDocsError):
    """A query was issued before the search engine loaded a corpus."""


class DimensionMismatchError(GmatDocsError):
    """Query vector length differs from the corpus embedding length."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Query embedding has {actual} dimensions, corpus uses {expected}")
        self.expected = expected
        self.actual = actual
