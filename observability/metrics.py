"""Prometheus metrics for ingestion and search."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client.core import CollectorRegistry

logger = logging.getLogger(__name__)

# Private registry so repeated imports in tests never clash with the default one
gmat_docs_registry = CollectorRegistry()

pages_scraped = Counter(
    'gmat_docs_pages_scraped_total',
    'Documentation pages fetched during ingestion',
    ['status'],
    registry=gmat_docs_registry
)

embedding_batches = Counter(
    'gmat_docs_embedding_batches_total',
    'Embedding requests issued during ingestion',
    ['status'],
    registry=gmat_docs_registry
)

embedding_retries = Counter(
    'gmat_docs_embedding_retries_total',
    'Embedding request attempts that failed and were retried',
    registry=gmat_docs_registry
)

embedding_duration = Histogram(
    'gmat_docs_embedding_duration_seconds',
    'Embedding request duration in seconds',
    ['kind'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=gmat_docs_registry
)

search_requests = Counter(
    'gmat_docs_search_requests_total',
    'Search requests handled by the server',
    ['status'],
    registry=gmat_docs_registry
)

search_duration = Histogram(
    'gmat_docs_search_duration_seconds',
    'Similarity scan duration in seconds',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5],
    registry=gmat_docs_registry
)

search_results_count = Histogram(
    'gmat_docs_search_results_count',
    'Number of results returned per search',
    buckets=[0, 1, 5, 10, 25, 50],
    registry=gmat_docs_registry
)

corpus_chunks = Gauge(
    'gmat_docs_corpus_chunks',
    'Chunks currently loaded in the search engine',
    registry=gmat_docs_registry
)


@contextmanager
def timed(histogram, **labels) -> Iterator[None]:
    """Observe the wall time of the enclosed block."""
    start = time.perf_counter()
    try:
        yield
    finally:
        target = histogram.labels(**labels) if labels else histogram
        target.observe(time.perf_counter() - start)


def metrics_snapshot() -> str:
    """Render all metrics in the Prometheus text format."""
    return generate_latest(gmat_docs_registry).decode('utf-8')
