"""Observability package: logging setup and Prometheus metrics."""

from .logging import setup_logging, get_logger, JSONFormatter, ColoredFormatter
from .metrics import gmat_docs_registry, metrics_snapshot

__all__ = [
    'setup_logging',
    'get_logger',
    'JSONFormatter',
    'ColoredFormatter',
    'gmat_docs_registry',
    'metrics_snapshot',
]
