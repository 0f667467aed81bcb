# Builds the embeddings cache: scrape pages -> segment -> embed -> save.

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from config.settings import EmbeddingProvider, Settings
from observability.logging import setup_logging
from pipelines.models import Chunk, EmbeddedChunk, ScrapedPage
from pipelines.scraper import DocumentScraper, ScrapeSummary
from pipelines.segmenter import ContentSegmenter
from sources.loader import PageListError, load_pages, page_name_map
from .cache_store import CacheStore
from .embeddings import EmbedFn, EmbeddingBatcher, create_embedder
from .errors import CacheSaveError, EmbeddingBatchError

logger = logging.getLogger(__name__)


@dataclass
class IngestionReport:
    """Outcome of one ingestion run."""
    pages_scraped: int = 0
    pages_failed: int = 0
    chunks_created: int = 0
    embeddings_generated: int = 0
    skipped: bool = False
    scrape_seconds: float = 0.0
    failed_pages: List[str] = field(default_factory=list)


class IngestionError(Exception):
    """Fatal ingestion failure; no cache was written."""


def segment_pages(pages: List[ScrapedPage], segmenter: ContentSegmenter) -> List[Chunk]:
    all_chunks: List[Chunk] = []
    for page in pages:
        chunks = segmenter.segment(page.html, page.href)
        all_chunks.extend(chunks)
        logger.info(f"Processed {page.href}: {len(chunks)} chunks")
    return all_chunks


def check_existing_cache(store: CacheStore, force: bool) -> bool:
    """Report cache status; return True when the existing cache can be kept."""
    info = store.info()
    logger.info(f"Cache status: {'EXISTS' if info.exists else 'NOT FOUND'}")
    if not info.exists:
        return False

    logger.info(f"Cache location: {info.path}")
    if info.size:
        logger.info(f"Cache size: {info.size}")
    if info.timestamp:
        logger.info(f"Cache timestamp: {info.timestamp}")

    if force:
        logger.info("--force flag detected, regenerating cache (existing cache kept until the new one is written)")
        return False

    existing = store.try_load()
    if existing is not None:
        logger.info(f"Cache is valid with {len(existing)} chunks. Use --force to regenerate.")
        return True

    logger.warning("Cache file exists but is invalid, proceeding with regeneration...")
    return False


async def run_ingestion(settings: Settings, force: bool = False,
                        embed_fn: Optional[EmbedFn] = None,
                        scraper: Optional[DocumentScraper] = None) -> IngestionReport:
    """Run the full ingestion pipeline.

    Args:
        settings: Runtime settings
        force: Regenerate even when a valid cache exists
        embed_fn: Embedding function override (defaults to the configured provider)
        scraper: Scraper override (defaults to one built from settings)

    Raises:
        IngestionError: on any fatal failure; the cache on disk is unchanged
    """
    store = CacheStore(settings.cache_dir)
    report = IngestionReport()

    if check_existing_cache(store, force):
        report.skipped = True
        return report

    if embed_fn is None:
        try:
            embed_fn = create_embedder(settings)
        except ValueError as e:
            raise IngestionError(str(e)) from e
    logger.info("Environment validated")

    try:
        pages = load_pages(settings.pages_file, settings.use_test_pages)
    except PageListError as e:
        raise IngestionError(str(e)) from e

    logger.info("--- Step 1: Scraping Pages ---")
    scraper = scraper or DocumentScraper(settings.scrape)
    async with scraper:
        scraped, summary = await scraper.scrape_all(pages)
    _record_scrape(report, summary)
    if not scraped:
        raise IngestionError("No pages were successfully scraped")

    logger.info("--- Step 2: Parsing and Chunking ---")
    chunks = segment_pages(scraped, ContentSegmenter(page_name_map(pages)))
    report.chunks_created = len(chunks)
    logger.info(f"Total chunks created: {len(chunks)}")
    if not chunks:
        raise IngestionError("No chunks were created from the scraped pages")

    logger.info("--- Step 3: Generating Embeddings ---")
    batcher = EmbeddingBatcher(embed_fn, settings.batching)
    try:
        embedded: List[EmbeddedChunk] = await batcher.embed_all(chunks)
    except EmbeddingBatchError as e:
        raise IngestionError(f"Embedding failed at batch {e.batch_number}: {e}") from e
    report.embeddings_generated = len(embedded)

    logger.info("--- Step 4: Saving to Cache ---")
    try:
        store.save(embedded)
    except CacheSaveError as e:
        raise IngestionError(str(e)) from e

    logger.info("=== Setup Complete ===")
    logger.info(f"Processed {report.pages_scraped} pages ({report.pages_failed} failed)")
    logger.info(f"Created {report.chunks_created} content chunks")
    logger.info(f"Generated {report.embeddings_generated} embeddings")
    return report


def _record_scrape(report: IngestionReport, summary: ScrapeSummary) -> None:
    report.pages_scraped = summary.successful
    report.pages_failed = summary.failed
    report.failed_pages = [href for href, _ in summary.failures]
    report.scrape_seconds = summary.duration_seconds
    logger.info(f"Scraping took {report.scrape_seconds:.1f}s")
    if summary.failed:
        logger.warning(f"{summary.failed} pages failed: {', '.join(report.failed_pages)}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Build the GMAT documentation embeddings cache")
    parser.add_argument("--force", action="store_true", help="Regenerate even if a valid cache exists")
    parser.add_argument("--pages", type=Path, help="YAML page list to use instead of the default")
    parser.add_argument("--cache-dir", type=Path, help="Directory holding embeddings.json")
    parser.add_argument("--provider", choices=[p.value for p in EmbeddingProvider], help="Embedding provider")
    parser.add_argument("--log-level", help="Log level (default from LOG_LEVEL or INFO)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point; returns the process exit code."""
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()

    overrides = {}
    if args.pages:
        overrides["pages_file"] = args.pages
    if args.cache_dir:
        overrides["cache_dir"] = args.cache_dir.expanduser()
    if args.provider:
        overrides["embedding_provider"] = EmbeddingProvider(args.provider)
    if args.log_level:
        overrides["log_level"] = args.log_level
    if overrides:
        settings = settings.model_copy(update=overrides)

    setup_logging(level=settings.log_level, service_name="gmat-docs-setup", use_json=settings.log_json)
    logger.info("=== GMAT Documentation MCP Server Setup ===")

    try:
        report = asyncio.run(run_ingestion(settings, force=args.force))
    except IngestionError as e:
        logger.error(f"Setup failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.error("Setup interrupted")
        return 130

    if report.skipped:
        logger.info("Setup complete - server can start using existing cache.")
    else:
        logger.info("The server is now ready to start. Run: gmat-docs-server")
    return 0


if __name__ == "__main__":
    sys.exit(main())
