"""Documentation page scraper.

Fetches the configured pages sequentially with per-page retries. A page
that keeps failing is skipped; the run continues with the remaining pages.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from urllib.parse import urljoin

import aiohttp

from config.settings import ScrapeConfig
from indexer.errors import FetchError
from observability import metrics
from .models import Page, ScrapedPage

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


@dataclass
class ScrapeSummary:
    """Statistics for one scrape run."""
    total_pages: int = 0
    successful: int = 0
    failed: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = None

    def record_failure(self, href: str, error: str) -> None:
        self.failed += 1
        self.failures.append((href, error))

    def finish(self) -> None:
        self.end_time = datetime.now(timezone.utc)

    @property
    def duration_seconds(self) -> float:
        end = self.end_time or datetime.now(timezone.utc)
        return (end - self.start_time).total_seconds()


class DocumentScraper:
    """Asynchronous page fetcher with retry and pacing."""

    def __init__(self, config: Optional[ScrapeConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        """
        Args:
            config: Base URL, retry, timeout and pacing settings
            session: Existing session to reuse; one is created lazily otherwise
        """
        self.config = config or ScrapeConfig()
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self):
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={'User-Agent': self.config.user_agent},
            )
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the session if this scraper created it."""
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None

    def url_for(self, href: str) -> str:
        base = self.config.base_url if self.config.base_url.endswith('/') else self.config.base_url + '/'
        return urljoin(base, href)

    def _retry_delay(self, attempt: int) -> float:
        """Exponential backoff for 1-based ``attempt``, capped at 10 seconds."""
        return min(1.0 * (2 ** (attempt - 1)), 10.0)

    async def _get(self, url: str) -> str:
        async with self.session.get(url, allow_redirects=True) as response:
            if response.status >= 400:
                raise aiohttp.ClientResponseError(
                    response.request_info,
                    response.history,
                    status=response.status,
                    message=response.reason or '',
                )
            return await response.text()

    async def fetch(self, href: str) -> str:
        """Fetch one page, retrying transient failures.

        Raises:
            FetchError: when every attempt failed or the error is not retryable
        """
        if self.session is None:
            await self.__aenter__()

        url = self.url_for(href)
        retries = self.config.retries
        for attempt in range(1, retries + 1):
            try:
                logger.info(f"Scraping {href} (attempt {attempt}/{retries})")
                return await self._get(url)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                message = str(e) or e.__class__.__name__
                logger.warning(f"Error scraping {href} (attempt {attempt}/{retries}): {message}")

                if isinstance(e, aiohttp.ClientResponseError) and e.status not in RETRYABLE_STATUS_CODES:
                    raise FetchError(href, f"HTTP {e.status}") from e
                if attempt == retries:
                    raise FetchError(href, f"{message} after {retries} attempts") from e

                await asyncio.sleep(self._retry_delay(attempt))

        raise FetchError(href, "no attempts made")

    async def scrape_all(self, pages: List[Page]) -> Tuple[List[ScrapedPage], ScrapeSummary]:
        """Fetch every page sequentially; failed pages are skipped."""
        summary = ScrapeSummary(total_pages=len(pages))
        results: List[ScrapedPage] = []

        logger.info(f"Starting to scrape {len(pages)} pages...")
        for page in pages:
            try:
                html = await self.fetch(page.href)
            except FetchError as e:
                logger.error(f"Failed to scrape page {page.name} ({page.href}): {e}")
                summary.record_failure(page.href, str(e))
                metrics.pages_scraped.labels(status="failed").inc()
                continue

            results.append(ScrapedPage(href=page.href, html=html))
            summary.successful += 1
            metrics.pages_scraped.labels(status="success").inc()
            await asyncio.sleep(self.config.delay)

        summary.finish()
        logger.info(f"Successfully scraped {summary.successful}/{summary.total_pages} pages")
        return results, summary
