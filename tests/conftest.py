import pytest

from config.settings import BatchingConfig, ScrapeConfig


@pytest.fixture
def fast_batching():
    """Batching config with no pacing or jitter."""
    return BatchingConfig(batch_delay=0, retry_jitter=0)


@pytest.fixture
def fast_scrape():
    """Scrape config with no pacing between pages."""
    return ScrapeConfig(base_url="https://docs.example.test/gmat", retries=2, delay=0)
