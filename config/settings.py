"""Runtime configuration for ingestion and the MCP server.

Values come from the environment (optionally seeded from ``.env`` and
``.env.local``); nothing here parses command lines.
"""

import os
import logging
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://documentation.help/gmat/"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_LOCAL_MODEL = "all-MiniLM-L6-v2"
CACHE_FILENAME = "embeddings.json"


class EmbeddingProvider(str, Enum):
    """Supported embedding backends."""
    OPENAI = "openai"
    LOCAL = "local"


class BatchingConfig(BaseModel):
    """Budgets and retry policy for the embedding batcher."""
    max_batch_size: int = Field(default=50, description="Maximum chunks per embedding request")
    max_tokens_per_batch: int = Field(default=6000, description="Token budget for a whole request")
    max_tokens_per_input: int = Field(default=7000, description="Per-item ceiling, below the model's 8192 limit")
    chunk_max_tokens: int = Field(default=1000, description="Target size when pre-splitting chunks")
    max_retries: int = Field(default=3, description="Attempts per batch before the run aborts")
    retry_base_delay: float = Field(default=1.0, description="Backoff base delay in seconds")
    retry_max_delay: float = Field(default=10.0, description="Backoff cap in seconds")
    retry_jitter: float = Field(default=1.0, description="Upper bound of the random addend in seconds")
    batch_delay: float = Field(default=1.0, description="Pause after each successful batch in seconds")

    @field_validator("max_batch_size", "max_tokens_per_batch", "max_tokens_per_input",
                     "chunk_max_tokens", "max_retries")
    @classmethod
    def _positive_int(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("retry_base_delay", "retry_max_delay", "retry_jitter", "batch_delay")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @classmethod
    def from_env(cls) -> 'BatchingConfig':
        return cls(
            max_batch_size=int(os.getenv('EMBED_MAX_BATCH_SIZE', '50')),
            max_tokens_per_batch=int(os.getenv('EMBED_MAX_TOKENS_PER_BATCH', '6000')),
            max_tokens_per_input=int(os.getenv('EMBED_MAX_TOKENS_PER_INPUT', '7000')),
            chunk_max_tokens=int(os.getenv('CHUNK_MAX_TOKENS', '1000')),
            max_retries=int(os.getenv('EMBED_MAX_RETRIES', '3')),
            retry_base_delay=float(os.getenv('EMBED_RETRY_BASE_DELAY', '1.0')),
            retry_max_delay=float(os.getenv('EMBED_RETRY_MAX_DELAY', '10.0')),
            retry_jitter=float(os.getenv('EMBED_RETRY_JITTER', '1.0')),
            batch_delay=float(os.getenv('EMBED_BATCH_DELAY', '1.0')),
        )


class ScrapeConfig(BaseModel):
    """Settings for fetching documentation pages."""
    base_url: str = Field(default=DEFAULT_BASE_URL, description="Prefix joined with each page href")
    retries: int = Field(default=3, description="Attempts per page")
    timeout: float = Field(default=10.0, description="Request timeout in seconds")
    delay: float = Field(default=0.5, description="Pause between pages in seconds")
    user_agent: str = Field(default="Mozilla/5.0 (compatible; GMAT-MCP-Server/1.0)")

    @field_validator("retries")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @classmethod
    def from_env(cls) -> 'ScrapeConfig':
        return cls(
            base_url=os.getenv('BASE_URL', DEFAULT_BASE_URL),
            retries=int(os.getenv('SCRAPE_RETRIES', '3')),
            timeout=float(os.getenv('SCRAPE_TIMEOUT', '10')),
            delay=float(os.getenv('SCRAPE_DELAY', '0.5')),
        )


class Settings(BaseModel):
    """Top-level settings shared by the setup command and the server."""
    openai_api_key: str = Field(default="", description="OpenAI API key")
    embedding_provider: EmbeddingProvider = Field(default=EmbeddingProvider.OPENAI)
    embedding_model: str = Field(default=DEFAULT_EMBEDDING_MODEL, description="OpenAI embedding model")
    local_embedding_model: str = Field(default=DEFAULT_LOCAL_MODEL, description="sentence-transformers model")
    cache_dir: Path = Field(default_factory=lambda: Path.cwd() / "data")
    pages_file: Optional[Path] = Field(default=None, description="Override for the page list file")
    use_test_pages: bool = Field(default=False, description="Use the short test page list")
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)
    batching: BatchingConfig = Field(default_factory=BatchingConfig)
    scrape: ScrapeConfig = Field(default_factory=ScrapeConfig)

    @field_validator("cache_dir", mode="before")
    @classmethod
    def _expand_home(cls, value):
        return Path(value).expanduser() if value is not None else value

    @property
    def cache_path(self) -> Path:
        return self.cache_dir / CACHE_FILENAME

    @classmethod
    def from_env(cls, load_env_files: bool = True) -> 'Settings':
        """Create settings from environment variables."""
        if load_env_files:
            load_dotenv('.env')
            load_dotenv('.env.local')

        pages_file = os.getenv('PAGES_FILE')
        return cls(
            openai_api_key=os.getenv('OPENAI_API_KEY', ''),
            embedding_provider=os.getenv('EMBEDDING_PROVIDER', 'openai').lower(),
            embedding_model=os.getenv('EMBEDDING_MODEL', DEFAULT_EMBEDDING_MODEL),
            local_embedding_model=os.getenv('LOCAL_EMBEDDING_MODEL', DEFAULT_LOCAL_MODEL),
            cache_dir=os.getenv('CACHE_DIR') or Path.cwd() / "data",
            pages_file=Path(pages_file).expanduser() if pages_file else None,
            use_test_pages=os.getenv('GMAT_DOCS_ENV', '').lower() == 'test',
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            log_json=os.getenv('LOG_JSON', '').lower() in ('1', 'true', 'yes'),
            batching=BatchingConfig.from_env(),
            scrape=ScrapeConfig.from_env(),
        )
