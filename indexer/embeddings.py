# Embedding providers and the token-budgeted batcher used during ingestion.

import asyncio
import logging
import random
from typing import Awaitable, Callable, List, Optional, Sequence

from config.settings import BatchingConfig, EmbeddingProvider, Settings
from observability import metrics
from pipelines.chunker import estimate_tokens, split_chunk
from pipelines.models import Chunk, EmbeddedChunk
from .errors import EmbeddingBatchError

logger = logging.getLogger(__name__)

# USD per 1K tokens for text-embedding-3-small
COST_PER_1K_TOKENS = 0.00002

EmbedFn = Callable[[List[str]], Awaitable[List[List[float]]]]


class OpenAIEmbedder:
    """Embeds texts with the OpenAI embeddings endpoint."""

    def __init__(self, api_key: str, model: str = "text-embedding-3-small", client=None):
        if client is None:
            from openai import AsyncOpenAI
            client = AsyncOpenAI(api_key=api_key)
        self.client = client
        self.model = model

    async def __call__(self, texts: List[str]) -> List[List[float]]:
        response = await self.client.embeddings.create(
            model=self.model,
            input=texts,
            encoding_format="float",
        )
        return [item.embedding for item in response.data]


class LocalEmbedder:
    """Embeds texts with a local sentence-transformers model."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", model=None):
        self.model_name = model_name
        self.model = model

    def _load_model(self):
        if self.model is None:
            from sentence_transformers import SentenceTransformer
            logger.info(f"Loading embedding model: {self.model_name}")
            self.model = SentenceTransformer(self.model_name)
            logger.info(f"Model loaded. Embedding dimension: {self.model.get_sentence_embedding_dimension()}")
        return self.model

    def _encode(self, texts: List[str]) -> List[List[float]]:
        model = self._load_model()
        embeddings = model.encode(texts, convert_to_numpy=True, show_progress_bar=False)
        return embeddings.tolist()

    async def __call__(self, texts: List[str]) -> List[List[float]]:
        # encode() is CPU bound; keep the event loop responsive
        return await asyncio.to_thread(self._encode, texts)


def create_embedder(settings: Settings) -> EmbedFn:
    """Build the embedding function selected by the settings."""
    if settings.embedding_provider == EmbeddingProvider.LOCAL:
        return LocalEmbedder(settings.local_embedding_model)
    if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY environment variable is required")
    return OpenAIEmbedder(settings.openai_api_key, settings.embedding_model)


async def embed_query(embed_fn: EmbedFn, query: str) -> List[float]:
    """Embed a single query string."""
    with metrics.timed(metrics.embedding_duration, kind="query"):
        vectors = await embed_fn([query])
    if len(vectors) != 1:
        raise ValueError(f"Expected 1 query embedding, got {len(vectors)}")
    return list(vectors[0])


def plan_batches(chunks: Sequence[Chunk], max_batch_size: int, max_tokens_per_batch: int) -> List[List[Chunk]]:
    """Group chunks into request batches.

    A batch closes when it already holds ``max_batch_size`` items or when the
    next chunk would push its token sum over ``max_tokens_per_batch``. A chunk
    that alone exceeds the token budget still gets a batch of its own.
    """
    batches: List[List[Chunk]] = []
    current: List[Chunk] = []
    current_tokens = 0

    for chunk in chunks:
        tokens = estimate_tokens(chunk.full_content)
        if len(current) >= max_batch_size or (current and current_tokens + tokens > max_tokens_per_batch):
            batches.append(current)
            current = []
            current_tokens = 0
        current.append(chunk)
        current_tokens += tokens

    if current:
        batches.append(current)
    return batches


class EmbeddingBatcher:
    """Embeds chunks in token-budgeted batches with retry and pacing."""

    def __init__(self, embed_fn: EmbedFn, config: Optional[BatchingConfig] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Args:
            embed_fn: Async callable mapping texts to one vector per text
            config: Batch budgets, retry policy and pacing
            sleep: Coroutine used for backoff and pacing delays
        """
        self.embed_fn = embed_fn
        self.config = config or BatchingConfig()
        self._sleep = sleep
        self._dimension: Optional[int] = None

    @property
    def resplit_budget(self) -> int:
        return max(1, min(1000, self.config.max_tokens_per_input - 200))

    def prepare(self, chunks: Sequence[Chunk]) -> List[Chunk]:
        """Split large chunks so that each fits a single request item."""
        processed: List[Chunk] = []
        for chunk in chunks:
            pieces = split_chunk(chunk, self.config.chunk_max_tokens)
            if len(pieces) > 1:
                logger.info(f"Split {chunk.id} into {len(pieces)} parts")
            processed.extend(pieces)

        normalized: List[Chunk] = []
        for chunk in processed:
            if estimate_tokens(chunk.full_content) > self.config.max_tokens_per_input:
                pieces = split_chunk(chunk, self.resplit_budget)
                logger.info(f"Further split {chunk.id} into {len(pieces)} parts due to input token limit")
                normalized.extend(pieces)
            else:
                normalized.append(chunk)
        return normalized

    def _retry_delay(self, attempt: int) -> float:
        """Backoff before retrying after failed ``attempt`` (1-based)."""
        base = min(self.config.retry_base_delay * (2 ** (attempt - 1)), self.config.retry_max_delay)
        return base + random.uniform(0, self.config.retry_jitter)

    async def embed_batch(self, texts: List[str], batch_number: int = 0) -> List[List[float]]:
        """Embed one batch, retrying the same batch on failure.

        Raises:
            EmbeddingBatchError: after ``max_retries`` failed attempts
        """
        max_retries = self.config.max_retries
        for attempt in range(1, max_retries + 1):
            try:
                logger.info(f"Generating embeddings for batch of {len(texts)} chunks (attempt {attempt})")
                with metrics.timed(metrics.embedding_duration, kind="batch"):
                    vectors = await self.embed_fn(texts)
                self._check_vectors(texts, vectors)
                return [list(v) for v in vectors]
            except EmbeddingBatchError:
                raise
            except Exception as e:
                if attempt >= max_retries:
                    metrics.embedding_batches.labels(status="failed").inc()
                    raise EmbeddingBatchError(
                        f"Failed to generate embeddings after {max_retries} attempts: {e}",
                        batch_number=batch_number,
                        attempts=attempt,
                    ) from e

                delay = self._retry_delay(attempt)
                metrics.embedding_retries.inc()
                logger.warning(f"Embedding attempt {attempt} failed, retrying in {delay:.2f}s: {e}")
                await self._sleep(delay)

        raise EmbeddingBatchError("No embedding attempts were made", batch_number=batch_number)

    def _check_vectors(self, texts: List[str], vectors) -> None:
        if vectors is None or len(vectors) != len(texts):
            count = 0 if vectors is None else len(vectors)
            raise ValueError(f"Expected {len(texts)} embeddings, got {count}")

        for vector in vectors:
            if self._dimension is None:
                self._dimension = len(vector)
            elif len(vector) != self._dimension:
                # Retrying cannot fix a model/corpus mismatch
                raise EmbeddingBatchError(
                    f"Embedding dimension changed from {self._dimension} to {len(vector)}"
                )

    async def embed_all(self, chunks: Sequence[Chunk]) -> List[EmbeddedChunk]:
        """Embed every chunk, preserving input order."""
        normalized = self.prepare(chunks)
        total_tokens = sum(estimate_tokens(c.full_content) for c in normalized)
        estimated_cost = total_tokens / 1000 * COST_PER_1K_TOKENS
        logger.info(f"Generating embeddings for {len(normalized)} chunks")
        logger.info(f"Estimated tokens: {total_tokens:,}, estimated cost: ${estimated_cost:.4f}")

        batches = plan_batches(normalized, self.config.max_batch_size, self.config.max_tokens_per_batch)
        embedded: List[EmbeddedChunk] = []
        for batch_number, batch in enumerate(batches, 1):
            batch_tokens = sum(estimate_tokens(c.full_content) for c in batch)
            embedded.extend(await self._run_batch(batch, batch_tokens, batch_number, len(normalized)))

        logger.info(f"Successfully generated embeddings for {len(embedded)} chunks")
        return embedded

    async def _run_batch(self, batch: List[Chunk], batch_tokens: int, batch_number: int,
                         total: int) -> List[EmbeddedChunk]:
        logger.info(f"Processing batch {batch_number} ({len(batch)} chunks, ~{batch_tokens} tokens)")
        try:
            vectors = await self.embed_batch([c.full_content for c in batch], batch_number)
        except EmbeddingBatchError as e:
            e.batch_number = batch_number
            logger.error(f"Failed to process batch {batch_number}: {e}")
            raise

        metrics.embedding_batches.labels(status="success").inc()
        logger.info(f"Batch {batch_number} complete ({len(batch)} chunks, {total} total)")
        await self._sleep(self.config.batch_delay)
        return [EmbeddedChunk.from_chunk(chunk, vector) for chunk, vector in zip(batch, vectors)]
