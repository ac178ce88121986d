"""Embedding service for generating text embeddings via OpenAI-compatible APIs."""

import asyncio

from openai import AsyncOpenAI

from src.utils.logging import get_logger
from src.utils.retry import with_retry

from .config import YouTubeRAGConfig

logger = get_logger(__name__)


class EmbeddingService:
    """Service for generating text embeddings.

    This service supports multiple embedding providers (OpenAI, Ollama, OpenRouter)
    through OpenAI-compatible APIs. Single calls are retried with backoff;
    batch calls run concurrently within a batch and sequentially across
    batches, so at most `batch_size` requests are in flight.
    """

    def __init__(self, config: YouTubeRAGConfig, client: AsyncOpenAI):
        """Initialize embedding service with configuration.

        Args:
            config: Configuration object with embedding provider settings.
            client: OpenAI-compatible client from `get_embedding_client`.
        """
        self.config = config
        self.client = client
        logger.info(
            "embedding_service_initialized",
            provider=config.embedding_provider,
            model=config.embedding_model,
            base_url=config.embedding_base_url,
        )

    async def _create_embedding(self, text: str) -> list[float]:
        response = await self.client.embeddings.create(
            input=text,
            model=self.config.embedding_model,
        )
        return list(response.data[0].embedding)

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Text content to embed.

        Returns:
            Embedding vector as a list of floats.

        Raises:
            Exception: If embedding generation still fails after retries.
        """
        try:
            embedding = await with_retry(
                lambda: self._create_embedding(text),
                retries=self.config.embedding_max_retries,
                backoff_seconds=self.config.embedding_retry_backoff_seconds,
                operation="embed_text",
            )
            logger.debug(
                "embedding_generated",
                text_length=len(text),
                embedding_dim=len(embedding),
            )
            return embedding

        except Exception as e:
            logger.exception(
                "embedding_failed",
                text_length=len(text),
                error_type=type(e).__name__,
            )
            raise

    async def _embed_or_empty(self, text: str) -> list[float]:
        try:
            return await self.embed_text(text)
        except Exception:
            # Already logged by embed_text; empty vector marks "not embedded"
            return []

    async def embed_batch(
        self, texts: list[str], batch_size: int | None = None
    ) -> list[list[float]]:
        """Generate embeddings for multiple texts with batching.

        A failure for one text never aborts the batch: that position gets an
        empty vector instead.

        Args:
            texts: List of text strings to embed.
            batch_size: Concurrent requests per batch (default: config value).

        Returns:
            List of embedding vectors in the same order as input texts.
        """
        batch_size = batch_size or self.config.embedding_batch_size
        logger.info(
            "batch_embedding_started",
            count=len(texts),
            batch_size=batch_size,
        )

        embeddings: list[list[float]] = []

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            batch_embeddings = await asyncio.gather(
                *[self._embed_or_empty(text) for text in batch]
            )
            embeddings.extend(batch_embeddings)

            logger.debug(
                "batch_completed",
                batch_num=i // batch_size + 1,
                count=len(batch),
                failed=sum(1 for e in batch_embeddings if not e),
            )

        logger.info(
            "batch_embedding_completed",
            total_embeddings=sum(1 for e in embeddings if e),
            failed=sum(1 for e in embeddings if not e),
        )
        return embeddings
