"""Cosine-similarity ranking of transcript chunks against a query."""

import math
from collections.abc import Sequence

from src.rag_pipeline.embedding_service import EmbeddingService
from src.rag_pipeline.schemas import ScoredChunk, TranscriptChunk
from src.utils.logging import get_logger

logger = get_logger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return dot(a, b) / (|a| * |b|).

    A zero-magnitude vector yields NaN.

    Raises:
        ValueError: If the vectors differ in dimensionality.
    """
    if len(a) != len(b):
        raise ValueError(f"Embedding dimensions differ: {len(a)} != {len(b)}")

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return math.nan
    return dot / (norm_a * norm_b)


def rank_chunks(
    query_embedding: Sequence[float],
    chunks: Sequence[TranscriptChunk],
    top_k: int = 3,
) -> list[ScoredChunk]:
    """Rank chunks by similarity to a query embedding.

    Chunks without an embedding are skipped, as are chunks whose score is
    NaN or whose dimensionality does not match the query.

    Returns:
        At most `top_k` chunks, most similar first. Empty when nothing is
        rankable.
    """
    if top_k <= 0:
        return []

    scored: list[ScoredChunk] = []
    for chunk in chunks:
        if not chunk.has_embedding:
            continue
        try:
            similarity = cosine_similarity(query_embedding, chunk.embedding)
        except ValueError:
            logger.error(
                "embedding_dimension_mismatch",
                chunk_id=chunk.chunk_id,
                query_dim=len(query_embedding),
                chunk_dim=len(chunk.embedding),
            )
            continue
        if math.isnan(similarity):
            continue
        scored.append(ScoredChunk(chunk=chunk, similarity=similarity))

    scored.sort(key=lambda s: s.similarity, reverse=True)
    return scored[:top_k]


class RelevanceRanker:
    """Embeds a query and returns the transcript chunks closest to it."""

    def __init__(self, embedding_service: EmbeddingService):
        self.embedding_service = embedding_service

    async def find_relevant_chunks(
        self,
        query: str,
        chunks: Sequence[TranscriptChunk],
        top_k: int = 3,
    ) -> list[ScoredChunk]:
        """Return the `top_k` chunks most similar to `query`.

        The embedding provider is not called when no chunk has an embedding.

        Raises:
            Exception: If embedding the query fails.
        """
        if not any(chunk.has_embedding for chunk in chunks):
            logger.info("ranking_skipped_no_embeddings", chunks=len(chunks))
            return []

        query_embedding = await self.embedding_service.embed_text(query)
        ranked = rank_chunks(query_embedding, chunks, top_k)

        logger.info(
            "ranking_completed",
            candidates=len(chunks),
            returned=len(ranked),
            top_similarity=round(ranked[0].similarity, 4) if ranked else None,
        )
        return ranked
