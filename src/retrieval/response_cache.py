"""Memoization of LLM answers keyed by job, normalized question and model."""

from src.rag_pipeline.schemas import CachedResponse, CacheType
from src.rag_pipeline.storage_service import TranscriptStore
from src.utils.logging import get_logger

logger = get_logger(__name__)


def normalize_question(question: str) -> str:
    """Lower-case, trim and collapse whitespace runs to single spaces.

    Examples:
        >>> normalize_question("  What IS   this?\\n")
        'what is this?'
    """
    return " ".join(question.lower().split())


class ResponseCache:
    """Read-your-writes answer cache on top of a `TranscriptStore`.

    A job's transcript never changes after ingestion, so entries never
    expire. Writes are upserts (last write wins). Store failures are logged
    and swallowed: a failed lookup behaves like a miss and a failed write
    leaves the already generated answer untouched.
    """

    def __init__(self, store: TranscriptStore):
        self.backend = store

    async def _lookup(
        self, job_id: str, cache_type: CacheType, key: str, model_id: str
    ) -> CachedResponse | None:
        try:
            cached = await self.backend.find_cached_response(job_id, cache_type, key, model_id)
        except Exception as e:
            logger.exception(
                "cache_lookup_failed",
                job_id=job_id,
                cache_type=cache_type.value,
                error_type=type(e).__name__,
            )
            return None

        logger.info(
            "cache_hit" if cached else "cache_miss",
            job_id=job_id,
            cache_type=cache_type.value,
            model_id=model_id,
        )
        return cached

    async def _store(
        self, job_id: str, cache_type: CacheType, key: str, model_id: str, text: str
    ) -> CachedResponse | None:
        try:
            stored = await self.backend.upsert_cached_response(
                job_id, cache_type, key, model_id, text
            )
        except Exception as e:
            logger.exception(
                "cache_write_failed",
                job_id=job_id,
                cache_type=cache_type.value,
                error_type=type(e).__name__,
            )
            return None

        logger.info(
            "cache_written",
            job_id=job_id,
            cache_type=cache_type.value,
            model_id=model_id,
            response_length=len(text),
        )
        return stored

    async def lookup(self, job_id: str, question: str, model_id: str) -> CachedResponse | None:
        """Find a cached answer; `question` may be raw or already normalized."""
        return await self._lookup(
            job_id, CacheType.USER_QUESTION, normalize_question(question), model_id
        )

    async def store(
        self, job_id: str, question: str, model_id: str, text: str
    ) -> CachedResponse | None:
        """Upsert an answer. Returns None when the write failed."""
        return await self._store(
            job_id, CacheType.USER_QUESTION, normalize_question(question), model_id, text
        )

    async def lookup_analysis(
        self, job_id: str, analysis_type: str, model_id: str
    ) -> CachedResponse | None:
        return await self._lookup(job_id, CacheType.PROACTIVE_ANALYSIS, analysis_type, model_id)

    async def store_analysis(
        self, job_id: str, analysis_type: str, model_id: str, text: str
    ) -> CachedResponse | None:
        return await self._store(
            job_id, CacheType.PROACTIVE_ANALYSIS, analysis_type, model_id, text
        )
