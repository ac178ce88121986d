"""Unit tests for the response cache."""

from unittest.mock import AsyncMock

import pytest

from src.rag_pipeline.schemas import CacheType
from src.rag_pipeline.storage_service import InMemoryStore
from src.retrieval.response_cache import ResponseCache, normalize_question


@pytest.mark.unit
class TestNormalizeQuestion:
    def test_collapses_case_and_whitespace(self) -> None:
        assert normalize_question("  What IS\tthis   video\nabout? ") == "what is this video about?"

    def test_variants_collide(self) -> None:
        assert normalize_question("What is X?") == normalize_question("  what   is x?")

    def test_punctuation_is_kept(self) -> None:
        assert normalize_question("What is X?") != normalize_question("What is X")


@pytest.mark.unit
class TestResponseCache:
    """Test suite for ResponseCache class."""

    @pytest.fixture
    def cache(self, store: InMemoryStore) -> ResponseCache:
        return ResponseCache(store)

    @pytest.mark.asyncio
    async def test_store_then_lookup(self, cache: ResponseCache) -> None:
        await cache.store("job-1", "What is this?", "model-a", "An answer")

        cached = await cache.lookup("job-1", "what is this?", "model-a")

        assert cached.response_text == "An answer"
        assert cached.cache_type == CacheType.USER_QUESTION
        assert cached.cache_key == "what is this?"

    @pytest.mark.asyncio
    async def test_store_writes_through_backend(
        self, cache: ResponseCache, store: InMemoryStore
    ) -> None:
        stored = await cache.store("job-1", "What IS this?", "model-a", "An answer")

        assert cache.backend is store
        assert stored.cache_key == "what is this?"
        assert await store.find_cached_response(
            "job-1", CacheType.USER_QUESTION, "what is this?", "model-a"
        )

    @pytest.mark.asyncio
    async def test_miss_for_other_job_or_model(self, cache: ResponseCache) -> None:
        await cache.store("job-1", "What is this?", "model-a", "An answer")

        assert await cache.lookup("job-2", "What is this?", "model-a") is None
        assert await cache.lookup("job-1", "What is this?", "model-b") is None

    @pytest.mark.asyncio
    async def test_repeated_store_is_idempotent(
        self, cache: ResponseCache, store: InMemoryStore
    ) -> None:
        await cache.store("job-1", "Q", "m", "same")
        await cache.store("job-1", "Q", "m", "same")

        assert len(store.responses) == 1
        assert (await cache.lookup("job-1", "Q", "m")).response_text == "same"

    @pytest.mark.asyncio
    async def test_last_write_wins(self, cache: ResponseCache) -> None:
        await cache.store("job-1", "Q", "m", "first")
        await cache.store("job-1", "  q ", "m", "second")

        assert (await cache.lookup("job-1", "Q", "m")).response_text == "second"

    @pytest.mark.asyncio
    async def test_analysis_entries_are_separate(self, cache: ResponseCache) -> None:
        await cache.store_analysis("job-1", "key_moments", "m", "moments")

        assert (await cache.lookup_analysis("job-1", "key_moments", "m")).response_text == "moments"
        assert await cache.lookup("job-1", "key_moments", "m") is None

    @pytest.mark.asyncio
    async def test_store_errors_are_swallowed(self) -> None:
        failing = AsyncMock()
        failing.find_cached_response.side_effect = RuntimeError("db down")
        failing.upsert_cached_response.side_effect = RuntimeError("db down")
        cache = ResponseCache(failing)

        assert await cache.lookup("job-1", "Q", "m") is None
        assert await cache.store("job-1", "Q", "m", "text") is None
