"""Shared fixtures and in-process fakes for the provider boundaries."""

from collections.abc import AsyncIterator

import pytest

from src.rag_pipeline.config import YouTubeRAGConfig
from src.rag_pipeline.errors import GenerationError, TranscriptUnavailableError
from src.rag_pipeline.schemas import (
    JobStatus,
    TranscriptChunk,
    TranscriptSegment,
    TranscriptStatus,
    VideoJob,
    VideoMetadata,
)
from src.rag_pipeline.storage_service import InMemoryStore
from src.rag_pipeline.youtube_service import canonical_video_url
from src.retrieval.llm_service import LLMRegistry
from src.utils.clients import Services, build_services

VIDEO_ID = "dQw4w9WgXcQ"
OTHER_VIDEO_ID = "9bZkp7q19f0"

# Topic words give each text a direction in a tiny embedding space
VOCABULARY = ["python", "cooking", "music", "space", "finance"]


def keyword_vector(text: str) -> list[float]:
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCABULARY] + [0.1]


class FakeEmbeddingService:
    """Deterministic keyword embeddings; texts containing `fail_marker` fail."""

    def __init__(self, fail_marker: str | None = None):
        self.fail_marker = fail_marker
        self.calls: list[str] = []

    async def embed_text(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_marker and self.fail_marker in text:
            raise RuntimeError("embedding provider unavailable")
        return keyword_vector(text)

    async def embed_batch(
        self, texts: list[str], batch_size: int | None = None
    ) -> list[list[float]]:
        vectors = []
        for text in texts:
            try:
                vectors.append(await self.embed_text(text))
            except RuntimeError:
                vectors.append([])
        return vectors


class FakeYouTubeService:
    """Transcript and metadata source with configurable failures."""

    def __init__(
        self,
        segments: list[TranscriptSegment] | None = None,
        transcript_error: Exception | None = None,
        metadata_error: Exception | None = None,
    ):
        self.segments = segments or []
        self.transcript_error = transcript_error
        self.metadata_error = metadata_error
        self.transcript_calls: list[str] = []

    async def get_metadata(self, video_id: str) -> VideoMetadata:
        if self.metadata_error:
            raise self.metadata_error
        return VideoMetadata(
            video_id=video_id,
            title=f"Video {video_id}",
            url=canonical_video_url(video_id),
        )

    async def get_transcript(self, video_id: str) -> list[TranscriptSegment]:
        self.transcript_calls.append(video_id)
        if self.transcript_error:
            raise self.transcript_error
        if not self.segments:
            raise TranscriptUnavailableError(f"No transcript available for video {video_id}")
        return list(self.segments)


class FakeLLMProvider:
    """Records prompts and returns canned text, whole or in fragments."""

    def __init__(
        self,
        model_id: str = "fake-model",
        supports_video: bool = False,
        reply: str = "The video explains the topic at [0s - 10s].",
        fail_after: int | None = None,
    ):
        self.model_id = model_id
        self.supports_video = supports_video
        self.reply = reply
        self.fail_after = fail_after
        self.prompts: list[str] = []
        self.video_urls: list[str | None] = []

    async def generate(self, prompt: str, video_url: str | None = None) -> str:
        self.prompts.append(prompt)
        self.video_urls.append(video_url)
        return self.reply

    async def generate_stream(
        self, prompt: str, video_url: str | None = None
    ) -> AsyncIterator[str]:
        self.prompts.append(prompt)
        self.video_urls.append(video_url)
        for index, word in enumerate(self.reply.split(" ")):
            if self.fail_after is not None and index >= self.fail_after:
                raise GenerationError("stream interrupted")
            yield word if index == 0 else f" {word}"


@pytest.fixture
def config() -> YouTubeRAGConfig:
    """Create test configuration."""
    return YouTubeRAGConfig(
        supadata_api_key="test_supadata_key",
        max_chunk_chars=1000,
        embedding_provider="openai",
        embedding_api_key="test_embedding_key",
        embedding_model="text-embedding-3-small",
        embedding_batch_size=5,
        embedding_max_retries=2,
        embedding_retry_backoff_seconds=0,
        default_model="fake-model",
        top_k=3,
        max_transcript_chars=20000,
        storage_backend="memory",
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def embeddings() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def llm() -> FakeLLMProvider:
    return FakeLLMProvider()


@pytest.fixture
def video_llm() -> FakeLLMProvider:
    return FakeLLMProvider(
        model_id="google-gla:gemini-1.5-flash",
        supports_video=True,
        reply="From watching the video: the intro is at about [30s].",
    )


@pytest.fixture
def registry(config, llm, video_llm) -> LLMRegistry:
    registry = LLMRegistry(config)
    registry.register(llm)
    registry.register(video_llm)
    return registry


@pytest.fixture
def services(config, store, embeddings, registry) -> Services:
    """Service graph wired with fakes at every provider boundary."""
    return build_services(
        config,
        store=store,
        youtube=FakeYouTubeService(),
        embeddings=embeddings,
        llm_registry=registry,
    )


def make_job(
    job_id: str = "job-1",
    owner_id: str = "owner-1",
    video_id: str = VIDEO_ID,
    status: JobStatus = JobStatus.COMPLETED,
    transcript_status: TranscriptStatus = TranscriptStatus.FOUND,
) -> VideoJob:
    return VideoJob(
        job_id=job_id,
        source_url=canonical_video_url(video_id),
        owner_id=owner_id,
        video_id=video_id,
        status=status,
        transcript_status=transcript_status,
    )


def make_chunk(
    job_id: str,
    index: int,
    text: str,
    start: float,
    end: float,
    owner_id: str = "owner-1",
    video_id: str = VIDEO_ID,
    embed: bool = True,
) -> TranscriptChunk:
    return TranscriptChunk(
        job_id=job_id,
        chunk_id=f"{job_id}-{index}",
        chunk_index=index,
        text_content=text,
        start_timestamp=start,
        end_timestamp=end,
        owner_id=owner_id,
        video_id=video_id,
        embedding=keyword_vector(text) if embed else [],
    )
