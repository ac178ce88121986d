"""Pydantic schemas for the video transcript RAG service."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(UTC)


class JobStatus(str, Enum):
    """Lifecycle of a video-processing job. `failed` is terminal."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TranscriptStatus(str, Enum):
    """Transcript availability, tracked alongside the job status."""

    PROCESSING = "processing"
    FOUND = "found"
    NOT_FOUND = "not_found"
    FAILED = "failed"
    ERROR = "error"


class CacheType(str, Enum):
    USER_QUESTION = "user_question"
    PROACTIVE_ANALYSIS = "proactive_analysis"


class AnswerMode(str, Enum):
    CACHE = "cache"
    RAG = "rag"
    DIRECT = "direct"


class VideoMetadata(BaseModel):
    """YouTube video metadata.

    Fetched before the transcript to confirm the video exists and is
    accessible, and stored on the job for progress reporting.
    """

    video_id: str
    title: str = ""
    description: str = ""
    channel: str = ""
    url: str
    duration_seconds: int | None = None


class TranscriptSegment(BaseModel):
    """Single transcript segment with timing in seconds."""

    text: str
    start: float
    duration: float

    @property
    def end(self) -> float:
        return self.start + self.duration


class Chunk(BaseModel):
    """Chunked transcript text with its time range, before persistence."""

    chunk_index: int
    text_content: str
    start_timestamp: float
    end_timestamp: float

    @model_validator(mode="after")
    def _check_range(self) -> "Chunk":
        if self.end_timestamp < self.start_timestamp:
            raise ValueError("end_timestamp must be >= start_timestamp")
        return self


class TranscriptChunk(Chunk):
    """Persisted chunk belonging to exactly one job.

    `embedding` stays empty until the embedding phase succeeds for this
    chunk; chunks without an embedding are skipped by the ranker.
    """

    job_id: str
    chunk_id: str
    owner_id: str
    video_id: str
    embedding: list[float] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def has_embedding(self) -> bool:
        return len(self.embedding) > 0


class VideoJob(BaseModel):
    """One ingestion attempt for a source URL on behalf of an owner."""

    job_id: str
    source_url: str
    owner_id: str
    video_id: str | None = None
    status: JobStatus = JobStatus.PENDING
    transcript_status: TranscriptStatus = TranscriptStatus.PROCESSING
    progress: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_usable(self) -> bool:
        """Whether chat can run against this job (RAG or direct mode)."""
        return self.status == JobStatus.COMPLETED and self.transcript_status in (
            TranscriptStatus.FOUND,
            TranscriptStatus.NOT_FOUND,
        )


class CachedResponse(BaseModel):
    """Memoized LLM answer, unique per (job, cache type, key, model)."""

    job_id: str
    cache_type: CacheType = CacheType.USER_QUESTION
    cache_key: str
    model_id: str
    response_text: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class GroundingContext(BaseModel):
    """A transcript span handed to the LLM as grounding material."""

    text: str
    start_seconds: float
    end_seconds: float


class ScoredChunk(BaseModel):
    chunk: TranscriptChunk
    similarity: float


class QueryResult(BaseModel):
    """Outcome of a single question against a job."""

    answer: str
    mode: AnswerMode
    cached: bool = False
    chunks_used: list[GroundingContext] = Field(default_factory=list)


class IngestionResult(BaseModel):
    """Summary of one `process_job` run, used by the CLI and logs."""

    job_id: str
    status: JobStatus
    transcript_status: TranscriptStatus
    chunks_created: int = 0
    chunks_embedded: int = 0
    reused_from_job_id: str | None = None
    errors: list[str] = Field(default_factory=list)
