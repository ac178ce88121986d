"""Storage for video jobs, transcript chunks and cached responses.

`TranscriptStore` is the persistence contract the pipelines depend on.
`SupabaseStore` backs it with Supabase tables; `InMemoryStore` keeps
everything in process memory for local runs and tests. Both enforce the
same uniqueness rules and the terminal `failed` job state.
"""

import json
from datetime import datetime
from typing import Any, Protocol

from supabase import Client, create_client

from src.utils.logging import get_logger

from .config import YouTubeRAGConfig
from .errors import DuplicateRecordError, JobNotFoundError, JobStateError
from .schemas import (
    CachedResponse,
    CacheType,
    JobStatus,
    TranscriptChunk,
    VideoJob,
    utc_now,
)

logger = get_logger(__name__)

JOBS_TABLE = "video_jobs"
CHUNKS_TABLE = "transcript_chunks"
CACHE_TABLE = "cached_responses"


class TranscriptStore(Protocol):
    """Key-addressable persistence used by the ingestion and query pipelines."""

    async def insert_job(self, job: VideoJob) -> VideoJob: ...

    async def find_job(self, job_id: str) -> VideoJob | None: ...

    async def update_job(self, job_id: str, **fields: Any) -> VideoJob: ...

    async def find_completed_job(self, owner_id: str, video_id: str) -> VideoJob | None: ...

    async def find_latest_completed_job(self, video_id: str) -> VideoJob | None: ...

    async def insert_chunks(self, chunks: list[TranscriptChunk]) -> None: ...

    async def find_chunks(
        self, job_id: str, video_id: str | None = None
    ) -> list[TranscriptChunk]: ...

    async def update_chunk_embedding(
        self, job_id: str, chunk_id: str, embedding: list[float]
    ) -> None: ...

    async def find_cached_response(
        self, job_id: str, cache_type: CacheType, cache_key: str, model_id: str
    ) -> CachedResponse | None: ...

    async def upsert_cached_response(
        self,
        job_id: str,
        cache_type: CacheType,
        cache_key: str,
        model_id: str,
        response_text: str,
    ) -> CachedResponse: ...


def check_status_transition(job: VideoJob, fields: dict[str, Any]) -> None:
    """Refuse to move a failed job to any other status."""
    new_status = fields.get("status")
    if new_status is None:
        return
    if job.status == JobStatus.FAILED and JobStatus(new_status) != JobStatus.FAILED:
        raise JobStateError(
            f"Job {job.job_id} has failed and cannot move to {JobStatus(new_status).value}"
        )


def _is_newer(candidate: VideoJob, current: VideoJob | None) -> bool:
    return current is None or candidate.created_at > current.created_at


class InMemoryStore:
    """Process-local store with the same semantics as `SupabaseStore`.

    Records are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        self.jobs: dict[str, VideoJob] = {}
        self.chunks: dict[str, dict[str, TranscriptChunk]] = {}
        self.responses: dict[tuple[str, str, str, str], CachedResponse] = {}

    async def insert_job(self, job: VideoJob) -> VideoJob:
        if job.job_id in self.jobs:
            raise DuplicateRecordError(f"Job {job.job_id} already exists")
        self.jobs[job.job_id] = job.model_copy(deep=True)
        return job.model_copy(deep=True)

    async def find_job(self, job_id: str) -> VideoJob | None:
        job = self.jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def update_job(self, job_id: str, **fields: Any) -> VideoJob:
        job = self.jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        check_status_transition(job, fields)
        updated = job.model_copy(update={**fields, "updated_at": utc_now()}, deep=True)
        # model_copy skips validation; coerce enum values passed as strings
        updated = VideoJob.model_validate(updated.model_dump())
        self.jobs[job_id] = updated
        return updated.model_copy(deep=True)

    async def find_completed_job(self, owner_id: str, video_id: str) -> VideoJob | None:
        latest: VideoJob | None = None
        for job in self.jobs.values():
            if (
                job.owner_id == owner_id
                and job.video_id == video_id
                and job.status == JobStatus.COMPLETED
                and _is_newer(job, latest)
            ):
                latest = job
        return latest.model_copy(deep=True) if latest else None

    async def find_latest_completed_job(self, video_id: str) -> VideoJob | None:
        latest: VideoJob | None = None
        for job in self.jobs.values():
            if (
                job.video_id == video_id
                and job.status == JobStatus.COMPLETED
                and _is_newer(job, latest)
            ):
                latest = job
        return latest.model_copy(deep=True) if latest else None

    async def insert_chunks(self, chunks: list[TranscriptChunk]) -> None:
        # Validate the whole batch first so a bulk write is all-or-nothing
        seen: set[tuple[str, str]] = set()
        for chunk in chunks:
            key = (chunk.job_id, chunk.chunk_id)
            if key in seen or chunk.chunk_id in self.chunks.get(chunk.job_id, {}):
                raise DuplicateRecordError(
                    f"Chunk {chunk.chunk_id} already exists for job {chunk.job_id}"
                )
            seen.add(key)
        for chunk in chunks:
            self.chunks.setdefault(chunk.job_id, {})[chunk.chunk_id] = chunk.model_copy(
                deep=True
            )

    async def find_chunks(
        self, job_id: str, video_id: str | None = None
    ) -> list[TranscriptChunk]:
        chunks = [
            chunk.model_copy(deep=True)
            for chunk in self.chunks.get(job_id, {}).values()
            if video_id is None or chunk.video_id == video_id
        ]
        return sorted(chunks, key=lambda c: (c.start_timestamp, c.chunk_index))

    async def update_chunk_embedding(
        self, job_id: str, chunk_id: str, embedding: list[float]
    ) -> None:
        chunk = self.chunks.get(job_id, {}).get(chunk_id)
        if chunk is None:
            raise JobNotFoundError(f"Chunk {chunk_id} not found for job {job_id}")
        self.chunks[job_id][chunk_id] = chunk.model_copy(update={"embedding": list(embedding)})

    async def find_cached_response(
        self, job_id: str, cache_type: CacheType, cache_key: str, model_id: str
    ) -> CachedResponse | None:
        response = self.responses.get((job_id, CacheType(cache_type).value, cache_key, model_id))
        return response.model_copy() if response else None

    async def upsert_cached_response(
        self,
        job_id: str,
        cache_type: CacheType,
        cache_key: str,
        model_id: str,
        response_text: str,
    ) -> CachedResponse:
        key = (job_id, CacheType(cache_type).value, cache_key, model_id)
        now = utc_now()
        existing = self.responses.get(key)
        response = CachedResponse(
            job_id=job_id,
            cache_type=CacheType(cache_type),
            cache_key=cache_key,
            model_id=model_id,
            response_text=response_text,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self.responses[key] = response
        return response.model_copy()


class SupabaseStore:
    """Store backed by Supabase tables.

    Expected schema: `video_jobs` (unique `job_id`), `transcript_chunks`
    (unique `job_id, chunk_id`) and `cached_responses` (unique
    `job_id, cache_type, cache_key, model_id`, `created_at` defaulting to
    `now()`).
    """

    def __init__(self, config: YouTubeRAGConfig, client: Client | None = None):
        """Initialize storage service with configuration.

        Args:
            config: Configuration object with Supabase credentials.
            client: Optional preconfigured Supabase client.
        """
        self.config = config
        self.client: Client = client or create_client(
            config.supabase_url,
            config.supabase_key,
        )
        logger.info(
            "storage_service_initialized",
            backend="supabase",
            supabase_url=config.supabase_url,
        )

    @staticmethod
    def _job_from_row(row: dict[str, Any]) -> VideoJob:
        return VideoJob.model_validate(row)

    @staticmethod
    def _chunk_from_row(row: dict[str, Any]) -> TranscriptChunk:
        data = dict(row)
        embedding = data.get("embedding")
        # pgvector columns come back as text like "[0.1,0.2]"
        if isinstance(embedding, str):
            data["embedding"] = json.loads(embedding)
        elif embedding is None:
            data["embedding"] = []
        return TranscriptChunk.model_validate(data)

    async def insert_job(self, job: VideoJob) -> VideoJob:
        try:
            data = job.model_dump(mode="json")
            self.client.table(JOBS_TABLE).insert(data).execute()
            logger.info("job_saved", job_id=job.job_id, status=job.status.value)
            return job

        except Exception as e:
            logger.exception(
                "job_save_failed",
                job_id=job.job_id,
                error_type=type(e).__name__,
            )
            raise

    async def find_job(self, job_id: str) -> VideoJob | None:
        response = (
            self.client.table(JOBS_TABLE).select("*").eq("job_id", job_id).execute()
        )
        if not response.data:
            logger.debug("job_not_found", job_id=job_id)
            return None
        return self._job_from_row(response.data[0])

    async def update_job(self, job_id: str, **fields: Any) -> VideoJob:
        job = await self.find_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        check_status_transition(job, fields)

        try:
            data = {
                key: value.value if hasattr(value, "value") else value
                for key, value in fields.items()
            }
            data["updated_at"] = utc_now().isoformat()

            response = (
                self.client.table(JOBS_TABLE).update(data).eq("job_id", job_id).execute()
            )
            logger.info(
                "job_updated",
                job_id=job_id,
                fields=sorted(fields),
            )
            if response.data:
                return self._job_from_row(response.data[0])
            return VideoJob.model_validate(
                {**job.model_dump(), **fields, "updated_at": data["updated_at"]}
            )

        except Exception as e:
            logger.exception(
                "job_update_failed",
                job_id=job_id,
                error_type=type(e).__name__,
            )
            raise

    async def _latest_completed(self, **filters: str) -> VideoJob | None:
        query = self.client.table(JOBS_TABLE).select("*").eq("status", JobStatus.COMPLETED.value)
        for column, value in filters.items():
            query = query.eq(column, value)
        response = query.order("created_at", desc=True).limit(1).execute()
        if not response.data:
            return None
        return self._job_from_row(response.data[0])

    async def find_completed_job(self, owner_id: str, video_id: str) -> VideoJob | None:
        return await self._latest_completed(owner_id=owner_id, video_id=video_id)

    async def find_latest_completed_job(self, video_id: str) -> VideoJob | None:
        return await self._latest_completed(video_id=video_id)

    async def insert_chunks(self, chunks: list[TranscriptChunk]) -> None:
        """Save transcript chunks in one bulk write.

        Raises:
            Exception: If database operation fails.
        """
        if not chunks:
            return
        try:
            data = [chunk.model_dump(mode="json") for chunk in chunks]
            self.client.table(CHUNKS_TABLE).insert(data).execute()
            logger.info(
                "chunks_saved",
                count=len(chunks),
                job_id=chunks[0].job_id,
            )

        except Exception as e:
            logger.exception(
                "chunks_save_failed",
                count=len(chunks),
                error_type=type(e).__name__,
            )
            raise

    async def find_chunks(
        self, job_id: str, video_id: str | None = None
    ) -> list[TranscriptChunk]:
        query = self.client.table(CHUNKS_TABLE).select("*").eq("job_id", job_id)
        if video_id is not None:
            query = query.eq("video_id", video_id)
        response = query.order("start_timestamp").execute()
        return [self._chunk_from_row(row) for row in response.data or []]

    async def update_chunk_embedding(
        self, job_id: str, chunk_id: str, embedding: list[float]
    ) -> None:
        try:
            (
                self.client.table(CHUNKS_TABLE)
                .update({"embedding": embedding})
                .eq("job_id", job_id)
                .eq("chunk_id", chunk_id)
                .execute()
            )
        except Exception as e:
            logger.exception(
                "embedding_update_failed",
                job_id=job_id,
                chunk_id=chunk_id,
                error_type=type(e).__name__,
            )
            raise

    async def find_cached_response(
        self, job_id: str, cache_type: CacheType, cache_key: str, model_id: str
    ) -> CachedResponse | None:
        response = (
            self.client.table(CACHE_TABLE)
            .select("*")
            .eq("job_id", job_id)
            .eq("cache_type", CacheType(cache_type).value)
            .eq("cache_key", cache_key)
            .eq("model_id", model_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return CachedResponse.model_validate(response.data[0])

    async def upsert_cached_response(
        self,
        job_id: str,
        cache_type: CacheType,
        cache_key: str,
        model_id: str,
        response_text: str,
    ) -> CachedResponse:
        now: datetime = utc_now()
        data = {
            "job_id": job_id,
            "cache_type": CacheType(cache_type).value,
            "cache_key": cache_key,
            "model_id": model_id,
            "response_text": response_text,
            "updated_at": now.isoformat(),
        }
        response = (
            self.client.table(CACHE_TABLE)
            .upsert(data, on_conflict="job_id,cache_type,cache_key,model_id")
            .execute()
        )
        if response.data:
            return CachedResponse.model_validate(response.data[0])
        return CachedResponse.model_validate({**data, "created_at": now})


def get_store(config: YouTubeRAGConfig, client: Client | None = None) -> TranscriptStore:
    """Build the store selected by `config.storage_backend`.

    Raises:
        ValueError: If the backend name is unknown.
    """
    if config.storage_backend == "memory":
        logger.info("storage_service_initialized", backend="memory")
        return InMemoryStore()
    if config.storage_backend == "supabase":
        return SupabaseStore(config, client=client)
    raise ValueError(f"Unknown storage backend: {config.storage_backend!r}")
