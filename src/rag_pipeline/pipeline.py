"""Ingestion pipeline: video URL to persisted, embedded transcript chunks."""

import uuid

from src.utils.logging import get_logger

from .chunking_service import ChunkingService, validate_chunk_order
from .config import YouTubeRAGConfig, get_config
from .embedding_service import EmbeddingService
from .errors import JobNotFoundError, TranscriptUnavailableError
from .schemas import (
    IngestionResult,
    JobStatus,
    TranscriptChunk,
    TranscriptStatus,
    VideoJob,
)
from .storage_service import TranscriptStore
from .youtube_service import YouTubeService, require_video_id

logger = get_logger(__name__)


def make_chunk_id(job_id: str, chunk_index: int) -> str:
    return f"{job_id}-{chunk_index}"


class _FatalStepError(Exception):
    """Wraps failures in the steps that must fail the whole job."""

    def __init__(self, message: str, transcript_status: TranscriptStatus):
        super().__init__(message)
        self.transcript_status = transcript_status


class VideoIngestionPipeline:
    """Orchestrates transcript ingestion for one job at a time.

    State machine per job: pending -> processing -> completed | failed, with
    the transcript status tracked alongside (processing -> found | not_found
    | error). Failures while resolving or verifying the video fail the job;
    failures while fetching or indexing the transcript still complete it, so
    chat can fall back to direct-to-video answering.
    """

    def __init__(
        self,
        store: TranscriptStore,
        youtube_service: YouTubeService,
        embedding_service: EmbeddingService,
        chunking_service: ChunkingService | None = None,
        config: YouTubeRAGConfig | None = None,
    ):
        """Initialize pipeline with its collaborators.

        Args:
            store: Persistence for jobs and chunks.
            youtube_service: Transcript and metadata source.
            embedding_service: Embedding provider.
            chunking_service: Chunker (built from config when omitted).
            config: Configuration object. If None, loads from environment.
        """
        self.config = config or get_config()
        self.store = store
        self.youtube_service = youtube_service
        self.embedding_service = embedding_service
        self.chunking_service = chunking_service or ChunkingService(self.config)

        logger.info(
            "pipeline_initialized",
            batch_size=self.config.embedding_batch_size,
            max_chunk_chars=self.config.max_chunk_chars,
        )

    async def submit(self, url: str, owner_id: str) -> VideoJob:
        """Create a pending job for a URL without doing any ingestion work.

        Raises:
            InvalidVideoUrlError: If no video id can be extracted from the URL.
        """
        video_id = require_video_id(url)
        job = VideoJob(
            job_id=str(uuid.uuid4()),
            source_url=url,
            owner_id=owner_id,
            video_id=video_id,
            status=JobStatus.PENDING,
            transcript_status=TranscriptStatus.PROCESSING,
            progress="Starting processing...",
        )
        await self.store.insert_job(job)
        logger.info("job_submitted", job_id=job.job_id, video_id=video_id, owner_id=owner_id)
        return job

    async def process_job(self, job_id: str) -> IngestionResult:
        """Run the full ingestion state machine for an existing job.

        Returns:
            IngestionResult describing the terminal state reached.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        job = await self.store.find_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        logger.info("processing_job", job_id=job_id, source_url=job.source_url)

        try:
            video_id = await self._start(job)

            reused = await self._reuse_existing(job, video_id)
            if reused is not None:
                return reused

            await self._verify_video(job_id, video_id)
        except _FatalStepError as e:
            return await self._fail(job_id, str(e), e.transcript_status)
        except Exception as e:
            logger.exception("job_setup_failed", job_id=job_id, error_type=type(e).__name__)
            return await self._fail(job_id, str(e), TranscriptStatus.ERROR)

        try:
            return await self._ingest_transcript(job, video_id)
        except Exception as e:
            logger.exception(
                "transcript_processing_failed",
                job_id=job_id,
                error_type=type(e).__name__,
            )
            return await self._complete_after_failure(job_id, video_id, e)

    async def _complete_after_failure(
        self, job_id: str, video_id: str, error: Exception
    ) -> IngestionResult:
        """Finish a job whose transcript steps raised, keeping it usable for chat.

        Chunks that made it into the store keep the job in RAG mode (unembedded
        ones can be repaired later); otherwise chat falls back to the video.
        The error is kept in `metadata.transcript_error` so later submissions
        ingest again instead of cloning this job.
        """
        try:
            stored = await self.store.find_chunks(job_id, video_id=video_id)
        except Exception:
            logger.exception("chunk_recount_failed", job_id=job_id)
            stored = []

        transcript_status = TranscriptStatus.FOUND if stored else TranscriptStatus.NOT_FOUND
        job = await self.store.find_job(job_id)
        await self.store.update_job(
            job_id,
            status=JobStatus.COMPLETED,
            transcript_status=transcript_status,
            metadata={**(job.metadata if job else {}), "transcript_error": str(error)},
            progress=f"Transcript processing failed: {error}",
        )
        return IngestionResult(
            job_id=job_id,
            status=JobStatus.COMPLETED,
            transcript_status=transcript_status,
            chunks_created=len(stored),
            chunks_embedded=sum(1 for c in stored if c.has_embedding),
            errors=[str(error)],
        )

    async def _start(self, job: VideoJob) -> str:
        await self.store.update_job(
            job.job_id,
            status=JobStatus.PROCESSING,
            progress="Resolving video...",
        )
        try:
            video_id = require_video_id(job.source_url)
        except Exception as e:
            raise _FatalStepError(str(e), TranscriptStatus.ERROR) from e
        if job.video_id != video_id:
            await self.store.update_job(job.job_id, video_id=video_id)
        return video_id

    async def _verify_video(self, job_id: str, video_id: str) -> None:
        await self.store.update_job(job_id, progress="Fetching video details...")
        try:
            metadata = await self.youtube_service.get_metadata(video_id)
        except Exception as e:
            raise _FatalStepError(str(e), TranscriptStatus.ERROR) from e

        job = await self.store.find_job(job_id)
        await self.store.update_job(
            job_id,
            metadata={**(job.metadata if job else {}), "title": metadata.title},
            progress=f"Fetching transcript for {metadata.title or video_id}...",
        )

    async def _reuse_existing(self, job: VideoJob, video_id: str) -> IngestionResult | None:
        """Clone chunks from the owner's earlier completed job for this video.

        Returns:
            The result for the cloned job, or None when nothing can be reused.
        """
        source = await self.store.find_completed_job(job.owner_id, video_id)
        if source is None or source.job_id == job.job_id:
            return None
        if not source.is_usable or source.metadata.get("transcript_error"):
            logger.info(
                "reuse_skipped_incomplete_source", job_id=job.job_id, source_job_id=source.job_id
            )
            return None

        source_chunks = await self.store.find_chunks(source.job_id, video_id=video_id)
        if source.transcript_status == TranscriptStatus.FOUND and not source_chunks:
            # Nothing to copy; ingest from scratch instead
            return None

        logger.info(
            "reusing_existing_job",
            job_id=job.job_id,
            source_job_id=source.job_id,
            chunks=len(source_chunks),
        )

        cloned = [
            chunk.model_copy(
                update={
                    "job_id": job.job_id,
                    "chunk_id": make_chunk_id(job.job_id, index),
                    "chunk_index": index,
                },
                deep=True,
            )
            for index, chunk in enumerate(source_chunks)
        ]
        await self.store.insert_chunks(cloned)

        metadata = {**source.metadata, "cloned_from_job_id": source.job_id}
        await self.store.update_job(
            job.job_id,
            status=JobStatus.COMPLETED,
            transcript_status=source.transcript_status,
            metadata=metadata,
            progress="Reused previously processed transcript",
        )
        return IngestionResult(
            job_id=job.job_id,
            status=JobStatus.COMPLETED,
            transcript_status=source.transcript_status,
            chunks_created=len(cloned),
            chunks_embedded=sum(1 for c in cloned if c.has_embedding),
            reused_from_job_id=source.job_id,
        )

    async def _ingest_transcript(self, job: VideoJob, video_id: str) -> IngestionResult:
        job_id = job.job_id
        try:
            segments = await self.youtube_service.get_transcript(video_id)
        except TranscriptUnavailableError:
            segments = []
        except Exception as e:
            logger.warning(
                "transcript_fetch_failed",
                job_id=job_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            segments = []

        chunks = self.chunking_service.chunk_transcript(segments)
        if not chunks:
            await self.store.update_job(
                job_id,
                status=JobStatus.COMPLETED,
                transcript_status=TranscriptStatus.NOT_FOUND,
                progress="No transcript found; answers will use the video directly",
            )
            logger.info("job_completed_without_transcript", job_id=job_id)
            return IngestionResult(
                job_id=job_id,
                status=JobStatus.COMPLETED,
                transcript_status=TranscriptStatus.NOT_FOUND,
            )

        validate_chunk_order(chunks)

        stored = [
            TranscriptChunk(
                job_id=job_id,
                chunk_id=make_chunk_id(job_id, chunk.chunk_index),
                chunk_index=chunk.chunk_index,
                text_content=chunk.text_content,
                start_timestamp=chunk.start_timestamp,
                end_timestamp=chunk.end_timestamp,
                owner_id=job.owner_id,
                video_id=video_id,
            )
            for chunk in chunks
        ]
        await self.store.update_job(job_id, progress="Storing transcript chunks...")
        await self.store.insert_chunks(stored)

        embedded = await self._embed_chunks(job_id, stored)

        await self.store.update_job(
            job_id,
            status=JobStatus.COMPLETED,
            transcript_status=TranscriptStatus.FOUND,
            progress="Processing complete",
        )
        logger.info(
            "job_completed",
            job_id=job_id,
            chunks=len(stored),
            embedded=embedded,
        )
        return IngestionResult(
            job_id=job_id,
            status=JobStatus.COMPLETED,
            transcript_status=TranscriptStatus.FOUND,
            chunks_created=len(stored),
            chunks_embedded=embedded,
            errors=[
                f"Embedding failed for {len(stored) - embedded} chunk(s)"
            ]
            if embedded < len(stored)
            else [],
        )

    async def _embed_chunks(self, job_id: str, chunks: list[TranscriptChunk]) -> int:
        """Embed chunks batch by batch, persisting each vector as it arrives.

        Returns:
            Number of chunks that received an embedding.
        """
        batch_size = self.config.embedding_batch_size
        total = len(chunks)
        embedded = 0

        for i in range(0, total, batch_size):
            batch = chunks[i : i + batch_size]
            await self.store.update_job(
                job_id,
                progress=f"Processing chunks {i + 1}-{min(i + batch_size, total)} of {total}...",
            )
            vectors = await self.embedding_service.embed_batch(
                [chunk.text_content for chunk in batch], batch_size=batch_size
            )
            for chunk, vector in zip(batch, vectors, strict=True):
                if not vector:
                    logger.warning(
                        "chunk_embedding_skipped",
                        job_id=job_id,
                        chunk_id=chunk.chunk_id,
                    )
                    continue
                try:
                    await self.store.update_chunk_embedding(job_id, chunk.chunk_id, vector)
                    embedded += 1
                except Exception as e:
                    logger.warning(
                        "chunk_embedding_not_saved",
                        job_id=job_id,
                        chunk_id=chunk.chunk_id,
                        error_type=type(e).__name__,
                    )

        return embedded

    async def retry_missing_embeddings(self, job_id: str) -> int:
        """Embed chunks of a job that were left without an embedding.

        Returns:
            Number of chunks embedded by this call.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        job = await self.store.find_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        missing = [c for c in await self.store.find_chunks(job_id) if not c.has_embedding]
        logger.info("retrying_missing_embeddings", job_id=job_id, missing=len(missing))
        if not missing:
            return 0

        embedded = await self._embed_chunks(job_id, missing)
        await self.store.update_job(
            job_id,
            progress=f"Embedded {embedded} of {len(missing)} previously missing chunks",
        )
        return embedded

    async def _fail(
        self, job_id: str, message: str, transcript_status: TranscriptStatus
    ) -> IngestionResult:
        logger.error("job_failed", job_id=job_id, error=message)
        await self.store.update_job(
            job_id,
            status=JobStatus.FAILED,
            transcript_status=transcript_status,
            progress=message or "Error during processing",
        )
        return IngestionResult(
            job_id=job_id,
            status=JobStatus.FAILED,
            transcript_status=transcript_status,
            errors=[message],
        )
