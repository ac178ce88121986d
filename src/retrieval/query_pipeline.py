"""Question answering over an ingested video.

Flow per question: validate the job, check the response cache, rank the
job's transcript chunks and build a grounded prompt (RAG mode), or fall back
to a video-capable model watching the video itself (direct mode). Every
non-empty answer is written back to the cache exactly once.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from src.rag_pipeline.config import YouTubeRAGConfig
from src.rag_pipeline.errors import (
    ChunkIntegrityError,
    DirectModeUnavailableError,
    GenerationError,
    InvalidRequestError,
    JobNotFoundError,
    JobNotReadyError,
    VideoMismatchError,
)
from src.rag_pipeline.schemas import (
    AnswerMode,
    GroundingContext,
    QueryResult,
    TranscriptChunk,
    VideoJob,
)
from src.rag_pipeline.storage_service import TranscriptStore
from src.rag_pipeline.youtube_service import canonical_video_url, require_video_id
from src.utils.logging import get_logger

from .formatting import chunk_to_context, format_full_transcript
from .llm_service import LLMProvider, LLMRegistry
from .prompts import (
    ANALYSIS_INSTRUCTIONS,
    build_analysis_prompt,
    build_direct_prompt,
    build_rag_prompt,
)
from .ranker import RelevanceRanker
from .response_cache import ResponseCache, normalize_question

logger = get_logger(__name__)

_STREAM_END = object()


class StreamAccumulator:
    """Collects streamed fragments so the full answer can be cached."""

    def __init__(self) -> None:
        self._parts: list[str] = []

    def add(self, fragment: str) -> None:
        self._parts.append(fragment)

    @property
    def text(self) -> str:
        return "".join(self._parts)


@dataclass
class PreparedQuery:
    """Everything needed to generate (or replay) one answer."""

    cache_scope: str
    question: str
    model_id: str
    mode: AnswerMode
    prompt: str = ""
    video_url: str | None = None
    contexts: list[GroundingContext] = field(default_factory=list)
    cached_answer: str | None = None

    @property
    def cached(self) -> bool:
        return self.cached_answer is not None


def video_cache_scope(video_id: str) -> str:
    """Cache scope for questions asked by video id without a job."""
    return f"video:{video_id}"


class QueryPipeline:
    """Answers questions about one job's video, with caching."""

    def __init__(
        self,
        store: TranscriptStore,
        ranker: RelevanceRanker,
        cache: ResponseCache,
        llm_registry: LLMRegistry,
        config: YouTubeRAGConfig,
    ):
        self.store = store
        self.ranker = ranker
        self.cache = cache
        self.llm_registry = llm_registry
        self.config = config

    async def _require_usable_job(self, job_id: str) -> VideoJob:
        job = await self.store.find_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if not job.is_usable:
            raise JobNotReadyError(
                f"Job {job_id} is not ready (status={job.status.value}, "
                f"transcript_status={job.transcript_status.value})"
            )
        return job

    async def _load_chunks(self, job: VideoJob) -> list[TranscriptChunk]:
        """Load a job's chunks, keeping only those for the job's video."""
        chunks = await self.store.find_chunks(job.job_id)
        valid: list[TranscriptChunk] = []
        for chunk in chunks:
            if chunk.owner_id != job.owner_id:
                raise ChunkIntegrityError(
                    f"Chunk {chunk.chunk_id} does not belong to the owner of job {job.job_id}"
                )
            if chunk.video_id != job.video_id:
                logger.error(
                    "video_id_mismatch",
                    job_id=job.job_id,
                    chunk_id=chunk.chunk_id,
                    expected_video_id=job.video_id,
                    chunk_video_id=chunk.video_id,
                )
                continue
            valid.append(chunk)

        if chunks and not valid:
            raise VideoMismatchError(
                f"No chunks of job {job.job_id} belong to video {job.video_id}"
            )
        return valid

    async def _retrieve(self, question: str, chunks: list[TranscriptChunk]) -> list[GroundingContext]:
        if not chunks:
            return []
        try:
            ranked = await self.ranker.find_relevant_chunks(question, chunks, self.config.top_k)
        except Exception as e:
            logger.exception(
                "retrieval_failed",
                chunks=len(chunks),
                error_type=type(e).__name__,
            )
            return []
        return [chunk_to_context(scored.chunk) for scored in ranked]

    def _direct_query(
        self, scope: str, question: str, provider: LLMProvider, video_id: str
    ) -> PreparedQuery:
        if not provider.supports_video:
            raise DirectModeUnavailableError(
                "No transcript is available for this video and model "
                f"{provider.model_id} cannot watch videos. Choose a video-capable model."
            )
        video_url = canonical_video_url(video_id)
        return PreparedQuery(
            cache_scope=scope,
            question=question,
            model_id=provider.model_id,
            mode=AnswerMode.DIRECT,
            prompt=build_direct_prompt(question, video_url),
            video_url=video_url,
        )

    async def prepare(
        self,
        question: str,
        model_id: str | None = None,
        job_id: str | None = None,
        video_id: str | None = None,
    ) -> PreparedQuery:
        """Validate a question and decide how it will be answered.

        Returns a cache hit when one exists, otherwise a prompt for RAG or
        direct mode. Nothing is generated here.

        Raises:
            InvalidRequestError: Empty question, or neither job nor video given.
            JobNotFoundError: Unknown job.
            JobNotReadyError: Job not completed with a usable transcript state.
            VideoMismatchError: Request or chunks refer to another video.
            ChunkIntegrityError: Chunks belong to another owner.
            DirectModeUnavailableError: Direct mode needed but model is text-only.
        """
        if not question or not question.strip():
            raise InvalidRequestError("question must not be empty")
        if not job_id and not video_id:
            raise InvalidRequestError("Either job_id or video_id is required")

        provider = self.llm_registry.get(model_id)
        normalized = normalize_question(question)

        if not job_id:
            video_id = require_video_id(video_id)
            scope = video_cache_scope(video_id)
            cached = await self.cache.lookup(scope, normalized, provider.model_id)
            if cached:
                return PreparedQuery(
                    cache_scope=scope,
                    question=question,
                    model_id=provider.model_id,
                    mode=AnswerMode.CACHE,
                    cached_answer=cached.response_text,
                )
            return self._direct_query(scope, question, provider, video_id)

        job = await self._require_usable_job(job_id)
        if video_id and job.video_id and video_id != job.video_id:
            raise VideoMismatchError(
                f"Job {job_id} is for video {job.video_id}, not {video_id}"
            )

        cached = await self.cache.lookup(job_id, normalized, provider.model_id)
        if cached:
            return PreparedQuery(
                cache_scope=job_id,
                question=question,
                model_id=provider.model_id,
                mode=AnswerMode.CACHE,
                cached_answer=cached.response_text,
            )

        chunks = await self._load_chunks(job)
        contexts = await self._retrieve(question, chunks)
        if contexts:
            logger.info("rag_context_built", job_id=job_id, segments=len(contexts))
            return PreparedQuery(
                cache_scope=job_id,
                question=question,
                model_id=provider.model_id,
                mode=AnswerMode.RAG,
                prompt=build_rag_prompt(question, contexts),
                contexts=contexts,
            )

        logger.info("direct_mode_selected", job_id=job_id, chunks=len(chunks))
        return self._direct_query(job_id, question, provider, job.video_id)

    async def answer(
        self,
        question: str,
        model_id: str | None = None,
        job_id: str | None = None,
        video_id: str | None = None,
    ) -> QueryResult:
        """Answer a question, serving and populating the response cache."""
        prepared = await self.prepare(question, model_id, job_id=job_id, video_id=video_id)
        if prepared.cached:
            return QueryResult(answer=prepared.cached_answer, mode=AnswerMode.CACHE, cached=True)

        provider = self.llm_registry.get(prepared.model_id)
        text = await provider.generate(prepared.prompt, video_url=prepared.video_url)
        if not text.strip():
            raise GenerationError(f"Model {prepared.model_id} returned an empty answer")

        await self.cache.store(prepared.cache_scope, prepared.question, prepared.model_id, text)
        return QueryResult(
            answer=text,
            mode=prepared.mode,
            cached=False,
            chunks_used=prepared.contexts,
        )

    async def _produce(
        self,
        prepared: PreparedQuery,
        queue: asyncio.Queue,
        accumulator: StreamAccumulator,
    ) -> None:
        provider = self.llm_registry.get(prepared.model_id)
        try:
            async for fragment in provider.generate_stream(
                prepared.prompt, video_url=prepared.video_url
            ):
                if not fragment:
                    continue
                accumulator.add(fragment)
                await queue.put(fragment)

            text = accumulator.text
            if not text.strip():
                raise GenerationError(f"Model {prepared.model_id} returned an empty answer")
            await self.cache.store(
                prepared.cache_scope, prepared.question, prepared.model_id, text
            )
        except Exception as e:
            await queue.put(e)
            return
        await queue.put(_STREAM_END)

    async def stream_prepared(self, prepared: PreparedQuery) -> AsyncIterator[str]:
        """Yield answer fragments for a prepared query.

        The answer is cached once, after the model's stream ends normally.
        If the consumer stops early, generation is cancelled and nothing is
        cached.
        """
        if prepared.cached:
            yield prepared.cached_answer
            return

        queue: asyncio.Queue = asyncio.Queue()
        accumulator = StreamAccumulator()
        producer = asyncio.create_task(self._produce(prepared, queue, accumulator))
        try:
            while True:
                item = await queue.get()
                if item is _STREAM_END:
                    break
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            if not producer.done():
                producer.cancel()
                await asyncio.gather(producer, return_exceptions=True)
                logger.info(
                    "stream_cancelled",
                    cache_scope=prepared.cache_scope,
                    model_id=prepared.model_id,
                    received_length=len(accumulator.text),
                )

    async def answer_stream(
        self,
        question: str,
        model_id: str | None = None,
        job_id: str | None = None,
        video_id: str | None = None,
    ) -> AsyncIterator[str]:
        prepared = await self.prepare(question, model_id, job_id=job_id, video_id=video_id)
        async for fragment in self.stream_prepared(prepared):
            yield fragment

    async def analyze(
        self, job_id: str, analysis_type: str, model_id: str | None = None
    ) -> QueryResult:
        """Run (or replay) a proactive analysis of the whole video.

        Raises:
            InvalidRequestError: Unknown analysis type.
            JobNotFoundError: Unknown job.
            JobNotReadyError: Job not usable yet.
            DirectModeUnavailableError: No transcript and a text-only model.
        """
        if analysis_type not in ANALYSIS_INSTRUCTIONS:
            raise InvalidRequestError(
                f"Unknown analysis type {analysis_type!r}; "
                f"expected one of {sorted(ANALYSIS_INSTRUCTIONS)}"
            )

        job = await self._require_usable_job(job_id)
        provider = self.llm_registry.get(model_id)

        cached = await self.cache.lookup_analysis(job_id, analysis_type, provider.model_id)
        if cached:
            return QueryResult(answer=cached.response_text, mode=AnswerMode.CACHE, cached=True)

        chunks = await self._load_chunks(job)
        contexts = [chunk_to_context(chunk) for chunk in chunks]
        if contexts:
            mode = AnswerMode.RAG
            video_url = None
            prompt = build_analysis_prompt(
                analysis_type, contexts=contexts, max_chars=self.config.max_transcript_chars
            )
        else:
            if not provider.supports_video:
                raise DirectModeUnavailableError(
                    "No transcript is available for this video and model "
                    f"{provider.model_id} cannot watch videos. Choose a video-capable model."
                )
            mode = AnswerMode.DIRECT
            video_url = canonical_video_url(job.video_id)
            prompt = build_analysis_prompt(analysis_type, video_url=video_url)

        logger.info(
            "analysis_started",
            job_id=job_id,
            analysis_type=analysis_type,
            mode=mode.value,
        )
        text = await provider.generate(prompt, video_url=video_url)
        if not text.strip():
            raise GenerationError(f"Model {provider.model_id} returned an empty analysis")

        await self.cache.store_analysis(job_id, analysis_type, provider.model_id, text)
        return QueryResult(answer=text, mode=mode, cached=False, chunks_used=contexts)

    async def full_transcript(self, job_id: str) -> tuple[str, bool]:
        """Return the job's ordered transcript and whether it was truncated."""
        job = await self._require_usable_job(job_id)
        chunks = await self._load_chunks(job)
        return format_full_transcript(chunks, self.config.max_transcript_chars)
