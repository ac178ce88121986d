"""FastAPI application for the ChatPye video chat service.

Provides video submission with background ingestion, job status polling,
transcript and analysis endpoints, and a chat endpoint that answers either
as JSON or as a plain-text stream.
"""

import os
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from src.rag_pipeline.config import get_config
from src.rag_pipeline.errors import (
    ChatPyeError,
    InvalidRequestError,
    JobNotFoundError,
)
from src.rag_pipeline.schemas import AnswerMode, VideoJob
from src.rag_pipeline.youtube_service import require_video_id
from src.retrieval.query_pipeline import PreparedQuery
from src.utils.clients import Services, build_services
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Check if we're in production
is_production = os.getenv("ENVIRONMENT") == "production"

if not is_production:
    # Development: prioritize .env file
    project_root = Path(__file__).resolve().parent.parent.parent
    dotenv_path = project_root / ".env"
    load_dotenv(dotenv_path, override=True)
else:
    # Production: use cloud platform env vars only
    load_dotenv()


# ==============================================================================
# Request/Response Models
# ==============================================================================


class ProcessVideoRequest(BaseModel):
    url: str
    owner_id: str


class ProcessVideoResponse(BaseModel):
    job_id: str
    status: str


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    transcript_status: str
    progress: str
    video_id: str | None = None
    title: str | None = None


class ChatRequest(BaseModel):
    """Request model for the chat endpoint. Either job_id or video_id is required."""

    question: str
    job_id: str | None = None
    video_id: str | None = None
    model_id: str | None = None
    stream: bool = False


class ChatResponse(BaseModel):
    answer: str
    mode: AnswerMode
    cached: bool


class AnalysisRequest(BaseModel):
    job_id: str
    analysis_type: str
    model_id: str | None = None


class TranscriptResponse(BaseModel):
    job_id: str
    transcript: str
    truncated: bool


def job_status_response(job: VideoJob) -> JobStatusResponse:
    return JobStatusResponse(
        job_id=job.job_id,
        status=job.status.value,
        transcript_status=job.transcript_status.value,
        progress=job.progress,
        video_id=job.video_id,
        title=job.metadata.get("title"),
    )


# ==============================================================================
# Helper Functions
# ==============================================================================


def get_services(request: Request) -> Services:
    return request.app.state.services


async def stream_answer(services: Services, prepared: PreparedQuery) -> AsyncIterator[bytes]:
    """Encode answer fragments, ending with an error line if generation fails."""
    try:
        async for fragment in services.query.stream_prepared(prepared):
            yield fragment.encode("utf-8")
    except ChatPyeError as e:
        logger.error(
            "chat_stream_failed",
            cache_scope=prepared.cache_scope,
            error_type=type(e).__name__,
            error=str(e),
        )
        yield f"\n\n[error] {e}".encode("utf-8")
    except Exception as e:
        logger.exception(
            "chat_stream_failed",
            cache_scope=prepared.cache_scope,
            error_type=type(e).__name__,
        )
        yield b"\n\n[error] Answer generation failed unexpectedly"


# ==============================================================================
# Application Factory
# ==============================================================================


def create_app(services: Services | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        services: Prebuilt service graph. Built from environment
            configuration at startup when omitted.
    """

    async def lifespan(app: FastAPI):  # type: ignore[misc]
        """Build the service graph on startup and drain ingestion on shutdown."""
        logger.info("application_startup_started")

        try:
            app.state.services = services or build_services(get_config())
            logger.info(
                "application_startup_completed",
                storage_backend=app.state.services.config.storage_backend,
            )
        except Exception:
            logger.exception("application_startup_failed")
            raise

        yield  # Application runs here

        logger.info("application_shutdown_started", pending_jobs=app.state.services.runner.pending)
        await app.state.services.runner.drain(
            timeout=app.state.services.config.shutdown_grace_seconds
        )
        logger.info("application_shutdown_completed")

    app = FastAPI(
        title="ChatPye Video Chat API",
        description="Chat with YouTube videos using transcript retrieval and direct video answering",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==========================================================================
    # Error Handling
    # ==========================================================================

    @app.exception_handler(ChatPyeError)
    async def service_error_handler(request: Request, exc: ChatPyeError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "request_failed",
                path=request.url.path,
                error_type=type(exc).__name__,
                error=str(exc),
            )
        else:
            logger.warning(
                "request_rejected",
                path=request.url.path,
                error_type=type(exc).__name__,
                error=str(exc),
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("request_validation_failed", path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "InvalidRequestError", "detail": str(exc.errors())},
        )

    # ==========================================================================
    # API Endpoints
    # ==========================================================================

    @app.get("/health")
    async def health_check(services: Services = Depends(get_services)):
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "storage_backend": services.config.storage_backend,
            "pending_jobs": services.runner.pending,
        }

    @app.post(
        "/video/process",
        status_code=status.HTTP_202_ACCEPTED,
        response_model=ProcessVideoResponse,
    )
    async def process_video(
        request: ProcessVideoRequest, services: Services = Depends(get_services)
    ):
        """Create a job for a video and ingest it in the background."""
        if not request.owner_id.strip():
            raise InvalidRequestError("owner_id must not be empty")

        job = await services.ingestion.submit(request.url, request.owner_id)
        services.runner.submit(job.job_id, lambda: services.ingestion.process_job(job.job_id))

        logger.info("video_process_accepted", job_id=job.job_id, video_id=job.video_id)
        return ProcessVideoResponse(job_id=job.job_id, status=job.status.value)

    @app.get("/video/status/{job_id}", response_model=JobStatusResponse)
    async def video_status(job_id: str, services: Services = Depends(get_services)):
        job = await services.store.find_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job_status_response(job)

    @app.get("/video/resolve-job", response_model=JobStatusResponse)
    async def resolve_job(
        url: str | None = None,
        video_id: str | None = None,
        services: Services = Depends(get_services),
    ):
        """Find the most recent completed job for a video."""
        if not video_id:
            if not url:
                raise InvalidRequestError("Either url or video_id is required")
            video_id = require_video_id(url)

        job = await services.store.find_latest_completed_job(video_id)
        if job is None:
            raise JobNotFoundError(f"No completed job found for video {video_id}")
        return job_status_response(job)

    @app.get("/video/info")
    async def video_info(url: str, services: Services = Depends(get_services)):
        metadata = await services.youtube.get_metadata(require_video_id(url))
        return metadata.model_dump()

    @app.get("/video/transcript/{job_id}", response_model=TranscriptResponse)
    async def video_transcript(job_id: str, services: Services = Depends(get_services)):
        transcript, truncated = await services.query.full_transcript(job_id)
        return TranscriptResponse(job_id=job_id, transcript=transcript, truncated=truncated)

    @app.post("/video/analysis", response_model=ChatResponse)
    async def video_analysis(request: AnalysisRequest, services: Services = Depends(get_services)):
        result = await services.query.analyze(
            request.job_id, request.analysis_type, request.model_id
        )
        return ChatResponse(answer=result.answer, mode=result.mode, cached=result.cached)

    @app.post("/chat")
    async def chat(request: ChatRequest, services: Services = Depends(get_services)):
        """Answer a question about a video.

        Returns JSON, or a text/plain stream when `stream` is set and the
        answer is not already cached.
        """
        logger.info(
            "chat_request_started",
            job_id=request.job_id,
            video_id=request.video_id,
            question_length=len(request.question),
            stream=request.stream,
        )

        if request.stream:
            prepared = await services.query.prepare(
                request.question,
                request.model_id,
                job_id=request.job_id,
                video_id=request.video_id,
            )
            if prepared.cached:
                return ChatResponse(
                    answer=prepared.cached_answer, mode=AnswerMode.CACHE, cached=True
                )
            return StreamingResponse(
                stream_answer(services, prepared),
                media_type="text/plain",
                headers={"X-Answer-Mode": prepared.mode.value},
            )

        result = await services.query.answer(
            request.question,
            request.model_id,
            job_id=request.job_id,
            video_id=request.video_id,
        )
        logger.info(
            "chat_request_completed",
            job_id=request.job_id,
            mode=result.mode.value,
            cached=result.cached,
        )
        return ChatResponse(answer=result.answer, mode=result.mode, cached=result.cached)

    return app


app = create_app()
