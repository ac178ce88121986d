"""Unit tests for FastAPI application endpoints.

The app is built around a service graph with in-memory storage and fake
providers, so requests exercise the real pipelines end to end.
"""

import asyncio
from collections.abc import Iterator
from datetime import datetime

import pytest
from conftest import OTHER_VIDEO_ID, VIDEO_ID, FakeYouTubeService, make_chunk, make_job
from fastapi.testclient import TestClient

from src.api.main import create_app
from src.rag_pipeline.schemas import JobStatus, TranscriptSegment, TranscriptStatus
from src.utils.clients import Services

VIDEO_MODEL = "google-gla:gemini-1.5-flash"


def seed(services: Services, *jobs, chunks=()) -> None:
    async def _seed() -> None:
        for job in jobs:
            await services.store.insert_job(job)
        if chunks:
            await services.store.insert_chunks(list(chunks))

    asyncio.run(_seed())


@pytest.fixture
def client(services: Services) -> Iterator[TestClient]:
    with TestClient(create_app(services)) as test_client:
        yield test_client


@pytest.fixture
def ready_job(services: Services) -> str:
    seed(
        services,
        make_job("job-1"),
        chunks=[
            make_chunk("job-1", 0, "Intro to python variables", 0.0, 30.0),
            make_chunk("job-1", 1, "Cooking a quick dinner", 30.0, 65.0),
        ],
    )
    return "job-1"


@pytest.mark.unit
class TestHealthEndpoint:
    """Test /health endpoint."""

    def test_health_check_returns_healthy_status(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage_backend"] == "memory"
        timestamp = datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00"))
        assert isinstance(timestamp, datetime)


@pytest.mark.unit
class TestVideoEndpoints:
    """Test /video/* endpoints."""

    def test_process_video_runs_ingestion_in_background(
        self, client: TestClient, services: Services
    ) -> None:
        services.youtube = FakeYouTubeService(
            segments=[TranscriptSegment(text="Hello python", start=0.0, duration=3.0)]
        )
        services.ingestion.youtube_service = services.youtube

        response = client.post(
            "/video/process",
            json={"url": f"https://youtu.be/{VIDEO_ID}", "owner_id": "owner-1"},
        )

        assert response.status_code == 202
        job_id = response.json()["job_id"]
        assert response.json()["status"] == "pending"

        client.portal.call(services.runner.drain)

        status = client.get(f"/video/status/{job_id}").json()
        assert status["status"] == "completed"
        assert status["transcript_status"] == "found"
        assert status["video_id"] == VIDEO_ID
        assert status["title"] == f"Video {VIDEO_ID}"

    def test_process_video_without_transcript_completes(
        self, client: TestClient, services: Services
    ) -> None:
        response = client.post("/video/process", json={"url": VIDEO_ID, "owner_id": "owner-1"})
        client.portal.call(services.runner.drain)

        status = client.get(f"/video/status/{response.json()['job_id']}").json()
        assert status["status"] == "completed"
        assert status["transcript_status"] == "not_found"

    def test_process_video_rejects_bad_url(self, client: TestClient) -> None:
        response = client.post(
            "/video/process",
            json={"url": "https://example.com/video", "owner_id": "owner-1"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidVideoUrlError"

    def test_process_video_requires_fields(self, client: TestClient) -> None:
        response = client.post("/video/process", json={"url": VIDEO_ID})

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidRequestError"

    def test_status_unknown_job(self, client: TestClient) -> None:
        response = client.get("/video/status/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "JobNotFoundError"

    def test_resolve_job_by_url(self, client: TestClient, ready_job: str) -> None:
        response = client.get(
            "/video/resolve-job", params={"url": f"https://www.youtube.com/watch?v={VIDEO_ID}"}
        )

        assert response.status_code == 200
        assert response.json()["job_id"] == ready_job

    def test_resolve_job_not_found(self, client: TestClient) -> None:
        response = client.get("/video/resolve-job", params={"video_id": OTHER_VIDEO_ID})

        assert response.status_code == 404

    def test_resolve_job_requires_parameter(self, client: TestClient) -> None:
        assert client.get("/video/resolve-job").status_code == 400

    def test_video_info(self, client: TestClient) -> None:
        response = client.get("/video/info", params={"url": f"https://youtu.be/{VIDEO_ID}"})

        assert response.status_code == 200
        assert response.json()["video_id"] == VIDEO_ID
        assert response.json()["title"] == f"Video {VIDEO_ID}"

    def test_transcript(self, client: TestClient, ready_job: str) -> None:
        response = client.get(f"/video/transcript/{ready_job}")

        assert response.status_code == 200
        data = response.json()
        assert data["transcript"] == (
            "[00:00] Intro to python variables\n\n[00:30] Cooking a quick dinner"
        )
        assert data["truncated"] is False

    def test_analysis(self, client: TestClient, ready_job: str, llm) -> None:
        response = client.post(
            "/video/analysis", json={"job_id": ready_job, "analysis_type": "key_moments"}
        )

        assert response.status_code == 200
        assert response.json()["answer"] == llm.reply
        assert response.json()["mode"] == "rag"

    def test_analysis_unknown_type(self, client: TestClient, ready_job: str) -> None:
        response = client.post(
            "/video/analysis", json={"job_id": ready_job, "analysis_type": "haiku"}
        )

        assert response.status_code == 400


@pytest.mark.unit
class TestChatEndpoint:
    """Test /chat endpoint."""

    def test_chat_answers_then_serves_cache(self, client: TestClient, ready_job: str, llm) -> None:
        first = client.post("/chat", json={"job_id": ready_job, "question": "What is Python?"})
        second = client.post("/chat", json={"job_id": ready_job, "question": "what is python?"})

        assert first.status_code == 200
        assert first.json() == {"answer": llm.reply, "mode": "rag", "cached": False}
        assert second.json() == {"answer": llm.reply, "mode": "cache", "cached": True}
        assert len(llm.prompts) == 1

    def test_chat_streams_plain_text(self, client: TestClient, ready_job: str, llm) -> None:
        response = client.post(
            "/chat", json={"job_id": ready_job, "question": "What is Python?", "stream": True}
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["x-answer-mode"] == "rag"
        assert response.text == llm.reply

        cached = client.post(
            "/chat", json={"job_id": ready_job, "question": "What is Python?", "stream": True}
        )
        assert cached.json()["cached"] is True

    def test_chat_direct_mode_with_video_id(self, client: TestClient, video_llm) -> None:
        response = client.post(
            "/chat",
            json={"video_id": VIDEO_ID, "question": "What happens?", "model_id": VIDEO_MODEL},
        )

        assert response.status_code == 200
        assert response.json()["mode"] == "direct"

    def test_chat_direct_mode_unavailable(self, client: TestClient, services: Services) -> None:
        seed(services, make_job("job-2", transcript_status=TranscriptStatus.NOT_FOUND))

        response = client.post("/chat", json={"job_id": "job-2", "question": "Summarize"})

        assert response.status_code == 422
        assert response.json()["error"] == "DirectModeUnavailableError"
        assert "No transcript is available" in response.json()["detail"]

    def test_chat_job_not_ready(self, client: TestClient, services: Services) -> None:
        seed(
            services,
            make_job(
                "job-3",
                status=JobStatus.PROCESSING,
                transcript_status=TranscriptStatus.PROCESSING,
            ),
        )

        response = client.post("/chat", json={"job_id": "job-3", "question": "Summarize"})

        assert response.status_code == 409

    def test_chat_unknown_job(self, client: TestClient) -> None:
        response = client.post("/chat", json={"job_id": "missing", "question": "Summarize"})

        assert response.status_code == 404

    def test_chat_empty_question(self, client: TestClient, ready_job: str) -> None:
        response = client.post("/chat", json={"job_id": ready_job, "question": "  "})

        assert response.status_code == 400

    def test_chat_integrity_error(self, client: TestClient, services: Services) -> None:
        seed(
            services,
            make_job("job-4"),
            chunks=[make_chunk("job-4", 0, "python", 0.0, 5.0, video_id=OTHER_VIDEO_ID)],
        )

        response = client.post("/chat", json={"job_id": "job-4", "question": "python?"})

        assert response.status_code == 500
        assert response.json()["error"] == "VideoMismatchError"

    def test_chat_stream_reports_unexpected_failure(
        self, client: TestClient, services: Services, ready_job: str, registry
    ) -> None:
        class CrashingProvider:
            model_id = "crashing-model"
            supports_video = False

            async def generate(self, prompt: str, video_url: str | None = None) -> str:
                raise RuntimeError("socket closed")

            async def generate_stream(self, prompt: str, video_url: str | None = None):
                yield "Partial"
                raise RuntimeError("socket closed")

        registry.register(CrashingProvider())

        response = client.post(
            "/chat",
            json={
                "job_id": ready_job,
                "question": "What is Python?",
                "model_id": "crashing-model",
                "stream": True,
            },
        )

        assert response.status_code == 200
        assert response.text == "Partial\n\n[error] Answer generation failed unexpectedly"
        assert services.store.responses == {}
