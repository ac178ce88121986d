"""Unit tests for YouTube service and URL parsing."""

from unittest.mock import MagicMock

import pytest

from src.rag_pipeline.config import YouTubeRAGConfig
from src.rag_pipeline.errors import (
    InvalidVideoUrlError,
    TranscriptUnavailableError,
    VideoNotFoundError,
)
from src.rag_pipeline.youtube_service import (
    YouTubeService,
    canonical_video_url,
    extract_video_id,
    require_video_id,
)

VIDEO_ID = "dQw4w9WgXcQ"


@pytest.mark.unit
class TestExtractVideoId:
    """Test suite for video id extraction."""

    @pytest.mark.parametrize(
        "url",
        [
            f"https://www.youtube.com/watch?v={VIDEO_ID}",
            f"https://youtube.com/watch?feature=share&v={VIDEO_ID}&t=42s",
            f"https://youtu.be/{VIDEO_ID}?si=abc",
            f"https://www.youtube.com/embed/{VIDEO_ID}",
            f"https://www.youtube.com/v/{VIDEO_ID}",
            f"https://www.youtube.com/shorts/{VIDEO_ID}",
            f"https://www.youtube.com/live/{VIDEO_ID}",
            VIDEO_ID,
            f"  {VIDEO_ID}  ",
        ],
    )
    def test_supported_forms(self, url: str) -> None:
        assert extract_video_id(url) == VIDEO_ID

    @pytest.mark.parametrize(
        "url",
        ["", "https://example.com/watch?v=abc", "not a url", "https://youtu.be/short"],
    )
    def test_unsupported_forms(self, url: str) -> None:
        assert extract_video_id(url) is None

    def test_require_video_id_raises(self) -> None:
        with pytest.raises(InvalidVideoUrlError):
            require_video_id("https://vimeo.com/12345")

    def test_canonical_url(self) -> None:
        assert canonical_video_url(VIDEO_ID) == f"https://www.youtube.com/watch?v={VIDEO_ID}"


@pytest.mark.unit
class TestYouTubeService:
    """Test suite for YouTubeService class."""

    @pytest.fixture
    def mock_client(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def service(self, mock_client: MagicMock) -> YouTubeService:
        return YouTubeService(YouTubeRAGConfig(supadata_api_key="test_key"), client=mock_client)

    @pytest.mark.asyncio
    async def test_get_transcript_converts_milliseconds(
        self, service: YouTubeService, mock_client: MagicMock
    ) -> None:
        mock_client.youtube.transcript.return_value = MagicMock(
            content=[
                MagicMock(text="Hello", offset=0, duration=1500),
                MagicMock(text="world", offset=1500, duration=2500),
            ]
        )

        segments = await service.get_transcript(VIDEO_ID)

        mock_client.youtube.transcript.assert_called_once_with(video_id=VIDEO_ID, text=False)
        assert [(s.text, s.start, s.duration) for s in segments] == [
            ("Hello", 0.0, 1.5),
            ("world", 1.5, 2.5),
        ]

    @pytest.mark.asyncio
    async def test_get_transcript_unavailable(
        self, service: YouTubeService, mock_client: MagicMock
    ) -> None:
        mock_client.youtube.transcript.side_effect = Exception("transcript-unavailable")

        with pytest.raises(TranscriptUnavailableError):
            await service.get_transcript(VIDEO_ID)

    @pytest.mark.asyncio
    async def test_get_transcript_other_errors_propagate(
        self, service: YouTubeService, mock_client: MagicMock
    ) -> None:
        mock_client.youtube.transcript.side_effect = ConnectionError("connection reset")

        with pytest.raises(ConnectionError):
            await service.get_transcript(VIDEO_ID)

    @pytest.mark.asyncio
    async def test_get_metadata(self, service: YouTubeService, mock_client: MagicMock) -> None:
        mock_client.youtube.video.return_value = MagicMock(
            title="Never Gonna Give You Up",
            description="Official video",
            channel={"id": "UC1", "name": "Rick Astley"},
            duration=213,
        )

        metadata = await service.get_metadata(VIDEO_ID)

        mock_client.youtube.video.assert_called_once_with(id=VIDEO_ID)
        assert metadata.title == "Never Gonna Give You Up"
        assert metadata.channel == "Rick Astley"
        assert metadata.duration_seconds == 213
        assert metadata.url == canonical_video_url(VIDEO_ID)

    @pytest.mark.asyncio
    async def test_get_metadata_failure(
        self, service: YouTubeService, mock_client: MagicMock
    ) -> None:
        mock_client.youtube.video.side_effect = Exception("404 not found")

        with pytest.raises(VideoNotFoundError):
            await service.get_metadata(VIDEO_ID)
