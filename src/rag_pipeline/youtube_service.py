"""YouTube service for resolving videos and fetching transcripts via Supadata API."""

import asyncio
import re

from supadata import Supadata

from src.utils.logging import get_logger

from .config import YouTubeRAGConfig
from .errors import InvalidVideoUrlError, TranscriptUnavailableError, VideoNotFoundError
from .schemas import TranscriptSegment, VideoMetadata

logger = get_logger(__name__)

_VIDEO_ID = r"([A-Za-z0-9_-]{11})"
_URL_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?(?:.*&)?v=)" + _VIDEO_ID),
    re.compile(r"(?:youtu\.be/)" + _VIDEO_ID),
    re.compile(r"(?:youtube\.com/embed/)" + _VIDEO_ID),
    re.compile(r"(?:youtube\.com/v/)" + _VIDEO_ID),
    re.compile(r"(?:youtube\.com/shorts/)" + _VIDEO_ID),
    re.compile(r"(?:youtube\.com/live/)" + _VIDEO_ID),
]
_BARE_ID = re.compile(r"^" + _VIDEO_ID + r"$")

# Substrings Supadata uses when a video has no usable captions
_UNAVAILABLE_MARKERS = ("transcript-unavailable", "not-found", "206", "no transcript")


def extract_video_id(url: str) -> str | None:
    """Extract the 11-character video id from a YouTube URL or bare id.

    Examples:
        >>> extract_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42s")
        'dQw4w9WgXcQ'
        >>> extract_video_id("https://youtu.be/dQw4w9WgXcQ")
        'dQw4w9WgXcQ'
        >>> extract_video_id("https://example.com/video") is None
        True
    """
    candidate = (url or "").strip()
    if _BARE_ID.match(candidate):
        return candidate
    for pattern in _URL_PATTERNS:
        match = pattern.search(candidate)
        if match:
            return match.group(1)
    return None


def require_video_id(url: str) -> str:
    """Like `extract_video_id`, but raise on unparseable input."""
    video_id = extract_video_id(url)
    if video_id is None:
        raise InvalidVideoUrlError(f"Not a valid YouTube video URL: {url!r}")
    return video_id


def canonical_video_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


class YouTubeService:
    """Service for fetching YouTube data via Supadata API.

    The Supadata SDK is synchronous, so calls run in a worker thread to keep
    the event loop free for other requests.
    """

    def __init__(self, config: YouTubeRAGConfig, client: Supadata | None = None):
        """Initialize YouTube service with configuration.

        Args:
            config: Configuration object with Supadata API key.
            client: Optional preconfigured Supadata client.
        """
        self.config = config
        self.client = client or Supadata(api_key=config.supadata_api_key)
        logger.info(
            "youtube_service_initialized",
            api_key_present=bool(config.supadata_api_key),
        )

    async def get_metadata(self, video_id: str) -> VideoMetadata:
        """Fetch title and description for a video.

        Args:
            video_id: YouTube video ID.

        Returns:
            VideoMetadata for the video.

        Raises:
            VideoNotFoundError: If the video is missing, private or restricted.
        """
        logger.info("fetching_metadata", video_id=video_id)

        try:
            video = await asyncio.to_thread(self.client.youtube.video, id=video_id)
        except Exception as e:
            logger.exception(
                "metadata_fetch_failed",
                video_id=video_id,
                error_type=type(e).__name__,
            )
            raise VideoNotFoundError(
                f"Video {video_id} could not be found or is not accessible"
            ) from e

        channel = getattr(video, "channel", None)
        if isinstance(channel, dict):
            channel_name = channel.get("name", "")
        else:
            channel_name = getattr(channel, "name", "") or ""

        metadata = VideoMetadata(
            video_id=video_id,
            title=getattr(video, "title", "") or "",
            description=getattr(video, "description", "") or "",
            channel=channel_name,
            url=canonical_video_url(video_id),
            duration_seconds=getattr(video, "duration", None),
        )
        logger.info("metadata_fetched", video_id=video_id, title=metadata.title)
        return metadata

    async def get_transcript(self, video_id: str) -> list[TranscriptSegment]:
        """Fetch the timed transcript for a video.

        Args:
            video_id: YouTube video ID.

        Returns:
            Segments in playback order with timings in seconds.

        Raises:
            TranscriptUnavailableError: If the video has no captions.
            Exception: If the API request fails for another reason.
        """
        logger.info("fetching_transcript", video_id=video_id)

        try:
            response = await asyncio.to_thread(
                self.client.youtube.transcript,
                video_id=video_id,
                text=False,  # Segments with timestamps instead of plain text
            )
        except Exception as e:
            error_str = str(e).lower()
            if any(marker in error_str for marker in _UNAVAILABLE_MARKERS):
                logger.warning("transcript_unavailable", video_id=video_id)
                raise TranscriptUnavailableError(
                    f"No transcript available for video {video_id}"
                ) from e

            logger.exception(
                "transcript_fetch_error",
                video_id=video_id,
                error_type=type(e).__name__,
            )
            raise

        # Supadata reports offsets and durations in milliseconds
        segments = [
            TranscriptSegment(
                text=seg.text,
                start=float(seg.offset) / 1000,
                duration=float(seg.duration) / 1000,
            )
            for seg in response.content
        ]

        logger.info(
            "transcript_fetched",
            video_id=video_id,
            segments=len(segments),
            lang=getattr(response, "lang", None),
        )
        return segments
