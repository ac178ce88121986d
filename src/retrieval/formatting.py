"""Display helpers for timestamps, video links and transcripts."""

from collections.abc import Sequence

from src.rag_pipeline.schemas import GroundingContext, TranscriptChunk


def format_video_url(video_id: str, timestamp_seconds: float | None = None) -> str:
    """Format a YouTube video URL with optional timestamp.

    Args:
        video_id: YouTube video ID (e.g., "dQw4w9WgXcQ").
        timestamp_seconds: Optional start time; adds a &t=XXs parameter.

    Examples:
        >>> format_video_url("dQw4w9WgXcQ")
        'https://www.youtube.com/watch?v=dQw4w9WgXcQ'
        >>> format_video_url("dQw4w9WgXcQ", 120.7)
        'https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=120s'
    """
    base_url = f"https://www.youtube.com/watch?v={video_id}"

    if timestamp_seconds is not None and timestamp_seconds > 0:
        return f"{base_url}&t={int(timestamp_seconds)}s"

    return base_url


def format_timestamp_display(seconds: float) -> str:
    """Format seconds as [MM:SS] or [HH:MM:SS].

    Examples:
        >>> format_timestamp_display(125)
        '[02:05]'
        >>> format_timestamp_display(3725)
        '[01:02:05]'
    """
    total_seconds = int(seconds)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    secs = total_seconds % 60

    if hours > 0:
        return f"[{hours:02d}:{minutes:02d}:{secs:02d}]"
    return f"[{minutes:02d}:{secs:02d}]"


def format_seconds_range(start: float, end: float) -> str:
    """Format a span the way answers cite it, e.g. `[12s - 47s]`."""
    return f"[{int(start)}s - {int(end)}s]"


def chunk_to_context(chunk: TranscriptChunk) -> GroundingContext:
    return GroundingContext(
        text=chunk.text_content,
        start_seconds=chunk.start_timestamp,
        end_seconds=chunk.end_timestamp,
    )


def format_full_transcript(
    chunks: Sequence[TranscriptChunk], max_chars: int = 20000
) -> tuple[str, bool]:
    """Join chunk texts in playback order, each prefixed by its start time.

    Returns:
        The transcript text and whether it was truncated to `max_chars`.
    """
    full_text = "\n\n".join(
        f"{format_timestamp_display(chunk.start_timestamp)} {chunk.text_content}"
        for chunk in sorted(chunks, key=lambda c: c.start_timestamp)
    )
    if len(full_text) > max_chars:
        return full_text[:max_chars], True
    return full_text, False
