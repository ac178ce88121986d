"""Chunking service for size-bounded transcript segmentation."""

from collections.abc import Sequence

from src.utils.logging import get_logger

from .config import YouTubeRAGConfig
from .errors import ChunkIntegrityError
from .schemas import Chunk, TranscriptSegment

logger = get_logger(__name__)


class ChunkingService:
    """Service for chunking transcripts by character budget.

    Consecutive segments are folded greedily into a running chunk until the
    next one would push the text over `max_chunk_chars`. Segments are never
    split, so a single oversized segment becomes a chunk of its own and the
    limit is approximate rather than a hard cap.
    """

    def __init__(self, config: YouTubeRAGConfig):
        """Initialize chunking service with configuration.

        Args:
            config: Configuration object with the chunk size limit.
        """
        self.config = config
        self.max_chunk_chars = config.max_chunk_chars
        logger.info(
            "chunking_service_initialized",
            max_chunk_chars=self.max_chunk_chars,
        )

    def chunk_transcript(self, segments: Sequence[TranscriptSegment]) -> list[Chunk]:
        """Chunk an ordered transcript while preserving timing.

        Args:
            segments: Transcript segments in playback order.

        Returns:
            Ordered chunks. Empty when the transcript has no text, which the
            caller must treat as "transcript not found".
        """
        logger.info("chunking_started", segments=len(segments))

        chunks: list[Chunk] = []
        current: list[TranscriptSegment] = []
        current_length = 0

        for segment in segments:
            text = segment.text.strip()
            if not text:
                continue

            # +1 for the joining space
            added_length = len(text) + (1 if current else 0)
            if current and current_length + added_length > self.max_chunk_chars:
                chunks.append(
                    self._create_chunk(current, len(chunks), next_start=segment.start)
                )
                current = []
                current_length = 0
                added_length = len(text)

            current.append(segment)
            current_length += added_length

        if current:
            chunks.append(self._create_chunk(current, len(chunks)))

        logger.info("chunking_completed", chunks_created=len(chunks))
        return chunks

    def _create_chunk(
        self,
        segments: list[TranscriptSegment],
        chunk_index: int,
        next_start: float | None = None,
    ) -> Chunk:
        """Create a chunk from consecutive transcript segments.

        Args:
            segments: Non-empty list of segments to combine.
            chunk_index: Position of this chunk in the sequence.
            next_start: Start of the segment opening the following chunk.

        Returns:
            Chunk spanning the first segment's start to the last segment's end.
        """
        text_content = " ".join(s.text.strip() for s in segments)
        start = segments[0].start
        end = segments[-1].end
        # Auto-generated captions often overlap the next cue; clamp to it
        if next_start is not None and end > next_start:
            end = next_start
        end = max(end, start)

        return Chunk(
            chunk_index=chunk_index,
            text_content=text_content,
            start_timestamp=start,
            end_timestamp=end,
        )


def validate_chunk_order(chunks: Sequence[Chunk]) -> None:
    """Check that chunks sorted by start time do not overlap.

    Gaps between chunks are allowed and only logged.

    Raises:
        ChunkIntegrityError: If any chunk ends after the next one starts.
    """
    ordered = sorted(chunks, key=lambda c: c.start_timestamp)
    for previous, following in zip(ordered, ordered[1:]):
        if previous.end_timestamp > following.start_timestamp:
            logger.error(
                "chunk_overlap_detected",
                chunk_index=previous.chunk_index,
                end=previous.end_timestamp,
                next_start=following.start_timestamp,
            )
            raise ChunkIntegrityError(
                f"Chunk {previous.chunk_index} ends at {previous.end_timestamp}s "
                f"after chunk {following.chunk_index} starts at "
                f"{following.start_timestamp}s"
            )
        gap = following.start_timestamp - previous.end_timestamp
        if gap > 0:
            logger.debug(
                "chunk_gap_detected",
                chunk_index=previous.chunk_index,
                gap_seconds=round(gap, 3),
            )
