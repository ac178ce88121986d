"""Prompt templates for transcript-grounded and direct-to-video answering."""

from collections.abc import Sequence

from src.rag_pipeline.schemas import GroundingContext

from .formatting import format_seconds_range

# ==============================================================================
# System Prompt
# ==============================================================================

SYSTEM_PROMPT = """You are ChatPye, an AI-powered video learning companion. Your goal is to give intelligent, insightful and helpful answers about a single YouTube video.

## Answer Quality
- Be accurate and stay with what the video actually says.
- Be comprehensive yet concise, in a conversational, engaging tone suited to learning.
- Use Markdown (bullet points, bold, short paragraphs) to keep answers scannable.

## Timestamps
Cite the moments your answer relies on as [startSeconds s - endSeconds s], or [seconds s] for a single point, woven naturally into the text. Example: "The speaker introduces the key idea at [123s - 128s]."
"""

# ==============================================================================
# Question Prompts
# ==============================================================================

RAG_PROMPT_TEMPLATE = """Answer the QUESTION using only the TRANSCRIPT SEGMENTS below.

If the segments do not contain the information needed, say clearly that it is not covered in the provided part of the transcript. Do not answer from outside knowledge.

TRANSCRIPT SEGMENTS:
{segments}

QUESTION:
{question}

Answer (formatted in Markdown):"""

DIRECT_PROMPT_TEMPLATE = """No transcript is available for this video, so watch it directly: {video_url}

Answer the QUESTION based on the video's content. Cite approximate timestamps for the moments you rely on. If the video does not cover the question, say so.

QUESTION:
{question}

Answer (formatted in Markdown):"""

# ==============================================================================
# Proactive Analyses
# ==============================================================================

ANALYSIS_INSTRUCTIONS = {
    "summary_topics_takeaways": (
        "Produce three Markdown sections: **Summary** (one paragraph), "
        "**Key Topics** (bullets, each with the timestamp where it starts) and "
        "**Key Takeaways** (3-5 actionable bullets)."
    ),
    "key_moments": (
        "List the 5-10 most important moments of the video in playback order. "
        "For each give the timestamp and a one-sentence description."
    ),
}

ANALYSIS_TRANSCRIPT_TEMPLATE = """{instructions}

Base the analysis only on this TRANSCRIPT (each line starts with its time range):
{transcript}"""

ANALYSIS_DIRECT_TEMPLATE = """{instructions}

No transcript is available, so watch the video directly: {video_url}
Cite approximate timestamps."""


def format_segments(contexts: Sequence[GroundingContext]) -> str:
    return "\n\n".join(
        f"{format_seconds_range(c.start_seconds, c.end_seconds)} {c.text}" for c in contexts
    )


def build_rag_prompt(question: str, contexts: Sequence[GroundingContext]) -> str:
    return RAG_PROMPT_TEMPLATE.format(segments=format_segments(contexts), question=question)


def build_direct_prompt(question: str, video_url: str) -> str:
    return DIRECT_PROMPT_TEMPLATE.format(video_url=video_url, question=question)


def build_analysis_prompt(
    analysis_type: str,
    contexts: Sequence[GroundingContext] | None = None,
    video_url: str | None = None,
    max_chars: int = 20000,
) -> str:
    """Build the prompt for a proactive analysis.

    Uses the transcript when `contexts` is non-empty (truncated to
    `max_chars`), otherwise points the model at `video_url`.

    Raises:
        KeyError: If `analysis_type` is unknown.
    """
    instructions = ANALYSIS_INSTRUCTIONS[analysis_type]
    if contexts:
        transcript = format_segments(contexts)[:max_chars]
        return ANALYSIS_TRANSCRIPT_TEMPLATE.format(
            instructions=instructions, transcript=transcript
        )
    return ANALYSIS_DIRECT_TEMPLATE.format(instructions=instructions, video_url=video_url)
