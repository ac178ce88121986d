"""Command-line interface for ingesting a video and asking it questions."""

import argparse
import asyncio
import sys

from src.rag_pipeline.errors import ChatPyeError
from src.utils.clients import build_services
from src.utils.logging import get_logger

from .config import get_config

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ChatPye - Ingest a YouTube video and chat with it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ingest a video (using .env config)
  python -m src.rag_pipeline.cli https://youtu.be/dQw4w9WgXcQ --owner-id user-1

  # Ingest, then ask a question
  python -m src.rag_pipeline.cli dQw4w9WgXcQ --owner-id user-1 --question "What is it about?"

  # Stream the answer from a video-capable model
  python -m src.rag_pipeline.cli dQw4w9WgXcQ --owner-id user-1 \\
      --question "Summarize it" --model google-gla:gemini-1.5-flash --stream
        """,
    )

    parser.add_argument("url", help="YouTube URL or 11-character video id")
    parser.add_argument("--owner-id", required=True, help="Owner of the job")
    parser.add_argument("--question", type=str, help="Question to ask after ingestion")
    parser.add_argument("--model", type=str, help="Model id (defaults to LLM_CHOICE)")
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Stream the answer as it is generated",
    )
    return parser


async def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Ingests the video synchronously, prints the job summary and optionally
    answers one question.

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)
    config = get_config()

    logger.info("cli_started", url=args.url, owner_id=args.owner_id, model=args.model)

    print("\n" + "=" * 60)
    print("ChatPye Video Ingestion")
    print("=" * 60)
    print(f"Source: {args.url}")
    print(f"Embedding provider: {config.embedding_provider}")
    print(f"Embedding model: {config.embedding_model}")
    print(f"Max chunk size: {config.max_chunk_chars} characters")
    print(f"Storage backend: {config.storage_backend}")
    print("=" * 60 + "\n")

    try:
        services = build_services(config)
        job = await services.ingestion.submit(args.url, args.owner_id)
        result = await services.ingestion.process_job(job.job_id)
    except (ChatPyeError, ValueError) as e:
        logger.exception("pipeline_execution_failed", error_type=type(e).__name__)
        print(f"\n❌ Ingestion failed: {e}")
        return 1

    print("=" * 60)
    print("Ingestion Results")
    print("=" * 60)
    print(f"Job ID: {result.job_id}")
    print(f"Status: {result.status.value}")
    print(f"Transcript: {result.transcript_status.value}")
    print(f"Chunks created: {result.chunks_created}")
    print(f"Chunks embedded: {result.chunks_embedded}")
    if result.reused_from_job_id:
        print(f"Reused chunks from job: {result.reused_from_job_id}")
    if result.errors:
        print("\nErrors encountered:")
        for error in result.errors:
            print(f"  ❌ {error}")
    print("=" * 60 + "\n")

    logger.info(
        "cli_ingestion_completed",
        job_id=result.job_id,
        status=result.status.value,
        transcript_status=result.transcript_status.value,
        chunks_created=result.chunks_created,
    )

    if not args.question:
        return 0

    try:
        if args.stream:
            async for fragment in services.query.answer_stream(
                args.question, args.model, job_id=result.job_id
            ):
                print(fragment, end="", flush=True)
            print()
        else:
            answer = await services.query.answer(args.question, args.model, job_id=result.job_id)
            print(f"[{answer.mode.value}{', cached' if answer.cached else ''}]\n")
            print(answer.answer)
    except ChatPyeError as e:
        logger.exception("cli_question_failed", error_type=type(e).__name__)
        print(f"\n❌ Question failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
