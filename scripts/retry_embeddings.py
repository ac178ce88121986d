"""Script to embed transcript chunks that were stored without an embedding.

Chunks whose embedding call failed during ingestion are skipped by the
ranker. Run this with a job id to fill them in.

Usage:
    python scripts/retry_embeddings.py JOB_ID
"""

import asyncio
import sys

from dotenv import load_dotenv

from src.rag_pipeline.config import get_config
from src.rag_pipeline.errors import JobNotFoundError
from src.utils.clients import build_services

load_dotenv()


async def retry_embeddings(job_id: str) -> int:
    """Re-embed a job's missing chunks and return how many succeeded."""
    services = build_services(get_config())

    print(f"Retrying missing embeddings for job {job_id}...")
    embedded = await services.ingestion.retry_missing_embeddings(job_id)
    print(f"Embedded {embedded} chunks")
    return embedded


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)

    try:
        asyncio.run(retry_embeddings(sys.argv[1]))
    except JobNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)
