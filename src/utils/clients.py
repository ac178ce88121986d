"""Client and service initialization utilities.

Builds the external clients (OpenAI-compatible embeddings, Supabase,
Supadata) from configuration and wires them into the ingestion and query
pipelines. The API lifespan, the CLI and the maintenance scripts all share
this wiring.
"""

from dataclasses import dataclass

from openai import AsyncOpenAI
from supabase import Client, create_client
from supadata import Supadata

from src.rag_pipeline.background import BackgroundJobRunner
from src.rag_pipeline.chunking_service import ChunkingService
from src.rag_pipeline.config import YouTubeRAGConfig
from src.rag_pipeline.embedding_service import EmbeddingService
from src.rag_pipeline.pipeline import VideoIngestionPipeline
from src.rag_pipeline.storage_service import TranscriptStore, get_store
from src.rag_pipeline.youtube_service import YouTubeService
from src.retrieval.llm_service import LLMRegistry
from src.retrieval.query_pipeline import QueryPipeline
from src.retrieval.ranker import RelevanceRanker
from src.retrieval.response_cache import ResponseCache


def get_embedding_client(config: YouTubeRAGConfig) -> AsyncOpenAI:
    """Create the OpenAI-compatible embedding client.

    Raises:
        ValueError: If no API key is set for a provider that needs one.
    """
    if config.embedding_provider == "ollama":
        # Ollama doesn't require a real API key
        return AsyncOpenAI(base_url=config.embedding_base_url, api_key="ollama")

    if not config.embedding_api_key:
        raise ValueError("EMBEDDING_API_KEY environment variable is required")

    return AsyncOpenAI(base_url=config.embedding_base_url, api_key=config.embedding_api_key)


def get_supabase_client(config: YouTubeRAGConfig) -> Client | None:
    """Create the Supabase client, or None for the in-memory backend.

    Raises:
        ValueError: If the Supabase backend is selected without credentials.
    """
    if config.storage_backend != "supabase":
        return None

    if not config.supabase_url or not config.supabase_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables are required"
        )

    return create_client(config.supabase_url, config.supabase_key)


def get_supadata_client(config: YouTubeRAGConfig) -> Supadata:
    """Create the Supadata client used for transcripts and metadata.

    Raises:
        ValueError: If SUPADATA_API_KEY is missing.
    """
    if not config.supadata_api_key:
        raise ValueError("SUPADATA_API_KEY environment variable is required")

    return Supadata(api_key=config.supadata_api_key)


@dataclass
class Services:
    """Fully wired service graph for one process."""

    config: YouTubeRAGConfig
    store: TranscriptStore
    youtube: YouTubeService
    embeddings: EmbeddingService
    ingestion: VideoIngestionPipeline
    query: QueryPipeline
    runner: BackgroundJobRunner


def build_services(
    config: YouTubeRAGConfig,
    store: TranscriptStore | None = None,
    youtube: YouTubeService | None = None,
    embeddings: EmbeddingService | None = None,
    llm_registry: LLMRegistry | None = None,
) -> Services:
    """Wire clients, store and pipelines together.

    Any component passed in is used as-is; the rest are built from `config`.

    Examples:
        >>> services = build_services(get_config())
        >>> job = await services.ingestion.submit(url, owner_id="user-1")
    """
    store = store or get_store(config, client=get_supabase_client(config))
    youtube = youtube or YouTubeService(config, client=get_supadata_client(config))
    embeddings = embeddings or EmbeddingService(config, client=get_embedding_client(config))
    llm_registry = llm_registry or LLMRegistry(config)

    ingestion = VideoIngestionPipeline(
        store,
        youtube,
        embeddings,
        chunking_service=ChunkingService(config),
        config=config,
    )
    query = QueryPipeline(
        store,
        RelevanceRanker(embeddings),
        ResponseCache(store),
        llm_registry,
        config,
    )
    return Services(
        config=config,
        store=store,
        youtube=youtube,
        embeddings=embeddings,
        ingestion=ingestion,
        query=query,
        runner=BackgroundJobRunner(),
    )
