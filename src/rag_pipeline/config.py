"""Configuration module for the video transcript RAG service."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()


class YouTubeRAGConfig(BaseModel):
    """Configuration for ingestion, retrieval and answer generation.

    Covers the transcript source, chunking policy, embedding provider, LLM
    provider, persistence backend and retrieval limits. All settings can be
    overridden via environment variables.
    """

    # Supadata API settings (transcripts and video metadata)
    supadata_api_key: str = Field(
        default_factory=lambda: os.getenv("SUPADATA_API_KEY", "")
    )

    # Chunking settings (character-based)
    max_chunk_chars: int = Field(
        default_factory=lambda: int(os.getenv("MAX_CHUNK_CHARS", "1000"))
    )

    # Embedding settings
    embedding_provider: str = Field(
        default_factory=lambda: os.getenv("EMBEDDING_PROVIDER", "openai")
    )
    embedding_base_url: str = Field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_BASE_URL", "https://api.openai.com/v1"
        )
    )
    embedding_api_key: str = Field(
        default_factory=lambda: os.getenv("EMBEDDING_API_KEY", "")
    )
    embedding_model: str = Field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_MODEL_CHOICE", "text-embedding-3-small"
        )
    )
    embedding_batch_size: int = Field(
        default_factory=lambda: int(os.getenv("EMBEDDING_BATCH_SIZE", "5"))
    )
    embedding_max_retries: int = Field(
        default_factory=lambda: int(os.getenv("EMBEDDING_MAX_RETRIES", "2"))
    )
    embedding_retry_backoff_seconds: float = Field(
        default_factory=lambda: float(
            os.getenv("EMBEDDING_RETRY_BACKOFF_SECONDS", "0.5")
        )
    )

    # LLM settings (OpenAI-compatible endpoint unless a provider prefix is used)
    llm_base_url: str = Field(
        default_factory=lambda: os.getenv("LLM_BASE_URL", "https://api.openai.com/v1")
    )
    llm_api_key: str = Field(default_factory=lambda: os.getenv("LLM_API_KEY", "ollama"))
    default_model: str = Field(
        default_factory=lambda: os.getenv("LLM_CHOICE", "gpt-4o-mini")
    )

    # Retrieval settings
    top_k: int = Field(default_factory=lambda: int(os.getenv("RAG_TOP_K", "3")))
    max_transcript_chars: int = Field(
        default_factory=lambda: int(os.getenv("MAX_TRANSCRIPT_CHARS", "20000"))
    )

    # Storage settings
    storage_backend: str = Field(
        default_factory=lambda: os.getenv("STORAGE_BACKEND", "supabase")
    )
    supabase_url: str = Field(default_factory=lambda: os.getenv("SUPABASE_URL", ""))
    supabase_key: str = Field(
        default_factory=lambda: os.getenv("SUPABASE_SERVICE_KEY", "")
    )

    # Background ingestion
    shutdown_grace_seconds: float = Field(
        default_factory=lambda: float(os.getenv("SHUTDOWN_GRACE_SECONDS", "30"))
    )


def get_config() -> YouTubeRAGConfig:
    """Get validated configuration instance.

    Returns:
        YouTubeRAGConfig: Validated configuration object with all settings.

    Raises:
        ValidationError: If environment variables hold values of the wrong type.
    """
    return YouTubeRAGConfig()
