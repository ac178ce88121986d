"""LLM providers for answer generation.

Each model id maps to one `AgentLLMProvider`, a thin wrapper around a
Pydantic AI agent. Providers are built lazily by `LLMRegistry` and injected
into the query pipeline, so several models and credentials can coexist.
"""

from collections.abc import AsyncIterator
from typing import Any, Protocol

from pydantic_ai import Agent
from pydantic_ai.messages import VideoUrl
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIModel
from pydantic_ai.providers.openai import OpenAIProvider

from src.rag_pipeline.config import YouTubeRAGConfig
from src.rag_pipeline.errors import DirectModeUnavailableError, GenerationError
from src.utils.logging import get_logger

from .prompts import SYSTEM_PROMPT

logger = get_logger(__name__)

# Model ids routed to providers that can watch a YouTube URL natively
VIDEO_CAPABLE_PREFIXES = ("google-gla:", "google-vertex:")


class LLMProvider(Protocol):
    """Text generation, optionally with a video the model can watch."""

    model_id: str
    supports_video: bool

    async def generate(self, prompt: str, video_url: str | None = None) -> str: ...

    def generate_stream(
        self, prompt: str, video_url: str | None = None
    ) -> AsyncIterator[str]: ...


class AgentLLMProvider:
    """Generates answers through a Pydantic AI agent."""

    def __init__(
        self,
        model_id: str,
        model: Model | str,
        supports_video: bool = False,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.model_id = model_id
        self.supports_video = supports_video
        self.agent = Agent(model, system_prompt=system_prompt, defer_model_check=True)

    def _user_prompt(self, prompt: str, video_url: str | None) -> Any:
        if video_url is None:
            return prompt
        if not self.supports_video:
            raise DirectModeUnavailableError(
                f"Model {self.model_id} cannot answer from the video directly"
            )
        return [prompt, VideoUrl(url=video_url)]

    async def generate(self, prompt: str, video_url: str | None = None) -> str:
        """Run the model to completion and return its text output.

        Raises:
            DirectModeUnavailableError: If a video is given to a text-only model.
            GenerationError: If the provider call fails.
        """
        user_prompt = self._user_prompt(prompt, video_url)
        logger.info(
            "generation_started",
            model_id=self.model_id,
            prompt_length=len(prompt),
            direct_video=video_url is not None,
        )
        try:
            result = await self.agent.run(user_prompt)
        except Exception as e:
            logger.exception(
                "generation_failed",
                model_id=self.model_id,
                error_type=type(e).__name__,
            )
            raise GenerationError(f"Model {self.model_id} failed: {e}") from e

        text = str(result.output)
        logger.info("generation_completed", model_id=self.model_id, response_length=len(text))
        return text

    async def generate_stream(
        self, prompt: str, video_url: str | None = None
    ) -> AsyncIterator[str]:
        """Yield text fragments as the model produces them.

        Closing the generator early exits the agent's stream context, which
        stops the underlying request.

        Raises:
            DirectModeUnavailableError: If a video is given to a text-only model.
            GenerationError: If the provider call fails mid-stream.
        """
        user_prompt = self._user_prompt(prompt, video_url)
        logger.info(
            "generation_stream_started",
            model_id=self.model_id,
            prompt_length=len(prompt),
            direct_video=video_url is not None,
        )
        try:
            async with self.agent.run_stream(user_prompt) as result:
                async for delta in result.stream_text(delta=True):
                    yield delta
        except Exception as e:
            logger.exception(
                "generation_stream_failed",
                model_id=self.model_id,
                error_type=type(e).__name__,
            )
            raise GenerationError(f"Model {self.model_id} failed: {e}") from e


class LLMRegistry:
    """Builds and caches one provider per model id."""

    def __init__(self, config: YouTubeRAGConfig):
        self.config = config
        self._providers: dict[str, LLMProvider] = {}

    @property
    def default_model(self) -> str:
        return self.config.default_model

    def register(self, provider: LLMProvider) -> None:
        self._providers[provider.model_id] = provider

    def get(self, model_id: str | None = None) -> LLMProvider:
        model_id = model_id or self.default_model
        provider = self._providers.get(model_id)
        if provider is None:
            provider = self._build(model_id)
            self._providers[model_id] = provider
        return provider

    def _build(self, model_id: str) -> LLMProvider:
        if model_id.startswith(VIDEO_CAPABLE_PREFIXES):
            # Pydantic AI resolves "provider:model" strings and reads its own credentials
            logger.info("llm_provider_built", model_id=model_id, supports_video=True)
            return AgentLLMProvider(model_id, model_id, supports_video=True)

        model = OpenAIModel(
            model_id,
            provider=OpenAIProvider(
                base_url=self.config.llm_base_url,
                api_key=self.config.llm_api_key,
            ),
        )
        logger.info("llm_provider_built", model_id=model_id, supports_video=False)
        return AgentLLMProvider(model_id, model)
