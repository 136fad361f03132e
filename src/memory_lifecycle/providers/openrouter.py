"""OpenRouter chat-completion provider."""

import logging
import os
from typing import Optional

from openai import AsyncOpenAI

from .base import (
    AuthenticationError,
    ChatMessage,
    LLMConfig,
    LLMProvider,
    LLMResponse,
    classify_provider_error,
)

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "google/gemini-2.5-flash"


class OpenRouterProvider(LLMProvider):
    """LLM provider using the OpenRouter API through the OpenAI SDK."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = DEFAULT_MODEL,
        timeout: float = 60.0,
        app_name: str = "memory-lifecycle",
    ):
        """Initialize the OpenRouter provider.

        Args:
            api_key: OpenRouter API key. If None, reads from OPENROUTER_API_KEY env var.
            default_model: Model used when a call does not override it.
            timeout: Request timeout in seconds.
            app_name: Application name sent in the OpenRouter headers.
        """
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        self.default_model = default_model
        self.timeout = timeout
        self.app_name = app_name
        self._client: Optional[AsyncOpenAI] = None

    @property
    def name(self) -> str:
        return "openrouter"

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create the async OpenAI client configured for OpenRouter."""
        if self._client is None:
            if not self.api_key:
                raise AuthenticationError(
                    "OpenRouter API key not configured. "
                    "Set OPENROUTER_API_KEY environment variable.",
                    provider=self.name,
                )
            self._client = AsyncOpenAI(
                base_url=OPENROUTER_BASE_URL,
                api_key=self.api_key,
                timeout=self.timeout,
                default_headers={"X-Title": self.app_name},
            )
        return self._client

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def chat_complete(
        self,
        messages: list[ChatMessage],
        config: Optional[LLMConfig] = None,
    ) -> LLMResponse:
        config = config or LLMConfig()
        model_id = config.model or self.default_model
        logger.debug(f"Chat completion with OpenRouter model: {model_id}")

        try:
            response = await self.client.chat.completions.create(
                model=model_id,
                messages=[message.to_dict() for message in messages],
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
        except AuthenticationError:
            raise
        except Exception as e:
            error_msg = str(e)
            logger.error(f"OpenRouter error: {error_msg}")
            raise classify_provider_error(error_msg, self.name, model_id) from e

        content = response.choices[0].message.content or ""
        usage = {}
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return LLMResponse(
            content=content,
            model=model_id,
            usage=usage,
            metadata={"id": response.id, "created": response.created},
        )
