"""Model manager for the memory lifecycle engine."""

import logging
import os
from typing import Any, Optional

from .providers import ChatMessage, LLMConfig, LLMProvider, LLMResponse
from .providers.openrouter import DEFAULT_MODEL, OpenRouterProvider

logger = logging.getLogger(__name__)


class ModelManager(LLMProvider):
    """Provider facade used by every model-backed decision.

    This class provides:
    - Lazy construction of the OpenRouter provider from the environment
    - A single place to switch the model used for decisions
    - Call statistics, so degraded (rule-engine) operation is visible
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        api_key: Optional[str] = None,
        default_model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the model manager.

        Args:
            provider: Provider to wrap. If None, an OpenRouterProvider is created on
                     first use.
            api_key: OpenRouter API key. If None, reads from OPENROUTER_API_KEY.
            default_model: Model to use. If None, reads from MEMORY_LLM_MODEL.
            timeout: Request timeout in seconds. If None, reads from MEMORY_LLM_TIMEOUT
                    or defaults to 60.
        """
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        self.default_model: str = default_model or os.getenv("MEMORY_LLM_MODEL") or DEFAULT_MODEL
        self.timeout = timeout or float(os.getenv("MEMORY_LLM_TIMEOUT", "60"))
        self._provider = provider
        self._active_model: str = self.default_model

        self.total_calls = 0
        self.successful_calls = 0
        self.failed_calls = 0

        logger.info(f"ModelManager initialized with model: {self.default_model}")

    @property
    def name(self) -> str:
        return f"managed:{self.provider.name}"

    @property
    def provider(self) -> LLMProvider:
        """Get the wrapped provider, creating the OpenRouter one if needed."""
        if self._provider is None:
            self._provider = OpenRouterProvider(
                api_key=self.api_key,
                default_model=self.default_model,
                timeout=self.timeout,
            )
        return self._provider

    @property
    def active_model(self) -> str:
        return self._active_model

    def set_model(self, model_id: str) -> None:
        logger.info(f"Setting active model to: {model_id}")
        self._active_model = model_id

    def is_available(self) -> bool:
        return self.provider.is_available()

    async def chat_complete(
        self,
        messages: list[ChatMessage],
        config: Optional[LLMConfig] = None,
    ) -> LLMResponse:
        """Forward a chat completion to the provider, counting the outcome.

        Raises:
            LLMProviderError: If the provider call fails.
        """
        config = config or LLMConfig()
        if config.model is None:
            config = LLMConfig(
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                model=self._active_model,
            )
        self.total_calls += 1

        try:
            response = await self.provider.chat_complete(messages, config)
        except Exception as e:
            self.failed_calls += 1
            logger.error(f"Chat completion failed: {e}")
            raise

        self.successful_calls += 1
        return response

    def get_stats(self) -> dict[str, Any]:
        success_rate = (
            (self.successful_calls / self.total_calls * 100) if self.total_calls > 0 else 0
        )
        return {
            "provider": self.provider.name,
            "active_model": self._active_model,
            "default_model": self.default_model,
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "success_rate": f"{success_rate:.1f}%",
        }
