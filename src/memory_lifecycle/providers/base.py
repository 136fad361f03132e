"""Base classes for language-model and embedding providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ..exceptions import MemoryLifecycleError


@dataclass
class ChatMessage:
    """A single chat message sent to a language model."""

    role: str  # "system", "user", "assistant"
    content: str

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role="user", content=content)

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class LLMConfig:
    """Per-call generation settings."""

    max_tokens: int = 256
    temperature: float = 0.1
    model: Optional[str] = None


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for chat-completion providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name."""
        ...

    @abstractmethod
    async def chat_complete(
        self,
        messages: list[ChatMessage],
        config: Optional[LLMConfig] = None,
    ) -> LLMResponse:
        """Complete a chat conversation.

        Args:
            messages: Conversation so far, system prompt first.
            config: Token limit, temperature and optional model override.

        Returns:
            LLMResponse containing the generated content and metadata.

        Raises:
            LLMProviderError: If the completion fails.
        """
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is configured and can be used."""
        ...


class EmbeddingProvider(ABC):
    """Abstract base class for text embedding providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name."""
        ...

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            EmbeddingError: If the embedding call fails.
        """
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts, preserving input order."""
        return [await self.embed(text) for text in texts]


class LLMProviderError(MemoryLifecycleError):
    """Base exception for LLM provider errors."""

    def __init__(
        self,
        message: str,
        provider: str = "",
        model: str = "",
        is_retryable: bool = False,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.is_retryable = is_retryable


class RateLimitError(LLMProviderError):
    """Raised when rate limited by the provider."""

    def __init__(self, message: str, provider: str = "", model: str = ""):
        super().__init__(message, provider, model, is_retryable=True)


class AuthenticationError(LLMProviderError):
    """Raised when authentication fails."""

    def __init__(self, message: str, provider: str = "", model: str = ""):
        super().__init__(message, provider, model, is_retryable=False)


class ModelNotFoundError(LLMProviderError):
    """Raised when the requested model is not found."""

    def __init__(self, message: str, provider: str = "", model: str = ""):
        super().__init__(message, provider, model, is_retryable=False)


class EmbeddingError(LLMProviderError):
    """Raised when an embedding request fails."""


def classify_provider_error(error_msg: str, provider: str, model: str) -> LLMProviderError:
    """Map SDK error text onto the provider error hierarchy."""
    lowered = error_msg.lower()
    if "rate" in lowered or "429" in error_msg:
        return RateLimitError(error_msg, provider=provider, model=model)
    if "auth" in lowered or "401" in error_msg or "403" in error_msg:
        return AuthenticationError(error_msg, provider=provider, model=model)
    if "not found" in lowered or "404" in error_msg:
        return ModelNotFoundError(error_msg, provider=provider, model=model)
    return LLMProviderError(
        error_msg,
        provider=provider,
        model=model,
        is_retryable="timeout" in lowered,
    )
