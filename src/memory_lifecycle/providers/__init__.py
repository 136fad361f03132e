"""Model and embedding providers for the memory lifecycle engine."""

from .base import (
    AuthenticationError,
    ChatMessage,
    EmbeddingError,
    EmbeddingProvider,
    LLMConfig,
    LLMProvider,
    LLMProviderError,
    LLMResponse,
    ModelNotFoundError,
    RateLimitError,
)
from .embeddings import HashingEmbeddingProvider, OpenAIEmbeddingProvider
from .openrouter import OpenRouterProvider

__all__ = [
    "AuthenticationError",
    "ChatMessage",
    "EmbeddingError",
    "EmbeddingProvider",
    "HashingEmbeddingProvider",
    "LLMConfig",
    "LLMProvider",
    "LLMProviderError",
    "LLMResponse",
    "ModelNotFoundError",
    "OpenAIEmbeddingProvider",
    "OpenRouterProvider",
    "RateLimitError",
]
