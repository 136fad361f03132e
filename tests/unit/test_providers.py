"""Tests for the model and embedding providers."""

import math
import os
from unittest.mock import AsyncMock, Mock, patch

import pytest

from memory_lifecycle.providers.base import (
    AuthenticationError,
    ChatMessage,
    EmbeddingError,
    LLMConfig,
    LLMProviderError,
    LLMResponse,
    ModelNotFoundError,
    RateLimitError,
    classify_provider_error,
)
from memory_lifecycle.providers.embeddings import (
    HashingEmbeddingProvider,
    OpenAIEmbeddingProvider,
)
from memory_lifecycle.providers.openrouter import (
    DEFAULT_MODEL,
    OPENROUTER_BASE_URL,
    OpenRouterProvider,
)


class TestChatMessage:
    """Tests for ChatMessage."""

    def test_constructors_and_dict(self):
        """Test role constructors and wire conversion."""
        assert ChatMessage.system("be brief").to_dict() == {"role": "system", "content": "be brief"}
        assert ChatMessage.user("hi").role == "user"


class TestClassifyProviderError:
    """Tests for SDK error mapping."""

    def test_rate_limit(self):
        """Test rate limit errors are retryable."""
        error = classify_provider_error("Error code: 429 - Too many requests", "openrouter", "m")
        assert isinstance(error, RateLimitError)
        assert error.is_retryable is True
        assert error.provider == "openrouter"
        assert error.model == "m"

    def test_auth(self):
        """Test authentication errors."""
        error = classify_provider_error("Error code: 401 - invalid key", "openrouter", "m")
        assert isinstance(error, AuthenticationError)
        assert error.is_retryable is False

    def test_not_found(self):
        """Test model not found errors."""
        error = classify_provider_error("Error code: 404 - no such model", "openrouter", "m")
        assert isinstance(error, ModelNotFoundError)

    def test_generic_timeout_is_retryable(self):
        """Test timeouts map to a retryable generic error."""
        error = classify_provider_error("Request timeout", "openrouter", "m")
        assert type(error) is LLMProviderError
        assert error.is_retryable is True

        other = classify_provider_error("boom", "openrouter", "m")
        assert other.is_retryable is False


class TestOpenRouterProviderInit:
    """Tests for OpenRouterProvider initialization."""

    def test_init_with_api_key(self):
        """Test initialization with explicit API key."""
        provider = OpenRouterProvider(api_key="test-key")

        assert provider.api_key == "test-key"
        assert provider.default_model == DEFAULT_MODEL
        assert provider.timeout == 60.0
        assert provider.name == "openrouter"
        assert provider.is_available() is True

    @patch.dict(os.environ, {"OPENROUTER_API_KEY": "env-key"})
    def test_init_from_env(self):
        """Test initialization from environment variable."""
        assert OpenRouterProvider().api_key == "env-key"

    @patch.dict(os.environ, {}, clear=True)
    def test_unavailable_without_key(self):
        """Test a provider without key is unavailable and refuses to build a client."""
        provider = OpenRouterProvider()

        assert provider.is_available() is False
        with pytest.raises(AuthenticationError) as exc_info:
            _ = provider.client
        assert "API key not configured" in str(exc_info.value)

    @patch("memory_lifecycle.providers.openrouter.AsyncOpenAI")
    def test_client_created_lazily(self, mock_openai):
        """Test the SDK client is created on first access only."""
        provider = OpenRouterProvider(api_key="test-key", timeout=30.0)
        assert provider._client is None

        _ = provider.client
        _ = provider.client

        mock_openai.assert_called_once()
        call_kwargs = mock_openai.call_args[1]
        assert call_kwargs["base_url"] == OPENROUTER_BASE_URL
        assert call_kwargs["api_key"] == "test-key"
        assert call_kwargs["timeout"] == 30.0


class TestOpenRouterProviderChat:
    """Tests for OpenRouterProvider.chat_complete()."""

    @pytest.fixture
    def mock_completion(self):
        """Create a mock completion response."""
        mock = Mock()
        mock.id = "chatcmpl-123"
        mock.created = 1700000000
        mock.choices = [Mock(message=Mock(content="preference"))]
        mock.usage = Mock(prompt_tokens=10, completion_tokens=2, total_tokens=12)
        return mock

    @pytest.mark.asyncio
    @patch("memory_lifecycle.providers.openrouter.AsyncOpenAI")
    async def test_chat_complete_success(self, mock_openai_class, mock_completion):
        """Test a successful completion."""
        mock_client = Mock()
        mock_client.chat.completions.create = AsyncMock(return_value=mock_completion)
        mock_openai_class.return_value = mock_client

        provider = OpenRouterProvider(api_key="test-key")
        response = await provider.chat_complete(
            [ChatMessage.system("classify"), ChatMessage.user("I like tea")],
            LLMConfig(max_tokens=50, temperature=0.1),
        )

        assert isinstance(response, LLMResponse)
        assert response.content == "preference"
        assert response.model == DEFAULT_MODEL
        assert response.usage["total_tokens"] == 12
        assert response.metadata["id"] == "chatcmpl-123"

        call_kwargs = mock_client.chat.completions.create.call_args[1]
        assert call_kwargs["max_tokens"] == 50
        assert call_kwargs["temperature"] == 0.1
        assert call_kwargs["messages"][1] == {"role": "user", "content": "I like tea"}

    @pytest.mark.asyncio
    @patch("memory_lifecycle.providers.openrouter.AsyncOpenAI")
    async def test_chat_complete_model_override(self, mock_openai_class, mock_completion):
        """Test the per-call model override."""
        mock_client = Mock()
        mock_client.chat.completions.create = AsyncMock(return_value=mock_completion)
        mock_openai_class.return_value = mock_client

        provider = OpenRouterProvider(api_key="test-key")
        response = await provider.chat_complete(
            [ChatMessage.user("hi")], LLMConfig(model="anthropic/claude-3-haiku")
        )

        assert mock_client.chat.completions.create.call_args[1]["model"] == "anthropic/claude-3-haiku"
        assert response.model == "anthropic/claude-3-haiku"

    @pytest.mark.asyncio
    @patch("memory_lifecycle.providers.openrouter.AsyncOpenAI")
    async def test_chat_complete_maps_errors(self, mock_openai_class):
        """Test SDK failures surface as provider errors."""
        mock_client = Mock()
        mock_client.chat.completions.create = AsyncMock(
            side_effect=Exception("Error code: 429 - Rate limit exceeded")
        )
        mock_openai_class.return_value = mock_client

        provider = OpenRouterProvider(api_key="test-key")
        with pytest.raises(RateLimitError) as exc_info:
            await provider.chat_complete([ChatMessage.user("hi")])

        assert exc_info.value.provider == "openrouter"
        assert exc_info.value.model == DEFAULT_MODEL


class TestOpenAIEmbeddingProvider:
    """Tests for OpenAIEmbeddingProvider."""

    @pytest.mark.asyncio
    @patch("memory_lifecycle.providers.embeddings.AsyncOpenAI")
    async def test_embed_batch_orders_by_index(self, mock_openai_class):
        """Test vectors come back in input order."""
        mock_client = Mock()
        mock_client.embeddings.create = AsyncMock(
            return_value=Mock(
                data=[
                    Mock(index=1, embedding=[0.0, 1.0]),
                    Mock(index=0, embedding=[1.0, 0.0]),
                ]
            )
        )
        mock_openai_class.return_value = mock_client

        provider = OpenAIEmbeddingProvider(api_key="test-key", model="embed-small")
        vectors = await provider.embed_batch(["first", "second"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        call_kwargs = mock_client.embeddings.create.call_args[1]
        assert call_kwargs["model"] == "embed-small"
        assert call_kwargs["input"] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_embed_batch_empty(self):
        """Test an empty batch needs no client."""
        provider = OpenAIEmbeddingProvider(api_key=None)
        provider.api_key = None
        assert await provider.embed_batch([]) == []

    @pytest.mark.asyncio
    @patch("memory_lifecycle.providers.embeddings.AsyncOpenAI")
    async def test_embed_wraps_failures(self, mock_openai_class):
        """Test SDK failures become EmbeddingError."""
        mock_client = Mock()
        mock_client.embeddings.create = AsyncMock(side_effect=Exception("connection reset"))
        mock_openai_class.return_value = mock_client

        provider = OpenAIEmbeddingProvider(api_key="test-key")
        with pytest.raises(EmbeddingError) as exc_info:
            await provider.embed("hello")
        assert exc_info.value.provider == "openai"

    @pytest.mark.asyncio
    @patch.dict(os.environ, {}, clear=True)
    async def test_embed_without_key(self):
        """Test a missing key raises AuthenticationError."""
        provider = OpenAIEmbeddingProvider()
        with pytest.raises(AuthenticationError):
            await provider.embed("hello")


class TestHashingEmbeddingProvider:
    """Tests for the local hashing embeddings."""

    @pytest.mark.asyncio
    async def test_vectors_are_normalised(self):
        """Test vectors have unit length and the configured size."""
        provider = HashingEmbeddingProvider(dimensions=64)
        vector = await provider.embed("User prefers green tea")

        assert len(vector) == 64
        assert math.sqrt(sum(v * v for v in vector)) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_same_words_same_vector(self):
        """Test word order and case do not matter."""
        provider = HashingEmbeddingProvider()
        assert await provider.embed("Tea over coffee") == await provider.embed("coffee OVER tea")

    @pytest.mark.asyncio
    async def test_empty_text(self):
        """Test empty text embeds to the zero vector."""
        provider = HashingEmbeddingProvider(dimensions=8)
        assert await provider.embed("") == [0.0] * 8

    @pytest.mark.asyncio
    async def test_batch_matches_single(self):
        """Test the default batch implementation embeds each text."""
        provider = HashingEmbeddingProvider()
        batch = await provider.embed_batch(["alpha", "beta"])
        assert batch == [await provider.embed("alpha"), await provider.embed("beta")]

    def test_rejects_bad_dimensions(self):
        """Test dimensions must be positive."""
        with pytest.raises(ValueError):
            HashingEmbeddingProvider(dimensions=0)
