"""Test fixtures for the memory lifecycle tests."""

from datetime import datetime, timedelta
from typing import Optional
from unittest.mock import AsyncMock, Mock

from memory_lifecycle.models.memory import MemoryImportance, MemoryRecord, MemoryType
from memory_lifecycle.providers.base import EmbeddingProvider, LLMResponse


def make_record(
    content: str = "Test memory content",
    user_id: str = "user-1",
    days_old: int = 0,
    days_since_access: Optional[int] = None,
    **kwargs,
) -> MemoryRecord:
    """Create a record whose timestamps sit ``days_old`` days in the past."""
    now = datetime.now()
    created = now - timedelta(days=days_old)
    accessed = now - timedelta(days=days_old if days_since_access is None else days_since_access)
    kwargs.setdefault("created_at", created)
    kwargs.setdefault("updated_at", created)
    kwargs.setdefault("last_accessed_at", accessed)
    return MemoryRecord(content=content, user_id=user_id, **kwargs)


def make_records_by_importance() -> list[MemoryRecord]:
    """One record per importance level, lowest first."""
    return [
        make_record(f"{importance.name.lower()} memory", importance=importance)
        for importance in reversed(list(MemoryImportance))
    ]


def create_mock_llm(content: Optional[str] = "", side_effect=None) -> Mock:
    """Create a mock LLM provider returning ``content`` (or raising ``side_effect``)."""
    llm = Mock()
    llm.name = "mock-llm"
    llm.is_available = Mock(return_value=True)
    if side_effect is not None:
        llm.chat_complete = AsyncMock(side_effect=side_effect)
    else:
        llm.chat_complete = AsyncMock(
            return_value=LLMResponse(content=content, model="test-model")
        )
    return llm


class StaticEmbeddingProvider(EmbeddingProvider):
    """Embedding provider returning fixed vectors per text."""

    def __init__(self, vectors: dict[str, list[float]], default: Optional[list[float]] = None):
        self.vectors = vectors
        self.default = default or [0.0, 0.0, 1.0]
        self.embed_calls = 0
        self.batch_calls = 0

    @property
    def name(self) -> str:
        return "static"

    async def embed(self, text: str) -> list[float]:
        self.embed_calls += 1
        return self.vectors.get(text, self.default)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls += 1
        return [self.vectors.get(text, self.default) for text in texts]


class FailingEmbeddingProvider(EmbeddingProvider):
    """Embedding provider whose every call fails."""

    @property
    def name(self) -> str:
        return "failing"

    async def embed(self, text: str) -> list[float]:
        raise RuntimeError("embedding backend unavailable")


# Unit vectors with a cosine similarity of 0.9, and one of ~0.98.
SIMILAR_A = [1.0, 0.0, 0.0]
SIMILAR_B = [0.9, 0.19 ** 0.5, 0.0]
NEAR_DUPLICATE = [0.98, 0.0396 ** 0.5, 0.0]
UNRELATED = [0.0, 0.0, 1.0]


def preference_pair() -> tuple[MemoryRecord, MemoryRecord]:
    return (
        make_record("User prefers tea", type=MemoryType.PREFERENCE),
        make_record("User prefers coffee", type=MemoryType.PREFERENCE),
    )
