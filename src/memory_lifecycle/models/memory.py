"""Memory record data model."""

import hashlib
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from ..core.text import jaccard_similarity


class MemoryType(Enum):
    """Semantic category of a memory record."""

    SEMANTIC = "semantic"
    EPISODIC = "episodic"
    PROCEDURAL = "procedural"
    FACTUAL = "factual"
    CONTEXTUAL = "contextual"
    PREFERENCE = "preference"
    RELATIONSHIP = "relationship"
    TEMPORAL = "temporal"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "MemoryType":
        """Parse a type name or value case-insensitively, defaulting to SEMANTIC."""
        if not value:
            return cls.SEMANTIC
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return cls.SEMANTIC

    @property
    def description(self) -> str:
        return _TYPE_DESCRIPTIONS[self]

    @property
    def is_long_term(self) -> bool:
        return self in _LONG_TERM_TYPES

    @property
    def is_short_term(self) -> bool:
        return self in _SHORT_TERM_TYPES

    @property
    def is_personal(self) -> bool:
        return self in _PERSONAL_TYPES


_TYPE_DESCRIPTIONS = {
    MemoryType.SEMANTIC: "General knowledge and concepts",
    MemoryType.EPISODIC: "Specific events and experiences",
    MemoryType.PROCEDURAL: "Skills, methods and how-to knowledge",
    MemoryType.FACTUAL: "Verifiable facts and data",
    MemoryType.CONTEXTUAL: "Situational context of a conversation",
    MemoryType.PREFERENCE: "User likes, dislikes and habits",
    MemoryType.RELATIONSHIP: "People and the connections between them",
    MemoryType.TEMPORAL: "Schedules, deadlines and time-bound information",
}

_LONG_TERM_TYPES = frozenset(
    {MemoryType.SEMANTIC, MemoryType.EPISODIC, MemoryType.PROCEDURAL, MemoryType.FACTUAL}
)
_SHORT_TERM_TYPES = frozenset({MemoryType.CONTEXTUAL, MemoryType.TEMPORAL})
_PERSONAL_TYPES = frozenset(
    {MemoryType.PREFERENCE, MemoryType.RELATIONSHIP, MemoryType.EPISODIC}
)


class MemoryImportance(Enum):
    """Ordinal importance level, 5 (critical) down to 1 (minimal)."""

    CRITICAL = 5
    HIGH = 4
    MEDIUM = 3
    LOW = 2
    MINIMAL = 1

    @property
    def score(self) -> int:
        return self.value

    @classmethod
    def from_score(cls, score: float) -> "MemoryImportance":
        """Build an importance level from an integer or real score.

        Real scores are rounded first; anything outside 1..5 maps to MEDIUM.
        """
        rounded = int(math.floor(score + 0.5)) if isinstance(score, float) else int(score)
        for member in cls:
            if member.value == rounded:
                return member
        return cls.MEDIUM

    @property
    def is_high_priority(self) -> bool:
        return self in (MemoryImportance.CRITICAL, MemoryImportance.HIGH)

    @property
    def is_low_priority(self) -> bool:
        return self in (MemoryImportance.LOW, MemoryImportance.MINIMAL)


def content_hash(content: str) -> str:
    """Return a stable fingerprint of record content."""
    return hashlib.sha256((content or "").encode("utf-8")).hexdigest()


@dataclass(eq=False)
class MemoryRecord:
    """A single memory owned by a user.

    Identity is the ``id`` alone: two records with the same id compare equal
    regardless of their content or counters.
    """

    content: str
    user_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    agent_id: Optional[str] = None
    run_id: Optional[str] = None
    type: MemoryType = MemoryType.SEMANTIC
    importance: MemoryImportance = MemoryImportance.MEDIUM
    confidence: float = 1.0
    relevance_score: float = 0.0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    last_accessed_at: datetime = field(default_factory=datetime.now)
    expires_at: Optional[datetime] = None
    access_count: int = 1
    update_count: int = 0
    consolidated: bool = False
    deprecated: bool = False
    tags: set[str] = field(default_factory=set)
    entities: set[str] = field(default_factory=set)
    related: dict[str, float] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    content_hash: str = ""

    def __post_init__(self):
        if not self.content_hash:
            self.content_hash = content_hash(self.content)
        self.confidence = min(1.0, max(0.0, self.confidence))
        self.access_count = max(1, self.access_count)
        if self.deprecated:
            self.importance = MemoryImportance.MINIMAL
        elif self.consolidated and self.importance.score < MemoryImportance.HIGH.score:
            self.importance = MemoryImportance.HIGH

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MemoryRecord):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return (
            f"MemoryRecord(id={self.id!r}, type={self.type.value}, "
            f"importance={self.importance.name}, content={self.content[:40]!r})"
        )

    # Lifecycle mutations

    def record_access(self) -> None:
        """Count an access and promote frequently used records."""
        self.access_count += 1
        self.last_accessed_at = datetime.now()
        if self.access_count > 10 and self.importance.score < MemoryImportance.HIGH.score:
            self.importance = MemoryImportance.HIGH
        elif self.access_count > 5 and self.importance.score < MemoryImportance.MEDIUM.score:
            self.importance = MemoryImportance.MEDIUM

    def record_update(self, new_content: Optional[str] = None) -> None:
        """Count an update; new content refreshes the hash and clears consolidation."""
        self.update_count += 1
        self.updated_at = datetime.now()
        if new_content is not None and new_content != self.content:
            self.content = new_content
            self.content_hash = content_hash(new_content)
        self.consolidated = False

    def consolidate(self) -> None:
        self.consolidated = True
        if self.importance.score < MemoryImportance.HIGH.score:
            self.importance = MemoryImportance.HIGH

    def deprecate(self) -> None:
        self.deprecated = True
        self.importance = MemoryImportance.MINIMAL

    def set_importance(self, importance: MemoryImportance) -> None:
        """Assign importance while honouring the deprecation and consolidation floors."""
        if self.deprecated:
            self.importance = MemoryImportance.MINIMAL
        elif self.consolidated and importance.score < MemoryImportance.HIGH.score:
            self.importance = MemoryImportance.HIGH
        else:
            self.importance = importance

    def set_confidence(self, confidence: float) -> None:
        self.confidence = min(1.0, max(0.0, confidence))

    def set_ttl(self, days: int) -> None:
        self.expires_at = datetime.now() + timedelta(days=days)

    # Age and expiry

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at < datetime.now()

    @property
    def days_old(self) -> int:
        return max(0, (datetime.now() - self.created_at).days)

    @property
    def days_since_last_access(self) -> int:
        return max(0, (datetime.now() - self.last_accessed_at).days)

    # Relationships

    def add_related(self, memory_id: str, similarity: float) -> None:
        self.related[memory_id] = similarity

    def remove_related(self, memory_id: str) -> None:
        self.related.pop(memory_id, None)

    def similarity_with(self, memory_id: str) -> float:
        return self.related.get(memory_id, 0.0)

    def relevance_to(self, query: str) -> float:
        """Score how relevant this record is to a free-text query."""
        if not query:
            return 0.0
        base = jaccard_similarity(self.content, query)
        boost = (
            1.0
            + self.importance.score / 5.0
            + math.log(self.access_count + 1) / 10.0
            + math.exp(-self.days_since_last_access / 7.0) / 10.0
        )
        self.relevance_score = base * boost
        return self.relevance_score

    # Serialization

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "user_id": self.user_id,
            "agent_id": self.agent_id,
            "run_id": self.run_id,
            "type": self.type.value,
            "importance": self.importance.score,
            "confidence": self.confidence,
            "relevance_score": self.relevance_score,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "access_count": self.access_count,
            "update_count": self.update_count,
            "consolidated": self.consolidated,
            "deprecated": self.deprecated,
            "tags": sorted(self.tags),
            "entities": sorted(self.entities),
            "related": dict(self.related),
            "metadata": dict(self.metadata),
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryRecord":
        expires_at = data.get("expires_at")
        return cls(
            id=data["id"],
            content=data.get("content", ""),
            user_id=data.get("user_id", ""),
            agent_id=data.get("agent_id"),
            run_id=data.get("run_id"),
            type=MemoryType.from_value(data.get("type")),
            importance=MemoryImportance.from_score(data.get("importance", 3)),
            confidence=data.get("confidence", 1.0),
            relevance_score=data.get("relevance_score", 0.0),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            last_accessed_at=datetime.fromisoformat(data["last_accessed_at"]),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
            access_count=data.get("access_count", 1),
            update_count=data.get("update_count", 0),
            consolidated=data.get("consolidated", False),
            deprecated=data.get("deprecated", False),
            tags=set(data.get("tags", [])),
            entities=set(data.get("entities", [])),
            related=dict(data.get("related", {})),
            metadata=dict(data.get("metadata", {})),
            content_hash=data.get("content_hash", ""),
        )

    # Factories

    @classmethod
    def semantic(cls, content: str, user_id: str, **kwargs: Any) -> "MemoryRecord":
        return cls(content=content, user_id=user_id, type=MemoryType.SEMANTIC, **kwargs)

    @classmethod
    def episodic(
        cls,
        content: str,
        user_id: str,
        event_time: Optional[datetime] = None,
        **kwargs: Any,
    ) -> "MemoryRecord":
        record = cls(
            content=content,
            user_id=user_id,
            type=MemoryType.EPISODIC,
            importance=MemoryImportance.HIGH,
            **kwargs,
        )
        record.metadata["event_time"] = (event_time or record.created_at).isoformat()
        record.metadata["temporal_context"] = True
        return record

    @classmethod
    def procedural(cls, content: str, user_id: str, **kwargs: Any) -> "MemoryRecord":
        record = cls(
            content=content,
            user_id=user_id,
            type=MemoryType.PROCEDURAL,
            importance=MemoryImportance.HIGH,
            **kwargs,
        )
        record.metadata["skill_based"] = True
        return record

    @classmethod
    def preference(
        cls,
        content: str,
        user_id: str,
        category: str = "general",
        **kwargs: Any,
    ) -> "MemoryRecord":
        record = cls(content=content, user_id=user_id, type=MemoryType.PREFERENCE, **kwargs)
        record.metadata["preference_category"] = category
        record.tags.add("preference")
        return record
