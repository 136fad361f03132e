"""Conflict and resolution values produced by the conflict detector."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .memory import MemoryRecord


class ConflictType(Enum):
    NONE = "none"
    CONTRADICTION = "contradiction"
    FACTUAL_CONFLICT = "factual_conflict"
    PREFERENCE_CONFLICT = "preference_conflict"
    TEMPORAL_CONFLICT = "temporal_conflict"
    REDUNDANCY = "redundancy"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "ConflictType":
        """Parse a name or value case-insensitively, defaulting to NONE."""
        if not value:
            return cls.NONE
        normalized = value.strip().lower()
        for member in cls:
            if normalized in (member.value, member.name.lower()):
                return member
        return cls.NONE


class ResolutionStrategy(Enum):
    KEEP_FIRST = "keep_first"
    KEEP_SECOND = "keep_second"
    MERGE = "merge"
    KEEP_BOTH = "keep_both"
    DELETE_BOTH = "delete_both"

    @classmethod
    def from_value(cls, value: Optional[str]) -> Optional["ResolutionStrategy"]:
        """Parse a name or value case-insensitively; None when unrecognised."""
        if not value:
            return None
        normalized = value.strip().lower()
        for member in cls:
            if normalized in (member.value, member.name.lower()):
                return member
        return None


@dataclass
class MemoryConflict:
    """Overlap between a new record (``memory1``) and an existing one (``memory2``)."""

    memory1: MemoryRecord
    memory2: MemoryRecord
    type: ConflictType
    confidence: float
    reason: str
    similarity: float


@dataclass
class ConflictResolution:
    """How to reconcile a conflict; callers apply it against storage."""

    strategy: ResolutionStrategy
    reason: str
    merged_content: Optional[str] = None
