"""Data models for the memory lifecycle engine."""

from .conflict import ConflictResolution, ConflictType, MemoryConflict, ResolutionStrategy
from .memory import MemoryImportance, MemoryRecord, MemoryType
from .policy import ForgettingMode, ForgettingPolicy, MemoryDecayInfo, PruningStrategy
from .scoring import ImportanceScore

__all__ = [
    "ConflictResolution",
    "ConflictType",
    "ForgettingMode",
    "ForgettingPolicy",
    "ImportanceScore",
    "MemoryConflict",
    "MemoryDecayInfo",
    "MemoryImportance",
    "MemoryRecord",
    "MemoryType",
    "PruningStrategy",
    "ResolutionStrategy",
]
