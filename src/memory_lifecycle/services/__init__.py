"""Decision components of the memory lifecycle engine."""

from .cache import EmbeddingCache
from .classifier import MemoryClassifier
from .conflicts import MemoryConflictDetector
from .forgetting import MemoryForgettingManager
from .locks import RecordLocks
from .merge import MemoryMergeStrategy
from .scorer import ImportanceScorer

__all__ = [
    "EmbeddingCache",
    "ImportanceScorer",
    "MemoryClassifier",
    "MemoryConflictDetector",
    "MemoryForgettingManager",
    "MemoryMergeStrategy",
    "RecordLocks",
]
