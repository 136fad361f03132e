"""Memory lifecycle engine - classify, score, reconcile and forget agent memories"""

__version__ = "1.0.0"

from .config import EngineConfig
from .core.orchestrator import IngestResult, LifecycleOrchestrator, MaintenanceResult
from .logging_config import configure_logging
from .manager import ModelManager
from .models import (
    ConflictResolution,
    ConflictType,
    ForgettingMode,
    ForgettingPolicy,
    ImportanceScore,
    MemoryConflict,
    MemoryDecayInfo,
    MemoryImportance,
    MemoryRecord,
    MemoryType,
    PruningStrategy,
    ResolutionStrategy,
)
from .services import (
    ImportanceScorer,
    MemoryClassifier,
    MemoryConflictDetector,
    MemoryForgettingManager,
    MemoryMergeStrategy,
)

__all__ = [
    "ConflictResolution",
    "ConflictType",
    "EngineConfig",
    "ForgettingMode",
    "ForgettingPolicy",
    "ImportanceScore",
    "ImportanceScorer",
    "IngestResult",
    "LifecycleOrchestrator",
    "MaintenanceResult",
    "MemoryClassifier",
    "MemoryConflict",
    "MemoryConflictDetector",
    "MemoryDecayInfo",
    "MemoryForgettingManager",
    "MemoryImportance",
    "MemoryMergeStrategy",
    "MemoryRecord",
    "MemoryType",
    "ModelManager",
    "PruningStrategy",
    "ResolutionStrategy",
    "configure_logging",
]
