"""Forgetting policy configuration and decay results."""

from dataclasses import dataclass, field
from enum import Enum

from .memory import MemoryImportance


class ForgettingMode(Enum):
    """Built-in forgetting behaviour applied per memory type."""

    NEVER_FORGET = "never_forget"
    GRADUAL_DECAY = "gradual_decay"
    AGGRESSIVE_FORGETTING = "aggressive_forgetting"
    CONSERVATIVE_FORGETTING = "conservative_forgetting"
    IMPORTANCE_BASED = "importance_based"
    ACCESS_BASED = "access_based"


class PruningStrategy(Enum):
    """Ordering used to pick which records survive a prune."""

    LEAST_RECENTLY_USED = "least_recently_used"
    LEAST_IMPORTANT = "least_important"
    OLDEST_FIRST = "oldest_first"
    LOWEST_DECAY_SCORE = "lowest_decay_score"
    BALANCED = "balanced"


@dataclass
class ForgettingPolicy:
    """Custom policy that overrides the per-type defaults when installed.

    Records more important than ``importance_threshold``, accessed more than
    ``min_access_count`` times, or younger than ``max_age_days`` are protected.
    """

    enabled: bool = True
    decay_rate: float = 0.1
    importance_threshold: MemoryImportance = MemoryImportance.LOW
    max_age_days: int = 90
    min_access_count: int = 1

    @classmethod
    def conservative(cls) -> "ForgettingPolicy":
        return cls(decay_rate=0.05, importance_threshold=MemoryImportance.LOW, max_age_days=180)

    @classmethod
    def aggressive(cls) -> "ForgettingPolicy":
        return cls(
            decay_rate=0.2,
            importance_threshold=MemoryImportance.MEDIUM,
            max_age_days=30,
            min_access_count=3,
        )

    @classmethod
    def disabled(cls) -> "ForgettingPolicy":
        return cls(enabled=False)


@dataclass
class MemoryDecayInfo:
    decay_score: float
    retention_score: float
    should_forget: bool
    policy: ForgettingMode
    days_until_forgetting: int
    decay_factors: dict[str, float] = field(default_factory=dict)

    def __str__(self) -> str:
        return (
            f"MemoryDecayInfo(decay={self.decay_score:.3f}, "
            f"retention={self.retention_score:.3f}, forget={self.should_forget}, "
            f"policy={self.policy.value}, days_until={self.days_until_forgetting})"
        )
