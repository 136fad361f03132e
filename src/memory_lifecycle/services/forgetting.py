"""Forgetting-curve decay, deprecation and pruning of memory records."""

import asyncio
import logging
import math
from datetime import datetime
from typing import Any, Callable, Optional

from ..core.text import clamp
from ..models.memory import MemoryImportance, MemoryRecord, MemoryType
from ..models.policy import ForgettingMode, ForgettingPolicy, MemoryDecayInfo, PruningStrategy
from .locks import RecordLocks

logger = logging.getLogger(__name__)

DEFAULT_FORGETTING_BASE = 0.5
DEFAULT_DECAY_RATE = 0.1
DEFAULT_RETENTION_THRESHOLD = 0.2

AGGRESSIVE_THRESHOLD = 0.1
CONSERVATIVE_THRESHOLD = 0.4
BUSY_ACCESS_COUNT = 5
REINFORCEMENT_BOOST = 0.1
REINFORCEMENT_PROMOTION_ACCESS = 10

TYPE_POLICIES = {
    MemoryType.PROCEDURAL: ForgettingMode.CONSERVATIVE_FORGETTING,
    MemoryType.FACTUAL: ForgettingMode.IMPORTANCE_BASED,
    MemoryType.SEMANTIC: ForgettingMode.GRADUAL_DECAY,
    MemoryType.EPISODIC: ForgettingMode.ACCESS_BASED,
    MemoryType.PREFERENCE: ForgettingMode.CONSERVATIVE_FORGETTING,
    MemoryType.TEMPORAL: ForgettingMode.AGGRESSIVE_FORGETTING,
    MemoryType.CONTEXTUAL: ForgettingMode.GRADUAL_DECAY,
    MemoryType.RELATIONSHIP: ForgettingMode.CONSERVATIVE_FORGETTING,
}


def memory_strength(record: MemoryRecord) -> float:
    strength = (
        record.importance.score
        + math.log(record.access_count + 1)
        + record.confidence * 2
        + min(2.0, len(record.related) * 0.2)
    )
    if record.consolidated:
        strength += 3.0
    return max(1.0, strength)


def retention_score(record: MemoryRecord) -> float:
    recency = math.exp(-record.days_since_last_access / 30.0) / 5.0
    return min(
        1.0,
        record.importance.score / 5.0
        + math.log(record.access_count + 1) / 10.0
        + record.confidence
        + (0.3 if record.consolidated else 0.0)
        + recency,
    )


def decay_factors(record: MemoryRecord) -> dict[str, float]:
    return {
        "age_factor": float(record.days_old),
        "access_recency": float(record.days_since_last_access),
        "access_frequency": float(record.access_count),
        "importance_score": float(record.importance.score),
        "confidence_score": record.confidence,
        "relationship_count": float(len(record.related)),
        "is_consolidated": 1.0 if record.consolidated else 0.0,
    }


def policy_threshold(mode: ForgettingMode, record: MemoryRecord, base_threshold: float) -> Optional[float]:
    """Decay threshold for ``mode``, or None when the mode never forgets.

    A higher threshold needs more decay, so aggressive modes sit below the base
    and important or busy records sit above it.
    """
    if mode is ForgettingMode.NEVER_FORGET:
        return None
    if mode is ForgettingMode.AGGRESSIVE_FORGETTING:
        return AGGRESSIVE_THRESHOLD
    if mode is ForgettingMode.CONSERVATIVE_FORGETTING:
        return CONSERVATIVE_THRESHOLD
    if mode is ForgettingMode.IMPORTANCE_BASED:
        return base_threshold * (record.importance.score + 2) / 5.0
    if mode is ForgettingMode.ACCESS_BASED and record.access_count > BUSY_ACCESS_COUNT:
        return base_threshold * 2.0
    return base_threshold


class MemoryForgettingManager:
    """Decides which records decay out of the store and which survive a prune.

    The decay score follows an Ebbinghaus-style curve over memory strength ``S``:
    ``base * exp(-combined / decay_rate)`` where ``combined`` averages
    ``exp(-days_since_access / S)`` and ``exp(-days_old / 2S)``. Fresh, strong
    records score near zero and the score grows with neglect up to ``base``.

    Args:
        forgetting_base: Upper bound of the decay curve.
        decay_rate: Curve steepness; a custom policy's rate takes precedence.
        retention_threshold: Base decay cutoff above which records are forgettable.
        policy: Optional custom policy layered over the per-type defaults.
        locks: Shared per-record lock registry; one is created when omitted.
    """

    def __init__(
        self,
        forgetting_base: float = DEFAULT_FORGETTING_BASE,
        decay_rate: float = DEFAULT_DECAY_RATE,
        retention_threshold: float = DEFAULT_RETENTION_THRESHOLD,
        policy: Optional[ForgettingPolicy] = None,
        locks: Optional[RecordLocks] = None,
    ):
        self.forgetting_base = forgetting_base
        self.decay_rate = decay_rate
        self.retention_threshold = retention_threshold
        self.policy = policy
        self.locks = locks or RecordLocks()
        self.type_policies = dict(TYPE_POLICIES)

    def set_policy(self, policy: Optional[ForgettingPolicy]) -> None:
        self.policy = policy
        if policy is not None:
            logger.debug(
                f"Custom forgetting policy set: enabled={policy.enabled}, "
                f"decay_rate={policy.decay_rate}, "
                f"importance_threshold={policy.importance_threshold.name}"
            )

    @property
    def effective_decay_rate(self) -> float:
        if self.policy is not None and self.policy.decay_rate > 0:
            return self.policy.decay_rate
        return self.decay_rate

    def decay_score(self, record: MemoryRecord) -> float:
        strength = memory_strength(record)
        time_decay = math.exp(-record.days_since_last_access / strength)
        age_decay = math.exp(-record.days_old / (strength * 2))
        combined = (time_decay + age_decay) / 2.0
        score = self.forgetting_base * math.exp(-combined / self.effective_decay_rate)
        return clamp(score, 0.0, 1.0)

    def forgetting_mode(self, record: MemoryRecord) -> ForgettingMode:
        if self.policy is not None and not self.policy.enabled:
            return ForgettingMode.NEVER_FORGET
        return self.type_policies.get(record.type, ForgettingMode.GRADUAL_DECAY)

    def _protected_by_policy(self, record: MemoryRecord) -> bool:
        policy = self.policy
        if policy is None:
            return False
        if not policy.enabled:
            return True
        if record.importance.score > policy.importance_threshold.score:
            return True
        if record.access_count > policy.min_access_count:
            return True
        return record.days_old <= policy.max_age_days

    def should_forget(self, record: MemoryRecord) -> bool:
        if self._protected_by_policy(record):
            return False
        if record.importance is MemoryImportance.CRITICAL or record.consolidated:
            return False
        if record.deprecated or record.is_expired:
            return True

        threshold = policy_threshold(
            self.forgetting_mode(record), record, self.retention_threshold
        )
        if threshold is None:
            return False
        return self.decay_score(record) > threshold

    def days_until_forgetting(self, record: MemoryRecord) -> int:
        """Estimated days before ``record`` crosses the retention threshold; -1 means never."""
        if record.importance is MemoryImportance.CRITICAL or record.consolidated:
            return -1
        if self.decay_score(record) >= self.retention_threshold:
            return 0
        time_to_forget = -memory_strength(record) * math.log(
            self.retention_threshold / self.forgetting_base
        )
        return max(1, int(time_to_forget))

    async def process_decay(self, records: list[MemoryRecord]) -> list[MemoryRecord]:
        """Deprecate forgettable records and weaken the confidence of the rest.

        Every input record is returned, in input order.
        """
        logger.debug(f"Processing memory decay for {len(records)} memories")
        await asyncio.gather(*(self._apply_decay(record) for record in records))
        deprecated = sum(1 for record in records if record.deprecated)
        logger.info(f"Decay pass complete: {deprecated}/{len(records)} memories deprecated")
        return list(records)

    async def _apply_decay(self, record: MemoryRecord) -> None:
        async with self.locks.hold(record.id):
            if self.should_forget(record):
                logger.debug(f"Memory {record.id} marked for forgetting")
                record.deprecate()
                return
            score = self.decay_score(record)
            record.set_confidence(max(0.1, record.confidence * (1.0 - score * 0.1)))
            record.metadata["last_decay_update"] = datetime.now().isoformat()
            record.metadata["decay_score"] = score

    async def identify_for_forgetting(self, records: list[MemoryRecord]) -> list[MemoryRecord]:
        return [record for record in records if self.should_forget(record)]

    async def calculate_decay(self, record: MemoryRecord) -> MemoryDecayInfo:
        return MemoryDecayInfo(
            decay_score=self.decay_score(record),
            retention_score=retention_score(record),
            should_forget=self.should_forget(record),
            policy=self.forgetting_mode(record),
            days_until_forgetting=self.days_until_forgetting(record),
            decay_factors=decay_factors(record),
        )

    async def reinforce(self, record: MemoryRecord) -> None:
        """Count an access, boost confidence and stamp reinforcement metadata."""
        async with self.locks.hold(record.id):
            logger.debug(f"Reinforcing memory: {record.id}")
            record.record_access()
            record.set_confidence(min(1.0, record.confidence + REINFORCEMENT_BOOST))
            if (
                record.access_count > REINFORCEMENT_PROMOTION_ACCESS
                and record.importance.score < MemoryImportance.HIGH.score
            ):
                record.set_importance(MemoryImportance.HIGH)
            record.metadata["last_reinforced"] = datetime.now().isoformat()
            record.metadata["reinforcement_count"] = (
                int(record.metadata.get("reinforcement_count", 0)) + 1
            )

    async def prune(
        self,
        records: list[MemoryRecord],
        max_records: int,
        strategy: PruningStrategy = PruningStrategy.BALANCED,
    ) -> list[MemoryRecord]:
        """Keep the best ``max_records`` records under ``strategy``.

        CRITICAL records always rank ahead of the rest, so they all survive
        whenever the cap leaves room for them.
        """
        logger.debug(
            f"Pruning {len(records)} memories to max {max_records} using strategy {strategy.value}"
        )
        if len(records) <= max_records:
            return list(records)
        if max_records <= 0:
            return []

        key = self._prune_key(strategy)
        ranked = sorted(
            records,
            key=lambda record: (record.importance is not MemoryImportance.CRITICAL, key(record)),
        )
        return ranked[:max_records]

    def _prune_key(self, strategy: PruningStrategy) -> Callable[[MemoryRecord], Any]:
        if strategy is PruningStrategy.LEAST_RECENTLY_USED:
            return lambda record: -record.last_accessed_at.timestamp()
        if strategy is PruningStrategy.LEAST_IMPORTANT:
            return lambda record: -record.importance.score
        if strategy is PruningStrategy.OLDEST_FIRST:
            return lambda record: -record.created_at.timestamp()
        if strategy is PruningStrategy.LOWEST_DECAY_SCORE:
            return self.decay_score
        return lambda record: -self.balanced_score(record)

    def balanced_score(self, record: MemoryRecord) -> float:
        return (
            0.3 * record.importance.score / 5.0
            + 0.2 / (record.days_since_last_access + 1)
            + 0.2 * math.log(record.access_count + 1) / 10.0
            - 0.3 * self.decay_score(record)
        )

    def get_stats(self) -> dict[str, Any]:
        return {
            "forgetting_base": self.forgetting_base,
            "decay_rate": self.effective_decay_rate,
            "retention_threshold": self.retention_threshold,
            "custom_policy": self.policy is not None,
            "active_locks": len(self.locks),
        }
