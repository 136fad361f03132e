"""Tests for the forgetting manager."""

from datetime import datetime, timedelta

import pytest

from memory_lifecycle.models.memory import MemoryImportance, MemoryType
from memory_lifecycle.models.policy import (
    ForgettingMode,
    ForgettingPolicy,
    MemoryDecayInfo,
    PruningStrategy,
)
from memory_lifecycle.services.forgetting import (
    MemoryForgettingManager,
    memory_strength,
    policy_threshold,
)
from tests.fixtures import make_record, make_records_by_importance


def neglected(**kwargs):
    return make_record("an old note", days_old=100, **kwargs)


class TestDecayScore:
    """Tests for the decay curve."""

    def test_memory_strength(self):
        """Test the strength formula and its consolidation bonus."""
        record = make_record(importance=MemoryImportance.HIGH, confidence=0.5, access_count=3)
        assert memory_strength(record) == pytest.approx(4 + 1.3863 + 1.0, abs=1e-4)

        record.consolidated = True
        assert memory_strength(record) == pytest.approx(4 + 1.3863 + 1.0 + 3.0, abs=1e-4)

    def test_fresh_record_is_not_forgettable(self):
        """Test a record touched today scores close to zero."""
        assert MemoryForgettingManager().decay_score(make_record()) < 0.001

    def test_score_is_bounded_by_base(self):
        """Test long neglect approaches but never exceeds the curve base."""
        score = MemoryForgettingManager().decay_score(make_record(days_old=1000))
        assert 0.49 < score <= 0.5

    def test_monotonic_in_days_since_access(self):
        """Test more neglect never lowers the decay score."""
        manager = MemoryForgettingManager()
        scores = [
            manager.decay_score(make_record(days_old=60, days_since_access=days))
            for days in (0, 5, 10, 30, 60)
        ]
        assert scores == sorted(scores)
        assert scores[0] < scores[-1]

    def test_stronger_records_decay_slower(self):
        """Test importance slows decay at the same age."""
        manager = MemoryForgettingManager()
        weak = make_record(days_old=20, importance=MemoryImportance.MINIMAL)
        strong = make_record(days_old=20, importance=MemoryImportance.CRITICAL)
        assert manager.decay_score(strong) < manager.decay_score(weak)

    def test_policy_decay_rate_takes_precedence(self):
        """Test a custom policy's decay rate replaces the configured one."""
        manager = MemoryForgettingManager(decay_rate=0.1)
        record = make_record(days_old=10)
        default_score = manager.decay_score(record)

        manager.set_policy(ForgettingPolicy.conservative())

        assert manager.effective_decay_rate == 0.05
        assert manager.decay_score(record) < default_score


class TestPolicyThreshold:
    """Tests for per-mode thresholds."""

    def test_thresholds(self):
        """Test each mode's threshold against the base of 0.2."""
        record = make_record(importance=MemoryImportance.HIGH)
        busy = make_record(access_count=6)

        assert policy_threshold(ForgettingMode.NEVER_FORGET, record, 0.2) is None
        assert policy_threshold(ForgettingMode.GRADUAL_DECAY, record, 0.2) == 0.2
        assert policy_threshold(ForgettingMode.AGGRESSIVE_FORGETTING, record, 0.2) == 0.1
        assert policy_threshold(ForgettingMode.CONSERVATIVE_FORGETTING, record, 0.2) == 0.4
        assert policy_threshold(ForgettingMode.IMPORTANCE_BASED, record, 0.2) == pytest.approx(0.24)
        assert policy_threshold(ForgettingMode.ACCESS_BASED, busy, 0.2) == 0.4
        assert policy_threshold(ForgettingMode.ACCESS_BASED, record, 0.2) == 0.2

    def test_type_modes(self):
        """Test the per-type default modes."""
        manager = MemoryForgettingManager()
        expected = {
            MemoryType.PROCEDURAL: ForgettingMode.CONSERVATIVE_FORGETTING,
            MemoryType.FACTUAL: ForgettingMode.IMPORTANCE_BASED,
            MemoryType.SEMANTIC: ForgettingMode.GRADUAL_DECAY,
            MemoryType.EPISODIC: ForgettingMode.ACCESS_BASED,
            MemoryType.TEMPORAL: ForgettingMode.AGGRESSIVE_FORGETTING,
        }
        for memory_type, mode in expected.items():
            assert manager.forgetting_mode(make_record(type=memory_type)) == mode


class TestShouldForget:
    """Tests for the forgetting decision."""

    def test_fresh_and_neglected(self):
        """Test neglected records cross the threshold and fresh ones do not."""
        manager = MemoryForgettingManager()
        assert manager.should_forget(make_record()) is False
        assert manager.should_forget(neglected()) is True

    def test_threshold_depends_on_type(self):
        """Test the same decay is judged against each type's threshold."""
        manager = MemoryForgettingManager()
        semantic = make_record(days_old=30, type=MemoryType.SEMANTIC)
        temporal = make_record(days_old=30, type=MemoryType.TEMPORAL)
        procedural = make_record(days_old=30, type=MemoryType.PROCEDURAL)

        assert 0.2 < manager.decay_score(semantic) < 0.4
        assert manager.should_forget(semantic) is True
        assert manager.should_forget(temporal) is True
        assert manager.should_forget(procedural) is False

    def test_aggressive_types_go_first(self):
        """Test temporal records are forgotten before semantic and procedural ones."""
        manager = MemoryForgettingManager()
        semantic = make_record(days_old=20, type=MemoryType.SEMANTIC)
        temporal = make_record(days_old=20, type=MemoryType.TEMPORAL)
        procedural = make_record(days_old=20, type=MemoryType.PROCEDURAL)

        assert 0.1 < manager.decay_score(semantic) < 0.2
        assert manager.should_forget(temporal) is True
        assert manager.should_forget(semantic) is False
        assert manager.should_forget(procedural) is False

    @pytest.mark.parametrize("days", [0, 10, 20, 30, 45, 60, 100, 365])
    def test_conservative_never_forgets_before_aggressive(self, days):
        """Test procedural and preference records outlive temporal ones at any age."""
        manager = MemoryForgettingManager()
        temporal = make_record(days_old=days, type=MemoryType.TEMPORAL)
        for memory_type in (MemoryType.PROCEDURAL, MemoryType.PREFERENCE, MemoryType.RELATIONSHIP):
            conservative = make_record(days_old=days, type=memory_type)
            assert not (manager.should_forget(conservative) and not manager.should_forget(temporal))

    def test_important_factual_records_need_more_decay(self):
        """Test importance-based thresholds rise with importance."""
        manager = MemoryForgettingManager()
        low = make_record(days_old=20, type=MemoryType.FACTUAL, importance=MemoryImportance.LOW)
        high = make_record(days_old=20, type=MemoryType.FACTUAL, importance=MemoryImportance.HIGH)

        assert policy_threshold(ForgettingMode.IMPORTANCE_BASED, low, 0.2) < policy_threshold(
            ForgettingMode.IMPORTANCE_BASED, high, 0.2
        )
        assert manager.should_forget(low) is True
        assert manager.should_forget(high) is False

    def test_busy_episodic_records_need_more_decay(self):
        """Test frequently accessed episodic records are harder to forget."""
        manager = MemoryForgettingManager()
        quiet = make_record(days_old=30, type=MemoryType.EPISODIC)
        busy = make_record(days_old=30, type=MemoryType.EPISODIC, access_count=6)

        assert manager.should_forget(quiet) is True
        assert manager.should_forget(busy) is False

    def test_critical_or_consolidated_never_forgotten(self):
        """Test protected records survive every policy."""
        policies = [
            None,
            ForgettingPolicy(),
            ForgettingPolicy.aggressive(),
            ForgettingPolicy.conservative(),
            ForgettingPolicy.disabled(),
        ]
        records = [
            make_record(days_old=1000, importance=MemoryImportance.CRITICAL, consolidated=True),
            make_record(days_old=1000, importance=MemoryImportance.CRITICAL),
            make_record(days_old=1000, consolidated=True, expires_at=datetime.now() - timedelta(days=1)),
        ]
        for policy in policies:
            manager = MemoryForgettingManager(policy=policy)
            for record in records:
                assert manager.should_forget(record) is False

    def test_deprecated_and_expired_are_forgotten(self):
        """Test terminal records are forgotten without scoring."""
        manager = MemoryForgettingManager()
        assert manager.should_forget(make_record(deprecated=True)) is True
        assert manager.should_forget(
            make_record(expires_at=datetime.now() - timedelta(days=1))
        ) is True

    def test_custom_policy_floors(self):
        """Test importance, access and age floors of a custom policy."""
        manager = MemoryForgettingManager(policy=ForgettingPolicy())

        assert manager.should_forget(neglected(importance=MemoryImportance.LOW)) is True
        assert manager.should_forget(neglected(importance=MemoryImportance.MEDIUM)) is False
        assert manager.should_forget(
            neglected(importance=MemoryImportance.LOW, access_count=2)
        ) is False
        assert manager.should_forget(
            make_record(days_old=60, importance=MemoryImportance.LOW)
        ) is False

    def test_disabled_policy(self):
        """Test a disabled policy never forgets anything."""
        manager = MemoryForgettingManager(policy=ForgettingPolicy.disabled())
        record = make_record(deprecated=True)

        assert manager.should_forget(record) is False
        assert manager.forgetting_mode(record) == ForgettingMode.NEVER_FORGET


class TestDaysUntilForgetting:
    """Tests for the forgetting estimate."""

    def test_protected_records_never(self):
        """Test CRITICAL and consolidated records report -1."""
        manager = MemoryForgettingManager()
        assert manager.days_until_forgetting(make_record(importance=MemoryImportance.CRITICAL)) == -1
        assert manager.days_until_forgetting(make_record(consolidated=True)) == -1

    def test_estimates(self):
        """Test neglected records are due now and fresh ones in a few days."""
        manager = MemoryForgettingManager()
        assert manager.days_until_forgetting(neglected()) == 0
        assert manager.days_until_forgetting(make_record()) == 5


class TestDecayPasses:
    """Tests for process_decay, identification and decay info."""

    @pytest.mark.asyncio
    async def test_process_decay(self):
        """Test forgettable records are deprecated and the rest weakened."""
        manager = MemoryForgettingManager()
        fresh = make_record()
        old = neglected()
        critical = neglected(importance=MemoryImportance.CRITICAL)
        records = [fresh, old, critical]

        result = await manager.process_decay(records)

        assert result == records
        assert result is not records
        assert old.deprecated is True
        assert old.importance == MemoryImportance.MINIMAL
        assert fresh.deprecated is False
        assert fresh.confidence == pytest.approx(1.0, abs=1e-4)
        assert critical.deprecated is False
        assert critical.confidence == pytest.approx(0.95, abs=1e-3)
        assert "last_decay_update" in critical.metadata
        assert critical.metadata["decay_score"] == pytest.approx(0.496, abs=2e-3)
        assert len(manager.locks) == 0

    @pytest.mark.asyncio
    async def test_identify_for_forgetting(self):
        """Test identification does not mutate records."""
        manager = MemoryForgettingManager()
        fresh = make_record()
        old = neglected()

        assert await manager.identify_for_forgetting([fresh, old]) == [old]
        assert old.deprecated is False

    @pytest.mark.asyncio
    async def test_calculate_decay(self):
        """Test the decay report."""
        info = await MemoryForgettingManager().calculate_decay(neglected())

        assert isinstance(info, MemoryDecayInfo)
        assert info.should_forget is True
        assert info.policy == ForgettingMode.GRADUAL_DECAY
        assert info.days_until_forgetting == 0
        assert info.decay_factors["age_factor"] == 100.0
        assert info.decay_factors["is_consolidated"] == 0.0
        assert 0.0 <= info.retention_score <= 1.0
        assert "policy=gradual_decay" in str(info)

    @pytest.mark.asyncio
    async def test_reinforce(self):
        """Test reinforcement counts, boosts and promotes."""
        manager = MemoryForgettingManager()
        record = make_record(confidence=0.5, access_count=10, importance=MemoryImportance.LOW)

        await manager.reinforce(record)
        await manager.reinforce(record)

        assert record.access_count == 12
        assert record.confidence == pytest.approx(0.7)
        assert record.importance == MemoryImportance.HIGH
        assert record.metadata["reinforcement_count"] == 2
        assert "last_reinforced" in record.metadata

    @pytest.mark.asyncio
    async def test_reinforce_caps_confidence(self):
        """Test confidence never exceeds 1.0."""
        record = make_record(confidence=0.95)
        await MemoryForgettingManager().reinforce(record)
        assert record.confidence == 1.0


class TestPrune:
    """Tests for pruning."""

    @pytest.mark.asyncio
    async def test_fits_and_empty_cap(self):
        """Test small sets are returned unchanged and a zero cap keeps nothing."""
        manager = MemoryForgettingManager()
        records = [make_record(), make_record()]

        kept = await manager.prune(records, 5)
        assert kept == records
        assert kept is not records
        assert await manager.prune(records, 0) == []

    @pytest.mark.asyncio
    async def test_least_important(self):
        """Test the most important records survive."""
        records = make_records_by_importance()

        kept = await MemoryForgettingManager().prune(records, 3, PruningStrategy.LEAST_IMPORTANT)

        assert {r.importance for r in kept} == {
            MemoryImportance.CRITICAL,
            MemoryImportance.HIGH,
            MemoryImportance.MEDIUM,
        }

    @pytest.mark.asyncio
    async def test_least_recently_used(self):
        """Test the most recently accessed records survive."""
        records = [make_record(f"note {d}", days_old=30, days_since_access=d) for d in (10, 1, 5)]

        kept = await MemoryForgettingManager().prune(
            records, 2, PruningStrategy.LEAST_RECENTLY_USED
        )

        assert kept == [records[1], records[2]]

    @pytest.mark.asyncio
    async def test_oldest_first(self):
        """Test the newest records survive."""
        records = [make_record(f"note {d}", days_old=d) for d in (10, 1, 5)]

        kept = await MemoryForgettingManager().prune(records, 2, PruningStrategy.OLDEST_FIRST)

        assert kept == [records[1], records[2]]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "strategy", [PruningStrategy.LOWEST_DECAY_SCORE, PruningStrategy.BALANCED]
    )
    async def test_decay_aware_strategies(self, strategy):
        """Test fresh records beat neglected ones."""
        fresh = make_record("fresh", importance=MemoryImportance.HIGH)
        old = neglected(importance=MemoryImportance.LOW)

        assert await MemoryForgettingManager().prune([old, fresh], 1, strategy) == [fresh]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("strategy", list(PruningStrategy))
    async def test_critical_records_retained(self, strategy):
        """Test CRITICAL records survive whenever the cap allows."""
        critical = make_record(
            "critical", days_old=200, days_since_access=200, importance=MemoryImportance.CRITICAL
        )
        others = [make_record(f"note {i}", importance=MemoryImportance.HIGH) for i in range(3)]

        kept = await MemoryForgettingManager().prune(others + [critical], 2, strategy)

        assert len(kept) == 2
        assert critical in kept


def test_get_stats():
    """Test statistics reflect configuration and policy."""
    manager = MemoryForgettingManager(forgetting_base=0.6, policy=ForgettingPolicy(decay_rate=0.3))
    stats = manager.get_stats()

    assert stats == {
        "forgetting_base": 0.6,
        "decay_rate": 0.3,
        "retention_threshold": 0.2,
        "custom_policy": True,
        "active_locks": 0,
    }
