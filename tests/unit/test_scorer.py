"""Tests for the importance scorer."""

import pytest

from memory_lifecycle.models.memory import MemoryImportance, MemoryType
from memory_lifecycle.services.scorer import (
    ImportanceScorer,
    score_by_rules,
    score_content,
    score_context,
    score_usage,
)
from tests.fixtures import create_mock_llm, make_record

BREAKDOWN_KEYS = {"content", "type", "usage", "temporal", "context", "relationships"}


def low_value_record():
    return make_record(
        "maybe random casual weather", days_old=400, days_since_access=60
    )


def high_value_record():
    return make_record(
        "URGENT: project deadline for Alice, budget $500",
        type=MemoryType.PROCEDURAL,
        access_count=12,
    )


class TestRuleFactors:
    """Tests for the individual rule factors."""

    def test_content_keywords_and_patterns(self):
        """Test keyword counts, weighted patterns and specifics."""
        assert score_content("Project deadline is 2024-06-01") == pytest.approx(3.0)
        assert score_content("maybe random casual weather") == pytest.approx(-1.3)

    def test_low_importance_phrases(self):
        """Test multi-word hedges lower the content score."""
        assert score_content("nice to have if possible") == pytest.approx(-0.6)
        assert score_content("it is nice to have") == pytest.approx(-0.4)

    def test_usage(self):
        """Test access, update and consolidation contributions."""
        assert score_usage(make_record()) == 0.0
        assert score_usage(make_record(access_count=12, update_count=4)) == pytest.approx(1.2)
        assert score_usage(make_record(consolidated=True)) == pytest.approx(0.6)

    def test_context(self):
        """Test priority, source and category hints."""
        assert score_context(None) == 0.0
        assert score_context({"priority": "high", "source": "user"}) == pytest.approx(1.2)
        assert score_context({"priority": "low", "category": "Casual"}) == pytest.approx(-0.7)


class TestRuleScoring:
    """Tests for the combined rule score."""

    def test_breakdown_keys(self):
        """Test every factor is reported."""
        result = score_by_rules(make_record("water is wet"))

        assert set(result.breakdown) == BREAKDOWN_KEYS
        assert result.is_rule_based is True

    def test_fresh_plain_record(self):
        """Test a fresh plain record scores slightly above neutral."""
        result = score_by_rules(make_record("water is wet"))

        assert result.total == pytest.approx(3.6)
        assert result.confidence == pytest.approx(0.8)

    def test_bounds(self):
        """Test totals are clamped to [1, 5] and confidence to [0.1, 1]."""
        low = score_by_rules(low_value_record(), {"priority": "low"})
        high = score_by_rules(high_value_record(), {"priority": "high"})

        assert low.total == 1.0
        assert high.total == 5.0
        for result in (low, high):
            assert 0.1 <= result.confidence <= 1.0


class TestImportanceScorer:
    """Tests for the ImportanceScorer facade."""

    @pytest.mark.asyncio
    async def test_rule_scoring_without_model(self):
        """Test the rule engine answers without a model."""
        scorer = ImportanceScorer()
        result = await scorer.score(make_record("water is wet"))

        assert result.total == pytest.approx(3.6)
        assert scorer.get_stats()["fallback_calls"] == 1

    @pytest.mark.asyncio
    async def test_model_scoring(self):
        """Test a JSON reply is used as the score."""
        llm = create_mock_llm('{"score": 4.5, "confidence": 0.9, "reasoning": "deadline"}')
        scorer = ImportanceScorer(llm)

        result = await scorer.score(make_record("water is wet"), {"priority": "high"})

        assert result.total == 4.5
        assert result.confidence == 0.9
        assert result.breakdown == {"llm_score": 4.5}
        assert result.reasoning == "deadline"
        assert result.is_rule_based is False
        prompt = llm.chat_complete.call_args[0][0][1].content
        assert "Memory Type: semantic" in prompt
        assert "priority: high" in prompt

    @pytest.mark.asyncio
    async def test_model_score_is_clamped(self):
        """Test out-of-range model scores are clamped."""
        scorer = ImportanceScorer(create_mock_llm('{"score": 9, "confidence": 3}'))
        result = await scorer.score(make_record())

        assert result.total == 5.0
        assert result.confidence == 1.0

    @pytest.mark.asyncio
    async def test_model_garbage_falls_back(self):
        """Test unparsable replies resolve to the rule score."""
        scorer = ImportanceScorer(create_mock_llm("I think it is quite important"))
        result = await scorer.score(make_record("water is wet"))

        assert result.is_rule_based is True
        assert result.total == pytest.approx(3.6)
        assert scorer.get_stats()["primary_failures"] == 1

    @pytest.mark.asyncio
    async def test_rank(self):
        """Test records are ordered by score, highest first."""
        low = low_value_record()
        mid = make_record("water is wet")
        high = high_value_record()

        ranked = await ImportanceScorer().rank([low, high, mid])

        assert ranked == [high, mid, low]

    @pytest.mark.asyncio
    async def test_rank_empty(self):
        """Test ranking nothing."""
        assert await ImportanceScorer().rank([]) == []

    @pytest.mark.asyncio
    async def test_refresh_writes_back(self):
        """Test refresh updates importance, confidence and metadata."""
        record = make_record("water is wet", importance=MemoryImportance.LOW, confidence=0.3)

        result = await ImportanceScorer().refresh(record)

        assert result.total == pytest.approx(3.6)
        assert record.importance == MemoryImportance.HIGH
        assert record.confidence == pytest.approx(0.8)
        assert "importance_updated" in record.metadata
        assert set(record.metadata["importance_score_breakdown"]) == BREAKDOWN_KEYS

    @pytest.mark.asyncio
    async def test_refresh_keeps_deprecated_minimal(self):
        """Test a deprecated record stays MINIMAL after refresh."""
        record = make_record("Project deadline is 2024-06-01", deprecated=True)

        await ImportanceScorer().refresh(record)

        assert record.importance == MemoryImportance.MINIMAL
