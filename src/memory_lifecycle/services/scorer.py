"""Multi-factor importance scoring for memory records."""

import asyncio
import logging
import re
from abc import abstractmethod
from datetime import datetime
from typing import Any, Optional

from ..core.parsing import extract_json_object, require_float
from ..core.strategy import DecisionStrategy, FallbackStrategy
from ..core.text import clamp
from ..models.memory import MemoryImportance, MemoryRecord, MemoryType
from ..models.scoring import RULE_BASED_REASONING, ImportanceScore
from ..providers.base import ChatMessage, LLMConfig, LLMProvider

logger = logging.getLogger(__name__)

MIN_SCORE = 1.0
MAX_SCORE = 5.0
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0

HIGH_IMPORTANCE_KEYWORDS = frozenset(
    {
        "critical", "urgent", "important", "must", "essential", "key", "vital",
        "deadline", "emergency", "priority", "required", "necessary",
    }
)
LOW_IMPORTANCE_KEYWORDS = frozenset(
    {
        "maybe", "might", "could", "optional",
        "minor", "trivial", "unimportant", "casual", "random",
    }
)
LOW_IMPORTANCE_PHRASES = (
    re.compile(r"\bnice to have\b"),
    re.compile(r"\bif possible\b"),
)

IMPORTANCE_PATTERNS: tuple[tuple["re.Pattern[str]", float], ...] = (
    (re.compile(r"\b(?:deadline|due date|expires?)\b", re.I), 2.0),
    (re.compile(r"\b(?:password|secure|confidential|private)\b", re.I), 1.5),
    (re.compile(r"\b(?:meeting|appointment|interview)\b", re.I), 1.2),
    (re.compile(r"\$\d+(?:\.\d{2})?"), 1.0),
    (re.compile(r"\b(?:project|task|work|job)\b", re.I), 0.5),
    (re.compile(r"\b(?:family|friend|relationship)\b", re.I), 0.3),
    (re.compile(r"\b(?:weather|random|casual)\b", re.I), -0.5),
)

TYPE_WEIGHTS = {
    MemoryType.PROCEDURAL: 1.0,
    MemoryType.TEMPORAL: 0.8,
    MemoryType.FACTUAL: 0.6,
    MemoryType.RELATIONSHIP: 0.5,
    MemoryType.PREFERENCE: 0.4,
    MemoryType.EPISODIC: 0.3,
    MemoryType.CONTEXTUAL: 0.2,
    MemoryType.SEMANTIC: 0.0,
}

CATEGORY_WEIGHTS = {
    "work": 0.4,
    "business": 0.4,
    "personal": 0.3,
    "family": 0.3,
    "entertainment": -0.2,
    "casual": -0.2,
}

_DIGIT = re.compile(r"\d")
_PROPER_NOUN = re.compile(r"[A-Z][a-z]+")
_ISO_DATE = re.compile(r"\b\d{4}-\d{2}-\d{2}\b")

SCORING_SYSTEM_PROMPT = (
    "You are a memory importance scoring system. Rate the importance of the given memory "
    "on a scale of 1-5 where:\n"
    "1 = Minimal importance (trivial, can be forgotten)\n"
    "2 = Low importance (minor details)\n"
    "3 = Medium importance (useful information)\n"
    "4 = High importance (significant information)\n"
    "5 = Critical importance (must not be forgotten)\n\n"
    'Return JSON: {"score": number, "confidence": 0.0-1.0, "reasoning": "explanation"}'
)


def has_specific_information(content: str) -> bool:
    return bool(
        _DIGIT.search(content)
        or _PROPER_NOUN.search(content)
        or "@" in content
        or _ISO_DATE.search(content)
    )


def score_content(content: str) -> float:
    words = content.lower().split()
    high = sum(1 for word in words if word in HIGH_IMPORTANCE_KEYWORDS)
    low = sum(1 for word in words if word in LOW_IMPORTANCE_KEYWORDS)
    low += sum(len(phrase.findall(content.lower())) for phrase in LOW_IMPORTANCE_PHRASES)
    score = high * 0.3 - low * 0.2

    for pattern, weight in IMPORTANCE_PATTERNS:
        if pattern.search(content):
            score += weight

    if len(content) > 200:
        score += 0.3
    elif len(content) < 50:
        score -= 0.2

    if has_specific_information(content):
        score += 0.4
    return score


def score_type(memory_type: MemoryType) -> float:
    return TYPE_WEIGHTS.get(memory_type, 0.0)


def score_usage(record: MemoryRecord) -> float:
    score = 0.0
    if record.access_count > 10:
        score += 0.8
    elif record.access_count > 5:
        score += 0.5
    elif record.access_count > 2:
        score += 0.2

    if record.update_count > 3:
        score += 0.4
    if record.consolidated:
        score += 0.6
    return score


def score_temporal(record: MemoryRecord) -> float:
    score = 0.0
    days_old = record.days_old
    if days_old < 1:
        score += 0.5
    elif days_old < 7:
        score += 0.3
    elif days_old > 365:
        score -= 0.2

    days_since_access = record.days_since_last_access
    if days_since_access < 1:
        score += 0.3
    elif days_since_access > 30:
        score -= 0.3

    if record.expires_at is not None and (record.expires_at - datetime.now()).days < 7:
        score += 0.4
    return score


def score_context(context: Optional[dict[str, Any]]) -> float:
    if not context:
        return 0.0
    score = 0.0

    priority = context.get("priority")
    if priority == "high":
        score += 1.0
    elif priority == "low":
        score -= 0.5

    source = context.get("source")
    if source == "system":
        score += 0.3
    elif source == "user":
        score += 0.2

    category = context.get("category")
    if isinstance(category, str):
        score += CATEGORY_WEIGHTS.get(category.lower(), 0.0)
    return score


def score_relationships(record: MemoryRecord) -> float:
    score = 0.0
    related_count = len(record.related)
    if related_count > 5:
        score += 0.6
    elif related_count > 2:
        score += 0.3

    entity_count = len(record.entities)
    if entity_count > 3:
        score += 0.4
    elif entity_count > 1:
        score += 0.2

    if len(record.tags) > 3:
        score += 0.2
    return score


def calculate_confidence(breakdown: dict[str, float], record: MemoryRecord) -> float:
    confidence = 0.7
    confidence += 0.05 * sum(1 for value in breakdown.values() if abs(value) > 0.1)
    if record.access_count > 5:
        confidence += 0.1
    if record.consolidated:
        confidence += 0.15
    if record.days_old > 365:
        confidence -= 0.1
    return clamp(confidence, MIN_CONFIDENCE, MAX_CONFIDENCE)


def score_by_rules(record: MemoryRecord, context: Optional[dict[str, Any]] = None) -> ImportanceScore:
    breakdown = {
        "content": score_content(record.content or ""),
        "type": score_type(record.type),
        "usage": score_usage(record),
        "temporal": score_temporal(record),
        "context": score_context(context),
        "relationships": score_relationships(record),
    }
    total = clamp(3.0 + sum(breakdown.values()), MIN_SCORE, MAX_SCORE)
    return ImportanceScore(
        total=total,
        confidence=calculate_confidence(breakdown, record),
        breakdown=breakdown,
        reasoning=RULE_BASED_REASONING,
    )


def build_scoring_prompt(record: MemoryRecord, context: Optional[dict[str, Any]]) -> str:
    lines = [
        f"Memory Type: {record.type.value}",
        f"Content: {record.content}",
        f"Age: {record.days_old} days",
        f"Access Count: {record.access_count}",
        f"Update Count: {record.update_count}",
    ]
    if record.consolidated:
        lines.append("Status: Consolidated")
    if context:
        lines.append("Context:")
        lines.extend(f"  {key}: {value}" for key, value in context.items())
    return "\n".join(lines) + "\n"


class ScoringStrategy(DecisionStrategy):
    @abstractmethod
    async def score(self, record: MemoryRecord, context: Optional[dict[str, Any]]) -> ImportanceScore:
        ...


class RuleBasedScoring(ScoringStrategy):
    @property
    def name(self) -> str:
        return "rules"

    async def score(self, record, context):
        return score_by_rules(record, context)


class ModelScoring(ScoringStrategy):
    """Scores records by asking a language model for a structured rating."""

    def __init__(self, llm: LLMProvider):
        self.llm = llm

    @property
    def name(self) -> str:
        return "llm"

    def is_available(self) -> bool:
        return self.llm.is_available()

    async def score(self, record, context):
        response = await self.llm.chat_complete(
            [
                ChatMessage.system(SCORING_SYSTEM_PROMPT),
                ChatMessage.user(build_scoring_prompt(record, context)),
            ],
            LLMConfig(max_tokens=150, temperature=0.1),
        )
        data = extract_json_object(response.content)
        score = require_float(data, "score")
        confidence = require_float(data, "confidence") if "confidence" in data else 0.7
        reasoning = str(data.get("reasoning") or "LLM assessment")
        return ImportanceScore(
            total=clamp(score, MIN_SCORE, MAX_SCORE),
            confidence=clamp(confidence, MIN_CONFIDENCE, MAX_CONFIDENCE),
            breakdown={"llm_score": score},
            reasoning=reasoning,
        )


class ImportanceScorer:
    """Computes importance and confidence for memory records.

    Rule scoring starts from 3.0 and adds content, type, usage, temporal,
    context and relationship contributions, clamped to [1, 5].
    """

    def __init__(
        self,
        llm_provider: Optional[LLMProvider] = None,
        strategy: Optional[ScoringStrategy] = None,
    ):
        primary = strategy or (ModelScoring(llm_provider) if llm_provider else None)
        self.strategy: FallbackStrategy[ScoringStrategy] = FallbackStrategy(
            "scorer", fallback=RuleBasedScoring(), primary=primary
        )

    async def score(
        self, record: MemoryRecord, context: Optional[dict[str, Any]] = None
    ) -> ImportanceScore:
        logger.debug(f"Scoring importance for memory: {record.id}")
        return await self.strategy.execute("score", lambda s: s.score(record, context))

    async def rank(self, records: list[MemoryRecord]) -> list[MemoryRecord]:
        """Return records ordered by score, highest first; ties keep input order."""
        logger.debug(f"Ranking {len(records)} memories by importance")
        scores = await asyncio.gather(*(self.score(record) for record in records))
        ranked = sorted(zip(records, scores), key=lambda pair: -pair[1].total)
        return [record for record, _ in ranked]

    async def refresh(self, record: MemoryRecord) -> ImportanceScore:
        """Re-score ``record`` and write importance and confidence back onto it."""
        result = await self.score(record)
        record.set_importance(MemoryImportance.from_score(result.total))
        record.set_confidence(result.confidence)
        record.metadata["importance_updated"] = datetime.now().isoformat()
        record.metadata["importance_score_breakdown"] = dict(result.breakdown)
        return result

    def get_stats(self) -> dict[str, Any]:
        return self.strategy.get_stats()
