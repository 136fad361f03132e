"""Detection and resolution of conflicts between memory records."""

import asyncio
import logging
import re
from abc import abstractmethod
from typing import Any, Optional

from ..core.parsing import extract_json_object, require_float
from ..core.strategy import DecisionStrategy, FallbackStrategy
from ..core.text import clamp, cosine_similarity, extract_numbers
from ..exceptions import ReplyParseError
from ..models.conflict import (
    ConflictResolution,
    ConflictType,
    MemoryConflict,
    ResolutionStrategy,
)
from ..models.memory import MemoryRecord, MemoryType
from ..providers.base import ChatMessage, EmbeddingProvider, LLMConfig, LLMProvider
from .cache import EmbeddingCache

logger = logging.getLogger(__name__)

DEFAULT_SEMANTIC_THRESHOLD = 0.85
DEFAULT_CONFIDENCE_THRESHOLD = 0.7
REDUNDANCY_THRESHOLD = 0.95

COMPATIBLE_TYPES = frozenset(
    {
        (MemoryType.FACTUAL, MemoryType.SEMANTIC),
        (MemoryType.SEMANTIC, MemoryType.FACTUAL),
        (MemoryType.PREFERENCE, MemoryType.CONTEXTUAL),
        (MemoryType.CONTEXTUAL, MemoryType.PREFERENCE),
    }
)

TYPE_CONFIDENCE_BONUS = {
    ConflictType.CONTRADICTION: 0.4,
    ConflictType.FACTUAL_CONFLICT: 0.3,
    ConflictType.PREFERENCE_CONFLICT: 0.2,
    ConflictType.TEMPORAL_CONFLICT: 0.3,
    ConflictType.REDUNDANCY: 0.5,
    ConflictType.NONE: 0.0,
}

CONFLICT_REASONS = {
    ConflictType.CONTRADICTION: "Memories contain contradictory information",
    ConflictType.FACTUAL_CONFLICT: "Factual information conflicts between memories",
    ConflictType.PREFERENCE_CONFLICT: "User preferences are inconsistent",
    ConflictType.TEMPORAL_CONFLICT: "Temporal information conflicts",
    ConflictType.REDUNDANCY: "Memories contain duplicate information",
    ConflictType.NONE: "Potential conflict detected",
}

POSITIVE_ASSERTION = re.compile(r"\b(?:is|are|does|can|will|likes|prefers|enjoys)\b")
NEGATIVE_ASSERTION = re.compile(r"\b(?:not|never|doesn't|cannot|won't|dislikes|hates)\b")
PREFERENCE_WORD = re.compile(r"\b(?:prefers?|likes?|enjoys?|loves?)\b")
PREFERENCE_VERB = re.compile(r"(?:prefers?|likes?|enjoys?|loves?)")
OPPOSING_PREFERENCES = (
    (re.compile(r"\blikes?\b"), re.compile(r"\bdislikes?\b")),
    (re.compile(r"\bloves?\b"), re.compile(r"\bhates?\b")),
    (re.compile(r"\bprefers?\b"), re.compile(r"\bavoids?\b")),
)
TEMPORAL_TOKEN = re.compile(
    r"\d{4}-\d{2}-\d{2}|(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday)"
)

ANALYSIS_SYSTEM_PROMPT = (
    "You are a memory conflict analysis system. Analyze if two memories conflict with each "
    "other. A conflict occurs when memories contradict each other or contain incompatible "
    "information. Return a JSON with: "
    '{"hasConflict": boolean, "confidence": 0.0-1.0, "conflictType": "string", "reason": "string"}'
)
RESOLUTION_SYSTEM_PROMPT = (
    "You are a memory conflict resolution system. Given conflicting memories, determine the "
    "best resolution strategy. Options: KEEP_NEWER, KEEP_OLDER, MERGE, KEEP_BOTH, DELETE_BOTH. "
    'Return JSON with: {"strategy": "STRATEGY_NAME", "mergedContent": "string if merge", '
    '"reason": "explanation"}'
)

# Model replies speak of the new record as "newer" and the existing one as "older".
_STRATEGY_ALIASES = {
    "keep_newer": ResolutionStrategy.KEEP_FIRST,
    "keep_older": ResolutionStrategy.KEEP_SECOND,
}


def is_type_compatible(type1: MemoryType, type2: MemoryType) -> bool:
    """Whether records of these two types can conflict at all."""
    return type1 == type2 or (type1, type2) in COMPATIBLE_TYPES


def is_negative(content: str) -> bool:
    """Whether the statement contains a negation."""
    return bool(NEGATIVE_ASSERTION.search(content))


def is_positive(content: str) -> bool:
    """Whether the statement asserts something without negating it."""
    return bool(POSITIVE_ASSERTION.search(content)) and not is_negative(content)


def has_direct_contradiction(content1: str, content2: str) -> bool:
    """One statement asserts and the other negates; same-polarity pairs never contradict."""
    return (is_positive(content1) and is_negative(content2)) or (
        is_negative(content1) and is_positive(content2)
    )


def preference_objects(content: str) -> set[str]:
    """Words that directly follow a preference verb."""
    words = content.split()
    return {
        words[i + 1].lower().strip(".,;:!?")
        for i in range(len(words) - 1)
        if PREFERENCE_VERB.fullmatch(words[i])
    }


def has_opposing_preferences(content1: str, content2: str) -> bool:
    """The first statement likes what the second one dislikes."""
    return any(
        positive.search(content1) is not None and negative.search(content2) is not None
        for positive, negative in OPPOSING_PREFERENCES
    )


def has_preference_conflict(content1: str, content2: str) -> bool:
    """Both state preferences that oppose each other or name different objects."""
    if not PREFERENCE_WORD.search(content1) or not PREFERENCE_WORD.search(content2):
        return False
    if has_opposing_preferences(content1, content2) or has_opposing_preferences(
        content2, content1
    ):
        return True
    objects1 = preference_objects(content1)
    objects2 = preference_objects(content2)
    return bool(objects1) and bool(objects2) and objects1 != objects2


def has_factual_conflict(content1: str, content2: str) -> bool:
    """Both statements carry numbers and the numbers differ."""
    numbers1 = set(extract_numbers(content1))
    numbers2 = set(extract_numbers(content2))
    return bool(numbers1) and bool(numbers2) and numbers1 != numbers2


def temporal_entities(content: str) -> set[str]:
    """ISO dates and weekday names mentioned in the statement."""
    return {word for word in content.lower().split() if TEMPORAL_TOKEN.fullmatch(word)}


def has_temporal_conflict(content1: str, content2: str) -> bool:
    """Both statements refer to a shared point in time."""
    return bool(temporal_entities(content1) & temporal_entities(content2))


def determine_conflict_type(
    memory1: MemoryRecord, memory2: MemoryRecord, similarity: float
) -> ConflictType:
    """Classify the overlap of two records; earlier checks take precedence."""
    content1 = memory1.content.lower()
    content2 = memory2.content.lower()
    factual_types = (MemoryType.FACTUAL, MemoryType.SEMANTIC)

    if memory1.type == MemoryType.PREFERENCE and memory2.type == MemoryType.PREFERENCE:
        if has_preference_conflict(content1, content2):
            return ConflictType.PREFERENCE_CONFLICT

    if has_direct_contradiction(content1, content2):
        return ConflictType.CONTRADICTION

    if memory1.type in factual_types and memory2.type in factual_types:
        if has_factual_conflict(content1, content2):
            return ConflictType.FACTUAL_CONFLICT

    if memory1.type == MemoryType.TEMPORAL and memory2.type == MemoryType.TEMPORAL:
        if has_temporal_conflict(content1, content2):
            return ConflictType.TEMPORAL_CONFLICT

    if similarity > REDUNDANCY_THRESHOLD:
        return ConflictType.REDUNDANCY

    return ConflictType.NONE


def conflict_confidence(
    memory1: MemoryRecord,
    memory2: MemoryRecord,
    similarity: float,
    conflict_type: ConflictType,
) -> float:
    """Rule confidence from similarity, conflict type, consolidation and priority."""
    confidence = similarity * 0.4 + TYPE_CONFIDENCE_BONUS.get(conflict_type, 0.0)
    if memory1.consolidated or memory2.consolidated:
        confidence += 0.1
    if memory1.importance.is_high_priority or memory2.importance.is_high_priority:
        confidence += 0.1
    return clamp(confidence, 0.0, 1.0)


def analyze_by_rules(
    memory1: MemoryRecord, memory2: MemoryRecord, similarity: float
) -> Optional[MemoryConflict]:
    """Conflict between two records, or None when they do not conflict."""
    conflict_type = determine_conflict_type(memory1, memory2, similarity)
    if conflict_type == ConflictType.NONE:
        return None
    return MemoryConflict(
        memory1=memory1,
        memory2=memory2,
        type=conflict_type,
        confidence=conflict_confidence(memory1, memory2, similarity, conflict_type),
        reason=CONFLICT_REASONS[conflict_type],
        similarity=similarity,
    )


def merge_facts(memory1: MemoryRecord, memory2: MemoryRecord) -> str:
    """Join two factual statements into one."""
    return f"{memory1.content}. Additionally, {memory2.content}"


def _keep_newer(memory1: MemoryRecord, memory2: MemoryRecord, reason: str) -> ConflictResolution:
    if memory2.created_at > memory1.created_at:
        return ConflictResolution(ResolutionStrategy.KEEP_SECOND, reason)
    return ConflictResolution(ResolutionStrategy.KEEP_FIRST, reason)


def resolve_by_rules(conflict: MemoryConflict) -> ConflictResolution:
    """Pick a resolution for ``conflict`` from its type and the records involved."""
    memory1 = conflict.memory1
    memory2 = conflict.memory2

    if conflict.type == ConflictType.REDUNDANCY:
        if memory1.access_count > memory2.access_count:
            return ConflictResolution(
                ResolutionStrategy.KEEP_FIRST, "Keeping more frequently accessed memory"
            )
        if memory2.access_count > memory1.access_count:
            return ConflictResolution(
                ResolutionStrategy.KEEP_SECOND, "Keeping more frequently accessed memory"
            )
        return _keep_newer(memory1, memory2, "Keeping newer memory")

    if conflict.type == ConflictType.CONTRADICTION:
        if memory2.consolidated and not memory1.consolidated:
            return ConflictResolution(ResolutionStrategy.KEEP_SECOND, "Keeping consolidated memory")
        if memory1.consolidated and not memory2.consolidated:
            return ConflictResolution(ResolutionStrategy.KEEP_FIRST, "Keeping consolidated memory")
        if memory1.importance.score > memory2.importance.score:
            return ConflictResolution(
                ResolutionStrategy.KEEP_FIRST, "Keeping higher importance memory"
            )
        if memory2.importance.score > memory1.importance.score:
            return ConflictResolution(
                ResolutionStrategy.KEEP_SECOND, "Keeping higher importance memory"
            )
        return ConflictResolution(ResolutionStrategy.KEEP_FIRST, "Keeping newer memory by default")

    if conflict.type == ConflictType.PREFERENCE_CONFLICT:
        return ConflictResolution(
            ResolutionStrategy.KEEP_BOTH, "Preserving both preferences for user review"
        )

    if conflict.type == ConflictType.FACTUAL_CONFLICT:
        if not has_factual_conflict(memory1.content.lower(), memory2.content.lower()):
            return ConflictResolution(
                ResolutionStrategy.MERGE,
                "Merging compatible factual information",
                merged_content=merge_facts(memory1, memory2),
            )
        return _keep_newer(memory1, memory2, "Keeping newer factual information")

    if conflict.type == ConflictType.TEMPORAL_CONFLICT:
        return ConflictResolution(ResolutionStrategy.KEEP_BOTH, "Preserving both temporal references")

    return ConflictResolution(
        ResolutionStrategy.KEEP_BOTH, "Conservative resolution - keeping both memories"
    )


class ConflictStrategy(DecisionStrategy):
    @abstractmethod
    async def analyze(
        self, memory1: MemoryRecord, memory2: MemoryRecord, similarity: float
    ) -> Optional[MemoryConflict]:
        ...

    @abstractmethod
    async def resolve(self, conflict: MemoryConflict) -> ConflictResolution:
        ...


class RuleBasedConflicts(ConflictStrategy):
    @property
    def name(self) -> str:
        return "rules"

    async def analyze(self, memory1, memory2, similarity):
        return analyze_by_rules(memory1, memory2, similarity)

    async def resolve(self, conflict):
        return resolve_by_rules(conflict)


class ModelConflicts(ConflictStrategy):
    """Conflict analysis and resolution through structured model replies."""

    def __init__(self, llm: LLMProvider):
        self.llm = llm

    @property
    def name(self) -> str:
        return "llm"

    def is_available(self) -> bool:
        return self.llm.is_available()

    async def _ask_json(self, system_prompt: str, prompt: str, max_tokens: int) -> dict[str, Any]:
        response = await self.llm.chat_complete(
            [ChatMessage.system(system_prompt), ChatMessage.user(prompt)],
            LLMConfig(max_tokens=max_tokens, temperature=0.1),
        )
        return extract_json_object(response.content)

    async def analyze(self, memory1, memory2, similarity):
        prompt = (
            f"Memory 1 ({memory1.type.value}): {memory1.content}\n"
            f"Memory 2 ({memory2.type.value}): {memory2.content}\n\n"
            "Analyze if these memories conflict."
        )
        data = await self._ask_json(ANALYSIS_SYSTEM_PROMPT, prompt, 200)
        has_conflict = data.get("hasConflict")
        if not isinstance(has_conflict, bool):
            raise ReplyParseError("Field 'hasConflict' is not a boolean", str(data))
        if not has_conflict:
            return None

        conflict_type = ConflictType.from_value(data.get("conflictType"))
        if conflict_type == ConflictType.NONE:
            conflict_type = ConflictType.CONTRADICTION
        confidence = require_float(data, "confidence") if "confidence" in data else 0.7
        return MemoryConflict(
            memory1=memory1,
            memory2=memory2,
            type=conflict_type,
            confidence=clamp(confidence, 0.0, 1.0),
            reason=str(data.get("reason") or "LLM detected conflict"),
            similarity=similarity,
        )

    async def resolve(self, conflict):
        prompt = (
            f"Conflict Type: {conflict.type.value}\n"
            f"Confidence: {conflict.confidence:.2f}\n"
            f"Reason: {conflict.reason}\n\n"
            f"Memory 1: {conflict.memory1.content}\n"
            f"Memory 2: {conflict.memory2.content}\n\n"
            "How should this conflict be resolved?"
        )
        data = await self._ask_json(RESOLUTION_SYSTEM_PROMPT, prompt, 300)
        raw_strategy = str(data.get("strategy") or "").strip().lower()
        strategy = _STRATEGY_ALIASES.get(raw_strategy) or ResolutionStrategy.from_value(raw_strategy)
        if strategy is None:
            raise ReplyParseError(f"Unknown resolution strategy '{raw_strategy}'", str(data))

        merged_content = data.get("mergedContent") or None
        if strategy == ResolutionStrategy.MERGE and not merged_content:
            raise ReplyParseError("Merge resolution without merged content", str(data))
        return ConflictResolution(
            strategy=strategy,
            reason=str(data.get("reason") or "LLM resolution"),
            merged_content=merged_content if strategy == ResolutionStrategy.MERGE else None,
        )


class MemoryConflictDetector:
    """Finds existing records that overlap a new record and proposes resolutions.

    Candidates are screened by owner, type compatibility and deprecation, then
    by embedding cosine similarity. Each survivor is analysed independently;
    results are reported in descending similarity order.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        llm_provider: Optional[LLMProvider] = None,
        semantic_threshold: float = DEFAULT_SEMANTIC_THRESHOLD,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        cache: Optional[EmbeddingCache] = None,
        strategy: Optional[ConflictStrategy] = None,
    ):
        """Initialize the detector.

        Args:
            embedding_provider: Source of text embeddings for similarity screening.
            llm_provider: Optional model for analysis and resolution.
            semantic_threshold: Minimum cosine similarity for a candidate to be analysed.
            confidence_threshold: Minimum confidence for a conflict to be reported.
            cache: Embedding cache; a private one is created when omitted.
            strategy: Overrides the model-backed strategy built from ``llm_provider``.
        """
        self.embedding_provider = embedding_provider
        self.semantic_threshold = semantic_threshold
        self.confidence_threshold = confidence_threshold
        self.cache = cache if cache is not None else EmbeddingCache()
        primary = strategy or (ModelConflicts(llm_provider) if llm_provider else None)
        self.strategy: FallbackStrategy[ConflictStrategy] = FallbackStrategy(
            "conflicts", fallback=RuleBasedConflicts(), primary=primary
        )

    async def detect(
        self, new_record: Optional[MemoryRecord], candidates: list[MemoryRecord]
    ) -> list[MemoryConflict]:
        """Return conflicts between ``new_record`` and ``candidates``.

        A missing record or an embedding failure yields an empty list.
        """
        if new_record is None:
            logger.warning("Cannot detect conflicts for a missing memory")
            return []

        logger.debug(f"Detecting conflicts for new memory: {new_record.id}")
        similar = await self.find_similar(new_record, candidates)
        if not similar:
            return []

        analysed = await asyncio.gather(
            *(
                self.strategy.execute(
                    "analyze", lambda s, c=candidate, sim=similarity: s.analyze(new_record, c, sim)
                )
                for candidate, similarity in similar
            )
        )
        conflicts = [
            conflict
            for conflict in analysed
            if conflict is not None
            and conflict.type != ConflictType.NONE
            and conflict.confidence >= self.confidence_threshold
        ]
        logger.debug(
            f"Found {len(conflicts)} conflicts above confidence threshold "
            f"{self.confidence_threshold}"
        )
        return conflicts

    async def resolve(self, conflict: MemoryConflict) -> ConflictResolution:
        logger.debug(
            f"Resolving conflict between memories: {conflict.memory1.id} and {conflict.memory2.id}"
        )
        return await self.strategy.execute("resolve", lambda s: s.resolve(conflict))

    async def find_similar(
        self, new_record: MemoryRecord, candidates: list[MemoryRecord]
    ) -> list[tuple[MemoryRecord, float]]:
        """Screen candidates and return (record, similarity) pairs, most similar first."""
        screened = [
            candidate
            for candidate in candidates
            if candidate.id != new_record.id
            and candidate.user_id == new_record.user_id
            and is_type_compatible(candidate.type, new_record.type)
            and not candidate.deprecated
        ]
        if not screened:
            return []

        try:
            new_vector = await self._embed_one(new_record.content)
            vectors = await self._embed_all([candidate.content for candidate in screened])
        except Exception as e:
            logger.warning(f"Embedding provider failed, skipping conflict detection: {e}")
            return []

        similar = []
        for candidate, vector in zip(screened, vectors):
            similarity = cosine_similarity(new_vector, vector)
            if similarity >= self.semantic_threshold:
                similar.append((candidate, similarity))
        similar.sort(key=lambda pair: -pair[1])
        return similar

    async def _embed_one(self, text: str) -> list[float]:
        key = self.cache.create_key(self.embedding_provider.name, text)
        vector = self.cache.get(key)
        if vector is None:
            vector = await self.embedding_provider.embed(text)
            self.cache.set(key, vector)
        return vector

    async def _embed_all(self, texts: list[str]) -> list[list[float]]:
        """Embed texts through the cache, batching every miss into one call."""
        provider_name = self.embedding_provider.name
        keys = [self.cache.create_key(provider_name, text) for text in texts]
        vectors: list[Optional[list[float]]] = [self.cache.get(key) for key in keys]

        missing = [index for index, vector in enumerate(vectors) if vector is None]
        if missing:
            fetched = await self.embedding_provider.embed_batch([texts[i] for i in missing])
            if len(fetched) != len(missing):
                raise ValueError(
                    f"Embedding provider returned {len(fetched)} vectors for {len(missing)} texts"
                )
            for index, vector in zip(missing, fetched):
                vectors[index] = vector
                self.cache.set(keys[index], vector)
        return [vector for vector in vectors if vector is not None]

    def get_stats(self) -> dict[str, Any]:
        stats = self.strategy.get_stats()
        stats["embedding_cache"] = self.cache.get_stats()
        return stats
