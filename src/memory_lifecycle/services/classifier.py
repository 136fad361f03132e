"""Memory classification: type, importance hint, entities and tags."""

import logging
import re
from abc import abstractmethod
from typing import Any, Optional

from ..core.parsing import parse_comma_list, parse_integer
from ..core.strategy import DecisionStrategy, FallbackStrategy
from ..exceptions import ReplyParseError
from ..models.memory import MemoryImportance, MemoryType
from ..providers.base import ChatMessage, LLMConfig, LLMProvider

logger = logging.getLogger(__name__)

# Tested in this order before any keyword cue; the first matching group wins.
CLASSIFICATION_PATTERNS: tuple[tuple[MemoryType, tuple["re.Pattern[str]", ...]], ...] = (
    (
        MemoryType.PROCEDURAL,
        (
            re.compile(r"\b(?:how to|step \d+|first|second|third|then|next|finally)\b", re.I),
            re.compile(r"\b(?:process|method|technique|procedure|algorithm)\b", re.I),
        ),
    ),
    (
        MemoryType.PREFERENCE,
        (
            re.compile(r"\b(?:like|prefer|favorite|enjoy|love|hate|dislike)\b", re.I),
            re.compile(r"\b(?:usually|always|never|typically|tend to)\b", re.I),
        ),
    ),
    (
        MemoryType.TEMPORAL,
        (
            re.compile(r"\b(?:schedule|appointment|meeting|deadline|reminder)\b", re.I),
            re.compile(r"\b(?:today|tomorrow|next \w+)\b", re.I),
            re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
            re.compile(r"\b\d{1,2}:\d{2}\s*(?:AM|PM)?\b", re.I),
        ),
    ),
    (
        MemoryType.RELATIONSHIP,
        (
            re.compile(r"\b(?:friend|colleague|family|partner|manager|team)\b", re.I),
            re.compile(r"\b(?:knows|works with|married to|related to|connected to)\b", re.I),
        ),
    ),
)

PROCEDURAL_KEYWORDS = frozenset(
    {
        "how to", "step", "process", "method", "technique", "skill", "procedure",
        "algorithm", "recipe", "instructions", "tutorial", "guide",
    }
)
PREFERENCE_KEYWORDS = frozenset(
    {
        "like", "prefer", "favorite", "enjoy", "love", "hate", "dislike",
        "usually", "always", "never", "typically", "tend to",
    }
)
TEMPORAL_KEYWORDS = frozenset(
    {
        "schedule", "appointment", "meeting", "deadline", "reminder", "calendar",
        "today", "tomorrow", "yesterday", "next week", "last month",
    }
)
RELATIONSHIP_KEYWORDS = frozenset(
    {
        "friend", "colleague", "family", "partner", "manager", "team", "knows",
        "works with", "married to", "related to", "connected to",
    }
)

EPISODIC_PHRASES = (
    "i remember", "last time", "when i", "experience", "went to", "attended", "visited",
)
EPISODIC_PATTERNS = (
    re.compile(r"\b(?:yesterday|last week|last month|ago)\b"),
    re.compile(r"\b(?:i went|i visited|i attended|i saw|i met)\b"),
)

FACTUAL_PATTERNS = (
    re.compile(r"\b\d+(?:\.\d+)?\s*(?:%|percent|kg|km|miles|dollars?|USD|EUR)(?!\w)"),
    re.compile(r"\b\d{4}\b"),
)
FACTUAL_MARKERS = ("fact:", "data:")
FACTUAL_PHRASES = (
    "was created by", "was founded by", "was invented by", "was developed by",
    "is the capital of", "is located in", "was established in", "complexity is",
    "algorithm complexity", "o(", "big o",
)

SCHEDULE_WORDS = ("schedule", "appointment", "meeting", "deadline", "reminder", "calendar")
TIME_PATTERNS = (
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(r"\b\d{1,2}:\d{2}\s*(?:AM|PM)?\b"),
)
FUTURE_PHRASES = (
    "tomorrow", "next week", "next month", "scheduled for", "due on",
    "every monday", "every tuesday", "every wednesday", "every thursday",
    "every friday", "every saturday", "every sunday",
)
TEMPORAL_CONTEXT_KEYS = ("eventTime", "event_time", "scheduled", "temporal_context")

URGENCY_WORDS = ("important", "critical", "urgent", "must", "essential")

PROPER_NOUN = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")
EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE = re.compile(r"\b\d{3}-\d{3}-\d{4}\b|\(\d{3}\)\s*\d{3}-\d{4}\b")
DATE = re.compile(r"\b\d{4}-\d{2}-\d{2}\b|\b\d{1,2}/\d{1,2}/\d{4}\b")
NUMBER = re.compile(r"\b\d+(?:\.\d+)?\b")
ENTITY_STOPWORDS = frozenset({"The", "This", "That", "These", "Those", "And", "But", "Or", "So", "If"})

CLASSIFY_SYSTEM_PROMPT = (
    "You are a memory classification system. Classify the given content into one of these "
    "types: semantic, episodic, procedural, factual, contextual, preference, relationship, "
    "temporal. Return only the type name."
)
IMPORTANCE_SYSTEM_PROMPT = (
    "You are a memory importance assessment system. Rate the importance of the given memory "
    "on a scale of 1-5 where 1=minimal, 2=low, 3=medium, 4=high, 5=critical. "
    "Return only the number."
)
ENTITY_SYSTEM_PROMPT = (
    "Extract important entities from the given text. Return them as a comma-separated list. "
    "Focus on proper nouns, names, places, organizations, dates, and other specific entities."
)
TAG_SYSTEM_PROMPT = (
    "Generate 3-5 relevant tags for the given memory content. "
    "Return them as a comma-separated list. Keep tags short and descriptive."
)


def contains_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def contains_episodic_info(text: str) -> bool:
    lowered = text.lower()
    return contains_any(lowered, EPISODIC_PHRASES) or any(
        pattern.search(lowered) for pattern in EPISODIC_PATTERNS
    )


def contains_factual_info(text: str) -> bool:
    lowered = text.lower()
    return (
        any(pattern.search(text) for pattern in FACTUAL_PATTERNS)
        or contains_any(text, FACTUAL_MARKERS)
        or contains_any(lowered, FACTUAL_PHRASES)
    )


def contains_temporal_info(text: str) -> bool:
    lowered = text.lower()
    return (
        contains_any(lowered, SCHEDULE_WORDS)
        or any(pattern.search(text) for pattern in TIME_PATTERNS)
        or contains_any(lowered, FUTURE_PHRASES)
    )


def has_temporal_context(context: Optional[dict[str, Any]]) -> bool:
    return bool(context) and any(key in context for key in TEMPORAL_CONTEXT_KEYS)


def contains_specific_info(text: str) -> bool:
    """Numbers, proper nouns, email-like text or long content."""
    return bool(
        NUMBER.search(text) or PROPER_NOUN.search(text) or "@" in text or len(text) > 100
    )


def classify_by_rules(text: Optional[str], context: Optional[dict[str, Any]] = None) -> MemoryType:
    if not text or not text.strip():
        return MemoryType.SEMANTIC

    for memory_type, patterns in CLASSIFICATION_PATTERNS:
        if any(pattern.search(text) for pattern in patterns):
            return memory_type

    lowered = text.lower()
    if contains_episodic_info(text):
        return MemoryType.EPISODIC
    if contains_factual_info(text):
        return MemoryType.FACTUAL
    if contains_any(lowered, PROCEDURAL_KEYWORDS):
        return MemoryType.PROCEDURAL
    if contains_any(lowered, PREFERENCE_KEYWORDS):
        return MemoryType.PREFERENCE
    if contains_any(lowered, RELATIONSHIP_KEYWORDS):
        return MemoryType.RELATIONSHIP
    if contains_temporal_info(text) or has_temporal_context(context):
        return MemoryType.TEMPORAL
    return MemoryType.SEMANTIC


def assess_importance_by_rules(
    text: str, memory_type: MemoryType, context: Optional[dict[str, Any]] = None
) -> MemoryImportance:
    score = 3
    if memory_type in (MemoryType.PROCEDURAL, MemoryType.PREFERENCE, MemoryType.EPISODIC):
        score += 1
    elif memory_type == MemoryType.TEMPORAL:
        score += 2

    if contains_any((text or "").lower(), URGENCY_WORDS):
        score += 2
    if text and contains_specific_info(text):
        score += 1

    if context:
        if context.get("priority") == "high":
            score += 2
        if context.get("source") == "system":
            score += 1

    return MemoryImportance.from_score(max(1, min(5, score)))


def extract_entities_by_rules(text: Optional[str]) -> set[str]:
    if not text:
        return set()
    entities = {
        match
        for match in PROPER_NOUN.findall(text)
        if len(match) > 2 and match not in ENTITY_STOPWORDS
    }
    entities.update(EMAIL.findall(text))
    entities.update(PHONE.findall(text))
    entities.update(DATE.findall(text))
    return entities


def generate_tags_by_rules(text: Optional[str], memory_type: MemoryType) -> set[str]:
    tags = {memory_type.value}
    lowered = (text or "").lower()

    if contains_any(lowered, PREFERENCE_KEYWORDS):
        tags.add("preference")
    if contains_any(lowered, TEMPORAL_KEYWORDS):
        tags.add("temporal")
    if contains_any(lowered, RELATIONSHIP_KEYWORDS):
        tags.add("social")
    if contains_any(lowered, ("work", "job", "office")):
        tags.add("work")
    if contains_any(lowered, ("personal", "family", "home")):
        tags.add("personal")
    if contains_any(lowered, ("skill", "learn", "knowledge")):
        tags.add("learning")
    return tags


def format_context(context: Optional[dict[str, Any]]) -> str:
    if not context:
        return ""
    return "\nContext: " + " ".join(f"{key}={value}" for key, value in context.items())


def parse_memory_type(reply: Optional[str]) -> MemoryType:
    """Interpret a one-word classification reply.

    Raises:
        ReplyParseError: If the reply names no known type.
    """
    if reply is None:
        raise ReplyParseError("Empty classification reply")
    normalized = reply.strip().lower()
    memory_type = MemoryType.from_value(normalized)
    if memory_type != MemoryType.SEMANTIC or normalized == MemoryType.SEMANTIC.value:
        return memory_type
    for candidate in MemoryType:
        if candidate.name.lower() in normalized or candidate.value in normalized:
            return candidate
    raise ReplyParseError("Unrecognised memory type", reply)


class ClassificationStrategy(DecisionStrategy):
    """Operations every classification implementation provides."""

    @abstractmethod
    async def classify(self, text: str, context: Optional[dict[str, Any]]) -> MemoryType:
        ...

    @abstractmethod
    async def assess_importance(
        self, text: str, memory_type: MemoryType, context: Optional[dict[str, Any]]
    ) -> MemoryImportance:
        ...

    @abstractmethod
    async def extract_entities(self, text: str) -> set[str]:
        ...

    @abstractmethod
    async def generate_tags(self, text: str, memory_type: MemoryType) -> set[str]:
        ...


class RuleBasedClassification(ClassificationStrategy):
    @property
    def name(self) -> str:
        return "rules"

    async def classify(self, text, context):
        return classify_by_rules(text, context)

    async def assess_importance(self, text, memory_type, context):
        return assess_importance_by_rules(text, memory_type, context)

    async def extract_entities(self, text):
        return extract_entities_by_rules(text)

    async def generate_tags(self, text, memory_type):
        return generate_tags_by_rules(text, memory_type)


class ModelClassification(ClassificationStrategy):
    """Classification delegated to a language model."""

    def __init__(self, llm: LLMProvider):
        self.llm = llm

    @property
    def name(self) -> str:
        return "llm"

    def is_available(self) -> bool:
        return self.llm.is_available()

    async def _ask(self, system_prompt: str, prompt: str, max_tokens: int, temperature: float) -> str:
        response = await self.llm.chat_complete(
            [ChatMessage.system(system_prompt), ChatMessage.user(prompt)],
            LLMConfig(max_tokens=max_tokens, temperature=temperature),
        )
        if response is None or response.content is None:
            raise ReplyParseError("Model returned no content")
        return response.content

    async def classify(self, text, context):
        reply = await self._ask(
            CLASSIFY_SYSTEM_PROMPT, f"Content: {text}{format_context(context)}", 50, 0.1
        )
        memory_type = parse_memory_type(reply)
        logger.debug(f"Model classified '{text[:50]}' as {memory_type.value}")
        return memory_type

    async def assess_importance(self, text, memory_type, context):
        prompt = f"Memory Type: {memory_type.value}\nContent: {text}{format_context(context)}"
        reply = await self._ask(IMPORTANCE_SYSTEM_PROMPT, prompt, 30, 0.1)
        score = parse_integer(reply)
        if not 1 <= score <= 5:
            raise ReplyParseError(f"Importance {score} outside 1-5", reply)
        return MemoryImportance.from_score(score)

    async def extract_entities(self, text):
        reply = await self._ask(
            ENTITY_SYSTEM_PROMPT,
            f"Extract important entities (names, places, organizations, dates, etc.) from: {text}",
            100,
            0.1,
        )
        return {entity for entity in parse_comma_list(reply) if len(entity) > 1}

    async def generate_tags(self, text, memory_type):
        reply = await self._ask(
            TAG_SYSTEM_PROMPT,
            f"Generate relevant tags for this {memory_type.value} memory: {text}",
            50,
            0.2,
        )
        return {tag.lower() for tag in parse_comma_list(reply) if len(tag) > 1}


class MemoryClassifier:
    """Assigns a memory type, an importance hint, entities and tags to text.

    With a language model the model-backed strategy is tried first; the rule
    engine answers whenever the model is missing, fails or replies with
    something unusable.
    """

    def __init__(
        self,
        llm_provider: Optional[LLMProvider] = None,
        strategy: Optional[ClassificationStrategy] = None,
    ):
        primary = strategy or (ModelClassification(llm_provider) if llm_provider else None)
        self.strategy: FallbackStrategy[ClassificationStrategy] = FallbackStrategy(
            "classifier", fallback=RuleBasedClassification(), primary=primary
        )

    async def classify(self, text: Optional[str], context: Optional[dict[str, Any]] = None) -> MemoryType:
        """Return the memory type of ``text``; blank text is always SEMANTIC."""
        if not text or not text.strip():
            return MemoryType.SEMANTIC
        return await self.strategy.execute("classify", lambda s: s.classify(text, context))

    async def assess_importance(
        self,
        text: Optional[str],
        memory_type: MemoryType,
        context: Optional[dict[str, Any]] = None,
    ) -> MemoryImportance:
        return await self.strategy.execute(
            "assess_importance",
            lambda s: s.assess_importance(text or "", memory_type, context),
        )

    async def extract_entities(self, text: Optional[str]) -> set[str]:
        if not text or not text.strip():
            return set()
        return await self.strategy.execute("extract_entities", lambda s: s.extract_entities(text))

    async def score_tags(self, text: Optional[str], memory_type: MemoryType) -> set[str]:
        """Return content-derived tags, always including the type name."""
        if not text or not text.strip():
            return {memory_type.value}
        tags = await self.strategy.execute(
            "score_tags", lambda s: s.generate_tags(text, memory_type)
        )
        return tags | {memory_type.value}

    def get_stats(self) -> dict[str, Any]:
        return self.strategy.get_stats()
