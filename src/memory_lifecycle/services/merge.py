"""Merging, updating and consolidating memory records."""

import asyncio
import dataclasses
import logging
import math
import uuid
from abc import abstractmethod
from datetime import datetime
from typing import Any, Optional

from ..core.strategy import DecisionStrategy, FallbackStrategy
from ..core.text import jaccard_similarity, split_sentences
from ..exceptions import ReplyParseError
from ..models.memory import MemoryImportance, MemoryRecord, MemoryType
from ..providers.base import ChatMessage, LLMConfig, LLMProvider

logger = logging.getLogger(__name__)

RULE_MERGE_METHOD = "Rule-based merge"
MODEL_MERGE_METHOD = "LLM merge"
RULE_UPDATE_METHOD = "Rule-based"
MODEL_UPDATE_METHOD = "LLM"

REPLACE_SIMILARITY = 0.8
DEFAULT_CONSOLIDATION_THRESHOLD = 0.8

MERGE_SYSTEM_PROMPT = (
    "You are a memory merging system. Given multiple related memories, create a single "
    "consolidated memory that combines all relevant information without duplication. "
    "Preserve the most important details and maintain factual accuracy. "
    "Return only the merged content."
)
UPDATE_SYSTEM_PROMPT = (
    "You are a memory update system. Given an existing memory and new information, "
    "create an updated version that incorporates the new information while preserving "
    "important existing details. Return only the updated content."
)


def base_record_score(record: MemoryRecord) -> float:
    return (
        record.importance.score / 5.0
        + math.log(record.access_count + 1) / 10.0
        + 1.0 / (record.days_old + 1)
        + (0.2 if record.consolidated else 0.0)
    )


def select_base_record(records: list[MemoryRecord]) -> MemoryRecord:
    """Highest-scoring record; the earliest one wins ties."""
    return max(records, key=base_record_score)


def merge_factual(records: list[MemoryRecord]) -> str:
    facts = list(dict.fromkeys(s for r in records for s in split_sentences(r.content)))
    return ". ".join(facts) + "." if facts else ""


def preference_subject(content: str) -> Optional[str]:
    words = content.lower().split()
    for index, word in enumerate(words[:-1]):
        if word in ("like", "prefer"):
            return words[index + 1].strip(".,;:!?")
    return None


def merge_preferences(records: list[MemoryRecord]) -> str:
    """One statement per preference subject, first occurrence wins.

    Statements without a recognisable subject are kept as they are.
    """
    statements: dict[str, str] = {}
    for record in records:
        lowered = record.content.lower()
        subject = None
        if "like" in lowered or "prefer" in lowered:
            subject = preference_subject(record.content)
        key = f"subject:{subject}" if subject else f"content:{record.content}"
        statements.setdefault(key, record.content)
    return ". ".join(statements.values())


def merge_procedural(records: list[MemoryRecord]) -> str:
    steps = [
        record.content
        for record in records
        if "step" in record.content.lower() or "how to" in record.content.lower()
    ]
    return ". ".join(steps)


def merge_chronological(records: list[MemoryRecord]) -> str:
    ordered = sorted(records, key=lambda record: record.created_at)
    return ". ".join(record.content for record in ordered)


def merge_generic(records: list[MemoryRecord]) -> str:
    return ". ".join(dict.fromkeys(record.content for record in records))


TYPE_MERGERS = {
    MemoryType.FACTUAL: merge_factual,
    MemoryType.SEMANTIC: merge_factual,
    MemoryType.PREFERENCE: merge_preferences,
    MemoryType.PROCEDURAL: merge_procedural,
    MemoryType.EPISODIC: merge_chronological,
    MemoryType.TEMPORAL: merge_chronological,
}


def merge_content_by_rules(records: list[MemoryRecord]) -> str:
    """Combine contents type by type, in order of each type's first appearance."""
    groups: dict[MemoryType, list[MemoryRecord]] = {}
    for record in records:
        groups.setdefault(record.type, []).append(record)

    parts = []
    for memory_type, members in groups.items():
        merged = TYPE_MERGERS.get(memory_type, merge_generic)(members)
        if not merged:
            merged = merge_generic(members)
        parts.append(merged)
    return " ".join(part for part in parts if part)


def update_content_by_rules(existing: str, new_content: str) -> str:
    if jaccard_similarity(existing, new_content) > REPLACE_SIMILARITY:
        return new_content
    return f"{existing}. {new_content}"


def merged_importance(records: list[MemoryRecord]) -> MemoryImportance:
    average = sum(record.importance.score for record in records) / len(records)
    return MemoryImportance.from_score(min(5, math.ceil(average) + 1))


def merged_confidence(records: list[MemoryRecord]) -> float:
    average = sum(record.confidence for record in records) / len(records)
    return min(1.0, average + 0.1)


def build_merged_record(records: list[MemoryRecord], content: str, method: str) -> MemoryRecord:
    base = select_base_record(records)
    metadata: dict[str, Any] = {}
    for record in records:
        if record is not base:
            metadata.update(record.metadata)
    metadata.update(base.metadata)
    metadata["merged_from_count"] = len(records)
    metadata["merge_method"] = method
    metadata["source_memory_ids"] = [record.id for record in records]

    merged = MemoryRecord(
        id=str(uuid.uuid4()),
        content=content,
        user_id=base.user_id,
        agent_id=base.agent_id,
        run_id=base.run_id,
        type=base.type,
        importance=merged_importance(records),
        confidence=merged_confidence(records),
        metadata=metadata,
        tags=set().union(*(record.tags for record in records)),
        entities=set().union(*(record.entities for record in records)),
    )
    merged.consolidate()
    return merged


def build_updated_record(
    original: MemoryRecord, content: str, method: str
) -> MemoryRecord:
    """Copy ``original`` under the same id and apply an update with ``content``."""
    updated = dataclasses.replace(
        original,
        tags=set(original.tags),
        entities=set(original.entities),
        related=dict(original.related),
        metadata=dict(original.metadata),
    )
    updated.record_update(content)
    updated.metadata["last_update"] = datetime.now().isoformat()
    updated.metadata["update_count"] = updated.update_count
    updated.metadata["update_method"] = method
    return updated


def _format_context(context: Optional[dict[str, Any]]) -> str:
    if not context:
        return ""
    lines = "".join(f"{key}: {value}\n" for key, value in context.items())
    return f"Update context:\n{lines}\n"


class MergingStrategy(DecisionStrategy):
    @abstractmethod
    async def merge(self, records: list[MemoryRecord]) -> MemoryRecord:
        ...

    @abstractmethod
    async def update(
        self, record: MemoryRecord, new_content: str, context: Optional[dict[str, Any]]
    ) -> MemoryRecord:
        ...


class RuleBasedMerging(MergingStrategy):
    @property
    def name(self) -> str:
        return "rules"

    async def merge(self, records):
        return build_merged_record(records, merge_content_by_rules(records), RULE_MERGE_METHOD)

    async def update(self, record, new_content, context):
        content = update_content_by_rules(record.content, new_content)
        return build_updated_record(record, content, RULE_UPDATE_METHOD)


class ModelMerging(MergingStrategy):
    """Synthesises merged and updated content with a language model."""

    def __init__(self, llm: LLMProvider):
        self.llm = llm

    @property
    def name(self) -> str:
        return "llm"

    def is_available(self) -> bool:
        return self.llm.is_available()

    async def _ask(self, system_prompt: str, prompt: str, config: LLMConfig) -> str:
        response = await self.llm.chat_complete(
            [ChatMessage.system(system_prompt), ChatMessage.user(prompt)], config
        )
        content = (response.content or "").strip() if response else ""
        if not content:
            raise ReplyParseError("Model returned empty content")
        return content

    async def merge(self, records):
        sections = "".join(
            f"Memory {index} ({record.type.value}, importance={record.importance.name}):\n"
            f"{record.content}\n\n"
            for index, record in enumerate(records, start=1)
        )
        prompt = (
            "Merge these related memories into a single coherent memory:\n\n"
            f"{sections}"
            "Create a single merged memory that combines all relevant information."
        )
        content = await self._ask(
            MERGE_SYSTEM_PROMPT, prompt, LLMConfig(max_tokens=500, temperature=0.2)
        )
        return build_merged_record(records, content, MODEL_MERGE_METHOD)

    async def update(self, record, new_content, context):
        prompt = (
            f"Existing memory ({record.type.value}):\n{record.content}\n\n"
            f"New information:\n{new_content}\n\n"
            f"{_format_context(context)}"
            "Create an updated memory that incorporates the new information."
        )
        content = await self._ask(
            UPDATE_SYSTEM_PROMPT, prompt, LLMConfig(max_tokens=400, temperature=0.1)
        )
        return build_updated_record(record, content, MODEL_UPDATE_METHOD)


class MemoryMergeStrategy:
    """Combines records into one, applies updates and consolidates near-duplicates.

    Merged records get a new id, the base record's owner ids and type, a boosted
    importance and confidence, unioned metadata, tags and entities plus merge
    provenance, and are always consolidated.
    """

    def __init__(
        self,
        llm_provider: Optional[LLMProvider] = None,
        strategy: Optional[MergingStrategy] = None,
    ):
        primary = strategy or (ModelMerging(llm_provider) if llm_provider else None)
        self.strategy: FallbackStrategy[MergingStrategy] = FallbackStrategy(
            "merge", fallback=RuleBasedMerging(), primary=primary
        )

    async def merge(self, records: list[MemoryRecord]) -> Optional[MemoryRecord]:
        """Merge ``records``; no input gives None and a single input is returned as is."""
        if not records:
            return None
        if len(records) == 1:
            return records[0]
        logger.debug(f"Merging {len(records)} memories")
        return await self.strategy.execute("merge", lambda s: s.merge(records))

    async def update(
        self,
        record: MemoryRecord,
        new_content: str,
        context: Optional[dict[str, Any]] = None,
    ) -> MemoryRecord:
        """Return a copy of ``record`` (same id) carrying ``new_content``.

        Similar content replaces the old text, anything else is appended.
        """
        logger.debug(f"Updating memory: {record.id}")
        return await self.strategy.execute(
            "update", lambda s: s.update(record, new_content, context)
        )

    async def consolidate(
        self,
        records: list[MemoryRecord],
        similarity_threshold: float = DEFAULT_CONSOLIDATION_THRESHOLD,
    ) -> list[MemoryRecord]:
        """Merge groups of similar records, passing singletons through unchanged.

        Output order follows the order in which each group was first seen.
        """
        logger.debug(
            f"Consolidating {len(records)} memories with similarity threshold "
            f"{similarity_threshold}"
        )
        groups = group_similar(records, similarity_threshold)
        results = await asyncio.gather(*(self._consolidate_group(group) for group in groups))
        return [record for record in results if record is not None]

    async def _consolidate_group(self, group: list[MemoryRecord]) -> Optional[MemoryRecord]:
        if len(group) == 1:
            return group[0]
        ordered = sorted(
            group,
            key=lambda record: (record.importance.score, record.updated_at),
            reverse=True,
        )
        merged = await self.merge(ordered)
        if merged is not None:
            merged.consolidate()
            merged.metadata["consolidated_from"] = len(group)
        return merged

    def get_stats(self) -> dict[str, Any]:
        return self.strategy.get_stats()


def group_similar(records: list[MemoryRecord], threshold: float) -> list[list[MemoryRecord]]:
    """Greedy grouping: a record joins the first group holding any member similar enough."""
    groups: list[list[MemoryRecord]] = []
    for record in records:
        for group in groups:
            if any(jaccard_similarity(record.content, member.content) >= threshold for member in group):
                group.append(record)
                break
        else:
            groups.append([record])
    return groups
