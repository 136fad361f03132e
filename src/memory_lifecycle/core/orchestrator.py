"""Orchestrator wiring the lifecycle components into ingest and maintenance flows."""

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from ..config import EngineConfig
from ..manager import ModelManager
from ..models.conflict import ConflictResolution, MemoryConflict, ResolutionStrategy
from ..models.memory import MemoryRecord, MemoryType
from ..models.policy import ForgettingPolicy, PruningStrategy
from ..providers.base import EmbeddingProvider, LLMProvider
from ..providers.embeddings import HashingEmbeddingProvider, OpenAIEmbeddingProvider
from ..services.classifier import MemoryClassifier
from ..services.conflicts import MemoryConflictDetector
from ..services.forgetting import MemoryForgettingManager
from ..services.locks import RecordLocks
from ..services.merge import DEFAULT_CONSOLIDATION_THRESHOLD, MemoryMergeStrategy
from ..services.scorer import ImportanceScorer

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    record: MemoryRecord
    conflicts: list[MemoryConflict] = field(default_factory=list)
    resolutions: list[ConflictResolution] = field(default_factory=list)
    merged: list[MemoryRecord] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


@dataclass
class MaintenanceResult:
    """Outcome of a maintenance pass; ``kept`` is what the store should retain."""

    kept: list[MemoryRecord] = field(default_factory=list)
    deprecated: list[MemoryRecord] = field(default_factory=list)
    merged: list[MemoryRecord] = field(default_factory=list)
    pruned: list[MemoryRecord] = field(default_factory=list)


@dataclass
class LifecycleRun:
    operation: str
    records_in: int
    records_out: int = 0
    success: bool = True
    error: Optional[str] = None
    execution_time_ms: float = 0.0


class LifecycleOrchestrator:
    """Runs records through classification, scoring, conflict handling and forgetting.

    Storage stays external: every operation returns values describing what the
    caller should persist, delete or flag.
    """

    def __init__(
        self,
        classifier: MemoryClassifier,
        scorer: ImportanceScorer,
        detector: MemoryConflictDetector,
        merger: MemoryMergeStrategy,
        forgetting: MemoryForgettingManager,
    ):
        self.classifier = classifier
        self.scorer = scorer
        self.detector = detector
        self.merger = merger
        self.forgetting = forgetting
        self.execution_history: list[LifecycleRun] = []

    @classmethod
    def from_config(
        cls,
        config: Optional[EngineConfig] = None,
        llm_provider: Optional[LLMProvider] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        policy: Optional[ForgettingPolicy] = None,
        locks: Optional[RecordLocks] = None,
    ) -> "LifecycleOrchestrator":
        """Build all components from ``config``.

        Without an explicit provider, a ModelManager is used when an OpenRouter key
        is configured, and OpenAI embeddings when an OpenAI key is configured;
        otherwise the rule engine and local hashing embeddings are used.
        """
        config = config or EngineConfig.from_env()

        if llm_provider is None and config.has_llm:
            llm_provider = ModelManager(
                api_key=config.openrouter_api_key,
                default_model=config.llm_model,
                timeout=config.llm_timeout,
            )
        if embedding_provider is None:
            if config.has_remote_embeddings:
                embedding_provider = OpenAIEmbeddingProvider(
                    api_key=config.openai_api_key, model=config.embedding_model
                )
            else:
                embedding_provider = HashingEmbeddingProvider()

        logger.info(
            f"Creating lifecycle orchestrator (llm={'yes' if llm_provider else 'no'}, "
            f"embeddings={embedding_provider.name})"
        )
        return cls(
            classifier=MemoryClassifier(llm_provider),
            scorer=ImportanceScorer(llm_provider),
            detector=MemoryConflictDetector(
                embedding_provider,
                llm_provider,
                semantic_threshold=config.semantic_threshold,
                confidence_threshold=config.conflict_confidence_threshold,
            ),
            merger=MemoryMergeStrategy(llm_provider),
            forgetting=MemoryForgettingManager(
                forgetting_base=config.forgetting_base,
                decay_rate=config.decay_rate,
                retention_threshold=config.retention_threshold,
                policy=policy,
                locks=locks,
            ),
        )

    async def ingest(
        self,
        record: MemoryRecord,
        existing: Optional[list[MemoryRecord]] = None,
        context: Optional[dict[str, Any]] = None,
        memory_type: Optional[MemoryType] = None,
    ) -> IngestResult:
        """Prepare a new record for storage and reconcile it with ``existing``.

        The record is classified unless ``memory_type`` is given, enriched with
        entities and tags, and re-scored in place. Conflicts against ``existing``
        are resolved; MERGE resolutions produce new consolidated records in
        ``IngestResult.merged``.
        """
        started = time.time()
        run = LifecycleRun(operation="ingest", records_in=1 + len(existing or []))
        try:
            record.type = memory_type or await self.classifier.classify(record.content, context)
            entities, tags = await asyncio.gather(
                self.classifier.extract_entities(record.content),
                self.classifier.score_tags(record.content, record.type),
            )
            record.entities |= entities
            record.tags |= tags
            await self.scorer.refresh(record)

            conflicts = await self.detector.detect(record, existing or [])
            resolutions = list(
                await asyncio.gather(*(self.detector.resolve(conflict) for conflict in conflicts))
            )
            merged = []
            for conflict, resolution in zip(conflicts, resolutions):
                if resolution.strategy is ResolutionStrategy.MERGE:
                    merged.append(await self._merge_conflict(conflict, resolution))

            result = IngestResult(
                record=record, conflicts=conflicts, resolutions=resolutions, merged=merged
            )
            run.records_out = 1 + len(merged)
            logger.info(
                f"Ingested memory {record.id} as {record.type.value} "
                f"({record.importance.name}), {len(conflicts)} conflicts"
            )
            return result
        except Exception as e:
            run.success = False
            run.error = str(e)
            logger.error(f"Ingest failed for memory {record.id}: {e}")
            raise
        finally:
            run.execution_time_ms = (time.time() - started) * 1000
            self.execution_history.append(run)

    async def _merge_conflict(
        self, conflict: MemoryConflict, resolution: ConflictResolution
    ) -> MemoryRecord:
        merged = await self.merger.merge([conflict.memory1, conflict.memory2])
        if resolution.merged_content:
            merged = dataclasses.replace(
                merged, content=resolution.merged_content, content_hash=""
            )
        return merged

    async def maintain(
        self,
        records: list[MemoryRecord],
        max_records: Optional[int] = None,
        strategy: PruningStrategy = PruningStrategy.BALANCED,
        consolidation_threshold: float = DEFAULT_CONSOLIDATION_THRESHOLD,
    ) -> MaintenanceResult:
        """Run a decay pass, refresh scores, consolidate near-duplicates and prune.

        Args:
            records: The current record set; mutated in place by the decay pass.
            max_records: Target size for pruning. No pruning when None.
            strategy: Ordering used to choose surviving records.
            consolidation_threshold: Jaccard similarity at which records are merged.

        Returns:
            A MaintenanceResult describing kept, deprecated, merged and pruned records.
        """
        started = time.time()
        run = LifecycleRun(operation="maintain", records_in=len(records))
        try:
            processed = await self.forgetting.process_decay(records)
            deprecated = [record for record in processed if record.deprecated]
            active = [record for record in processed if not record.deprecated]

            await asyncio.gather(*(self.scorer.refresh(record) for record in active))

            consolidated = await self.merger.consolidate(active, consolidation_threshold)
            active_ids = {record.id for record in active}
            merged = [record for record in consolidated if record.id not in active_ids]

            kept = consolidated
            if max_records is not None:
                kept = await self.forgetting.prune(consolidated, max_records, strategy)
            kept_ids = {record.id for record in kept}
            pruned = [record for record in consolidated if record.id not in kept_ids]

            run.records_out = len(kept)
            logger.info(
                f"Maintenance complete: {len(kept)} kept, {len(deprecated)} deprecated, "
                f"{len(merged)} merged, {len(pruned)} pruned"
            )
            return MaintenanceResult(kept=kept, deprecated=deprecated, merged=merged, pruned=pruned)
        except Exception as e:
            run.success = False
            run.error = str(e)
            logger.error(f"Maintenance failed: {e}")
            raise
        finally:
            run.execution_time_ms = (time.time() - started) * 1000
            self.execution_history.append(run)

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about lifecycle runs and the components' fallbacks."""
        total = len(self.execution_history)
        successful = sum(1 for run in self.execution_history if run.success)
        times = [run.execution_time_ms for run in self.execution_history]
        return {
            "total_executions": total,
            "successful": successful,
            "failed": total - successful,
            "success_rate": successful / total if total > 0 else 0,
            "average_execution_time_ms": sum(times) / len(times) if times else 0,
            "classifier": self.classifier.get_stats(),
            "scorer": self.scorer.get_stats(),
            "conflicts": self.detector.get_stats(),
            "merge": self.merger.get_stats(),
            "forgetting": self.forgetting.get_stats(),
        }
