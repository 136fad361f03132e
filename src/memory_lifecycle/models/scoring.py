"""Importance score result."""

from dataclasses import dataclass, field

RULE_BASED_REASONING = "Rule-based scoring"


@dataclass
class ImportanceScore:
    """Total importance in [1, 5], confidence in [0.1, 1.0] and per-factor contributions."""

    total: float
    confidence: float
    breakdown: dict[str, float] = field(default_factory=dict)
    reasoning: str = RULE_BASED_REASONING

    @property
    def is_rule_based(self) -> bool:
        return self.reasoning == RULE_BASED_REASONING
