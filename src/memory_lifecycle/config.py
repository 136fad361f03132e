"""Engine configuration loaded from the environment and ``.env`` files."""

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Thresholds and provider settings shared by the lifecycle components."""

    semantic_threshold: float = 0.85
    conflict_confidence_threshold: float = 0.7
    forgetting_base: float = 0.5
    decay_rate: float = 0.1
    retention_threshold: float = 0.2
    llm_model: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"
    llm_timeout: float = 60.0
    openrouter_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError for out-of-range values."""
        for key in ("semantic_threshold", "conflict_confidence_threshold", "retention_threshold"):
            value = getattr(self, key)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{key} must be within [0, 1], got {value}", key=key)
        for key in ("forgetting_base", "decay_rate", "llm_timeout"):
            value = getattr(self, key)
            if value <= 0:
                raise ConfigurationError(f"{key} must be positive, got {value}", key=key)

    @property
    def has_llm(self) -> bool:
        return bool(self.openrouter_api_key)

    @property
    def has_remote_embeddings(self) -> bool:
        return bool(self.openai_api_key)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "EngineConfig":
        """Build a config from environment variables.

        A ``.env`` file is loaded first (``env_file`` when given, otherwise the
        nearest one found from the working directory). Variables already set in
        the environment win over the file.
        """
        if env_file:
            if os.path.exists(env_file):
                logger.info(f"Loading .env from {env_file}")
                load_dotenv(env_file)
            else:
                logger.warning(f".env file not found: {env_file}")
        else:
            load_dotenv()

        return cls(
            semantic_threshold=_env_float("MEMORY_SEMANTIC_THRESHOLD", 0.85),
            conflict_confidence_threshold=_env_float("MEMORY_CONFLICT_CONFIDENCE", 0.7),
            forgetting_base=_env_float("MEMORY_FORGETTING_BASE", 0.5),
            decay_rate=_env_float("MEMORY_DECAY_RATE", 0.1),
            retention_threshold=_env_float("MEMORY_RETENTION_THRESHOLD", 0.2),
            llm_model=os.getenv("MEMORY_LLM_MODEL") or None,
            embedding_model=os.getenv("MEMORY_EMBEDDING_MODEL") or "text-embedding-3-small",
            llm_timeout=_env_float("MEMORY_LLM_TIMEOUT", 60.0),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Settings with API keys masked, suitable for logging."""
        return {
            "semantic_threshold": self.semantic_threshold,
            "conflict_confidence_threshold": self.conflict_confidence_threshold,
            "forgetting_base": self.forgetting_base,
            "decay_rate": self.decay_rate,
            "retention_threshold": self.retention_threshold,
            "llm_model": self.llm_model,
            "embedding_model": self.embedding_model,
            "llm_timeout": self.llm_timeout,
            "openrouter_api_key": "set" if self.openrouter_api_key else None,
            "openai_api_key": "set" if self.openai_api_key else None,
        }


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}", key=key) from e
