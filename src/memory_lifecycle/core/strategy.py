"""Primary/fallback composition for decision strategies."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

S = TypeVar("S", bound="DecisionStrategy")
T = TypeVar("T")


class DecisionStrategy(ABC):
    """Base class for interchangeable decision implementations.

    Each component defines an abstract subclass naming its operations; the
    rule-engine and model-backed implementations both derive from it and
    return the same result types.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the strategy name, used in logs and provenance metadata."""
        ...

    def is_available(self) -> bool:
        return True


class FallbackStrategy(Generic[S]):
    """Runs an operation on a primary strategy and falls back on any failure.

    The fallback must never fail for well-formed input; it is the rule engine.
    Failures of the primary (provider errors, malformed replies, anything else)
    are logged and counted, never propagated.
    """

    def __init__(self, component: str, fallback: S, primary: Optional[S] = None):
        self.component = component
        self.fallback = fallback
        self.primary = primary

        self.primary_calls = 0
        self.primary_failures = 0
        self.fallback_calls = 0

    @property
    def has_primary(self) -> bool:
        return self.primary is not None and self.primary.is_available()

    async def execute(self, operation: str, call: Callable[[S], Awaitable[T]]) -> T:
        """Run ``call`` against the primary strategy, then the fallback.

        Args:
            operation: Operation name for logs.
            call: Invokes the operation on whichever strategy it is given.

        Returns:
            The primary's result, or the fallback's when the primary is absent
            or fails.
        """
        if self.has_primary:
            self.primary_calls += 1
            try:
                return await call(self.primary)
            except Exception as e:
                self.primary_failures += 1
                logger.warning(
                    f"{self.component}.{operation} via {self.primary.name} failed, "
                    f"using {self.fallback.name}: {e}"
                )

        self.fallback_calls += 1
        return await call(self.fallback)

    def get_stats(self) -> dict[str, Any]:
        total = (self.primary_calls - self.primary_failures) + self.fallback_calls
        fallback_rate = self.fallback_calls / total if total > 0 else 0
        return {
            "component": self.component,
            "primary": self.primary.name if self.primary else None,
            "fallback": self.fallback.name,
            "primary_calls": self.primary_calls,
            "primary_failures": self.primary_failures,
            "fallback_calls": self.fallback_calls,
            "fallback_rate": fallback_rate,
        }
