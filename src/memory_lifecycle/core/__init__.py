"""Core helpers shared by the lifecycle services."""

from .strategy import DecisionStrategy, FallbackStrategy

__all__ = ["DecisionStrategy", "FallbackStrategy"]
