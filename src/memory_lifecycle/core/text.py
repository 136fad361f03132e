"""Text and vector similarity helpers shared by the services."""

import math
import re
from typing import Sequence

_NUMBER_TOKEN = re.compile(r"\d+(\.\d+)?")
_SENTENCE_END = re.compile(r"\.+(?=\s|$)")


def word_set(text: str) -> set[str]:
    """Lowercased whitespace tokens of ``text``."""
    if not text:
        return set()
    return set(text.lower().split())


def jaccard_similarity(text1: str, text2: str) -> float:
    """Word-overlap similarity in [0, 1]."""
    words1 = word_set(text1)
    words2 = word_set(text2)
    if not words1 and not words2:
        return 0.0
    union = words1 | words2
    return len(words1 & words2) / len(union)


def cosine_similarity(vector1: Sequence[float], vector2: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors; 0.0 for mismatched or zero vectors."""
    if not vector1 or not vector2 or len(vector1) != len(vector2):
        return 0.0
    dot = sum(a * b for a, b in zip(vector1, vector2))
    norm1 = math.sqrt(sum(a * a for a in vector1))
    norm2 = math.sqrt(sum(b * b for b in vector2))
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return dot / (norm1 * norm2)


def split_sentences(text: str) -> list[str]:
    """Split on periods that end a sentence, dropping empty fragments.

    Periods inside tokens such as decimals, emails and domains are kept.
    """
    return [part.strip() for part in _SENTENCE_END.split(text) if part.strip()]


def extract_numbers(text: str) -> list[str]:
    """Whitespace tokens that are plain integers or decimals."""
    return [token for token in text.split() if _NUMBER_TOKEN.fullmatch(token)]


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
