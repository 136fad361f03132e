"""Helpers for interpreting model replies."""

import json
import re
from typing import Any

from ..exceptions import ReplyParseError

_JSON_OBJECT_PATTERNS = [
    re.compile(r"\{[^{}]*\}", re.DOTALL),
    re.compile(r"\{(?:[^{}]|\{[^{}]*\})*\}", re.DOTALL),
]
_INTEGER = re.compile(r"-?\d+")


def extract_json_object(text: str) -> dict[str, Any]:
    """Return the JSON object embedded in a reply.

    The whole reply is tried first, then the last object-shaped fragment,
    which tolerates code fences and chatty preambles.

    Raises:
        ReplyParseError: If no JSON object can be decoded.
    """
    if not text or not text.strip():
        raise ReplyParseError("Empty reply", text or "")

    stripped = text.strip()
    try:
        parsed = json.loads(stripped)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    for pattern in _JSON_OBJECT_PATTERNS:
        for match in reversed(pattern.findall(stripped)):
            try:
                parsed = json.loads(match)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed

    raise ReplyParseError("No JSON object found in reply", text)


def parse_integer(text: str) -> int:
    """Return the first integer in a reply.

    Raises:
        ReplyParseError: If the reply holds no integer.
    """
    match = _INTEGER.search(text or "")
    if not match:
        raise ReplyParseError("No integer found in reply", text or "")
    return int(match.group())


def parse_comma_list(text: str) -> set[str]:
    """Split a comma-separated reply into trimmed, non-empty items."""
    if not text:
        return set()
    return {item.strip().strip("\"'") for item in text.split(",") if item.strip().strip("\"'")}


def require_float(data: dict[str, Any], key: str) -> float:
    """Read a numeric field from a parsed reply.

    Raises:
        ReplyParseError: If the field is missing or not numeric.
    """
    value = data.get(key)
    if isinstance(value, bool):
        raise ReplyParseError(f"Field '{key}' is not numeric", json.dumps(data))
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ReplyParseError(f"Field '{key}' is not numeric", json.dumps(data)) from e
