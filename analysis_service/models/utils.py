"""
Utility functions for turning raw LLM output into Python data.
"""

import json
import logging
import re
from typing import Any, Dict, List

_LOG = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json|\w+)?\s*", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def clean_json_response(response: str) -> str:
    """Strip a surrounding markdown code fence from an LLM response."""
    response = (response or "").strip()
    if response.startswith("```"):
        response = _FENCE_RE.sub("", response, count=1)
        if response.endswith("```"):
            response = response[:-3]
    return response.strip()


def safe_parse_json(json_str: str) -> Dict[str, Any]:
    """Parse a JSON object from LLM output.

    Falls back to the outermost ``{...}`` span when the response carries
    prose around the object.

    Raises:
        ValueError: if no JSON object can be recovered
    """
    cleaned_json = clean_json_response(json_str)
    try:
        data = json.loads(cleaned_json)
    except json.JSONDecodeError as e:
        _LOG.debug("Direct JSON parse failed (%s), trying regex fallback", e)
        json_match = _OBJECT_RE.search(cleaned_json)
        if not json_match:
            raise ValueError(f"Failed to parse JSON: {e}") from e
        try:
            data = json.loads(json_match.group(0))
        except json.JSONDecodeError as inner:
            raise ValueError(f"Failed to parse JSON: {inner}") from inner

    if not isinstance(data, dict):
        raise ValueError("LLM response is not a JSON object")
    return data


def as_str_list(value: Any) -> List[str]:
    """Coerce a JSON value into a list of non-empty strings."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [part for part in re.split(r"[,，]", value)]
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def clamp(value: Any, low: float, high: float, default: float) -> float:
    """Clamp a numeric value into [low, high]; falsy or invalid -> default."""
    try:
        number = float(value) if value else default
    except (TypeError, ValueError):
        number = default
    return min(high, max(low, number))
