"""
Lenient JSON extraction for model output
"""
import json
import logging
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_CODE_FENCE_START = re.compile(r"^```(?:json)?\s*")
_CODE_FENCE_END = re.compile(r"\s*```$")
_OBJECT = re.compile(r"\{[\s\S]*\}")


def load_json_object(text: str, required_key: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Parse a JSON object out of model text.

    Tries the cleaned text first (code fences and trailing commas removed),
    then the outermost {...} span. Returns None when no object parses, or when
    required_key is given and missing.
    """
    if not text:
        return None

    cleaned = _TRAILING_COMMA.sub(r"\1", text.strip())
    cleaned = _CODE_FENCE_START.sub("", cleaned)
    cleaned = _CODE_FENCE_END.sub("", cleaned)

    candidates = [cleaned]
    match = _OBJECT.search(text)
    if match:
        candidates.append(_TRAILING_COMMA.sub(r"\1", match.group()))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(parsed, dict):
            continue
        if required_key and required_key not in parsed:
            continue
        return parsed

    logger.warning(f"Could not parse JSON object from model text (first 200 chars): {text[:200]}")
    return None
