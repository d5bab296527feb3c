import json
import re
from typing import Any, Dict, List, Union, Optional

from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    return _FENCE_PATTERN.sub("", text.strip()).strip()


def parse_json_safely(text: Optional[str]) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from LLM output, handling common formatting issues.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Prose before or after the JSON payload
    - Concatenated JSON objects (e.g., {...}\\n{...}), which are merged

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON value or None if nothing parseable was found
    """
    if not text:
        return None

    cleaned_text = strip_code_fences(text)

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting repairs...")

    values = _decode_all(cleaned_text)
    if not values:
        LOGGER.error(
            "Failed to parse JSON from LLM output",
            extra={"preview": cleaned_text[:200]}
        )
        return None

    if len(values) == 1:
        return values[0]

    LOGGER.info(f"Merging {len(values)} concatenated JSON values")
    return _merge_json_values(values)


def _decode_all(text: str) -> List[Any]:
    """Decode every top-level JSON object or array embedded in text."""
    decoder = json.JSONDecoder()
    values: List[Any] = []
    idx = 0

    while idx < len(text):
        starts = [pos for pos in (text.find("{", idx), text.find("[", idx)) if pos != -1]
        if not starts:
            break
        start = min(starts)
        try:
            value, end = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            idx = start + 1
            continue
        values.append(value)
        idx = end

    return values


def _merge_json_values(values: List[Any]) -> Union[Dict[str, Any], List[Any]]:
    """Merge concatenated values: dicts are merged, anything else is flattened into a list."""
    if all(isinstance(value, dict) for value in values):
        merged: Dict[str, Any] = {}
        for value in values:
            for key, item in value.items():
                if key in merged and isinstance(merged[key], list) and isinstance(item, list):
                    merged[key] = merged[key] + item
                elif key not in merged or merged[key] in (None, "", []):
                    merged[key] = item
        return merged

    flattened: List[Any] = []
    for value in values:
        if isinstance(value, list):
            flattened.extend(value)
        else:
            flattened.append(value)
    return flattened
