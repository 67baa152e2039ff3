"""Extraction of JSON objects embedded in free-form model output."""

import json
from typing import Any, Dict, Iterator, Optional, Tuple


def _balanced_spans(text: str) -> Iterator[Tuple[int, int]]:
    """Yield (start, end) spans of brace-balanced objects, string-aware."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    end = index + 1
                    break
        if end != -1:
            yield start, end
        start = text.find("{", start + 1)


def extract_first_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the first balanced JSON object in ``text`` that parses.

    Surrounding prose and markdown fences are tolerated. Returns None when no
    candidate parses to a dict.
    """
    if not text:
        return None

    stripped = text.strip()
    try:
        parsed = json.loads(stripped)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    for start, end in _balanced_spans(stripped):
        try:
            parsed = json.loads(stripped[start:end])
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


__all__ = ["extract_first_json_object"]
