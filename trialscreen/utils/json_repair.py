"""Recovery of a single JSON object from free-form model output.

Model responses arrive wrapped in markdown fences, preceded by prose, cut off
by token limits, or sprinkled with JavaScript's ``undefined``. ``extract_structured``
isolates the object, normalises the known token defect, parses strictly and,
failing that, retries once on the longest prefix that closes every brace.
"""

from __future__ import annotations

import json
import re
from typing import Any

from ..core.errors import ResponseNotParseable

EXCERPT_LIMIT = 200

_FENCE_PATTERN = re.compile(r"```json\s*(.*?)(?:```|$)", re.DOTALL | re.IGNORECASE)
_STRING_LITERAL = re.compile(r'"(?:\\.|[^"\\])*"')
_UNDEFINED_TOKEN = re.compile(r"([:\[,]\s*)undefined(?=\s*(?:[,}\]]|$))")


def isolate_candidate(text: str) -> str:
    """Return the fenced ``json`` block, else the outermost brace span, else the trimmed text."""
    trimmed = text.strip()
    fenced = _FENCE_PATTERN.search(trimmed)
    if fenced:
        return fenced.group(1).strip()
    start = trimmed.find("{")
    end = trimmed.rfind("}")
    if start != -1 and end > start:
        return trimmed[start : end + 1]
    return trimmed


def normalise_undefined(candidate: str) -> str:
    """Replace bare ``undefined`` in value, element or trailing position with ``null``.

    String literals are left untouched.
    """
    pieces: list[str] = []
    cursor = 0
    for literal in _STRING_LITERAL.finditer(candidate):
        pieces.append(_UNDEFINED_TOKEN.sub(r"\1null", candidate[cursor : literal.start()]))
        pieces.append(literal.group(0))
        cursor = literal.end()
    pieces.append(_UNDEFINED_TOKEN.sub(r"\1null", candidate[cursor:]))
    return "".join(pieces)


def last_balanced_offset(candidate: str) -> int | None:
    """Offset just past the last top-level ``}`` that brings brace depth back to zero."""
    depth = 0
    in_string = False
    escaped = False
    last_close: int | None = None
    for index, char in enumerate(candidate):
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
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                last_close = index + 1
    return last_close


def _excerpt(text: str) -> str:
    return text[:EXCERPT_LIMIT]


def _as_object(parsed: Any, candidate: str) -> dict[str, Any]:
    if not isinstance(parsed, dict):
        raise ResponseNotParseable(
            f"expected a JSON object, got {type(parsed).__name__}",
            excerpt=_excerpt(candidate),
        )
    return parsed


def extract_structured(text: str) -> dict[str, Any]:
    """Parse the single JSON object carried by ``text``.

    Raises ``ResponseNotParseable`` with a bounded excerpt when neither the
    candidate nor its balanced prefix parses.
    """
    candidate = normalise_undefined(isolate_candidate(text or ""))
    try:
        return _as_object(json.loads(candidate), candidate)
    except json.JSONDecodeError as first_error:
        offset = last_balanced_offset(candidate)
        if offset is None:
            raise ResponseNotParseable(
                f"response is not valid JSON ({first_error.msg})",
                excerpt=_excerpt(candidate),
            ) from first_error
        truncated = candidate[:offset]
        try:
            return _as_object(json.loads(truncated), truncated)
        except json.JSONDecodeError as second_error:
            raise ResponseNotParseable(
                f"response is not valid JSON after truncation ({second_error.msg})",
                excerpt=_excerpt(candidate),
            ) from second_error


__all__ = ["extract_structured", "isolate_candidate", "normalise_undefined", "last_balanced_offset"]
