# src/ragcore/ingestion/repair.py
"""
Pure string functions that turn partial or sloppy LLM output into JSON.

Repair happens in two layers. The domain layer cuts a truncated stream back
to its last complete position object (``complete_last_object``). The generic
layer hands whatever is left to the ``json_repair`` library.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import json_repair

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json|JSON)?")
_NEXT_POSITION = re.compile(r'\}\s*,\s*\{"s')
_DUPLICATE_EXTRACTION = re.compile(r'\}\s*\{"entities"')


def strip_fences(text: str) -> str:
    """Remove markdown code fences and surrounding whitespace."""
    return _FENCE.sub("", text or "").strip()


def extract_json_array(text: str) -> str:
    """
    Locate the JSON array inside free-form model output.

    Fences and surrounding prose are dropped. A missing closing bracket is
    tolerated: everything from the first ``[`` onward is returned.
    """
    text = strip_fences(text)
    start = text.find("[")
    if start < 0:
        return ""
    end = text.rfind("]")
    if end > start:
        return text[start : end + 1]
    return text[start:]


def complete_last_object(text: str, closing: str) -> str:
    """
    Cut a truncated position list back to its last complete object.

    Finds the last ``},{"s`` (or ``}, {"s``) boundary, keeps everything up to
    and including that ``}``, and appends ``closing`` (``"]}"`` for tool-call
    arguments, ``"]"`` for a bare array). Already-closed input is returned
    unchanged.
    """
    original = (text or "").strip()
    if original.endswith("}]") or original.endswith("}]}"):
        return original

    last = None
    for match in _NEXT_POSITION.finditer(original):
        last = match
    if last is None:
        return original

    truncated = original[: last.start() + 1]
    if not truncated.endswith(closing):
        truncated += closing
    return truncated


def collapse_duplicate_objects(text: str) -> str:
    """Keep only the first object when a stream concatenated ``{...}{"entities"...}``."""
    match = _DUPLICATE_EXTRACTION.search(text)
    if match and match.start() > 0:
        return text[: match.start() + 1]
    return text


def repair_json(text: str) -> Any:
    """
    Parse ``text`` with the generic ``json_repair`` pass.

    Raises:
        ValueError: If nothing usable can be recovered.
    """
    repaired = json_repair.repair_json(text, return_objects=True)
    if repaired in ("", None):
        raise ValueError(f"unrepairable JSON: {text[:80]!r}")
    return repaired


def loads_with_repair(text: str, closing: str) -> Any:
    """
    Strict parse, then the truncation heuristic, then the generic repair.

    Raises:
        ValueError: If every layer fails.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    completed = complete_last_object(text, closing)
    if completed != text:
        try:
            value = json.loads(completed)
            logger.debug(f"Recovered truncated JSON ({len(text)} -> {len(completed)} chars)")
            return value
        except json.JSONDecodeError:
            pass

    value = repair_json(completed)
    logger.debug("Parsed LLM output with generic JSON repair")
    return value


def to_int(value: Any) -> int:
    """Coerce an int, float (truncated) or numeric string to int; anything else is -1."""
    if isinstance(value, bool):
        return -1
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
    if isinstance(value, (float, str)):
        try:
            return int(float(value))
        except (ValueError, OverflowError):
            return -1
    return -1
