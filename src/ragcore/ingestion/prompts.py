# src/ragcore/ingestion/prompts.py
"""
Prompt templates and tool schemas sent to the LLM.

Two tasks are supported: semantic segmentation (the model returns rune
ranges over a JSON array of characters) and entity/relationship extraction.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Dict, List

SIZE_PLACEHOLDER = "{{SIZE}}"
TEXT_HEADER = "Text to segment:"

SEMANTIC_PROMPT_TEMPLATE = """\
# Semantic Text Segmentation

You receive a JSON array of Unicode characters. Array indices start at 0.
Split the text into segments at semantic boundaries: paragraph ends, topic
changes and shifts between concepts.

Rules:
- Each segment should be close to {{SIZE}} array elements, but never split a
  sentence or a coherent thought to hit the size.
- Segment sizes should vary with the content. Equal-width segments are wrong.
- Use only indices that exist in the input array. Do not invent content.
- Segments are half-open ranges [s, e), cover the array in order and do not
  overlap.

Return only a JSON array of objects with integer fields "s" and "e", for
example:
[{"s": 0, "e": 120}, {"s": 120, "e": 310}]
"""

EXTRACTION_PROMPT_TEMPLATE = """\
# Entity and Relationship Extraction

Read the text and extract the entities it mentions and the relationships
between them.

Entities: give each a stable "id", its "name", a "type" in upper case
(PERSON, ORGANIZATION, LOCATION, CONCEPT, EVENT, ...), a short
"description", a "confidence" between 0 and 1, "labels" and "props".

Relationships: connect two entity ids with "start_node" and "end_node", give
a "type" in upper case (WORKS_FOR, LOCATED_IN, PART_OF, ...), a short
"description", a "confidence" between 0 and 1, an optional "weight" between
0 and 1 and "props".

Only extract what the text states. Do not invent entities or relationships.
"""


def semantic_prompt(user_prompt: str, size: int) -> str:
    """Return the user prompt (or the default template) with ``{{SIZE}}`` filled in."""
    template = user_prompt.strip() if user_prompt and user_prompt.strip() else SEMANTIC_PROMPT_TEMPLATE
    return template.replace(SIZE_PLACEHOLDER, str(size))


def semantic_message(user_prompt: str, size: int, chars: List[str]) -> str:
    """The single user message of a segmentation request: instructions, then the runes as JSON."""
    return f"{semantic_prompt(user_prompt, size)}\n\n{TEXT_HEADER}\n{json.dumps(chars, ensure_ascii=False)}"


def extraction_prompt(user_prompt: str = "") -> str:
    """Return the user extraction prompt, or the default one."""
    if user_prompt and user_prompt.strip():
        return user_prompt.strip()
    return EXTRACTION_PROMPT_TEMPLATE


SEGMENT_TEXT_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "segment_text",
        "description": "Segment text into chunks at natural semantic boundaries.",
        "parameters": {
            "type": "object",
            "properties": {
                "segments": {
                    "type": "array",
                    "description": "Half-open character ranges, in order.",
                    "items": {
                        "type": "object",
                        "properties": {
                            "s": {"type": "integer", "description": "Start index (inclusive)"},
                            "e": {"type": "integer", "description": "End index (exclusive)"},
                        },
                        "required": ["s", "e"],
                    },
                }
            },
            "required": ["segments"],
        },
    },
}

_ENTITY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "name": {"type": "string"},
        "type": {"type": "string"},
        "description": {"type": "string"},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "labels": {"type": "array", "items": {"type": "string"}},
        "props": {"type": "object"},
    },
    "required": ["id", "name", "type", "description", "confidence", "labels", "props"],
}

_RELATIONSHIP_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "start_node": {"type": "string"},
        "end_node": {"type": "string"},
        "type": {"type": "string"},
        "description": {"type": "string"},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "weight": {"type": "number", "minimum": 0, "maximum": 1},
        "props": {"type": "object"},
    },
    "required": ["start_node", "end_node", "type", "description", "confidence", "props"],
}

EXTRACTION_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "extract_entities_and_relationships",
        "description": "Extract entities and the relationships between them from text.",
        "parameters": {
            "type": "object",
            "properties": {
                "entities": {"type": "array", "items": _ENTITY_SCHEMA},
                "relationships": {"type": "array", "items": _RELATIONSHIP_SCHEMA},
            },
            "required": ["entities", "relationships"],
        },
    },
}


def semantic_tools() -> List[Dict[str, Any]]:
    """The ``tools`` list for semantic segmentation requests."""
    return [copy.deepcopy(SEGMENT_TEXT_TOOL)]


def extraction_tools() -> List[Dict[str, Any]]:
    """The ``tools`` list for extraction requests."""
    return [copy.deepcopy(EXTRACTION_TOOL)]
