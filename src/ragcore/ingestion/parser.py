# src/ragcore/ingestion/parser.py
"""
Incremental parsers for streamed chat-completion output.

Each parser consumes server-sent-event frames one at a time, accumulates
either ``delta.content`` (free-form mode) or
``delta.tool_calls[0].function.arguments`` (tool-call mode), and after every
frame tries to parse what has arrived so far.

Parse failures are silent while the stream is still running; once the
stream has finished (``[DONE]`` or a ``finish_reason``) they raise
``ParseError``.

Usage:
    parser = SemanticParser(toolcall=True)
    for frame in frames:
        positions = parser.parse_frame(frame)
    positions = parser.finalize()
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from ..exceptions import ParseError
from .chunk import Position
from .repair import (
    collapse_duplicate_objects,
    extract_json_array,
    loads_with_repair,
    strip_fences,
    to_int,
)

logger = logging.getLogger(__name__)

MIN_PARSE_LENGTH = 10
DEFAULT_ENTITY_TYPE = "UNKNOWN"
DEFAULT_RELATIONSHIP_TYPE = "RELATED_TO"
DEFAULT_CONFIDENCE = 0.5

Frame = Union[bytes, str]


# =============================================================================
# BASE
# =============================================================================


class _StreamParser:
    """Frame reading and accumulation shared by both parsers."""

    def __init__(self, toolcall: bool) -> None:
        self.toolcall = toolcall
        self.content = ""
        self.arguments = ""
        self.finished = False
        self._lock = threading.Lock()

    @property
    def accumulated(self) -> str:
        return self.arguments if self.toolcall else self.content

    def _consume(self, frame: Frame) -> bool:
        """Update the accumulated state from one frame. Returns False for frames to ignore."""
        if isinstance(frame, (bytes, bytearray)):
            frame = bytes(frame).decode("utf-8", errors="ignore")
        data = frame.strip()
        if not data:
            return False

        if data.startswith("data:"):
            data = data[len("data:"):].strip()
            if data == "[DONE]":
                self.finished = True
                return True

        try:
            obj = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(f"Ignoring non-JSON frame: {data[:80]!r}")
            return False

        choices = obj.get("choices") if isinstance(obj, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return False
        choice = choices[0]
        delta = choice.get("delta")
        if isinstance(delta, dict):
            if self.toolcall:
                tool_calls = delta.get("tool_calls")
                if isinstance(tool_calls, list) and tool_calls and isinstance(tool_calls[0], dict):
                    function = tool_calls[0].get("function") or {}
                    arguments = function.get("arguments") if isinstance(function, dict) else None
                    if isinstance(arguments, str):
                        self.arguments += arguments
            else:
                content = delta.get("content")
                if isinstance(content, str):
                    self.content += content

        if choice.get("finish_reason"):
            self.finished = True
        return True


# =============================================================================
# SEMANTIC POSITIONS
# =============================================================================


class SemanticParser(_StreamParser):
    """Recovers segment positions from a streamed segmentation response."""

    def parse_frame(self, frame: Frame) -> Optional[List[Position]]:
        """
        Feed one SSE frame.

        Returns:
            The positions parsed so far, or None when nothing is parseable yet.

        Raises:
            ParseError: If the stream has finished and the output is unusable.
        """
        with self._lock:
            if not self._consume(frame):
                return None
            return self._try_parse()

    def finalize(self) -> List[Position]:
        """Mark the stream finished and parse everything accumulated."""
        with self._lock:
            self.finished = True
            return self._try_parse() or []

    def parse_payload(self, payload: str) -> List[Position]:
        """Parse a complete, non-streamed content or arguments string."""
        with self._lock:
            if self.toolcall:
                self.arguments = payload
            else:
                self.content = payload
            self.finished = True
            return self._try_parse() or []

    def _try_parse(self) -> Optional[List[Position]]:
        raw = self.accumulated.strip()
        if len(raw) < MIN_PARSE_LENGTH:
            return [] if self.finished else None
        try:
            if self.toolcall:
                return self._parse_arguments(raw)
            return self._parse_content(raw)
        except (ValueError, TypeError) as e:
            if self.finished:
                raise ParseError(f"Failed to parse segment positions: {e}") from e
            return None

    @staticmethod
    def _parse_arguments(raw: str) -> List[Position]:
        args = loads_with_repair(strip_fences(raw), "]}")
        if not isinstance(args, dict):
            raise ValueError(f"expected an object with 'segments', got {type(args).__name__}")
        segments = args.get("segments")
        if not isinstance(segments, list):
            return []
        return positions_from_items(segments)

    @staticmethod
    def _parse_content(raw: str) -> List[Position]:
        json_str = extract_json_array(raw)
        if not json_str:
            raise ValueError("no JSON array found in content")
        items = loads_with_repair(json_str, "]")
        if isinstance(items, dict) and isinstance(items.get("segments"), list):
            items = items["segments"]
        if not isinstance(items, list):
            raise ValueError(f"expected a JSON array, got {type(items).__name__}")
        return positions_from_items(items)


def positions_from_items(items: List[Any]) -> List[Position]:
    """Convert ``{"s","e"}`` or ``{"start_pos","end_pos"}`` objects, keeping ``0 <= s < e``."""
    positions: List[Position] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        start = to_int(item["start_pos"]) if "start_pos" in item else to_int(item.get("s"))
        end = to_int(item["end_pos"]) if "end_pos" in item else to_int(item.get("e"))
        if start >= 0 and end > start:
            positions.append(Position(start, end))
    return positions


# =============================================================================
# EXTRACTION
# =============================================================================


@dataclass
class Entity:
    """An extracted graph node."""

    id: str
    name: str
    type: str = DEFAULT_ENTITY_TYPE
    description: str = ""
    confidence: float = DEFAULT_CONFIDENCE
    labels: List[str] = field(default_factory=list)
    props: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Relationship:
    """An extracted edge between two entity ids."""

    start_node: str
    end_node: str
    type: str = DEFAULT_RELATIONSHIP_TYPE
    description: str = ""
    confidence: float = DEFAULT_CONFIDENCE
    weight: Optional[float] = None
    props: Dict[str, Any] = field(default_factory=dict)


def _clamp(value: Any, default: Optional[float]) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return min(1.0, max(0.0, float(value)))


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class ExtractionParser(_StreamParser):
    """
    Recovers entities and relationships from a streamed extraction response.

    Relationships that reference entity ids missing from ``entities`` are
    kept.
    """

    def __init__(self, toolcall: bool = True) -> None:
        super().__init__(toolcall)

    def parse_frame(self, frame: Frame) -> Optional[Tuple[List[Entity], List[Relationship]]]:
        with self._lock:
            if not self._consume(frame):
                return None
            return self._try_parse()

    def finalize(self) -> Tuple[List[Entity], List[Relationship]]:
        with self._lock:
            self.finished = True
            return self._try_parse() or ([], [])

    def parse_payload(self, payload: str) -> Tuple[List[Entity], List[Relationship]]:
        with self._lock:
            if self.toolcall:
                self.arguments = payload
            else:
                self.content = payload
            self.finished = True
            return self._try_parse() or ([], [])

    def _try_parse(self) -> Optional[Tuple[List[Entity], List[Relationship]]]:
        raw = strip_fences(self.accumulated)
        if len(raw) < MIN_PARSE_LENGTH:
            return ([], []) if self.finished else None

        start = raw.find("{")
        if start > 0:
            raw = raw[start:]
        raw = collapse_duplicate_objects(raw)

        try:
            data = loads_with_repair(raw, "]}")
            if not isinstance(data, dict):
                raise ValueError(f"expected an object, got {type(data).__name__}")
        except (ValueError, TypeError) as e:
            if self.finished:
                raise ParseError(f"Failed to parse extraction output: {e}") from e
            return None

        return self._entities(data.get("entities")), self._relationships(data.get("relationships"))

    @staticmethod
    def _entities(items: Any) -> List[Entity]:
        entities: List[Entity] = []
        for item in items if isinstance(items, list) else []:
            if not isinstance(item, dict):
                continue
            entity_id, name = _text(item.get("id")), _text(item.get("name"))
            if not entity_id or not name:
                continue
            labels = item.get("labels")
            props = item.get("props")
            entities.append(
                Entity(
                    id=entity_id,
                    name=name,
                    type=_text(item.get("type")) or DEFAULT_ENTITY_TYPE,
                    description=_text(item.get("description")),
                    confidence=_clamp(item.get("confidence"), DEFAULT_CONFIDENCE),
                    labels=[str(label) for label in labels] if isinstance(labels, list) else [],
                    props=props if isinstance(props, dict) else {},
                )
            )
        return entities

    @staticmethod
    def _relationships(items: Any) -> List[Relationship]:
        relationships: List[Relationship] = []
        for item in items if isinstance(items, list) else []:
            if not isinstance(item, dict):
                continue
            start_node, end_node = _text(item.get("start_node")), _text(item.get("end_node"))
            if not start_node or not end_node:
                continue
            props = item.get("props")
            relationships.append(
                Relationship(
                    start_node=start_node,
                    end_node=end_node,
                    type=_text(item.get("type")) or DEFAULT_RELATIONSHIP_TYPE,
                    description=_text(item.get("description")),
                    confidence=_clamp(item.get("confidence"), DEFAULT_CONFIDENCE),
                    weight=_clamp(item.get("weight"), None),
                    props=props if isinstance(props, dict) else {},
                )
            )
        return relationships
