# src/ragcore/ingestion/chunk.py
"""
Chunk tree model.

A chunk is one node of the segmentation tree built by the structured and
semantic chunkers. All character arithmetic is done on *runes* (one element
per Unicode code point) while ``TextPosition`` carries absolute UTF-8 byte
offsets and 1-based line numbers into the original document.

Usage:
    from ragcore.ingestion.chunk import Chunk, Position

    root = Chunk.create("Hi😀世界", root=True)
    root.calculate_text_position()
    children = root.split([Position(2, 5)])
    assert children[0].text == "😀世界"
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..exceptions import ChunkingError
from .options import ChunkingStatus, ChunkingType

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


# =============================================================================
# TEXT HELPERS
# =============================================================================


def runes(text: str | bytes) -> List[str]:
    """Split text into code points, skipping invalid UTF-8 and lone surrogates."""
    if not text:
        return []
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("utf-8", errors="ignore")
    return [ch for ch in text if not 0xD800 <= ord(ch) <= 0xDFFF]


def lines(text: str) -> List[str]:
    """Split on LF, CRLF or CR. A trailing terminator yields a final empty line."""
    if not text:
        return []
    return _LINE_BREAK.split(text)


def byte_len(text: str) -> int:
    return len(text.encode("utf-8", errors="ignore"))


# =============================================================================
# POSITIONS
# =============================================================================


@dataclass
class Position:
    """A rune range ``[start, end)`` inside a chunk's text."""

    start: int
    end: int

    def to_dict(self) -> Dict[str, int]:
        return {"s": self.start, "e": self.end}


@dataclass
class TextPosition:
    """Absolute byte range and 1-based line range in the original document."""

    start: int = 0
    end: int = 0
    start_line: int = 1
    end_line: int = 1

    def to_dict(self) -> Dict[str, int]:
        return {
            "start_index": self.start,
            "end_index": self.end,
            "start_line": self.start_line,
            "end_line": self.end_line,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextPosition":
        return cls(
            start=int(data.get("start_index", data.get("start", 0))),
            end=int(data.get("end_index", data.get("end", 0))),
            start_line=int(data.get("start_line", 1)),
            end_line=int(data.get("end_line", 1)),
        )


@dataclass
class MediaPosition:
    """Offsets for non-text content: seconds for audio/video, page for documents."""

    start_time: int = 0
    end_time: int = 0
    page: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"start_time": self.start_time, "end_time": self.end_time, "page": self.page}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MediaPosition":
        return cls(
            start_time=int(data.get("start_time", 0)),
            end_time=int(data.get("end_time", 0)),
            page=int(data.get("page", 0)),
        )


def validate_positions(chars: List[str], positions: Iterable[Position]) -> None:
    """
    Check positions against a rune array.

    Raises:
        ChunkingError: Naming the first offending position index.
    """
    length = len(chars)
    if length == 0:
        return
    for idx, pos in enumerate(positions):
        if pos.start < 0:
            raise ChunkingError(f"position {idx} has negative start ({pos.start})")
        if pos.end < 0:
            raise ChunkingError(f"position {idx} has negative end ({pos.end})")
        if pos.start >= pos.end:
            raise ChunkingError(f"position {idx} has start ({pos.start}) >= end ({pos.end})")
        if pos.start >= length:
            raise ChunkingError(f"position {idx} has start ({pos.start}) out of bounds ({length})")
        if pos.end > length:
            raise ChunkingError(f"position {idx} has end ({pos.end}) out of bounds ({length})")


# =============================================================================
# CHUNK
# =============================================================================


@dataclass
class Chunk:
    """
    A node of the chunk tree.

    Attributes:
        id: Stable UUID.
        text: Text of this node.
        type: Content type inherited from the document.
        parent_id: Id of the immediate parent ("" for the root).
        depth: 1 for the root, parent depth + 1 otherwise.
        leaf: True until the chunk is split.
        root: True only for the depth-1 chunk.
        index: Dense sibling order under the parent.
        status: Processing status.
        parents: Ancestors ordered root first.
        text_position: Absolute byte/line range in the source document.
        media_position: Offsets for non-text content.
        metadata: Free-form caller data.
    """

    id: str
    text: str
    type: ChunkingType = ChunkingType.TEXT
    parent_id: str = ""
    depth: int = 1
    leaf: bool = True
    root: bool = False
    index: int = 0
    status: ChunkingStatus = ChunkingStatus.PENDING
    parents: List["Chunk"] = field(default_factory=list)
    text_position: Optional[TextPosition] = None
    media_position: Optional[MediaPosition] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        text: str,
        chunk_type: ChunkingType = ChunkingType.TEXT,
        root: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> "Chunk":
        """Create a chunk with a fresh UUID4 id."""
        return cls(
            id=str(uuid.uuid4()),
            text=text,
            type=chunk_type,
            root=root,
            metadata=metadata or {},
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # Text views
    # -------------------------------------------------------------------------

    def runes(self) -> List[str]:
        return runes(self.text)

    def runes_json(self) -> str:
        return json.dumps(self.runes(), ensure_ascii=False)

    def lines(self) -> List[str]:
        return lines(self.text)

    def lines_json(self) -> str:
        return json.dumps(self.lines(), ensure_ascii=False)

    def lines_to_runes(self) -> List[List[str]]:
        """Lines of the text, each split into runes."""
        return [runes(line) for line in self.lines()]

    # -------------------------------------------------------------------------
    # Splitting and positions
    # -------------------------------------------------------------------------

    def split(self, positions: Iterable[Position], chars: Optional[List[str]] = None) -> List["Chunk"]:
        """
        Materialize one child per valid rune position.

        Positions with a negative start, ``end <= start`` or a start past the
        end are skipped; ``end`` is clamped to the rune count. Children get
        dense indices and inherit type and media position. The chunk stops
        being a leaf when at least one child is produced.
        """
        if chars is None:
            chars = self.runes()
        length = len(chars)
        if length == 0:
            return []

        own_position = self.text_position
        if own_position is None:
            own_position = self._absolute_position()

        children: List[Chunk] = []
        for i, pos in enumerate(positions):
            start, end = pos.start, pos.end
            if start < 0 or start >= length:
                logger.debug(f"Skipping position {i} ({start}-{end}) of chunk {self.id}: start out of range")
                continue
            if end > length:
                end = length
            if end <= start:
                logger.debug(f"Skipping position {i} ({start}-{end}) of chunk {self.id}: empty range")
                continue

            child = Chunk(
                id=str(uuid.uuid4()),
                text="".join(chars[start:end]),
                type=self.type,
                parent_id=self.id,
                depth=self.depth + 1,
                leaf=True,
                root=False,
                index=len(children),
                status=ChunkingStatus.COMPLETED,
                parents=[*self.parents, self],
                media_position=self.media_position,
            )
            child.text_position = _shift(own_position, chars[:start], child.text)
            children.append(child)

        if children:
            self.leaf = False
        return children

    def calculate_text_position(
        self,
        parent_position: Optional[TextPosition] = None,
        offset_in_parent: int = 0,
    ) -> Optional[TextPosition]:
        """
        Set ``text_position`` from the text and an optional parent position.

        ``offset_in_parent`` is a rune offset into the immediate parent's text.
        Without a parent position the chunk is treated as the whole document.

        Raises:
            ChunkingError: A non-zero offset without a parent in ``parents``,
                or an offset past the end of the parent text.
        """
        if not self.text:
            self.text_position = None
            return None

        if parent_position is None:
            self.text_position = self._absolute_position()
            return self.text_position

        prefix: List[str] = []
        if offset_in_parent > 0:
            if not self.parents:
                raise ChunkingError(f"chunk {self.id} has no parent to apply offset {offset_in_parent} to")
            parent_chars = runes(self.parents[-1].text)
            if offset_in_parent > len(parent_chars):
                raise ChunkingError(f"offset {offset_in_parent} is past the end of the parent text ({len(parent_chars)})")
            prefix = parent_chars[:offset_in_parent]
        self.text_position = _shift(parent_position, prefix, self.text)
        return self.text_position

    def update_position_from_text(self) -> None:
        """Keep start and start line, recompute the end from the current text."""
        if self.text_position is None:
            self.calculate_text_position()
            return
        pos = self.text_position
        pos.end = pos.start + byte_len(self.text)
        pos.end_line = pos.start_line + self.text.count("\n")

    def relative_text_position(self, start_byte: int, end_byte: int) -> Optional[TextPosition]:
        """Absolute position of the byte range ``[start_byte, end_byte)`` of this chunk."""
        if not self.text or self.text_position is None:
            return None
        data = self.text.encode("utf-8")
        if start_byte < 0 or end_byte < 0 or start_byte >= end_byte or start_byte >= len(data):
            logger.warning(f"Invalid relative offsets {start_byte}-{end_byte} for chunk {self.id}")
            return None
        end_byte = min(end_byte, len(data))
        base = self.text_position
        return TextPosition(
            start=base.start + start_byte,
            end=base.start + end_byte,
            start_line=base.start_line + data[:start_byte].count(b"\n"),
            end_line=base.start_line + data[:end_byte].count(b"\n"),
        )

    def text_at_position(self, pos: Optional[TextPosition]) -> str:
        """Text covered by an absolute position, or "" when it falls outside this chunk."""
        if not self.text or pos is None or self.text_position is None:
            return ""
        own = self.text_position
        if pos.start < own.start or pos.end > own.end:
            return ""
        data = self.text.encode("utf-8")
        rel_start, rel_end = pos.start - own.start, pos.end - own.start
        if rel_start >= rel_end or rel_end > len(data):
            return ""
        return data[rel_start:rel_end].decode("utf-8", errors="ignore")

    def _absolute_position(self) -> TextPosition:
        return TextPosition(
            start=0,
            end=byte_len(self.text),
            start_line=1,
            end_line=1 + self.text.count("\n"),
        )

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Convert chunk to dictionary representation."""
        result: Dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "type": self.type.value,
            "parent_id": self.parent_id,
            "depth": self.depth,
            "leaf": self.leaf,
            "root": self.root,
            "index": self.index,
            "status": self.status.value,
            "parents": [parent.to_dict() for parent in self.parents],
        }
        if self.text_position is not None:
            result["text_position"] = self.text_position.to_dict()
        if self.media_position is not None:
            result["media_position"] = self.media_position.to_dict()
        if self.metadata:
            result["metadata"] = self.metadata
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chunk":
        """Create chunk from dictionary representation."""
        text_position = data.get("text_position")
        media_position = data.get("media_position")
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            text=data.get("text", ""),
            type=ChunkingType(data.get("type", ChunkingType.TEXT.value)),
            parent_id=data.get("parent_id", ""),
            depth=int(data.get("depth", 1)),
            leaf=bool(data.get("leaf", True)),
            root=bool(data.get("root", False)),
            index=int(data.get("index", 0)),
            status=ChunkingStatus(data.get("status", ChunkingStatus.PENDING.value)),
            parents=[cls.from_dict(p) for p in data.get("parents") or []],
            text_position=TextPosition.from_dict(text_position) if text_position else None,
            media_position=MediaPosition.from_dict(media_position) if media_position else None,
            metadata=dict(data.get("metadata") or {}),
        )

    def __repr__(self) -> str:
        preview = self.text[:30].replace("\n", "\\n")
        return f"Chunk(id={self.id[:8]}, depth={self.depth}, index={self.index}, leaf={self.leaf}, text='{preview}')"


def _shift(base: TextPosition, prefix: List[str], text: str) -> TextPosition:
    prefix_text = "".join(prefix)
    start = base.start + byte_len(prefix_text)
    start_line = base.start_line + prefix_text.count("\n")
    return TextPosition(
        start=start,
        end=start + byte_len(text),
        start_line=start_line,
        end_line=start_line + text.count("\n"),
    )
