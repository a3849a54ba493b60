# src/ragcore/ingestion/options.py
"""
Chunking options, content types and per-type defaults.

Content classification happens once per input: an explicit
``ChunkingOptions.type`` wins, otherwise a file is classified from its MIME
type and then from its extension. Plain strings default to text.
"""

from __future__ import annotations

import logging
import mimetypes
import os
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..exceptions import ChunkingError

logger = logging.getLogger(__name__)

MAX_DEPTH_LIMIT = 5


# =============================================================================
# ENUMS
# =============================================================================


class ChunkingType(str, Enum):
    """Kind of content being chunked."""

    TEXT = "text"
    CODE = "code"
    PDF = "pdf"
    WORD = "word"
    CSV = "csv"
    EXCEL = "excel"
    JSON = "json"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class ChunkingStatus(str, Enum):
    """Processing status of a chunk."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


MIME_TO_CHUNKING_TYPE: Dict[str, ChunkingType] = {
    "text/plain": ChunkingType.TEXT,
    "text/markdown": ChunkingType.TEXT,
    "text/html": ChunkingType.TEXT,
    "text/xml": ChunkingType.TEXT,
    "text/rtf": ChunkingType.TEXT,
    "application/rtf": ChunkingType.TEXT,
    "text/x-go": ChunkingType.CODE,
    "text/x-python": ChunkingType.CODE,
    "text/x-java": ChunkingType.CODE,
    "text/x-c": ChunkingType.CODE,
    "text/x-c++": ChunkingType.CODE,
    "text/x-csharp": ChunkingType.CODE,
    "text/javascript": ChunkingType.CODE,
    "application/javascript": ChunkingType.CODE,
    "text/typescript": ChunkingType.CODE,
    "application/typescript": ChunkingType.CODE,
    "text/x-php": ChunkingType.CODE,
    "text/x-ruby": ChunkingType.CODE,
    "text/x-shell": ChunkingType.CODE,
    "application/x-sh": ChunkingType.CODE,
    "application/json": ChunkingType.JSON,
    "text/json": ChunkingType.JSON,
    "application/pdf": ChunkingType.PDF,
    "application/msword": ChunkingType.WORD,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ChunkingType.WORD,
    "application/vnd.ms-excel": ChunkingType.EXCEL,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ChunkingType.EXCEL,
    "text/csv": ChunkingType.CSV,
    "application/csv": ChunkingType.CSV,
    "image/jpeg": ChunkingType.IMAGE,
    "image/jpg": ChunkingType.IMAGE,
    "image/png": ChunkingType.IMAGE,
    "image/gif": ChunkingType.IMAGE,
    "image/bmp": ChunkingType.IMAGE,
    "image/webp": ChunkingType.IMAGE,
    "image/tiff": ChunkingType.IMAGE,
    "image/svg+xml": ChunkingType.IMAGE,
    "video/mp4": ChunkingType.VIDEO,
    "video/avi": ChunkingType.VIDEO,
    "video/quicktime": ChunkingType.VIDEO,
    "video/webm": ChunkingType.VIDEO,
    "video/x-matroska": ChunkingType.VIDEO,
    "audio/mpeg": ChunkingType.AUDIO,
    "audio/mp3": ChunkingType.AUDIO,
    "audio/wav": ChunkingType.AUDIO,
    "audio/x-wav": ChunkingType.AUDIO,
    "audio/flac": ChunkingType.AUDIO,
    "audio/aac": ChunkingType.AUDIO,
    "audio/ogg": ChunkingType.AUDIO,
}

EXTENSION_TO_CHUNKING_TYPE: Dict[str, ChunkingType] = {
    **{ext: ChunkingType.CODE for ext in (".go", ".py", ".java", ".c", ".cpp", ".cs", ".js", ".ts", ".php", ".rb", ".sh")},
    ".json": ChunkingType.JSON,
    ".pdf": ChunkingType.PDF,
    ".doc": ChunkingType.WORD,
    ".docx": ChunkingType.WORD,
    ".xls": ChunkingType.EXCEL,
    ".xlsx": ChunkingType.EXCEL,
    ".csv": ChunkingType.CSV,
    **{ext: ChunkingType.IMAGE for ext in (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".tiff", ".svg")},
    **{ext: ChunkingType.VIDEO for ext in (".mp4", ".avi", ".mov", ".wmv", ".flv", ".webm", ".mkv")},
    **{ext: ChunkingType.AUDIO for ext in (".mp3", ".wav", ".flac", ".aac", ".ogg", ".wma", ".m4a")},
}


def chunking_type_from_mime(mime_type: Optional[str]) -> ChunkingType:
    """Map a MIME type to a ChunkingType; unknown types are text."""
    if not mime_type:
        return ChunkingType.TEXT
    return MIME_TO_CHUNKING_TYPE.get(mime_type.split(";")[0].strip().lower(), ChunkingType.TEXT)


def chunking_type_from_filename(filename: str) -> ChunkingType:
    """Map a file extension to a ChunkingType; unknown extensions are text."""
    _, ext = os.path.splitext(filename.lower())
    return EXTENSION_TO_CHUNKING_TYPE.get(ext, ChunkingType.TEXT)


def detect_chunking_type(filename: str) -> ChunkingType:
    """Classify a file by guessed MIME type, falling back to its extension."""
    mime_type, _ = mimetypes.guess_type(filename)
    detected = chunking_type_from_mime(mime_type)
    if detected == ChunkingType.TEXT:
        detected = chunking_type_from_filename(filename)
    return detected


# =============================================================================
# OPTIONS
# =============================================================================


class SemanticOptions(BaseModel):
    """Options for LLM-driven segmentation.

    Attributes:
        connector: Id of the LLM connector to use.
        context_size: Maximum runes per LLM request (0 = size * max_depth * 3).
        options: JSON object string of extra model parameters.
        prompt: Prompt override; empty uses the default template.
        toolcall: Ask for a ``segment_text`` tool call instead of free text.
        max_retry: Retries per leaf after the first attempt.
        max_concurrent: Ceiling on in-flight LLM requests.
    """

    connector: str = Field(default="", description="LLM connector id")
    context_size: int = Field(default=0, ge=0, description="Max runes per request (0=derived)")
    options: str = Field(default="", description="Extra model parameters as a JSON object string")
    prompt: str = Field(default="", description="Prompt override")
    toolcall: bool = Field(default=False, description="Use the segment_text tool")
    max_retry: int = Field(default=9, ge=0, description="Retries per leaf")
    max_concurrent: int = Field(default=4, ge=1, description="Concurrent LLM requests")


class ChunkingOptions(BaseModel):
    """Options shared by the structured and semantic chunkers.

    Attributes:
        type: Forces the content classification; None auto-detects.
        size: Target rune count per leaf.
        overlap: Runes shared by adjacent structured siblings.
        max_depth: Depth of the chunk tree (1 = root only).
        max_concurrent: Fan-out ceiling.
        semantic_options: Required by the semantic chunker.
    """

    type: Optional[ChunkingType] = Field(default=None, description="Content type (None=auto)")
    size: int = Field(default=300, ge=1, description="Target runes per leaf")
    overlap: int = Field(default=20, ge=0, description="Overlap between structured siblings")
    max_depth: int = Field(default=1, ge=1, description="Maximum tree depth")
    max_concurrent: int = Field(default=10, ge=1, description="Fan-out ceiling")
    semantic_options: Optional[SemanticOptions] = Field(default=None)

    @field_validator("max_depth")
    @classmethod
    def clamp_max_depth(cls, v: int) -> int:
        """Clamp depths above the supported limit."""
        if v > MAX_DEPTH_LIMIT:
            logger.warning(
                f"max_depth {v} exceeds the supported maximum of {MAX_DEPTH_LIMIT}; using {MAX_DEPTH_LIMIT}"
            )
            return MAX_DEPTH_LIMIT
        return v

    @model_validator(mode="after")
    def check_overlap(self) -> "ChunkingOptions":
        """Overlap must leave room for the window to advance; an unset overlap shrinks to fit."""
        if self.overlap >= self.size and "overlap" not in self.model_fields_set:
            self.overlap = 0
        if self.overlap >= self.size:
            raise ValueError(f"overlap ({self.overlap}) must be less than size ({self.size})")
        return self


def default_options(chunking_type: ChunkingType = ChunkingType.TEXT) -> ChunkingOptions:
    """Return the default options for a content type."""
    if chunking_type in (ChunkingType.CODE, ChunkingType.JSON):
        return ChunkingOptions(type=chunking_type, size=800, overlap=100, max_depth=3, max_concurrent=10)
    return ChunkingOptions(type=chunking_type, size=300, overlap=20, max_depth=1, max_concurrent=10)


def coerce_options(options: ChunkingOptions | Dict[str, Any] | None) -> ChunkingOptions:
    """Accept a ChunkingOptions, a plain dict or None (text defaults).

    Raises:
        ChunkingError: If the dict does not validate.
    """
    if options is None:
        return default_options()
    if isinstance(options, ChunkingOptions):
        return options.model_copy(deep=True)
    try:
        return ChunkingOptions.model_validate(options)
    except ValidationError as e:
        raise ChunkingError(f"Invalid chunking options: {e}") from e
