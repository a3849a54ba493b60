# src/ragcore/ingestion/__init__.py
"""
Document ingestion: chunk model, structured and semantic chunkers, and the
parsers that read streamed LLM output.

Usage:
    from ragcore.ingestion import StructuredChunker

    chunker = StructuredChunker()
    await chunker.chunk(text, {"size": 300, "overlap": 20, "max_depth": 2}, sink)
"""

from .base import ChunkingStrategy, Sink
from .chunk import Chunk, MediaPosition, Position, TextPosition, lines, runes, validate_positions
from .options import (
    ChunkingOptions,
    ChunkingStatus,
    ChunkingType,
    SemanticOptions,
    chunking_type_from_filename,
    chunking_type_from_mime,
    default_options,
    detect_chunking_type,
)
from .parser import Entity, ExtractionParser, Relationship, SemanticParser
from .prompts import extraction_prompt, extraction_tools, semantic_prompt, semantic_tools
from .semantic import SemanticChunker
from .structured import StructuredChunker, windows

__all__ = [
    # Chunk model
    "Chunk",
    "MediaPosition",
    "Position",
    "TextPosition",
    "lines",
    "runes",
    "validate_positions",
    # Options
    "ChunkingOptions",
    "ChunkingStatus",
    "ChunkingType",
    "SemanticOptions",
    "chunking_type_from_filename",
    "chunking_type_from_mime",
    "default_options",
    "detect_chunking_type",
    # Chunkers
    "ChunkingStrategy",
    "SemanticChunker",
    "Sink",
    "StructuredChunker",
    "windows",
    # Parsers and prompts
    "Entity",
    "ExtractionParser",
    "Relationship",
    "SemanticParser",
    "extraction_prompt",
    "extraction_tools",
    "semantic_prompt",
    "semantic_tools",
]
