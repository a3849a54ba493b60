# src/ragcore/ingestion/structured.py
"""
Structured chunking.

Deterministic splitter: the root chunk holds the whole text, and any chunk
above ``size`` runes that is still shallower than ``max_depth`` is cut into
sliding windows of ``size`` runes advancing by ``size - overlap``. Chunks
reach the sink depth-first, each parent before its children.

Usage:
    from ragcore.ingestion import StructuredChunker

    chunker = StructuredChunker()
    leaves = []
    await chunker.chunk(
        "Hello World",
        {"size": 5, "overlap": 0, "max_depth": 2},
        lambda c: leaves.append(c.text) if c.leaf else None,
    )
    # leaves == ["Hello", " Worl", "d"]
"""

from __future__ import annotations

import logging
from typing import Any, List

from .base import ChunkingStrategy, OptionsInput, Sink, call_maybe_async
from .chunk import Chunk, Position
from .options import ChunkingOptions, ChunkingStatus

logger = logging.getLogger(__name__)


def windows(length: int, size: int, overlap: int) -> List[Position]:
    """
    Sliding windows over ``length`` runes.

    The step is ``size - overlap`` (at least 1); the last window ends at
    ``length`` and may be shorter than ``size``.
    """
    if length <= 0:
        return []
    step = max(1, size - overlap)
    result: List[Position] = []
    start = 0
    while True:
        end = min(start + size, length)
        result.append(Position(start, end))
        if end >= length:
            break
        start += step
    return result


class StructuredChunker(ChunkingStrategy):
    """
    Fixed-size, overlap-aware splitter bounded by depth.

    Example:
        chunker = StructuredChunker()
        await chunker.chunk_file("notes.md", None, store_chunk)
    """

    async def chunk(self, text: str, options: OptionsInput, sink: Sink, **kwargs: Any) -> None:
        """
        Split ``text`` and stream the tree to ``sink``.

        Raises:
            ChunkingError: If the options are invalid.
            Exception: Whatever the sink raises, unchanged.
        """
        opts = self._prepare(options)

        root = Chunk.create(text, chunk_type=opts.type, root=True)
        root.calculate_text_position()
        root.leaf = not self._splittable(root, opts)
        root.status = ChunkingStatus.COMPLETED if root.leaf else ChunkingStatus.PENDING

        count = await self._emit(root, opts, sink)
        logger.debug(f"Structured chunking produced {count} chunks (size={opts.size}, max_depth={opts.max_depth})")

    async def _emit(self, chunk: Chunk, opts: ChunkingOptions, sink: Sink) -> int:
        await call_maybe_async(sink, chunk)
        if chunk.leaf:
            return 1

        chars = chunk.runes()
        children = chunk.split(windows(len(chars), opts.size, opts.overlap), chars)
        emitted = 1
        for child in children:
            child.leaf = not self._splittable(child, opts)
            child.status = ChunkingStatus.COMPLETED if child.leaf else ChunkingStatus.PENDING
            emitted += await self._emit(child, opts, sink)
        return emitted

    @staticmethod
    def _splittable(chunk: Chunk, opts: ChunkingOptions) -> bool:
        return chunk.depth < opts.max_depth and len(chunk.runes()) > opts.size
