# src/ragcore/ingestion/base.py
"""
Base class shared by the chunking strategies.

A chunker streams chunks to a caller-supplied *sink* instead of returning
a list. Sinks (and progress callbacks) may be plain callables or coroutine
functions; anything they raise aborts the pass and surfaces unchanged from
``chunk``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Union

from ..exceptions import ChunkingError
from .chunk import Chunk
from .options import ChunkingOptions, ChunkingType, coerce_options, default_options, detect_chunking_type

logger = logging.getLogger(__name__)

Sink = Callable[[Chunk], Union[None, Awaitable[None]]]
OptionsInput = Union[ChunkingOptions, Dict[str, Any], None]


async def call_maybe_async(fn: Callable[..., Any], *args: Any) -> Any:
    """Call ``fn`` and await the result if it is awaitable."""
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class ChunkingStrategy(ABC):
    """
    Abstract base class for chunking strategies.

    Subclasses implement ``chunk``; ``chunk_file`` classifies and decodes a
    file and delegates to it.
    """

    @abstractmethod
    async def chunk(self, text: str, options: OptionsInput, sink: Sink, **kwargs: Any) -> None:
        """
        Split text into a chunk tree, passing every chunk to ``sink``.

        Args:
            text: The text to chunk.
            options: ChunkingOptions, a dict of them, or None for defaults.
            sink: Receives chunks depth-first, parents before children.
        """

    async def chunk_file(
        self,
        path: Union[str, Path],
        options: OptionsInput,
        sink: Sink,
        **kwargs: Any,
    ) -> None:
        """
        Chunk a file. When ``options.type`` is unset the file is classified
        by MIME type guessed from its name, then by extension. Invalid UTF-8
        sequences are dropped.

        Raises:
            ChunkingError: If the file cannot be read.
        """
        if options is None:
            opts = default_options(detect_chunking_type(str(path)))
        else:
            opts = coerce_options(options)
            if opts.type is None:
                opts.type = detect_chunking_type(str(path))

        try:
            data = await asyncio.to_thread(Path(path).read_bytes)
        except OSError as e:
            raise ChunkingError(f"failed to open file {path}: {e}") from e

        logger.debug(f"Chunking file {path} ({len(data)} bytes) as {opts.type.value}")
        await self.chunk(data.decode("utf-8", errors="ignore"), opts, sink, **kwargs)

    @staticmethod
    def _prepare(options: OptionsInput) -> ChunkingOptions:
        opts = coerce_options(options)
        if opts.type is None:
            opts.type = ChunkingType.TEXT
        return opts
