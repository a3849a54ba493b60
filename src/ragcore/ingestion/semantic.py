# src/ragcore/ingestion/semantic.py
"""
Semantic chunking.

Every chunk that is longer than ``size`` runes and shallower than
``max_depth`` is sent to an LLM as a JSON array of its characters. The model
answers with rune ranges (streamed, in free-form or tool-call shape), the
ranges become child chunks, and the children are processed the same way.

Concurrency model:
    - Siblings are segmented concurrently. At most ``max_concurrent`` chunks
      are being segmented at once, and ``semantic_options.max_concurrent``
      bounds in-flight LLM requests.
    - A chunk reaches the sink once its own segmentation has finished (so
      its ``leaf`` flag is final), after its previous sibling and after its
      parent. Sibling order is therefore stable; unrelated branches
      interleave.
    - A leaf whose segmentation keeps failing is emitted unchanged and
      reported as ``failed``; the rest of the tree carries on.

Usage:
    chunker = SemanticChunker(progress=on_progress)
    await chunker.chunk(text, {
        "size": 300, "max_depth": 3,
        "semantic_options": {"connector": "openai.gpt", "toolcall": True},
    }, sink)
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from ..connectors.base import BaseConnector
from ..connectors.registry import ConnectorRegistry, get_registry
from ..exceptions import CallbackAbortError, ConfigError, ParseError, RagCoreError, TransportError
from ..providers.streaming import stream_llm
from .base import ChunkingStrategy, OptionsInput, Sink, call_maybe_async
from .chunk import Chunk, Position
from .options import ChunkingOptions, ChunkingStatus, SemanticOptions
from .parser import SemanticParser
from .prompts import semantic_message, semantic_tools
from .structured import windows

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_ENDPOINT = "chat/completions"
DEFAULT_MAX_TOKENS = 4000
DEFAULT_TEMPERATURE = 0.1
CONTEXT_SIZE_MULTIPLIER = 3

Progress = Callable[[str, str, str, Dict[str, Any]], Union[None, Awaitable[None]]]
Streamer = Callable[..., Awaitable[None]]


@dataclass
class _Run:
    """State shared by every task of one ``chunk`` call."""

    options: ChunkingOptions
    semantic: SemanticOptions
    connector: BaseConnector
    sink: Sink
    progress: Optional[Progress]
    model: str
    extra: Dict[str, Any] = field(default_factory=dict)
    semaphore: asyncio.Semaphore = field(default_factory=lambda: asyncio.Semaphore(1))
    fanout: asyncio.Semaphore = field(default_factory=lambda: asyncio.Semaphore(1))
    sink_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


async def _run_all(coros: Iterable[Awaitable[None]]) -> None:
    """Run coroutines concurrently; on the first failure cancel the rest and re-raise it unchanged."""
    tasks = [asyncio.ensure_future(c) for c in coros]
    if not tasks:
        return
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class SemanticChunker(ChunkingStrategy):
    """
    LLM-driven chunker.

    Args:
        progress: Default progress callback ``(chunk_id, phase, step, data)``.
        connectors: Registry used to resolve ``semantic_options.connector``.
        endpoint: Chat-completion path on the connector host.
        streamer: Streaming function with the signature of ``stream_llm``.
        base_delay: First retry delay in seconds.
        max_delay: Retry delay ceiling in seconds.
    """

    def __init__(
        self,
        progress: Optional[Progress] = None,
        connectors: Optional[ConnectorRegistry] = None,
        endpoint: str = DEFAULT_ENDPOINT,
        streamer: Streamer = stream_llm,
        base_delay: float = 0.25,
        max_delay: float = 4.0,
    ) -> None:
        self.progress = progress
        self.connectors = connectors or get_registry()
        self.endpoint = endpoint
        self.streamer = streamer
        self.base_delay = base_delay
        self.max_delay = max_delay

    async def chunk(
        self,
        text: str,
        options: OptionsInput,
        sink: Sink,
        progress: Optional[Progress] = None,
        **kwargs: Any,
    ) -> None:
        """
        Segment ``text`` with the LLM and stream the tree to ``sink``.

        Raises:
            ConfigError: Missing semantic options or unknown connector.
            ChunkingError: Invalid options.
            Exception: Whatever the sink raises, unchanged.
        """
        run = self._prepare_run(options, sink, progress or self.progress)

        root = Chunk.create(text, chunk_type=run.options.type, root=True)
        root.calculate_text_position()

        opened = asyncio.Event()
        opened.set()
        await self._process(root, opened, asyncio.Event(), run)

    def _prepare_run(self, options: OptionsInput, sink: Sink, progress: Optional[Progress]) -> _Run:
        opts = self._prepare(options)
        semantic = opts.semantic_options
        if semantic is None or not semantic.connector:
            raise ConfigError("semantic_options.connector is required for semantic chunking")
        if semantic.context_size <= 0:
            semantic.context_size = opts.size * opts.max_depth * CONTEXT_SIZE_MULTIPLIER

        connector = self.connectors.select(semantic.connector)
        model = connector.setting().get("model") or DEFAULT_MODEL

        return _Run(
            options=opts,
            semantic=semantic,
            connector=connector,
            sink=sink,
            progress=progress,
            model=model,
            extra=_parse_extra_options(semantic.options),
            semaphore=asyncio.Semaphore(semantic.max_concurrent),
            fanout=asyncio.Semaphore(opts.max_concurrent),
        )

    # -------------------------------------------------------------------------
    # Tree walk
    # -------------------------------------------------------------------------

    async def _process(self, chunk: Chunk, gate: asyncio.Event, emitted: asyncio.Event, run: _Run) -> None:
        async with run.fanout:
            children = await self._segment(chunk, run)

        await gate.wait()
        async with run.sink_lock:
            await call_maybe_async(run.sink, chunk)
        emitted.set()

        if not children:
            return
        previous = emitted
        coros = []
        for child in children:
            done = asyncio.Event()
            coros.append(self._process(child, previous, done, run))
            previous = done
        await _run_all(coros)

    async def _segment(self, chunk: Chunk, run: _Run) -> List[Chunk]:
        """Return the children of ``chunk``, or [] if it stays a leaf."""
        chars = chunk.runes()
        if chunk.depth >= run.options.max_depth or len(chars) <= run.options.size:
            chunk.leaf = True
            chunk.status = ChunkingStatus.COMPLETED
            return []

        chunk.status = ChunkingStatus.PROCESSING
        await self._report(run, chunk.id, "processing", "semantic_analysis", {"depth": chunk.depth, "length": len(chars)})

        positions: List[Position] = []
        try:
            for window in windows(len(chars), run.semantic.context_size, 0):
                found = await self._segment_window(chunk.id, chars[window.start:window.end], run)
                positions.extend(_shift(found, window.start, window.end - window.start))
        except RagCoreError as e:
            return await self._fail(chunk, run, e)

        positions.sort(key=lambda p: (p.start, p.end))
        children = chunk.split(positions, chars)
        if not children:
            return await self._fail(chunk, run, ParseError("LLM positions produced no children"))

        chunk.status = ChunkingStatus.COMPLETED
        await self._report(run, chunk.id, "completed", "semantic_analysis", {"children": len(children)})
        return children

    async def _fail(self, chunk: Chunk, run: _Run, error: Exception) -> List[Chunk]:
        logger.warning(f"Semantic segmentation of chunk {chunk.id} failed, keeping it as a leaf: {error}")
        chunk.leaf = True
        chunk.status = ChunkingStatus.FAILED
        await self._report(run, chunk.id, "failed", "semantic_analysis", {"error": str(error)})
        return []

    # -------------------------------------------------------------------------
    # LLM calls
    # -------------------------------------------------------------------------

    async def _segment_window(self, chunk_id: str, chars: List[str], run: _Run) -> List[Position]:
        """Segment one window, retrying transport, parse and empty results with backoff."""
        attempts = run.semantic.max_retry + 1
        last_error: RagCoreError = ParseError("LLM returned no valid positions")

        for attempt in range(attempts):
            try:
                async with run.semaphore:
                    positions = await self._call_llm(chunk_id, chars, run)
                if positions:
                    return positions
                last_error = ParseError("LLM returned no valid positions")
            except TransportError as e:
                if not e.retryable:
                    raise
                last_error = e
            except (ParseError, CallbackAbortError) as e:
                last_error = e

            if attempt < attempts - 1:
                delay = min(self.max_delay, self.base_delay * (2**attempt) * (0.5 + random.random()))
                logger.warning(
                    f"LLM segmentation failed (attempt {attempt + 1}/{attempts}): {last_error}. "
                    f"Retrying in {delay:.2f}s..."
                )
                await self._report(run, chunk_id, "retry", "semantic_analysis", {"attempt": attempt + 1, "error": str(last_error)})
                await asyncio.sleep(delay)

        raise last_error

    async def _call_llm(self, chunk_id: str, chars: List[str], run: _Run) -> List[Position]:
        parser = SemanticParser(run.semantic.toolcall)
        latest: List[Position] = []

        async def on_frame(frame: bytes) -> None:
            nonlocal latest
            try:
                positions = parser.parse_frame(frame)
            except ParseError as e:
                # finalize() raises it again once the stream is closed.
                logger.debug(f"Final frame did not parse: {e}")
                positions = None
            if positions is not None:
                latest = positions
            await self._report(
                run,
                chunk_id,
                "streaming",
                "llm_response",
                {
                    "content_length": len(parser.accumulated),
                    "positions_count": len(latest),
                    "finished": parser.finished,
                },
            )

        await self.streamer(run.connector, self.endpoint, self._payload(chars, run), on_frame)
        return parser.finalize()

    def _payload(self, chars: List[str], run: _Run) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": run.model,
            "messages": [
                {"role": "user", "content": semantic_message(run.semantic.prompt, run.options.size, chars)},
            ],
            "max_tokens": DEFAULT_MAX_TOKENS,
            "temperature": DEFAULT_TEMPERATURE,
        }
        if run.semantic.toolcall:
            payload["tools"] = semantic_tools()
            payload["tool_choice"] = "auto"
        payload.update(run.extra)
        return payload

    @staticmethod
    async def _report(run: _Run, chunk_id: str, phase: str, step: str, data: Dict[str, Any]) -> None:
        if run.progress is None:
            return
        try:
            await call_maybe_async(run.progress, chunk_id, phase, step, data)
        except Exception as e:
            logger.warning(f"Progress callback error: {e}")


def _parse_extra_options(raw: str) -> Dict[str, Any]:
    """Decode ``semantic_options.options``; invalid JSON is logged and ignored."""
    if not raw or not raw.strip():
        return {}
    try:
        extra = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse semantic options: {e}")
        return {}
    if not isinstance(extra, dict):
        logger.warning(f"Semantic options must be a JSON object, got {type(extra).__name__}")
        return {}
    return extra


def _shift(positions: List[Position], offset: int, length: int) -> List[Position]:
    """Move window-relative positions into the chunk, clamped to the window."""
    shifted: List[Position] = []
    for pos in positions:
        if pos.start >= length:
            continue
        shifted.append(Position(pos.start + offset, min(pos.end, length) + offset))
    return shifted
