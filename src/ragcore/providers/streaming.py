# src/ragcore/providers/streaming.py
"""
Streaming client for OpenAI-compatible chat-completion endpoints.

``stream_llm`` POSTs a payload with ``stream: true`` and hands every
non-empty server-sent-event line to a callback; ``post_llm`` is the
non-streaming variant returning the decoded JSON body. Both take the host
and key from a connector.

Usage:
    async def on_frame(frame: bytes) -> None:
        positions = parser.parse_frame(frame)

    await stream_llm(connector, "chat/completions", payload, on_frame)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

import aiohttp

from ..config import get_config
from ..connectors.base import BaseConnector
from ..connectors.openai import DEFAULT_OPENAI_HOST
from ..exceptions import CallbackAbortError, ConfigError, TransportError

logger = logging.getLogger(__name__)

BODY_PREVIEW_LENGTH = 500

FrameCallback = Callable[[bytes], Union[None, Awaitable[None]]]


def build_url(host: str, endpoint: str) -> str:
    """
    Join host and endpoint.

    A leading ``/`` is added to the endpoint; requests to the canonical
    OpenAI host get a ``/v1`` prefix when the endpoint lacks one.
    """
    if not endpoint.startswith("/"):
        endpoint = "/" + endpoint
    host = host.rstrip("/")
    if host == DEFAULT_OPENAI_HOST and not endpoint.startswith("/v1"):
        endpoint = "/v1" + endpoint
    return host + endpoint


def is_retryable_status(status: int) -> bool:
    """4xx responses other than 408 and 429 cannot be fixed by retrying."""
    return not (400 <= status < 500 and status not in (408, 429))


def _prepare(connector: BaseConnector, endpoint: str, timeout: Optional[float]) -> Tuple[str, str, float]:
    setting = connector.setting()
    host = setting.get("host") or ""
    key = setting.get("key") or ""
    if not host:
        raise ConfigError(f"Connector {connector.id}: host is required")
    if not key:
        raise ConfigError(f"Connector {connector.id}: key is required")
    if not endpoint:
        raise ConfigError("LLM endpoint is required")
    if timeout is None:
        timeout = setting.get("timeout") or get_config().http.timeout
    return build_url(host, endpoint), key, float(timeout)


async def _raise_for_status(response: aiohttp.ClientResponse, provider: str) -> None:
    if response.status == 200:
        return
    try:
        body = await response.text()
    except (aiohttp.ClientError, UnicodeDecodeError):
        body = ""
    raise TransportError(
        provider,
        f"HTTP {response.status}: {body[:BODY_PREVIEW_LENGTH]}",
        status=response.status,
        retryable=is_retryable_status(response.status),
    )


async def stream_llm(
    connector: BaseConnector,
    endpoint: str,
    payload: Dict[str, Any],
    callback: FrameCallback,
    session: Optional[aiohttp.ClientSession] = None,
    timeout: Optional[float] = None,
) -> None:
    """
    Stream a chat completion, invoking ``callback`` once per SSE line.

    Args:
        connector: Supplies ``host`` and ``key`` (and optionally ``timeout``).
        endpoint: Path such as ``chat/completions``.
        payload: Request body; it is copied, never mutated.
        callback: Sync or async callable receiving the raw line bytes.
        session: Reuse an existing session instead of opening one.
        timeout: Total request timeout in seconds.

    Raises:
        ConfigError: Missing host, key or endpoint.
        TransportError: Network failure, timeout, non-200 status or a line
            too long for the stream reader.
        CallbackAbortError: The callback raised; the stream is closed.
    """
    url, key, total_timeout = _prepare(connector, endpoint, timeout)
    body = dict(payload)
    body["stream"] = True
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {key}",
        "Accept": "text/event-stream",
    }

    owns_session = session is None
    if session is None:
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=total_timeout))

    frames = 0
    logger.debug(f"Streaming request to {url}")
    try:
        async with session.post(url, json=body, headers=headers) as response:
            await _raise_for_status(response, connector.id)
            async for line in response.content:
                frame = line.strip()
                if not frame:
                    continue
                frames += 1
                try:
                    result = callback(frame)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    raise CallbackAbortError(connector.id, f"Stream callback failed: {e}") from e
    except aiohttp.ClientError as e:
        logger.error(f"Streaming request to {url} failed: {e}")
        raise TransportError(connector.id, f"Stream transport error: {e}") from e
    except ValueError as e:
        # StreamReader rejects lines above its buffer limit ("Chunk too big").
        logger.error(f"Streaming response from {url} could not be read: {e}")
        raise TransportError(connector.id, f"Unreadable stream line: {e}", status=200) from e
    except asyncio.TimeoutError as e:
        logger.error(f"Streaming request to {url} timed out after {total_timeout}s")
        raise TransportError(connector.id, f"Request timed out after {total_timeout}s.", status=None) from e
    finally:
        if owns_session:
            await session.close()

    logger.debug(f"Stream from {url} finished after {frames} frames")


async def post_llm(
    connector: BaseConnector,
    endpoint: str,
    payload: Dict[str, Any],
    session: Optional[aiohttp.ClientSession] = None,
    timeout: Optional[float] = None,
) -> Any:
    """
    POST a payload and return the decoded JSON response.

    Raises:
        ConfigError: Missing host, key or endpoint.
        TransportError: Network failure, timeout, non-200 status or a non-JSON body.
    """
    url, key, total_timeout = _prepare(connector, endpoint, timeout)
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {key}",
    }

    owns_session = session is None
    if session is None:
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=total_timeout))

    try:
        async with session.post(url, json=dict(payload), headers=headers) as response:
            await _raise_for_status(response, connector.id)
            return await response.json(content_type=None)
    except aiohttp.ClientError as e:
        logger.error(f"Request to {url} failed: {e}")
        raise TransportError(connector.id, f"Transport error: {e}") from e
    except ValueError as e:
        raise TransportError(connector.id, f"Invalid JSON response: {e}", status=200, retryable=False) from e
    except asyncio.TimeoutError as e:
        logger.error(f"Request to {url} timed out after {total_timeout}s")
        raise TransportError(connector.id, f"Request timed out after {total_timeout}s.") from e
    finally:
        if owns_session:
            await session.close()
