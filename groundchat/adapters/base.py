"""
groundchat.adapters.base — Abstract base class for LLM provider adapters.

Every adapter translates the shared ``Message`` list into its backend's
native request format and its backend's streaming chunks back into
``RawFragment`` objects, so nothing above this layer parses provider JSON.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx

from groundchat.core.errors import StreamTransportError
from groundchat.core.models import Message

logger = logging.getLogger("groundchat.adapters")

# Granular timeouts: fast connect, generous read for streaming
_CONNECT_TIMEOUT = 10.0
_READ_TIMEOUT = 180.0
_WRITE_TIMEOUT = 30.0
_POOL_TIMEOUT = 10.0

DEFAULT_TIMEOUT = httpx.Timeout(
    connect=_CONNECT_TIMEOUT,
    read=_READ_TIMEOUT,
    write=_WRITE_TIMEOUT,
    pool=_POOL_TIMEOUT,
)

# Keep connections alive to skip TLS on subsequent requests
DEFAULT_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=10,
    keepalive_expiry=120,
)

DEFAULT_TEMPERATURE = 0.7


@dataclass
class RawFragment:
    """
    One streamed unit in the adapter-neutral shape.

    ``citations`` holds the backend's own citation records untouched
    (dicts with ``uri``/``url`` keys, or bare URL strings); the merger
    decides what becomes a ``Source``.
    """
    text: str = ""
    citations: list[dict[str, Any] | str] = field(default_factory=list)


@dataclass
class Completion:
    """Unified non-streaming result."""
    text: str = ""
    citations: list[dict[str, Any] | str] = field(default_factory=list)
    finish_reason: str = "stop"


class BaseAdapter(ABC):
    """
    Interface contract for all provider adapters.

    ``native_grounding`` tells the orchestrator whether the backend can run
    web search itself; when it can, external search augmentation is skipped.
    ``prefer_non_streaming`` marks models whose streams are known to break;
    the orchestrator sends those a plain completion request instead.
    """

    native_grounding: bool = False
    prefer_non_streaming: bool = False

    def __init__(self, model: str) -> None:
        self.model = model

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        *,
        use_web_search: bool = False,
    ) -> AsyncIterator[RawFragment]:
        """Stream a completion for *messages* as ``RawFragment`` objects."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        *,
        use_web_search: bool = False,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Completion:
        """Send a non-streaming completion request and return the full result."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release any held resources (HTTP clients, etc.)."""
        ...


async def iter_sse_json(resp: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    """
    Yield the decoded JSON payload of each ``data:`` line of an SSE response.

    Stops at ``[DONE]``.  A payload that is not valid JSON raises
    ``StreamTransportError`` rather than being skipped, so the caller can
    fall back to the non-streaming path.
    """
    async for line in resp.aiter_lines():
        if not line.startswith("data:"):
            continue
        data_str = line[5:].strip()
        if not data_str:
            continue
        if data_str == "[DONE]":
            break
        try:
            payload = json.loads(data_str)
        except json.JSONDecodeError as exc:
            logger.debug("Malformed SSE payload: %s", data_str[:200])
            raise StreamTransportError(f"Malformed stream chunk: {data_str[:120]}") from exc
        if not isinstance(payload, dict):
            raise StreamTransportError(f"Unexpected stream chunk: {data_str[:120]}")
        yield payload


async def raise_for_stream_status(resp: httpx.Response) -> None:
    """Read the error body of a streamed response before raising, so it can be classified."""
    if resp.is_error:
        await resp.aread()
        logger.debug("Backend error %d: %s", resp.status_code, resp.text[:500])
    resp.raise_for_status()
