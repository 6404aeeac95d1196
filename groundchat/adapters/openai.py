"""
groundchat.adapters.openai — OpenAI / OpenAI-compatible chat adapter.

Covers api.openai.com and any third-party backend that speaks the Chat
Completions wire format at a configurable base URL.  These backends have
no native search grounding, so web context is injected upstream.

Default model: ``gpt-4o-mini``.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

import httpx

from groundchat.adapters.base import (
    DEFAULT_LIMITS,
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT,
    BaseAdapter,
    Completion,
    RawFragment,
    iter_sse_json,
    raise_for_stream_status,
)
from groundchat.core.errors import StreamTransportError
from groundchat.core.models import Message

logger = logging.getLogger("groundchat.adapters.openai")

OPENAI_API_BASE = "https://api.openai.com/v1"

DEFAULT_MODEL = "gpt-4o-mini"

_MAX_TOKENS = 4096

# Model ids containing these go straight to non-streaming requests
STREAMING_ISSUE_MARKERS = ("hyperbolic", "gpt-oss")


def clean_base_url(base_url: str) -> str:
    """
    Normalise a user-supplied endpoint to the API root.

    Users often paste the full ``…/chat/completions`` URL; the adapter
    appends that path itself, so it is stripped along with trailing slashes.
    """
    cleaned = base_url.strip()
    if cleaned.endswith("/chat/completions"):
        cleaned = cleaned[: -len("/chat/completions")]
    return cleaned.rstrip("/")


class OpenAICompatibleAdapter(BaseAdapter):
    """
    Streams from ``{base}/chat/completions`` with ``stream: true``.

    Besides ``delta.content`` it passes through the citation shapes some
    compatible backends emit: ``delta.annotations[].url_citation`` and a
    top-level ``citations`` list of URLs.
    """

    native_grounding = False

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(model)
        self.prefer_non_streaming = any(marker in model.lower() for marker in STREAMING_ISSUE_MARKERS)
        self.base_url = clean_base_url(base_url) if base_url else OPENAI_API_BASE
        if base_url and self.base_url != base_url:
            logger.info("Using cleaned base URL: %s (original: %s)", self.base_url, base_url)
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=DEFAULT_TIMEOUT,
            limits=DEFAULT_LIMITS,
        )

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def stream(
        self,
        messages: list[Message],
        *,
        use_web_search: bool = False,
    ) -> AsyncIterator[RawFragment]:
        body = self._build_body(messages, stream=True)

        logger.debug("OpenAI-compatible stream: model=%s messages=%d", self.model, len(messages))

        async with self._client.stream("POST", "/chat/completions", json=body) as resp:
            await raise_for_stream_status(resp)
            async for chunk in iter_sse_json(resp):
                if "error" in chunk:
                    err = chunk["error"]
                    err_msg = err.get("message", str(err)) if isinstance(err, dict) else str(err)
                    raise StreamTransportError(f"Backend error in stream: {err_msg[:300]}")

                choice = (chunk.get("choices") or [{}])[0]
                delta = choice.get("delta") or {}
                text = delta.get("content") or ""
                citations = self._citations(chunk, delta)
                if text or citations:
                    yield RawFragment(text=text, citations=citations)

    async def complete(
        self,
        messages: list[Message],
        *,
        use_web_search: bool = False,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Completion:
        body = self._build_body(messages, stream=False, max_tokens=max_tokens, temperature=temperature)

        resp = await self._client.post("/chat/completions", json=body)
        resp.raise_for_status()
        data = resp.json()

        choice = (data.get("choices") or [{}])[0]
        msg = choice.get("message") or {}
        return Completion(
            text=msg.get("content") or "",
            citations=self._citations(data, msg),
            finish_reason=choice.get("finish_reason") or "stop",
        )

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_body(
        self,
        messages: list[Message],
        *,
        stream: bool,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": m.role.value, "content": m.content} for m in messages],
            "stream": stream,
            "max_tokens": max_tokens or _MAX_TOKENS,
            "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
        }

    @staticmethod
    def _citations(chunk: dict[str, Any], delta: dict[str, Any]) -> list[dict[str, Any] | str]:
        citations: list[dict[str, Any] | str] = []
        for annotation in delta.get("annotations") or []:
            if annotation.get("type") == "url_citation" and annotation.get("url_citation"):
                citations.append(annotation["url_citation"])
        for url in chunk.get("citations") or []:
            if isinstance(url, str):
                citations.append(url)
        return citations
