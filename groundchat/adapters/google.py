"""
groundchat.adapters.google — Google Gemini adapter.

Talks to the native Gemini REST API (``generativelanguage.googleapis.com``)
rather than its OpenAI-compatible surface, because only the native API
accepts the ``google_search`` tool and returns ``groundingMetadata``.

Default model: ``gemini-2.5-flash``.
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
from groundchat.core.models import Message, Role

logger = logging.getLogger("groundchat.adapters.google")

GEMINI_API_BASE = "https://generativelanguage.googleapis.com"

DEFAULT_MODEL = "gemini-2.5-flash"

_MAX_OUTPUT_TOKENS = 8192


class GeminiAdapter(BaseAdapter):
    """
    Streams from ``models/{model}:streamGenerateContent`` over SSE.

    With ``use_web_search`` the request declares the ``google_search`` tool;
    Gemini then searches on its own and attaches ``groundingChunks`` to the
    candidates, which are passed through as citations.
    """

    native_grounding = True

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(model)
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(
            base_url=base_url or GEMINI_API_BASE,
            headers={"Content-Type": "application/json"},
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
        body = self._build_body(messages, use_web_search)
        url = f"/v1beta/models/{self.model}:streamGenerateContent"
        params = {"alt": "sse"}

        logger.debug(
            "Gemini stream: model=%s contents=%d search=%s",
            self.model, len(body["contents"]), use_web_search,
        )

        async with self._client.stream(
            "POST", url, params=params, headers=self._auth_headers(), json=body,
        ) as resp:
            await raise_for_stream_status(resp)
            async for chunk in iter_sse_json(resp):
                if "error" in chunk:
                    err = chunk["error"]
                    err_msg = err.get("message", str(err)) if isinstance(err, dict) else str(err)
                    logger.error("Gemini API error in stream: %s", err_msg[:300])
                    raise StreamTransportError(f"Gemini API error: {err_msg[:300]}")

                text, citations = self._parse_candidate(chunk)
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
        body = self._build_body(messages, use_web_search, max_tokens, temperature)
        url = f"/v1beta/models/{self.model}:generateContent"

        resp = await self._client.post(url, headers=self._auth_headers(), json=body)
        resp.raise_for_status()
        data = resp.json()

        candidates = data.get("candidates", [])
        finish_reason = candidates[0].get("finishReason", "STOP") if candidates else "STOP"
        text, citations = self._parse_candidate(data)
        return Completion(text=text, citations=citations, finish_reason=finish_reason)

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _auth_headers(self) -> dict[str, str]:
        # The key never goes in the URL; URLs show up in httpx error text
        return {"x-goog-api-key": self._api_key}

    def _build_body(
        self,
        messages: list[Message],
        use_web_search: bool,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> dict[str, Any]:
        """Build the Gemini request body from shared messages."""
        contents: list[dict[str, Any]] = []
        system_parts: list[str] = []

        for m in messages:
            if m.role == Role.SYSTEM:
                system_parts.append(m.content)
                continue
            role = "user" if m.role == Role.USER else "model"
            contents.append({"role": role, "parts": [{"text": m.content}]})

        body: dict[str, Any] = {
            "contents": self._merge_contents(contents),
            "generationConfig": {
                "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
                "topP": 0.8,
                "topK": 40,
                "maxOutputTokens": max_tokens or _MAX_OUTPUT_TOKENS,
            },
        }
        if system_parts:
            body["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}
        if use_web_search:
            body["tools"] = [{"google_search": {}}]
        return body

    @staticmethod
    def _merge_contents(contents: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Merge consecutive same-role content blocks; Gemini wants strict alternation."""
        if not contents:
            return contents
        merged = [contents[0]]
        for content in contents[1:]:
            if content["role"] == merged[-1]["role"]:
                merged[-1]["parts"].extend(content["parts"])
            else:
                merged.append(content)
        return merged

    @staticmethod
    def _parse_candidate(data: dict[str, Any]) -> tuple[str, list[dict[str, Any] | str]]:
        """Pull visible text and grounding chunks out of the first candidate."""
        candidates = data.get("candidates") or []
        if not candidates:
            return "", []
        candidate = candidates[0]

        text_parts: list[str] = []
        for part in candidate.get("content", {}).get("parts", []) or []:
            # Thinking parts are internal reasoning, not user output
            if part.get("thought"):
                continue
            if part.get("text"):
                text_parts.append(part["text"])

        citations: list[dict[str, Any] | str] = []
        grounding = candidate.get("groundingMetadata") or {}
        for chunk in grounding.get("groundingChunks", []) or []:
            web = chunk.get("web")
            if web:
                citations.append(web)

        return "".join(text_parts), citations
