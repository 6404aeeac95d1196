"""
groundchat.agent.orchestrator — Response generation with streaming fallback.

One ``generate()`` call runs the whole pipeline:

    history → context window → [web search augmentation] → adapter.stream
            → merger → caller

and recovers from a broken stream with exactly one non-streaming retry.
Models with known streaming problems skip the stream and go straight to a
non-streaming request.
The orchestrator keeps no per-conversation state; the model binding is an
explicit argument captured at the start of every call.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Callable

from groundchat.adapters import BaseAdapter, Completion, RawFragment, create_adapter
from groundchat.agent.context_window import budget_for_model, select_window
from groundchat.agent.merger import extract_sources, merge_fragments, new_sources
from groundchat.agent.web_search import SearchClient, augment
from groundchat.core.errors import (
    FinalFailure,
    StreamTransportError,
    classify_error,
)
from groundchat.core.models import (
    Message,
    ModelSelection,
    ResponseFragment,
    Role,
    SearchResult,
)

logger = logging.getLogger("groundchat.agent.orchestrator")

# Seconds to wait for the first streamed fragment before giving up on streaming
STREAM_START_TIMEOUT = 30.0

TITLE_PROMPT = """\
Generate a concise, 5-word-or-less title for the following user prompt. \
Speak in the same language as the prompt. Do not include quotes, asterisks, \
or any other formatting.

Prompt: "{prompt}"

Title:"""

UNTITLED = "Untitled Chat"
_TITLE_FALLBACK_CHARS = 40


@dataclass
class ModelCheck:
    """Outcome of a model availability check."""
    available: bool
    error: str | None = None


def fallback_title(user_text: str) -> str:
    """Caller-side title when ``generate_title`` fails: the prompt, truncated."""
    return user_text[:_TITLE_FALLBACK_CHARS].strip() + "..."


def _escalate(exc: Exception, model: str) -> Exception:
    """The error to raise once recovery is exhausted: a rejection if classifiable."""
    rejection = classify_error(exc, model)
    if rejection is not None:
        return rejection
    return FinalFailure(model, exc)


def _raise_if_rejected(exc: Exception, model: str) -> None:
    """Re-raise *exc* as a ``BackendRejection`` when it is one; rejections are never retried."""
    rejection = classify_error(exc, model)
    if rejection is None:
        return
    logger.warning("Backend rejected %s: %s %s", model, rejection.kind.value, rejection.detail[:200])
    if rejection is exc:
        raise rejection
    raise rejection from exc


def _completion_fragments(
    completion: Completion,
    seen: set[str],
    streamed_text: str,
    model: str,
) -> list[ResponseFragment]:
    """A non-streaming result as at most one text fragment and one source batch."""
    logger.debug("Completion for %s finished: %s", model, completion.finish_reason)
    fragments: list[ResponseFragment] = []
    text = completion.text
    # Text already on screen is never retracted; skip it if the full
    # reply repeats it.
    if streamed_text and text.startswith(streamed_text):
        text = text[len(streamed_text):]
    if text:
        fragments.append(ResponseFragment(text=text))

    fresh = new_sources(extract_sources(completion.citations), seen)
    if fresh:
        fragments.append(ResponseFragment(sources=fresh))
    return fragments


class ResponseOrchestrator:
    """
    Generates assistant responses for any configured backend.

    Adapters are created once per provider binding and reused; call
    ``close()`` to release their HTTP clients.
    """

    def __init__(
        self,
        search_client: SearchClient | None = None,
        *,
        adapter_factory: Callable[[ModelSelection], BaseAdapter] = create_adapter,
        stream_start_timeout: float = STREAM_START_TIMEOUT,
    ) -> None:
        self.search_client = search_client
        self._adapter_factory = adapter_factory
        self._stream_start_timeout = stream_start_timeout
        self._adapters: dict[tuple[str, str, str, str], BaseAdapter] = {}

    def adapter_for(self, selection: ModelSelection) -> BaseAdapter:
        config = selection.provider_config
        key = (config.kind.value, config.base_url or "", config.api_key, selection.model_id)
        adapter = self._adapters.get(key)
        if adapter is None:
            adapter = self._adapter_factory(selection)
            self._adapters[key] = adapter
        return adapter

    async def close(self) -> None:
        adapters = list(self._adapters.values())
        self._adapters.clear()
        for adapter in adapters:
            await adapter.close()

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    @staticmethod
    def build_window(
        history: list[Message],
        new_user_text: str,
        selection: ModelSelection,
    ) -> list[Message]:
        """The new user turn appended to history, trimmed to the model's budget."""
        full = [*history, Message(role=Role.USER, content=new_user_text)]
        return select_window(full, budget_for_model(selection.model_id))

    async def generate(
        self,
        history: list[Message],
        new_user_text: str,
        use_web_search: bool,
        selection: ModelSelection,
    ) -> AsyncIterator[ResponseFragment]:
        """
        Stream the assistant's reply to *new_user_text*.

        Yields ``ResponseFragment`` objects carrying either a text delta or a
        batch of sources not yet seen in this response.  Raises
        ``BackendRejection`` or ``FinalFailure``; text already yielded stays
        valid when an error follows it.
        """
        model = selection.model_id
        try:
            adapter = self.adapter_for(selection)
        except ValueError as exc:
            logger.error("Cannot use %s: %s", selection.label, exc)
            raise FinalFailure(model, exc) from exc
        window = self.build_window(history, new_user_text, selection)

        search_results: list[SearchResult] = []
        native_search = use_web_search and adapter.native_grounding
        if use_web_search and not adapter.native_grounding:
            if self.search_client is not None:
                window, search_results = await augment(window, new_user_text, self.search_client)
            else:
                logger.info("Web search requested but no search provider is configured")

        logger.debug(
            "Generating with %s: window=%d messages, native_search=%s, search_results=%d",
            selection.label, len(window), native_search, len(search_results),
        )

        seen: set[str] = set()
        if adapter.prefer_non_streaming:
            logger.info("Using non-streaming mode for %s", model)
            try:
                completion = await adapter.complete(window, use_web_search=native_search)
            except Exception as exc:
                _raise_if_rejected(exc, model)
                logger.warning(
                    "Non-streaming request failed for %s (%s: %s); retrying once",
                    model, type(exc).__name__, exc,
                )
                completion = await self._fallback_completion(adapter, window, native_search, model)
            for fragment in _completion_fragments(completion, seen, "", model):
                yield fragment
        else:
            streamed: list[str] = []
            raw = self._stream_with_timeout(adapter, window, native_search)
            try:
                async with aclosing(merge_fragments(raw, seen)) as fragments:
                    async for fragment in fragments:
                        if fragment.text:
                            streamed.append(fragment.text)
                        yield fragment
            except Exception as exc:
                await raw.aclose()
                _raise_if_rejected(exc, model)
                logger.warning(
                    "Streaming failed for %s (%s: %s); falling back to non-streaming",
                    model, type(exc).__name__, exc,
                )
                completion = await self._fallback_completion(adapter, window, native_search, model)
                for fragment in _completion_fragments(completion, seen, "".join(streamed), model):
                    yield fragment
            finally:
                await raw.aclose()

        if search_results:
            fresh = new_sources([r.to_source() for r in search_results], seen)
            if fresh:
                yield ResponseFragment(sources=fresh)

    async def _stream_with_timeout(
        self,
        adapter: BaseAdapter,
        window: list[Message],
        native_search: bool,
    ) -> AsyncIterator[RawFragment]:
        """Adapter stream that fails if nothing arrives within the start timeout."""
        stream = adapter.stream(window, use_web_search=native_search)
        try:
            try:
                async with asyncio.timeout(self._stream_start_timeout):
                    first = await anext(stream)
            except StopAsyncIteration:
                return
            except TimeoutError as exc:
                raise StreamTransportError(
                    f"No stream activity within {self._stream_start_timeout:g}s"
                ) from exc
            yield first
            async for fragment in stream:
                yield fragment
        finally:
            await stream.aclose()

    async def _fallback_completion(
        self,
        adapter: BaseAdapter,
        window: list[Message],
        native_search: bool,
        model: str,
    ) -> Completion:
        """The single retry. Its failure is final."""
        try:
            return await adapter.complete(window, use_web_search=native_search)
        except Exception as exc:
            logger.error("Non-streaming fallback also failed for %s: %s", model, exc)
            raise _escalate(exc, model) from exc

    # ------------------------------------------------------------------
    # Sibling operations
    # ------------------------------------------------------------------

    async def generate_title(self, user_text: str, selection: ModelSelection) -> str:
        """
        Ask the model for a short conversation title.

        One non-streaming call, never search-augmented.  Raises on failure;
        callers fall back to ``fallback_title()``.
        """
        prompt = TITLE_PROMPT.format(prompt=user_text)
        try:
            adapter = self.adapter_for(selection)
            completion = await adapter.complete(
                [Message(role=Role.USER, content=prompt)],
                temperature=0.5,
            )
        except Exception as exc:
            logger.warning("Title generation failed with %s: %s", selection.model_id, exc)
            raise _escalate(exc, selection.model_id) from exc

        title = completion.text.strip().replace('"', "").replace("*", "").strip()
        return title or UNTITLED

    async def check_model(self, selection: ModelSelection) -> ModelCheck:
        """Send a model a one-word prompt to see whether it answers."""
        try:
            adapter = self.adapter_for(selection)
            completion = await adapter.complete([Message(role=Role.USER, content="Hi")])
        except Exception as exc:
            logger.info("Model %s test failed: %s", selection.label, exc)
            rejection = classify_error(exc, selection.model_id)
            return ModelCheck(available=False, error=str(rejection or exc))

        if not completion.text:
            return ModelCheck(available=False, error="No response from model")
        return ModelCheck(available=True)
