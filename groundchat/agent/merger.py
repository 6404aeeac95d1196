"""
groundchat.agent.merger — Turns raw adapter fragments into response fragments.

Text passes straight through the moment it arrives.  Citations are
normalised into ``Source`` records and each URI is emitted at most once per
response.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Iterable

from groundchat.adapters.base import RawFragment
from groundchat.core.models import Message, ResponseFragment, Role, Source


def extract_sources(citations: Iterable[dict[str, Any] | str]) -> list[Source]:
    """Normalise backend citation records; entries without a URI are dropped."""
    sources: list[Source] = []
    for item in citations:
        if isinstance(item, str):
            if item:
                sources.append(Source(title=item, uri=item))
            continue
        if not isinstance(item, dict):
            continue
        uri = item.get("uri") or item.get("url")
        if not uri:
            continue
        snippet = item.get("snippet") or item.get("content")
        sources.append(Source(
            title=item.get("title") or uri,
            uri=uri,
            snippet=snippet or None,
        ))
    return sources


def new_sources(sources: Iterable[Source], seen: set[str]) -> list[Source]:
    """Filter to sources whose URI is not in *seen*, recording them as seen."""
    fresh: list[Source] = []
    for source in sources:
        if source.uri in seen:
            continue
        seen.add(source.uri)
        fresh.append(source)
    return fresh


async def merge_fragments(
    raw: AsyncIterator[RawFragment],
    seen: set[str] | None = None,
) -> AsyncIterator[ResponseFragment]:
    """
    Re-yield *raw* as ``ResponseFragment`` objects in backend order.

    *seen* is the per-response URI set; a fresh one is made when omitted so
    dedup state never leaks between responses.
    """
    if seen is None:
        seen = set()
    async for fragment in raw:
        if fragment.text:
            yield ResponseFragment(text=fragment.text)
        if fragment.citations:
            fresh = new_sources(extract_sources(fragment.citations), seen)
            if fresh:
                yield ResponseFragment(sources=fresh)


class ResponseAccumulator:
    """
    Collects a streamed response into the final assistant message.

    The caller owns this object and appends ``to_message()`` to its
    history when the stream ends, instead of patching a history entry in
    place while fragments arrive.
    """

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._sources: list[Source] = []
        self._seen: set[str] = set()

    def add(self, fragment: ResponseFragment) -> None:
        if fragment.text:
            self._parts.append(fragment.text)
        if fragment.sources:
            self._sources.extend(new_sources(fragment.sources, self._seen))

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def sources(self) -> list[Source]:
        return list(self._sources)

    def to_message(self) -> Message:
        return Message(role=Role.ASSISTANT, content=self.text, sources=self.sources)
