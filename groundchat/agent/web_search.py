"""
groundchat.agent.web_search — External web search and context augmentation.

Used only for backends without native search grounding.  Supported search
providers:

    - Tavily      (API key, POST api.tavily.com/search)
    - SerpAPI     (API key, Google engine, organic results)
    - DuckDuckGo  (HTML endpoint, no API key required)

A failed search never stops a response: ``augment()`` logs the problem and
hands back the messages unchanged.
"""

from __future__ import annotations

import html
import logging
import re
from abc import ABC, abstractmethod
from datetime import date
from urllib.parse import unquote

import httpx

from groundchat.core.errors import SearchUnavailable
from groundchat.core.models import (
    Message,
    Role,
    SearchProviderKind,
    SearchResult,
    SearchSettings,
)

logger = logging.getLogger("groundchat.agent.web_search")

TAVILY_URL = "https://api.tavily.com/search"
SERPAPI_URL = "https://serpapi.com/search"
DDG_URL = "https://html.duckduckgo.com/html/"

MAX_RESULTS = 5
MAX_SNIPPET_LEN = 300
SEARCH_TIMEOUT = 15

_USER_AGENT = "Mozilla/5.0 (compatible; groundchat/1.0)"


class SearchClient(ABC):
    """Runs one query against a search provider."""

    name: str = "search"

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def search(self, query: str) -> list[SearchResult]:
        """
        Return at most ``MAX_RESULTS`` results for *query*.

        Any HTTP, timeout or payload problem is raised as ``SearchUnavailable``.
        """
        try:
            if self._client is not None:
                results = await self._search(self._client, query)
            else:
                async with httpx.AsyncClient(timeout=SEARCH_TIMEOUT) as client:
                    results = await self._search(client, query)
        except SearchUnavailable:
            raise
        except httpx.TimeoutException as exc:
            raise SearchUnavailable(f"{self.name} search timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise SearchUnavailable(
                f"{self.name} search failed: {exc.response.status_code} {exc.response.reason_phrase}"
            ) from exc
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            raise SearchUnavailable(f"{self.name} search failed: {exc}") from exc
        return [r for r in results if r.url][:MAX_RESULTS]

    @abstractmethod
    async def _search(self, client: httpx.AsyncClient, query: str) -> list[SearchResult]:
        ...


class TavilySearch(SearchClient):
    name = "Tavily"

    def __init__(self, api_key: str, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(client)
        self._api_key = api_key

    async def _search(self, client: httpx.AsyncClient, query: str) -> list[SearchResult]:
        resp = await client.post(
            TAVILY_URL,
            json={
                "api_key": self._api_key,
                "query": query,
                "search_depth": "basic",
                "include_answer": False,
                "include_images": False,
                "include_raw_content": False,
                "max_results": MAX_RESULTS,
            },
        )
        resp.raise_for_status()
        data = resp.json()
        if data.get("error"):
            raise SearchUnavailable(f"Tavily API error: {data['error']}")
        return [
            SearchResult(
                title=r.get("title") or "",
                url=r.get("url") or "",
                snippet=(r.get("content") or "")[:MAX_SNIPPET_LEN],
                published_date=r.get("published_date"),
            )
            for r in data.get("results") or []
        ]


class SerpApiSearch(SearchClient):
    name = "SerpAPI"

    def __init__(self, api_key: str, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(client)
        self._api_key = api_key

    async def _search(self, client: httpx.AsyncClient, query: str) -> list[SearchResult]:
        resp = await client.get(
            SERPAPI_URL,
            params={
                "engine": "google",
                "q": query,
                "api_key": self._api_key,
                "num": str(MAX_RESULTS),
                "hl": "en",
                "gl": "us",
            },
            headers={"User-Agent": _USER_AGENT},
        )
        resp.raise_for_status()
        data = resp.json()
        if data.get("error"):
            raise SearchUnavailable(f"SerpAPI error: {data['error']}")
        return [
            SearchResult(
                title=r.get("title") or "",
                url=r.get("link") or "",
                snippet=(r.get("snippet") or "")[:MAX_SNIPPET_LEN],
                published_date=r.get("date"),
            )
            for r in data.get("organic_results") or []
        ]


class DuckDuckGoSearch(SearchClient):
    name = "DuckDuckGo"

    async def _search(self, client: httpx.AsyncClient, query: str) -> list[SearchResult]:
        resp = await client.post(
            DDG_URL,
            data={"q": query, "b": ""},
            headers={"User-Agent": _USER_AGENT},
        )
        resp.raise_for_status()

        # Parse results from HTML (lightweight, no deps)
        result_blocks = re.findall(
            r'class="result__a"[^>]*href="([^"]*)"[^>]*>(.*?)</a>.*?'
            r'class="result__snippet"[^>]*>(.*?)</(?:td|div|span|a)',
            resp.text,
            re.DOTALL,
        )

        results: list[SearchResult] = []
        for url, title_html, snippet_html in result_blocks[:MAX_RESULTS]:
            # Unwrap DuckDuckGo redirect URLs
            if "uddg=" in url:
                match = re.search(r"uddg=([^&]+)", url)
                if match:
                    url = unquote(match.group(1))
            title = _strip_html(title_html)
            if title and url:
                results.append(SearchResult(
                    title=title[:200],
                    url=url,
                    snippet=_strip_html(snippet_html)[:MAX_SNIPPET_LEN],
                ))
        return results


def _strip_html(text: str) -> str:
    """Remove HTML tags and decode entities."""
    text = re.sub(r"<[^>]+>", " ", text)
    text = html.unescape(text)
    return re.sub(r"\s{2,}", " ", text).strip()


def create_search_client(
    settings: SearchSettings,
    client: httpx.AsyncClient | None = None,
) -> SearchClient | None:
    """Build the configured search client, or ``None`` when search is off or unkeyed."""
    kind = settings.provider
    if kind == SearchProviderKind.TAVILY:
        if not settings.api_key:
            logger.warning("Tavily API key is required for web search; search disabled")
            return None
        return TavilySearch(settings.api_key, client)
    if kind == SearchProviderKind.SERPAPI:
        if not settings.api_key:
            logger.warning("SerpAPI key is required for web search; search disabled")
            return None
        return SerpApiSearch(settings.api_key, client)
    if kind == SearchProviderKind.DUCKDUCKGO:
        return DuckDuckGoSearch(client)
    return None


# ---------------------------------------------------------------------------
# Augmentation
# ---------------------------------------------------------------------------

def format_search_context(query: str, results: list[SearchResult], today: date | None = None) -> str:
    """Render search results as the synthetic system message body."""
    today = today or date.today()
    lines = [
        f"Current date: {today.isoformat()}.",
        "IMPORTANT: Web search has been performed and current information is available below. "
        "You DO have access to recent web search results for this query. "
        "Treat these results as authoritative and up to date.",
        "",
        f'SEARCH RESULTS FOR: "{query}"',
        "",
    ]
    for i, r in enumerate(results, 1):
        lines.append(f"{i}. {r.title}")
        lines.append(f"   Summary: {r.snippet}")
        lines.append(f"   Source: {r.url}")
        if r.published_date:
            lines.append(f"   Published: {r.published_date}")
        lines.append("")
    lines.append(
        "Based on these search results, provide a detailed and current response. "
        "Do not claim you lack browsing access - you have current web information above."
    )
    return "\n".join(lines)


def _last_user_index(messages: list[Message]) -> int | None:
    for idx in range(len(messages) - 1, -1, -1):
        if messages[idx].role == Role.USER:
            return idx
    return None


async def augment(
    messages: list[Message],
    query: str,
    client: SearchClient,
    *,
    today: date | None = None,
) -> tuple[list[Message], list[SearchResult]]:
    """
    Search for *query* and splice the results in before the final user message.

    Returns the (possibly new) message list and the results used.  Empty
    results or a failed search return *messages* itself and ``[]``.
    """
    try:
        results = await client.search(query)
    except SearchUnavailable as exc:
        logger.warning("Web search failed, proceeding without search results: %s", exc)
        return messages, []

    if not results:
        logger.info("Web search returned no results for: %s", query)
        return messages, []

    insert_at = _last_user_index(messages)
    if insert_at is None:
        insert_at = len(messages)

    context = Message(role=Role.SYSTEM, content=format_search_context(query, results, today))
    augmented = [*messages[:insert_at], context, *messages[insert_at:]]
    logger.info("Added %d search results to context", len(results))
    return augmented, results

