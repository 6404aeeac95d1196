"""Tests for external search clients and context augmentation."""

import json
from datetime import date

import httpx
import pytest

from groundchat.agent.web_search import (
    MAX_RESULTS,
    DuckDuckGoSearch,
    SerpApiSearch,
    TavilySearch,
    augment,
    create_search_client,
    format_search_context,
)
from groundchat.core.errors import SearchUnavailable
from groundchat.core.models import (
    Message,
    Role,
    SearchProviderKind,
    SearchResult,
    SearchSettings,
)

from conftest import FakeSearchClient


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


RESULT = SearchResult(title="X", url="http://a", snippet="s")


class TestTavily:

    @pytest.mark.asyncio
    async def test_parses_results(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"results": [
                {"title": "One", "url": "https://one", "content": "first", "published_date": "2025-01-02"},
                {"title": "No url", "url": "", "content": "dropped"},
            ]})

        async with _client(handler) as http:
            results = await TavilySearch("tv-key", http).search("python 3.13")

        assert seen["body"]["api_key"] == "tv-key"
        assert seen["body"]["query"] == "python 3.13"
        assert seen["body"]["max_results"] == MAX_RESULTS
        assert results == [SearchResult(
            title="One", url="https://one", snippet="first", published_date="2025-01-02",
        )]

    @pytest.mark.asyncio
    async def test_http_error_is_search_unavailable(self):
        async with _client(lambda r: httpx.Response(500, text="boom")) as http:
            with pytest.raises(SearchUnavailable, match="500"):
                await TavilySearch("k", http).search("q")

    @pytest.mark.asyncio
    async def test_api_error_field(self):
        async with _client(lambda r: httpx.Response(200, json={"error": "bad key"})) as http:
            with pytest.raises(SearchUnavailable, match="bad key"):
                await TavilySearch("k", http).search("q")

    @pytest.mark.asyncio
    async def test_results_capped(self):
        rows = [{"title": f"r{i}", "url": f"https://r{i}", "content": ""} for i in range(9)]
        async with _client(lambda r: httpx.Response(200, json={"results": rows})) as http:
            results = await TavilySearch("k", http).search("q")
        assert len(results) == MAX_RESULTS


class TestSerpApi:

    @pytest.mark.asyncio
    async def test_parses_organic_results(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"organic_results": [
                {"title": "Hit", "link": "https://hit", "snippet": "about", "date": "Mar 3, 2025"},
            ]})

        async with _client(handler) as http:
            results = await SerpApiSearch("serp-key", http).search("weather")

        assert seen["params"]["engine"] == "google"
        assert seen["params"]["q"] == "weather"
        assert seen["params"]["api_key"] == "serp-key"
        assert results[0].url == "https://hit"
        assert results[0].published_date == "Mar 3, 2025"


class TestDuckDuckGo:

    @pytest.mark.asyncio
    async def test_parses_html_and_unwraps_redirects(self):
        page = (
            '<div class="result">'
            '<a rel="nofollow" class="result__a" '
            'href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2Fpage&amp;rut=abc">'
            'Example <b>Page</b></a>'
            '<a class="result__snippet" href="#">A &amp; B <b>snippet</b></a>'
            '</div>'
        )
        async with _client(lambda r: httpx.Response(200, text=page)) as http:
            results = await DuckDuckGoSearch(http).search("example")

        assert len(results) == 1
        assert results[0].url == "https://example.com/page"
        assert results[0].title == "Example Page"
        assert results[0].snippet == "A & B snippet"

    @pytest.mark.asyncio
    async def test_timeout_is_search_unavailable(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        async with _client(handler) as http:
            with pytest.raises(SearchUnavailable, match="timed out"):
                await DuckDuckGoSearch(http).search("q")


class TestCreateSearchClient:

    def test_none(self):
        assert create_search_client(SearchSettings()) is None

    def test_keyed_provider_without_key(self):
        assert create_search_client(SearchSettings(provider=SearchProviderKind.TAVILY)) is None

    def test_tavily(self):
        client = create_search_client(SearchSettings(provider=SearchProviderKind.TAVILY, api_key="k"))
        assert isinstance(client, TavilySearch)

    def test_serpapi(self):
        client = create_search_client(SearchSettings(provider=SearchProviderKind.SERPAPI, api_key="k"))
        assert isinstance(client, SerpApiSearch)

    def test_duckduckgo_needs_no_key(self):
        client = create_search_client(SearchSettings(provider=SearchProviderKind.DUCKDUCKGO))
        assert isinstance(client, DuckDuckGoSearch)


class TestFormatSearchContext:

    def test_contains_date_results_and_instruction(self):
        text = format_search_context("q", [RESULT], today=date(2025, 6, 1))
        assert "Current date: 2025-06-01." in text
        assert "Web search has been performed" in text
        assert "1. X" in text
        assert "Summary: s" in text
        assert "Source: http://a" in text


class TestAugment:

    @pytest.mark.asyncio
    async def test_inserts_system_message_before_last_user(self):
        messages = [
            Message(role=Role.USER, content="earlier"),
            Message(role=Role.ASSISTANT, content="reply"),
            Message(role=Role.USER, content="latest news?"),
        ]
        search = FakeSearchClient([RESULT])

        augmented, results = await augment(messages, "latest news?", search)

        assert search.queries == ["latest news?"]
        assert results == [RESULT]
        assert len(augmented) == 4
        assert augmented[2].role == Role.SYSTEM
        assert "http://a" in augmented[2].content
        assert augmented[3] == messages[2]
        assert len(messages) == 3

    @pytest.mark.asyncio
    async def test_failed_search_returns_messages_unchanged(self, search_unavailable):
        messages = [Message(role=Role.USER, content="q")]
        augmented, results = await augment(messages, "q", FakeSearchClient(error=search_unavailable))
        assert augmented is messages
        assert results == []

    @pytest.mark.asyncio
    async def test_empty_results_return_messages_unchanged(self):
        messages = [Message(role=Role.USER, content="q")]
        augmented, results = await augment(messages, "q", FakeSearchClient([]))
        assert augmented is messages
        assert results == []

