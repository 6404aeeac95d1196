"""Shared fixtures for groundchat tests."""

import asyncio

import httpx
import pytest

from groundchat.adapters.base import BaseAdapter, Completion, RawFragment
from groundchat.agent.orchestrator import ResponseOrchestrator
from groundchat.agent.web_search import SearchClient
from groundchat.core.errors import SearchUnavailable
from groundchat.core.models import ModelSelection, ProviderConfig, ProviderKind


class FakeAdapter(BaseAdapter):
    """
    In-memory adapter with scripted behaviour.

    Streams ``fragments``; when ``stream_error`` is set it is raised after
    the first ``fail_after`` fragments.  ``complete()`` returns
    ``completion`` or raises ``complete_error``.
    """

    def __init__(
        self,
        model="fake-model",
        *,
        fragments=(),
        stream_error=None,
        fail_after=0,
        completion=None,
        complete_error=None,
        native_grounding=False,
        stream_delay=0.0,
        prefer_non_streaming=False,
    ):
        super().__init__(model)
        self.native_grounding = native_grounding
        self.prefer_non_streaming = prefer_non_streaming
        self.fragments = list(fragments)
        self.stream_error = stream_error
        self.fail_after = fail_after
        self.completion = completion or Completion(text="")
        self.complete_error = complete_error
        self.stream_delay = stream_delay
        self.stream_calls = []
        self.complete_calls = []
        self.closed = False

    async def stream(self, messages, *, use_web_search=False):
        self.stream_calls.append({"messages": list(messages), "use_web_search": use_web_search})
        if self.stream_delay:
            await asyncio.sleep(self.stream_delay)
        if self.stream_error is None:
            for fragment in self.fragments:
                yield fragment
            return
        for fragment in self.fragments[: self.fail_after]:
            yield fragment
        raise self.stream_error

    async def complete(self, messages, *, use_web_search=False, max_tokens=None, temperature=None):
        self.complete_calls.append({
            "messages": list(messages),
            "use_web_search": use_web_search,
            "temperature": temperature,
        })
        if self.complete_error is not None:
            raise self.complete_error
        return self.completion

    async def close(self):
        self.closed = True


class FakeSearchClient(SearchClient):
    """Search client returning canned results and counting calls."""

    name = "Fake"

    def __init__(self, results=(), error=None):
        super().__init__()
        self.results = list(results)
        self.error = error
        self.queries = []

    async def search(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.results)

    async def _search(self, client, query):
        return list(self.results)


def http_error(status, body=""):
    """Build an ``httpx.HTTPStatusError`` as raised by ``raise_for_status()``."""
    request = httpx.Request("POST", "https://backend.test/v1/chat/completions")
    response = httpx.Response(status, text=body, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


async def collect(fragments):
    return [f async for f in fragments]


@pytest.fixture
def openai_selection():
    config = ProviderConfig(kind=ProviderKind.OPENAI, api_key="sk-test", models=("fake-model",))
    return ModelSelection(model_id="fake-model", provider_config=config)


@pytest.fixture
def gemini_selection():
    config = ProviderConfig(kind=ProviderKind.GEMINI, api_key="g-test", models=("gemini-2.5-flash",))
    return ModelSelection(model_id="gemini-2.5-flash", provider_config=config)


@pytest.fixture
def make_orchestrator():
    """Build an orchestrator whose factory always hands out *adapter*."""

    def _make(adapter, search_client=None, **kwargs):
        return ResponseOrchestrator(
            search_client,
            adapter_factory=lambda selection: adapter,
            **kwargs,
        )

    return _make


@pytest.fixture
def search_unavailable():
    return SearchUnavailable("Fake search failed: boom")


@pytest.fixture
def config_home(tmp_path, monkeypatch):
    """Point the global config directory at a temp dir and clear key env vars."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    for name in (
        "GEMINI_API_KEY", "GOOGLE_API_KEY", "OPENAI_API_KEY", "TAVILY_API_KEY",
        "SERPAPI_API_KEY", "GROUNDCHAT_MODEL", "GROUNDCHAT_SEARCH_PROVIDER",
    ):
        monkeypatch.delenv(name, raising=False)
    return tmp_path / "groundchat"
