"""Tests for the data model, configuration loading and model selection."""

import json

import pytest
from pydantic import ValidationError

from groundchat.core.models import (
    ChatConfig,
    GlobalConfig,
    ModelSelection,
    ProviderConfig,
    ProviderKind,
    SearchProviderKind,
    SearchResult,
    SearchSettings,
    Source,
    available_models,
)


def _provider(kind, key="k", models=("m1", "m2"), **kwargs):
    return ProviderConfig(kind=kind, api_key=key, models=models, **kwargs)


class TestModelSelection:

    def test_label(self):
        sel = ModelSelection(model_id="gpt-4o", provider_config=_provider(ProviderKind.OPENAI))
        assert sel.label == "OPENAI - gpt-4o"
        assert sel.kind == ProviderKind.OPENAI

    def test_custom_label(self):
        config = _provider(ProviderKind.CUSTOM, base_url="http://x/v1", custom_name="Local")
        assert ModelSelection(model_id="llama", provider_config=config).label == "Local - llama"

    def test_frozen(self):
        sel = ModelSelection(model_id="m1", provider_config=_provider(ProviderKind.OPENAI))
        with pytest.raises(ValidationError):
            sel.model_id = "other"


class TestSearchResult:

    def test_to_source(self):
        result = SearchResult(title="", url="https://a", snippet="")
        assert result.to_source() == Source(title="https://a", uri="https://a", snippet=None)


class TestAvailableModels:

    def test_only_keyed_providers(self):
        configs = [
            _provider(ProviderKind.GEMINI, key=""),
            _provider(ProviderKind.OPENAI, models=("gpt-4o",)),
        ]
        assert [s.label for s in available_models(configs)] == ["OPENAI - gpt-4o"]

    def test_custom_provider_needs_base_url(self):
        configs = [
            _provider(ProviderKind.CUSTOM, models=("broken",), custom_name="NoUrl"),
            _provider(ProviderKind.CUSTOM, models=("llama",), base_url="http://x/v1", custom_name="Local"),
        ]
        assert [s.label for s in available_models(configs)] == ["Local - llama"]


class TestSelectModel:

    def _config(self):
        return ChatConfig(
            providers=[
                _provider(ProviderKind.GEMINI, models=("gemini-2.5-flash", "gemini-2.5-pro")),
                _provider(ProviderKind.OPENAI, models=("gpt-4o",)),
            ],
            default_model="gpt-4o",
        )

    def test_default(self):
        assert self._config().select_model().model_id == "gpt-4o"

    def test_by_id(self):
        assert self._config().select_model("gemini-2.5-pro").kind == ProviderKind.GEMINI

    def test_by_label(self):
        assert self._config().select_model("GEMINI - gemini-2.5-flash").model_id == "gemini-2.5-flash"

    def test_unknown_explicit_model(self):
        assert self._config().select_model("nope") is None

    def test_unknown_default_falls_back_to_first(self):
        config = self._config()
        config.default_model = "retired-model"
        assert config.select_model().model_id == "gemini-2.5-flash"

    def test_nothing_configured(self):
        assert ChatConfig().select_model() is None


class TestChatConfigLoad:

    def test_env_keys(self, config_home, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "g-env")
        monkeypatch.setenv("GROUNDCHAT_MODEL", "gemini-2.5-pro")
        config = ChatConfig.load()

        gemini = next(p for p in config.providers if p.kind == ProviderKind.GEMINI)
        openai = next(p for p in config.providers if p.kind == ProviderKind.OPENAI)
        assert gemini.api_key == "g-env"
        assert openai.api_key == ""
        assert config.select_model().label == "GEMINI - gemini-2.5-pro"

    def test_global_config_file(self, config_home):
        GlobalConfig(
            default_model="gpt-4o",
            api_keys={"openai": "sk-file"},
            custom_providers=[_provider(
                ProviderKind.CUSTOM, key="c", models=("llama3",),
                base_url="http://localhost:8080/v1", custom_name="Local",
            )],
            search=SearchSettings(provider=SearchProviderKind.TAVILY, api_key="tv-file"),
        ).save()

        config = ChatConfig.load()
        assert config.default_model == "gpt-4o"
        assert config.search == SearchSettings(provider=SearchProviderKind.TAVILY, api_key="tv-file")
        labels = [s.label for s in config.available_models()]
        assert "OPENAI - gpt-4o" in labels
        assert "Local - llama3" in labels

    def test_env_beats_file(self, config_home, monkeypatch):
        GlobalConfig(api_keys={"openai": "sk-file"}).save()
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        config = ChatConfig.load()
        openai = next(p for p in config.providers if p.kind == ProviderKind.OPENAI)
        assert openai.api_key == "sk-env"

    def test_search_provider_from_env(self, config_home, monkeypatch):
        monkeypatch.setenv("GROUNDCHAT_SEARCH_PROVIDER", "serpapi")
        monkeypatch.setenv("SERPAPI_API_KEY", "serp-env")
        assert ChatConfig.load().search == SearchSettings(
            provider=SearchProviderKind.SERPAPI, api_key="serp-env",
        )

    def test_unknown_search_provider_disables_search(self, config_home, monkeypatch, caplog):
        monkeypatch.setenv("GROUNDCHAT_SEARCH_PROVIDER", "bogus")
        assert ChatConfig.load().search == SearchSettings()
        assert "Unknown search provider 'bogus'" in caplog.text

    def test_search_provider_env_is_case_insensitive(self, config_home, monkeypatch):
        monkeypatch.setenv("GROUNDCHAT_SEARCH_PROVIDER", "DuckDuckGo")
        assert ChatConfig.load().search.provider == SearchProviderKind.DUCKDUCKGO

    def test_overrides_win(self, config_home, monkeypatch):
        monkeypatch.setenv("GROUNDCHAT_MODEL", "gemini-2.5-pro")
        assert ChatConfig.load(default_model="gpt-4o").default_model == "gpt-4o"

    def test_unreadable_file_gives_defaults(self, config_home):
        config_home.mkdir(parents=True, exist_ok=True)
        (config_home / "config.json").write_text("{broken", encoding="utf-8")
        assert GlobalConfig.load() == GlobalConfig()

    def test_save_round_trip(self, config_home):
        path = GlobalConfig(api_keys={"gemini": "g"}).save()
        assert json.loads(path.read_text(encoding="utf-8"))["api_keys"] == {"gemini": "g"}
