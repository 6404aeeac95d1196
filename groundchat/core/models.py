"""
groundchat.core.models — Pydantic schemas and configuration for groundchat.

Messages, sources and provider bindings are plain value objects.  The
orchestrator reads them and never writes them back; persistence of
conversation history belongs to the caller.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger("groundchat.core.models")


# ---------------------------------------------------------------------------
# Cross-platform directory helpers
# ---------------------------------------------------------------------------

def get_global_config_dir() -> Path:
    """
    Return the user-level config directory for groundchat, created if needed.

    - Windows:  %LOCALAPPDATA%\\groundchat
    - macOS:    ~/Library/Application Support/groundchat
    - Linux:    $XDG_CONFIG_HOME/groundchat  (default ~/.config/groundchat)
    """
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    d = base / "groundchat"
    d.mkdir(parents=True, exist_ok=True)
    return d


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ProviderKind(StrEnum):
    """Backend families. Gemini grounds natively; the rest are plain chat."""
    GEMINI = "gemini"
    OPENAI = "openai"
    CUSTOM = "custom"               # Any OpenAI-compatible endpoint (needs base_url)


class SearchProviderKind(StrEnum):
    TAVILY = "tavily"
    SERPAPI = "serpapi"
    DUCKDUCKGO = "duckduckgo"
    NONE = "none"


# ---------------------------------------------------------------------------
# Conversation records
# ---------------------------------------------------------------------------

class Source(BaseModel):
    """A citation attached to an assistant message. Unique by ``uri``."""
    title: str = ""
    uri: str
    snippet: str | None = None


class Message(BaseModel):
    """A single turn in the conversation history."""
    role: Role
    content: str = ""
    sources: list[Source] = Field(default_factory=list)


class SearchResult(BaseModel):
    """One hit from an external search provider."""
    title: str = ""
    url: str
    snippet: str = ""
    published_date: str | None = None

    def to_source(self) -> Source:
        return Source(title=self.title or self.url, uri=self.url, snippet=self.snippet or None)


class ResponseFragment(BaseModel):
    """One caller-facing unit of a generated response."""
    text: str | None = None
    sources: list[Source] | None = None


# ---------------------------------------------------------------------------
# Provider bindings
# ---------------------------------------------------------------------------

class ProviderConfig(BaseModel):
    """Credentials and model list for one backend. Owned by configuration storage."""
    model_config = ConfigDict(frozen=True)

    kind: ProviderKind
    api_key: str = ""
    base_url: str | None = None
    models: tuple[str, ...] = ()
    custom_name: str | None = None


class ModelSelection(BaseModel):
    """
    The binding used for one generation call.

    Frozen so a call keeps exactly the binding it was started with, even if
    the caller picks another model while the call is still streaming.
    """
    model_config = ConfigDict(frozen=True)

    model_id: str
    provider_config: ProviderConfig

    @property
    def kind(self) -> ProviderKind:
        return self.provider_config.kind

    @property
    def label(self) -> str:
        prefix = self.provider_config.custom_name or self.provider_config.kind.value.upper()
        return f"{prefix} - {self.model_id}"


class SearchSettings(BaseModel):
    provider: SearchProviderKind = SearchProviderKind.NONE
    api_key: str = ""


# ---- Default model lists per built-in provider ---------------------------
DEFAULT_MODELS: dict[ProviderKind, tuple[str, ...]] = {
    ProviderKind.GEMINI: (
        "gemini-2.5-flash",
        "gemini-2.5-pro",
        "gemini-2.5-flash-lite",
        "gemini-2.0-flash",
        "gemini-2.0-flash-lite",
    ),
    ProviderKind.OPENAI: (
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
    ),
}


def available_models(configs: list[ProviderConfig]) -> list[ModelSelection]:
    """
    Every model of every usable provider, in config order.

    A provider is usable once it has an API key; ``custom`` providers also
    need a base URL.
    """
    selections: list[ModelSelection] = []
    for config in configs:
        if not config.api_key:
            continue
        if config.kind == ProviderKind.CUSTOM and not config.base_url:
            logger.warning("Skipping custom provider %s: no base_url configured", config.custom_name or "(unnamed)")
            continue
        for model_id in config.models:
            selections.append(ModelSelection(model_id=model_id, provider_config=config))
    return selections


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class GlobalConfig(BaseModel):
    """
    User-level settings stored in the global config directory as ``config.json``.

    API keys are stored per-provider so the user only enters them once via
    ``groundchat config set-key``.  Environment variables always take precedence.
    """
    default_model: str = "gemini-2.5-flash"
    api_keys: dict[str, str] = {}
    custom_providers: list[ProviderConfig] = []
    search: SearchSettings = SearchSettings()

    @classmethod
    def load(cls) -> "GlobalConfig":
        """Load from disk, returning defaults if the file doesn't exist."""
        path = get_global_config_dir() / "config.json"
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                return cls(**data)
            except Exception as exc:
                logger.warning("Ignoring unreadable config %s: %s", path, exc)
                return cls()
        return cls()

    def save(self) -> Path:
        """Persist to disk. Returns the file path."""
        path = get_global_config_dir() / "config.json"
        path.write_text(
            json.dumps(self.model_dump(mode="json"), indent=2),
            encoding="utf-8",
        )
        return path


# env var names checked for each provider, first hit wins
API_KEY_ENV: dict[ProviderKind, tuple[str, ...]] = {
    ProviderKind.GEMINI: ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    ProviderKind.OPENAI: ("OPENAI_API_KEY",),
}

SEARCH_KEY_ENV: dict[SearchProviderKind, str] = {
    SearchProviderKind.TAVILY: "TAVILY_API_KEY",
    SearchProviderKind.SERPAPI: "SERPAPI_API_KEY",
}


class ChatConfig(BaseModel):
    """Runtime configuration for a groundchat session."""
    providers: list[ProviderConfig] = Field(default_factory=list)
    default_model: str = "gemini-2.5-flash"
    search: SearchSettings = SearchSettings()

    @classmethod
    def load(cls, **overrides: Any) -> "ChatConfig":
        """
        Build the runtime config.

        Resolution order (highest priority first):
          1. Explicit ``overrides`` keyword arguments
          2. Environment variables (GROUNDCHAT_MODEL, GEMINI_API_KEY, …)
          3. Global config (~/.config/groundchat/config.json)
          4. Built-in defaults
        """
        gc = GlobalConfig.load()

        providers: list[ProviderConfig] = []
        for kind, models in DEFAULT_MODELS.items():
            api_key = ""
            for env_name in API_KEY_ENV.get(kind, ()):
                api_key = os.getenv(env_name, "")
                if api_key:
                    break
            if not api_key:
                api_key = gc.api_keys.get(kind.value, "")
            providers.append(ProviderConfig(kind=kind, api_key=api_key, models=models))
        providers.extend(gc.custom_providers)

        search_name = os.getenv("GROUNDCHAT_SEARCH_PROVIDER", gc.search.provider.value)
        try:
            search_kind = SearchProviderKind(search_name.strip().lower())
        except ValueError:
            logger.warning(
                "Unknown search provider %r; expected one of %s. Web search disabled.",
                search_name, ", ".join(k.value for k in SearchProviderKind),
            )
            search_kind = SearchProviderKind.NONE
        search_key = gc.search.api_key if search_kind == gc.search.provider else ""
        env_name = SEARCH_KEY_ENV.get(search_kind)
        if env_name and os.getenv(env_name):
            search_key = os.getenv(env_name, "")

        return cls(
            providers=overrides.pop("providers", None) or providers,
            default_model=overrides.pop("default_model", None) or os.getenv(
                "GROUNDCHAT_MODEL", gc.default_model
            ),
            search=overrides.pop("search", None) or SearchSettings(
                provider=search_kind, api_key=search_key
            ),
            **overrides,
        )

    def available_models(self) -> list[ModelSelection]:
        return available_models(self.providers)

    def select_model(self, model_id: str | None = None) -> ModelSelection | None:
        """
        Resolve a model id (or the configured default) to a selection.

        Matches the bare model id first, then the ``KIND - model`` label.
        Falls back to the first available model.
        """
        wanted = model_id or self.default_model
        choices = self.available_models()
        for selection in choices:
            if selection.model_id == wanted or selection.label == wanted:
                return selection
        if model_id:
            return None
        return choices[0] if choices else None
