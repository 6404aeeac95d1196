"""
groundchat.adapters — LLM provider adapter registry.

Provides a ``create_adapter()`` factory that returns the adapter for a
``ModelSelection``.  The mapping from provider kind to adapter is total:

    - ``gemini``  — native Gemini API, search grounding built in
    - ``openai``  — api.openai.com Chat Completions
    - ``custom``  — any OpenAI-compatible endpoint at a configured base URL
"""

from __future__ import annotations

from groundchat.adapters.base import BaseAdapter, Completion, RawFragment
from groundchat.core.models import ModelSelection, ProviderKind


# ---- Default model and key env var per provider --------------------------
PROVIDER_DEFAULTS: dict[ProviderKind, dict[str, str]] = {
    ProviderKind.GEMINI: {
        "model": "gemini-2.5-flash",
        "env_key": "GEMINI_API_KEY",
    },
    ProviderKind.OPENAI: {
        "model": "gpt-4o-mini",
        "env_key": "OPENAI_API_KEY",
    },
    ProviderKind.CUSTOM: {
        "model": "",
        "env_key": "",  # Keys for custom endpoints live in the config file only
    },
}


def create_adapter(selection: ModelSelection) -> BaseAdapter:
    """
    Factory function that returns the correct adapter for a model selection.

    Raises ``ValueError`` for an unknown provider kind, a missing API key, or
    a ``custom`` provider without a base URL.
    """
    config = selection.provider_config
    kind = config.kind
    if kind not in PROVIDER_DEFAULTS:
        raise ValueError(
            f"Unknown provider: '{kind}'. "
            f"Supported: {', '.join(k.value for k in PROVIDER_DEFAULTS)}"
        )
    if not config.api_key:
        raise ValueError(f"{kind.value} API key is required")

    model = selection.model_id or PROVIDER_DEFAULTS[kind]["model"]

    if kind == ProviderKind.GEMINI:
        from groundchat.adapters.google import GeminiAdapter

        return GeminiAdapter(api_key=config.api_key, model=model, base_url=config.base_url)

    elif kind in (ProviderKind.OPENAI, ProviderKind.CUSTOM):
        if kind == ProviderKind.CUSTOM and not config.base_url:
            raise ValueError("Custom providers need a base_url")
        from groundchat.adapters.openai import OpenAICompatibleAdapter

        return OpenAICompatibleAdapter(
            api_key=config.api_key,
            model=model,
            base_url=config.base_url,
        )

    raise ValueError(f"Unknown provider: '{kind}'")


__all__ = ["BaseAdapter", "Completion", "RawFragment", "create_adapter", "PROVIDER_DEFAULTS"]
