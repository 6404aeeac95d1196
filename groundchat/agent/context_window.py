"""
groundchat.agent.context_window — Token budget and context window selection.

Sizes are estimated from character length (about four characters per
token); no tokenizer is loaded.  The window is always a contiguous suffix
of the history, so the newest turns are the ones that survive.
"""

from __future__ import annotations

import math

from groundchat.core.models import Message

CHARS_PER_TOKEN = 4

# Context budget per model, in estimated tokens.  Kept well below each
# model's advertised window so the reply itself still fits.
MODEL_CONTEXT_BUDGETS: dict[str, int] = {
    # Google
    "gemini-2.5-pro":        200_000,
    "gemini-2.5-flash":      200_000,
    "gemini-2.5-flash-lite": 100_000,
    "gemini-2.0-flash":      100_000,
    "gemini-2.0-flash-lite": 100_000,
    # OpenAI
    "gpt-4o":                100_000,
    "gpt-4o-mini":           100_000,
    "gpt-4-turbo":           100_000,
    "gpt-4":                   6_000,
    "gpt-3.5-turbo":          12_000,
}

# Conservative default for unknown models (custom endpoints, older models)
DEFAULT_CONTEXT_BUDGET = 30_000


def budget_for_model(model_id: str) -> int:
    """Get the context budget for a model."""
    if model_id in MODEL_CONTEXT_BUDGETS:
        return MODEL_CONTEXT_BUDGETS[model_id]
    # Longest prefix wins (e.g. "gpt-4o-2024-08-06" → "gpt-4o", not "gpt-4")
    best = ""
    for key in MODEL_CONTEXT_BUDGETS:
        if model_id.startswith(key) and len(key) > len(best):
            best = key
    if best:
        return MODEL_CONTEXT_BUDGETS[best]
    return DEFAULT_CONTEXT_BUDGET


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_message_tokens(msg: Message) -> int:
    return estimate_tokens(msg.content)


def select_window(history: list[Message], max_tokens: int) -> list[Message]:
    """
    Pick the longest recent suffix of *history* that fits *max_tokens*.

    Walks backward from the newest message and stops before the first
    message that would overflow the budget.  The newest message is kept
    even if it alone exceeds the budget, so the window is never empty for
    a non-empty history.  Returned in chronological order.
    """
    kept: list[Message] = []
    used = 0
    for msg in reversed(history):
        cost = estimate_message_tokens(msg)
        if used + cost > max_tokens:
            if not kept:
                kept.append(msg)
            break
        kept.append(msg)
        used += cost
    kept.reverse()
    return kept
