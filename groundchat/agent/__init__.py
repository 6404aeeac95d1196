"""
groundchat.agent — Response generation and the interactive chat client.

    - Context window selection under a per-model token budget
    - External web search augmentation for backends without native grounding
    - Streaming merger with per-response source dedup
    - Orchestrator with a single non-streaming fallback
    - Rich terminal rendering and the chat REPL

Usage:
    groundchat chat                    # Start the interactive chat
    groundchat chat --model gpt-4o     # Use a specific model
"""

__all__ = ["run_chat"]

from groundchat.agent.chat import run_chat
