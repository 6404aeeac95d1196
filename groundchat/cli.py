"""
groundchat.cli — Command-line interface for the groundchat client.

Usage:
    groundchat chat [--model M] [--web]     Start the interactive chat REPL
    groundchat ask "prompt" [--web]         One-shot streamed answer with sources
    groundchat title "prompt"               Generate a short conversation title
    groundchat models                       List models with a configured API key
    groundchat check [--model M]            Test a model with a tiny request
    groundchat config set-key gemini KEY    Store a provider API key
    groundchat config set-search tavily KEY Choose the external search provider
"""

from __future__ import annotations

import asyncio
import logging
import sys

import click
from rich.console import Console

from groundchat.core.models import (
    ChatConfig,
    GlobalConfig,
    ModelSelection,
    ProviderKind,
    SearchProviderKind,
    SearchSettings,
)

console = Console()


def _setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s — %(message)s",
        datefmt="%H:%M:%S",
    )


def _resolve_model(config: ChatConfig, model: str | None) -> ModelSelection:
    selection = config.select_model(model)
    if selection is None:
        if model:
            console.print(f"[red]✗[/red] Model [bold]{model}[/bold] is unknown or has no API key.")
        else:
            console.print(
                "[red]✗[/red] No API key configured. Set [bold]GEMINI_API_KEY[/bold] or "
                "[bold]OPENAI_API_KEY[/bold], or run [cyan]groundchat config set-key[/cyan]."
            )
        sys.exit(1)
    return selection


def _get_orchestrator(config: ChatConfig):
    from groundchat.agent.orchestrator import ResponseOrchestrator
    from groundchat.agent.web_search import create_search_client
    return ResponseOrchestrator(create_search_client(config.search))


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """groundchat — streaming chat with search-grounded answers."""
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# chat
# ---------------------------------------------------------------------------

@main.command()
@click.option("--model", default=None, help="Model id or label to start with.")
@click.option("--web", is_flag=True, help="Start with web search enabled.")
def chat(model: str | None, web: bool) -> None:
    """Start the interactive chat session."""
    from groundchat.agent.chat import run_chat
    run_chat(model=model, web_search=web)


# ---------------------------------------------------------------------------
# ask
# ---------------------------------------------------------------------------

@main.command()
@click.argument("prompt")
@click.option("--model", default=None, help="Model id or label.")
@click.option("--web", is_flag=True, help="Ground the answer with web search.")
def ask(prompt: str, model: str | None, web: bool) -> None:
    """Answer a single PROMPT and exit."""
    from groundchat.agent.chat import ask_once

    config = ChatConfig.load()
    selection = _resolve_model(config, model)
    orchestrator = _get_orchestrator(config)

    async def _run():
        try:
            return await ask_once(prompt, selection, orchestrator, web_search=web)
        finally:
            await orchestrator.close()

    session = asyncio.run(_run())
    if session.last_error is not None:
        sys.exit(1)


# ---------------------------------------------------------------------------
# title
# ---------------------------------------------------------------------------

@main.command()
@click.argument("prompt")
@click.option("--model", default=None, help="Model id or label.")
def title(prompt: str, model: str | None) -> None:
    """Generate a conversation title for PROMPT."""
    from groundchat.agent.orchestrator import ResponseOrchestrator, fallback_title
    from groundchat.core.errors import ChatError

    config = ChatConfig.load()
    selection = _resolve_model(config, model)
    orchestrator = ResponseOrchestrator()

    async def _run() -> str:
        try:
            return await orchestrator.generate_title(prompt, selection)
        except ChatError as exc:
            console.print(f"[yellow]![/yellow] {exc}", highlight=False)
            return fallback_title(prompt)
        finally:
            await orchestrator.close()

    console.print(asyncio.run(_run()), highlight=False)


# ---------------------------------------------------------------------------
# models
# ---------------------------------------------------------------------------

@main.command()
def models() -> None:
    """List models for every provider with an API key."""
    from groundchat.agent.renderer import render_models

    config = ChatConfig.load()
    selections = config.available_models()
    if not selections:
        console.print("[yellow]No providers configured.[/yellow] Run [cyan]groundchat config set-key[/cyan].")
        return
    render_models(selections, config.select_model())


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------

@main.command()
@click.option("--model", default=None, help="Model id or label to check.")
def check(model: str | None) -> None:
    """Send a tiny request to a model to see whether it is usable."""
    from groundchat.agent.orchestrator import ResponseOrchestrator

    config = ChatConfig.load()
    selection = _resolve_model(config, model)
    orchestrator = ResponseOrchestrator()

    async def _run():
        try:
            return await orchestrator.check_model(selection)
        finally:
            await orchestrator.close()

    result = asyncio.run(_run())
    if result.available:
        console.print(f"[green]✓[/green] {selection.label} is available")
    else:
        console.print(f"[red]✗[/red] {selection.label}: {result.error}", highlight=False)
        sys.exit(1)


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------

@main.group()
def config() -> None:
    """Manage stored API keys and search settings."""


@config.command("set-key")
@click.argument(
    "provider",
    type=click.Choice([ProviderKind.GEMINI.value, ProviderKind.OPENAI.value], case_sensitive=False),
)
@click.argument("key")
def set_key(provider: str, key: str) -> None:
    """Store the API KEY for PROVIDER in the global config."""
    gc = GlobalConfig.load()
    gc.api_keys[provider.lower()] = key
    path = gc.save()
    console.print(f"[green]✓[/green] Saved {provider} API key to [bold]{path}[/bold]")


@config.command("set-search")
@click.argument(
    "provider",
    type=click.Choice([kind.value for kind in SearchProviderKind], case_sensitive=False),
)
@click.argument("key", required=False, default="")
def set_search(provider: str, key: str) -> None:
    """Choose the external search PROVIDER (with its API KEY where needed)."""
    kind = SearchProviderKind(provider.lower())
    if kind in (SearchProviderKind.TAVILY, SearchProviderKind.SERPAPI) and not key:
        console.print(f"[yellow]![/yellow] {kind.value} needs an API key; web search stays off until one is set.")

    gc = GlobalConfig.load()
    gc.search = SearchSettings(provider=kind, api_key=key)
    path = gc.save()
    console.print(f"[green]✓[/green] Search provider set to [cyan]{kind.value}[/cyan] in [bold]{path}[/bold]")


if __name__ == "__main__":
    main()
