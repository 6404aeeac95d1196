"""
groundchat.agent.renderer — Rich terminal rendering for the chat client.

Handles all visual output: banner, streamed replies, source lists, model
tables and status lines.
"""

from __future__ import annotations

import sys

from rich import box
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from groundchat.core.models import ModelSelection, ProviderKind, Source

THEME = {
    "primary": "#1F6FEB",       # Blue: borders and accents
    "primary_dim": "#1B3A63",   # Muted blue: secondary borders
    "primary_bright": "#58A6FF",
    "accent": "#79C0FF",        # User input, important values
    "text": "#D0D7DE",
    "text_dim": "#768390",
    "success": "#3FB950",
    "warning": "#D29922",
    "error": "#F85149",
    "source": "#A5D6FF",
}

console = Console(force_terminal=sys.stdout.isatty())


def chat_banner(version: str, selection: ModelSelection | None, web_search: bool) -> None:
    """Print the startup banner."""
    content = Text()
    content.append("groundchat", style=f"bold {THEME['primary_bright']}")
    content.append(f"  v{version}\n", style=THEME["text_dim"])
    content.append("Provider  ", style=THEME["text_dim"])
    content.append(
        selection.provider_config.kind.value if selection else "none",
        style=f"bold {THEME['accent']}",
    )
    content.append("  │  ", style=THEME["primary_dim"])
    content.append("Model  ", style=THEME["text_dim"])
    content.append(selection.model_id if selection else "none", style=f"bold {THEME['accent']}")
    content.append("  │  ", style=THEME["primary_dim"])
    content.append("Web search  ", style=THEME["text_dim"])
    content.append("on" if web_search else "off", style=f"bold {THEME['accent']}")

    console.print(Panel(content, border_style=THEME["primary"], padding=(0, 2)))
    console.print(
        f"  [{THEME['text_dim']}]Type a message, or use[/{THEME['text_dim']}] "
        f"[bold {THEME['accent']}]/help[/bold {THEME['accent']}] "
        f"[{THEME['text_dim']}]for commands. Ctrl+C to exit.[/{THEME['text_dim']}]"
    )
    console.print()


def print_help() -> None:
    """Show the slash commands help."""
    table = Table(
        box=box.ROUNDED,
        border_style=THEME["primary_dim"],
        show_header=True,
        header_style=f"bold {THEME['primary_bright']}",
    )
    table.add_column("Command", style=f"bold {THEME['accent']}", width=18)
    table.add_column("Description", style=THEME["text"])

    cmds = [
        ("/help", "Show this help message"),
        ("/web", "Toggle web search for the next messages"),
        ("/model <name>", "Switch to another configured model"),
        ("/models", "List available models"),
        ("/title", "Generate a title for this conversation"),
        ("/clear", "Start a new conversation"),
        ("/exit, /quit", "Exit"),
    ]
    for cmd, desc in cmds:
        table.add_row(cmd, desc)

    console.print(Panel(table, border_style=THEME["primary"], title="Commands", padding=(1, 1)))
    console.print()


def print_input_prompt(turn: int, web_search: bool) -> str:
    """Print the input prompt and return user input."""
    web = f" [{THEME['source']}]web[/{THEME['source']}]" if web_search else ""
    console.print(
        f"[{THEME['primary_dim']}]╭─[/{THEME['primary_dim']}]"
        f"[bold {THEME['accent']}] you[/bold {THEME['accent']}]"
        f"[{THEME['text_dim']}] (turn {turn})[/{THEME['text_dim']}]{web}"
    )
    try:
        return console.input(f"[{THEME['primary_dim']}]╰─▸[/{THEME['primary_dim']}] ").strip()
    except EOFError:
        return "/exit"


class StreamingRenderer:
    """
    Renders a streamed reply token-by-token using a Rich Live display.

    Usage:
        renderer = StreamingRenderer()
        renderer.start()
        renderer.add_text("Hello ")
        renderer.add_text("world!")
        renderer.finish()
    """

    # Characters to accumulate before switching from raw text to markdown
    _MD_THRESHOLD = 80

    def __init__(self, title: str = "Assistant") -> None:
        self._title = title
        self._buffer = ""
        self._live: Live | None = None
        self._started = False

    def start(self) -> None:
        console.print()
        self._buffer = ""
        self._live = Live(
            Text("", style=THEME["text_dim"]),
            console=console,
            refresh_per_second=12,
            transient=True,
            vertical_overflow="visible",
        )
        self._live.start()
        self._started = True

    def add_text(self, text: str) -> None:
        if not self._started or self._live is None:
            return
        self._buffer += text
        if len(self._buffer) < self._MD_THRESHOLD:
            self._live.update(Text(self._buffer + "▌"))
        else:
            self._live.update(Markdown(self._buffer + "▌"))

    def finish(self) -> str:
        """Stop the live display and print the final reply. Returns the full text."""
        if self._live is not None:
            self._live.stop()
            self._live = None
        self._started = False

        if self._buffer.strip():
            console.print(
                Panel(
                    Markdown(self._buffer),
                    border_style=THEME["primary_dim"],
                    title=f"[bold {THEME['primary_bright']}]{self._title}[/bold {THEME['primary_bright']}]",
                    title_align="left",
                    padding=(1, 2),
                )
            )

        result = self._buffer
        self._buffer = ""
        return result


def render_sources(sources: list[Source]) -> None:
    """Show the citations collected for a reply."""
    if not sources:
        return
    lines = Text()
    for i, source in enumerate(sources, 1):
        lines.append(f"{i}. ", style=THEME["text_dim"])
        lines.append(source.title or source.uri, style=f"bold {THEME['text']}")
        lines.append(f"\n   {source.uri}", style=THEME["source"])
        if i < len(sources):
            lines.append("\n")
    console.print(
        Panel(
            lines,
            border_style=THEME["primary_dim"],
            title=f"[bold {THEME['primary_bright']}]Sources[/bold {THEME['primary_bright']}]",
            title_align="left",
            padding=(0, 2),
        )
    )


def render_models(selections: list[ModelSelection], current: ModelSelection | None = None) -> None:
    """List available models as a table."""
    table = Table(box=box.SIMPLE, header_style=f"bold {THEME['primary_bright']}")
    table.add_column("", width=1)
    table.add_column("Provider", style=THEME["text_dim"])
    table.add_column("Model", style=f"bold {THEME['accent']}")
    table.add_column("Search", style=THEME["text_dim"])
    for sel in selections:
        marker = "●" if current is not None and sel == current else ""
        grounding = "native" if sel.kind == ProviderKind.GEMINI else "external"
        table.add_row(marker, sel.provider_config.custom_name or sel.kind.value, sel.model_id, grounding)
    console.print(table)


def render_error(msg: str) -> None:
    """Show an error message."""
    console.print(f"  [{THEME['error']}]✗[/{THEME['error']}] {msg}")


def render_success(msg: str) -> None:
    """Show a success message."""
    console.print(f"  [{THEME['success']}]✓[/{THEME['success']}] {msg}")


def render_info(msg: str) -> None:
    """Show an info message."""
    console.print(f"  [{THEME['text_dim']}]→[/{THEME['text_dim']}] {msg}")


def render_goodbye() -> None:
    console.print()
    console.print(f"  [{THEME['text_dim']}]Session ended. Conversation history is not saved.[/{THEME['text_dim']}]")
    console.print()
