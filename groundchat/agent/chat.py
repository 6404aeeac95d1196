"""
groundchat.agent.chat — Interactive chat session driving the orchestrator.

The session owns the conversation history.  Each turn collects the
streamed fragments into a ``ResponseAccumulator`` and appends the finished
assistant message once the stream ends; a failed turn is recorded in the
history as an assistant message carrying the error text.
"""

from __future__ import annotations

import asyncio
import logging

from groundchat.agent.merger import ResponseAccumulator
from groundchat.agent.orchestrator import ResponseOrchestrator, fallback_title
from groundchat.agent.renderer import (
    StreamingRenderer,
    chat_banner,
    console,
    print_help,
    print_input_prompt,
    render_error,
    render_goodbye,
    render_info,
    render_models,
    render_sources,
    render_success,
)
from groundchat.agent.web_search import create_search_client
from groundchat.core.errors import ChatError
from groundchat.core.models import ChatConfig, Message, ModelSelection, Role

logger = logging.getLogger("groundchat.agent.chat")


class ChatSession:
    """
    One conversation: history, the active model and the web-search toggle.

    Only one turn runs at a time; the REPL awaits each turn before reading
    the next input.
    """

    def __init__(
        self,
        config: ChatConfig,
        orchestrator: ResponseOrchestrator,
        selection: ModelSelection,
        web_search: bool = False,
    ) -> None:
        self.config = config
        self.orchestrator = orchestrator
        self.selection = selection
        self.web_search = web_search
        self.messages: list[Message] = []
        self.title: str | None = None
        self.last_error: ChatError | None = None

    @property
    def turn_count(self) -> int:
        return sum(1 for m in self.messages if m.role == Role.USER)

    async def run_turn(self, user_text: str) -> Message:
        """Send one user message and stream the reply to the terminal."""
        # Capture the binding and history for this turn
        selection = self.selection
        history = list(self.messages)

        accumulator = ResponseAccumulator()
        streamer = StreamingRenderer(title=selection.model_id)
        streamer.start()
        failure: ChatError | None = None
        try:
            async for fragment in self.orchestrator.generate(
                history, user_text, self.web_search, selection
            ):
                accumulator.add(fragment)
                if fragment.text:
                    streamer.add_text(fragment.text)
        except ChatError as exc:
            failure = exc
            logger.error("Generation failed: %s", exc)
        finally:
            streamer.finish()

        reply = accumulator.to_message()
        if failure is not None:
            render_error(str(failure))
            note = f"⚠️ {failure}"
            reply = Message(
                role=Role.ASSISTANT,
                content=f"{reply.content}\n\n{note}" if reply.content else note,
                sources=reply.sources,
            )
        render_sources(reply.sources)

        self.messages.append(Message(role=Role.USER, content=user_text))
        self.messages.append(reply)
        self.last_error = failure

        if self.title is None and failure is None:
            self.title = await self.make_title(user_text)
        return reply

    async def make_title(self, user_text: str) -> str:
        try:
            return await self.orchestrator.generate_title(user_text, self.selection)
        except ChatError as exc:
            logger.info("Using fallback title: %s", exc)
            return fallback_title(user_text)

    async def handle_slash_command(self, command: str) -> bool:
        """Run a slash command. Returns False when the session should end."""
        name, _, arg = command.partition(" ")
        arg = arg.strip()

        if name in ("/exit", "/quit"):
            return False
        if name == "/help":
            print_help()
        elif name == "/web":
            self.web_search = not self.web_search
            render_info(f"Web search {'enabled' if self.web_search else 'disabled'}")
        elif name == "/models":
            render_models(self.config.available_models(), self.selection)
        elif name == "/model":
            if not arg:
                render_info(f"Current model: {self.selection.label}")
            else:
                selection = self.config.select_model(arg)
                if selection is None:
                    render_error(f"Unknown or unconfigured model: {arg}")
                else:
                    self.selection = selection
                    render_success(f"Model updated to: {selection.label}")
        elif name == "/title":
            first_user = next((m.content for m in self.messages if m.role == Role.USER), None)
            if first_user is None:
                render_info("Nothing to title yet.")
            else:
                self.title = await self.make_title(first_user)
                render_info(f"Title: {self.title}")
        elif name == "/clear":
            self.messages.clear()
            self.title = None
            render_success("Started a new conversation.")
        else:
            render_error(f"Unknown command: {name}. Type /help for commands.")
        return True


async def _run_chat_async(model: str | None, web_search: bool) -> None:
    from groundchat import __version__

    config = ChatConfig.load()
    selection = config.select_model(model)
    if selection is None:
        render_error(
            f"No usable model{f' named {model}' if model else ''}. "
            "Set GEMINI_API_KEY / OPENAI_API_KEY or run [bold]groundchat config set-key[/bold]."
        )
        return

    orchestrator = ResponseOrchestrator(create_search_client(config.search))
    session = ChatSession(config, orchestrator, selection, web_search)
    chat_banner(__version__, selection, web_search)

    try:
        while True:
            try:
                user_input = print_input_prompt(session.turn_count + 1, session.web_search)
            except KeyboardInterrupt:
                break

            if not user_input:
                continue
            if user_input.startswith("/"):
                if not await session.handle_slash_command(user_input):
                    break
                continue

            try:
                await session.run_turn(user_input)
            except KeyboardInterrupt:
                render_info("Interrupted. Type /exit to quit.")
    finally:
        render_goodbye()
        await orchestrator.close()


def run_chat(model: str | None = None, web_search: bool = False) -> None:
    """Start the interactive chat REPL. Main entry point called by the CLI."""
    try:
        asyncio.run(_run_chat_async(model, web_search))
    except KeyboardInterrupt:
        console.print()


async def ask_once(
    prompt: str,
    selection: ModelSelection,
    orchestrator: ResponseOrchestrator,
    web_search: bool = False,
) -> ChatSession:
    """Answer a single prompt with no prior history. Returns the finished session."""
    session = ChatSession(ChatConfig(), orchestrator, selection, web_search)
    session.title = ""  # one-shot answers are never titled
    await session.run_turn(prompt)
    return session
