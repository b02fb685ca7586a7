#!/usr/bin/env python3
"""Interactive terminal chat that runs turns in-process."""

import asyncio
import sys

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt

from claude_chat.errors import ClaudeChatError
from claude_chat.models.catalog import ClaudeModel
from claude_chat.services.conversation import (
    ConversationService,
    close_conversation_service,
    get_conversation_service,
)
from claude_chat.services.credentials import Backend
from claude_chat.services.session_manager import Session
from claude_chat.utils.logging import LogConfig, setup_logging


class ChatCLI:
    """Interactive chat interface with live streaming output."""

    def __init__(self, service: ConversationService, model: ClaudeModel | None = None):
        """Initialize chat CLI."""
        self.service = service
        self.model = model
        self.session = Session(session_id="terminal")
        self.console = Console()

    async def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Claude Chat[/bold blue]\n"
                "Type your messages to chat with the assistant.\n"
                "Commands: /help, /clear, /model, /cost, /quit",
                border_style="blue",
            )
        )

        if not self.service.credential_store.has_key(Backend.ANTHROPIC):
            self.console.print("[red]No Anthropic API key configured. Set ANTHROPIC_API_KEY and try again.[/red]")
            return

        tools = ", ".join(tool.name for tool in self.service.available_tools())
        self.console.print(f"[green]Ready.[/green] [dim]Tools: {tools} | Model: {self._model_name()}[/dim]")

        try:
            while True:
                user_input = await asyncio.to_thread(Prompt.ask, "\n[bold cyan]You[/bold cyan]")
                command = user_input.strip().lower()

                if command in ("/quit", "/exit", "quit", "exit"):
                    break
                elif command == "/help":
                    self._show_help()
                    continue
                elif command == "/clear":
                    self.session.clear()
                    self.console.print("[yellow]History cleared[/yellow]")
                    continue
                elif command.startswith("/model"):
                    self._set_model(user_input.strip()[len("/model") :].strip())
                    continue
                elif command == "/cost":
                    self._show_cost()
                    continue
                elif command == "":
                    continue

                await self._send_message(user_input)

        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            self.console.print("\n[yellow]Goodbye![/yellow]")

    async def _send_message(self, message: str) -> None:
        """Run one turn, printing text as it streams in."""
        self.console.print("\n[bold green]Claude[/bold green]")

        def on_chunk(chunk: str) -> None:
            self.console.print(escape(chunk), end="", soft_wrap=True)

        def on_tool_activity(label: str | None) -> None:
            if label:
                self.console.print(f"\n[dim]{escape(label)}[/dim]")

        try:
            result = await self.service.run_turn(
                self.session.history,
                message,
                model=self.model,
                on_chunk=on_chunk,
                on_tool_activity=on_tool_activity,
            )
        except ClaudeChatError as e:
            self.console.print(f"\n[red]Error: {escape(str(e))}[/red]")
            return

        self.session.commit_turn(message, result)
        self.console.print(
            f"\n[dim]{result.model.display_name} | {result.usage.input_tokens} in / "
            f"{result.usage.output_tokens} out | ${result.cost:.4f}[/dim]"
        )

    def _model_name(self) -> str:
        return self.model.display_name if self.model else "auto"

    def _set_model(self, name: str) -> None:
        if not name or name.lower() == "auto":
            self.model = None
        else:
            try:
                self.model = ClaudeModel.from_name(name)
            except ValueError as e:
                self.console.print(f"[red]{e}. Choose one of: auto, haiku, sonnet, opus[/red]")
                return
        self.console.print(f"[yellow]Model: {self._model_name()}[/yellow]")

    def _show_cost(self) -> None:
        self.console.print(
            f"[cyan]{self.session.total_input_tokens} input / {self.session.total_output_tokens} output tokens, "
            f"${self.session.total_cost:.4f}[/cyan]"
        )

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /clear - Clear the conversation history
• /model <auto|haiku|sonnet|opus> - Choose the model (auto routes per message)
• /cost - Show token usage and cost for this session
• /quit or /exit - Exit the chat

[bold]Tools:[/bold]
• get_datetime is always available
• search_web needs TAVILY_API_KEY
• get_weather needs OWM_API_KEY
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


async def run(chat: ChatCLI) -> None:
    """Run the chat loop, then close the shared HTTP clients."""
    try:
        await chat.start()
    finally:
        await close_conversation_service()


def main():
    """Main entry point for the chat CLI."""
    setup_logging(LogConfig(level="WARNING"))
    model = ClaudeModel.from_name(sys.argv[1]) if len(sys.argv) > 1 and sys.argv[1] != "auto" else None

    asyncio.run(run(ChatCLI(get_conversation_service(), model=model)))


if __name__ == "__main__":
    main()
