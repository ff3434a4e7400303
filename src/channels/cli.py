"""
CLI channel: interactive terminal chat with Reco.

Features:
- Rich terminal UI with markdown rendering
- The same gating and charging as any other channel
- Command shortcuts (/help, /exit, /saldo, /clear, /history, /cache)
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from src.billing.ledger import BalanceLedger, QuotaLedger
from src.billing.pricing import convert_currency, format_minor
from src.channels.base import BaseChannel
from src.constants import PROJECT_DISPLAY_NAME, PROJECT_VERSION
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from src.agent.brain import AgentBrain

logger = get_logger("cli_channel")

console = Console()

# CLI-local commands (handled before sending to the brain)
CLI_COMMANDS = {
    "/help": "Show available commands",
    "/exit": "Exit the chat",
    "/quit": "Exit the chat",
    "/saldo": "Show remaining balance or quota",
    "/clear": "Clear the screen",
    "/history": "Show the current conversation",
    "/cache": "Show search cache statistics",
    "/version": "Show version info",
}


class CLIChannel(BaseChannel):
    """Interactive terminal chat channel for a single local user key."""

    def __init__(self, brain: AgentBrain, user_key: str = "+34000000000", exchange_rate: float = 0.92):
        super().__init__(brain=brain, channel_name="cli")
        self.user_key = user_key
        self.exchange_rate = exchange_rate

    def run(self) -> None:
        """Start the interactive CLI chat loop."""
        self._running = True

        console.print(
            Panel(
                f"[bold green]{PROJECT_DISPLAY_NAME} v{PROJECT_VERSION}[/]\n"
                "[dim]Escribe tu consulta y pulsa Enter. /help para ver comandos.[/]",
                border_style="green",
            )
        )

        try:
            asyncio.run(self._chat_loop())
        except KeyboardInterrupt:
            console.print("\n[dim]¡Hasta pronto![/]")
        finally:
            self._running = False

    async def _chat_loop(self) -> None:
        try:
            while self._running:
                try:
                    user_input = console.input("\n[bold cyan]Tú:[/] ").strip()
                except EOFError:
                    break

                if not user_input:
                    continue

                if user_input.startswith("/"):
                    if not await self._handle_command(user_input):
                        break
                    continue

                with console.status("[dim]Pensando...[/]"):
                    result = await self.process_message(self.user_key, user_input)

                for reply in result.replies:
                    await self.send_message(self.user_key, reply)

                answer = result.answer
                if answer is not None and not answer.failed:
                    display = convert_currency(answer.cost_minor, self.exchange_rate)
                    search = " · búsqueda" if answer.search_used else ""
                    console.print(
                        f"[dim]({answer.usage.total_tokens} tokens, "
                        f"{format_minor(display)}{search})[/]"
                    )
                    for i, url in enumerate(answer.sources, 1):
                        console.print(f"[dim]  [{i}] {url}[/]")
        finally:
            await self.queue.close()
            await self.brain.close()

    async def _handle_command(self, command: str) -> bool:
        """Handle a CLI command. Returns False if should exit."""
        cmd = command.lower().split()[0]

        if cmd in ("/exit", "/quit"):
            console.print("[dim]¡Hasta pronto![/]")
            return False

        elif cmd == "/help":
            table_str = "\n".join(f"  [cyan]{k}[/]  {v}" for k, v in CLI_COMMANDS.items())
            console.print(f"\n[bold]Available commands:[/]\n{table_str}\n")

        elif cmd == "/saldo":
            await self._show_allowance()

        elif cmd == "/clear":
            console.clear()

        elif cmd == "/history":
            history = self.brain.conversations.get_history(self.user_key)
            if not history:
                console.print("  [dim]No conversation yet.[/]")
            for msg in history:
                color = "cyan" if msg.role == "user" else "green"
                console.print(f"  [{color}]{msg.role}:[/] {msg.content[:100]}")

        elif cmd == "/cache":
            stats = self.brain.gateway.search.cache_stats()
            console.print(f"  Cached searches: [cyan]{stats['size']}[/]")

        elif cmd == "/version":
            console.print(f"  {PROJECT_DISPLAY_NAME} v{PROJECT_VERSION}")

        else:
            console.print(f"  [yellow]Unknown command: {cmd}. Type /help for commands.[/]")

        return True

    async def _show_allowance(self) -> None:
        ledger = self.brain.ledger
        user = await ledger.ensure_user(self.user_key)
        if user is None:
            console.print("  [red]Ledger unavailable.[/]")
        elif isinstance(ledger, BalanceLedger):
            credits = await ledger.get_credits(user.id)
            display = convert_currency(credits, self.exchange_rate)
            console.print(f"  Saldo: [cyan]{format_minor(credits, '$')}[/] (≈ {format_minor(display)})")
        elif isinstance(ledger, QuotaLedger):
            remaining = await ledger.remaining(user.id)
            console.print(f"  Mensajes restantes: [cyan]{remaining}[/] / {ledger.quota}")

    async def send_message(self, user_key: str, content: str, **kwargs: Any) -> None:
        """Send a message (render to console)."""
        console.print("[bold green]Reco:[/]")
        console.print(Markdown(content))
