"""
CLI commands for Reco: Click-based interface.

Commands:
    reco ask       Ask one question as a given user
    reco chat      Interactive terminal chat
    reco price     Price a token usage triple
    reco config    Show configuration
    reco version   Show version info
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.constants import CONFIG_FILE, DATA_DIR, PROJECT_DISPLAY_NAME, PROJECT_VERSION

console = Console()


@click.group()
@click.version_option(PROJECT_VERSION, prog_name=PROJECT_DISPLAY_NAME)
@click.option(
    "--config-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="TOML config file (default: ~/.reco/config.toml)",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Path | None) -> None:
    """Reco: immigration Q&A assistant with live search and metered usage."""
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file


def _bootstrap(ctx: click.Context):
    from src.config import ConfigurationError
    from src.main import bootstrap

    try:
        return bootstrap(ctx.obj.get("config_file"))
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/] {e}")
        sys.exit(1)


def _build_brain(config):
    from src.agent.brain import AgentBrain
    from src.config import ConfigurationError

    try:
        return AgentBrain.from_config(config)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/] {e}")
        sys.exit(1)


# ──────────────────────── reco ask ────────────────────────


@cli.command()
@click.argument("user_key")
@click.argument("question")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
def ask(ctx: click.Context, user_key: str, question: str, json_output: bool) -> None:
    """Ask QUESTION as USER_KEY, with the usual gating and charging."""
    config = _bootstrap(ctx)
    brain = _build_brain(config)

    async def _run():
        try:
            return await brain.handle_message(user_key, question)
        finally:
            await brain.close()

    result = asyncio.run(_run())

    if json_output:
        answer = result.answer
        payload = {
            "kind": result.kind,
            "replies": result.replies,
            "cost_minor": answer.cost_minor if answer else 0,
            "search_used": answer.search_used if answer else False,
            "sources": answer.sources if answer else [],
        }
        click.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    for reply in result.replies:
        console.print(Panel(reply, border_style="green"))
    if result.answer is not None:
        from src.billing.pricing import convert_currency, format_minor

        cost = result.answer.cost_minor
        display = convert_currency(cost, config.billing.exchange_rate)
        console.print(
            f"[dim]cost: {format_minor(cost, '$')} (≈ {format_minor(display)}) · "
            f"search: {'yes' if result.answer.search_used else 'no'}[/]"
        )


# ──────────────────────── reco chat ────────────────────────


@cli.command()
@click.option("--user", "user_key", default="+34000000000", help="User key for this session")
@click.pass_context
def chat(ctx: click.Context, user_key: str) -> None:
    """Interactive terminal chat with Reco."""
    from src.channels.cli import CLIChannel

    config = _bootstrap(ctx)
    brain = _build_brain(config)
    CLIChannel(brain, user_key=user_key, exchange_rate=config.billing.exchange_rate).run()


# ──────────────────────── reco price ────────────────────────


@cli.command()
@click.option("--model", default=None, help="Model id (default: configured model)")
@click.option("--input", "input_tokens", default=0, type=int, help="Input tokens")
@click.option("--cached", "cached_tokens", default=0, type=int, help="Cached input tokens")
@click.option("--output", "output_tokens", default=0, type=int, help="Output tokens")
@click.pass_context
def price(
    ctx: click.Context,
    model: str | None,
    input_tokens: int,
    cached_tokens: int,
    output_tokens: int,
) -> None:
    """Show what a usage triple costs, margin included."""
    from src.billing.pricing import Usage, convert_currency, format_minor, price_usage

    config = _bootstrap(ctx)
    model = model or config.llm.model
    breakdown = price_usage(
        model,
        Usage(input_tokens, cached_tokens, output_tokens),
        margin=config.billing.margin_multiplier,
    )

    table = Table(title=f"Pricing: {model}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Input tokens", str(breakdown.input_tokens))
    table.add_row("Cached tokens", str(breakdown.cached_tokens))
    table.add_row("Output tokens", str(breakdown.output_tokens))
    table.add_row("Cost (USD, with margin)", f"{breakdown.cost_native:.6f}")
    table.add_row("Cost (minor units)", str(breakdown.cost_minor))
    table.add_row(
        "Display",
        format_minor(convert_currency(breakdown.cost_minor, config.billing.exchange_rate)),
    )
    console.print(table)


# ──────────────────────── reco config ────────────────────────


@cli.command("config")
@click.option("--show", is_flag=True, help="Show current configuration")
@click.pass_context
def config_cmd(ctx: click.Context, show: bool) -> None:
    """Show configuration."""
    if show:
        cfg = _bootstrap(ctx)
        console.print(Panel(json.dumps(cfg.model_dump(), indent=2), title="Current Configuration"))
    else:
        path = ctx.obj.get("config_file") or CONFIG_FILE
        if path.exists():
            console.print(f"Config file: [cyan]{path}[/]")
        else:
            console.print(
                f"[yellow]No user config file. Using defaults.[/]\n"
                f"Create one at: [cyan]{path}[/]"
            )


# ──────────────────────── reco version ────────────────────────


@cli.command()
def version() -> None:
    """Show detailed version information."""
    console.print(f"[bold]{PROJECT_DISPLAY_NAME}[/] v{PROJECT_VERSION}")
    console.print(f"  Python: {sys.version}")
    console.print(f"  Data: {DATA_DIR}")


# ──────────────────────── Entry point ────────────────────────

if __name__ == "__main__":
    cli()
