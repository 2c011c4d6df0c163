"""DeSmond command line interface."""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from desmond.app.runtime import AgentRuntime
from desmond.channels.console import ConsoleTransport
from desmond.channels.telegram import TelegramTransport
from desmond.config import get_settings
from desmond.logging_utils import configure_logging
from desmond.session import Origin

app = typer.Typer(
    name="desmond",
    help="DeSmond: a chat agent for balances, web search and USDC payments on Base.",
    add_completion=False,
    rich_markup_mode="rich",
)


def _exit_with_error(message: str) -> None:
    Console(stderr=True).print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


@app.command()
def run(
    model: Optional[str] = typer.Option(None, "--model", help="provider:model override"),
    keepalive: bool = typer.Option(True, "--keepalive/--no-keepalive", help="Ping the model on a schedule"),
) -> None:
    """Serve the agent on Telegram."""
    settings = get_settings()
    if model:
        settings = settings.model_copy(update={"model": model})
    configure_logging(level=settings.log_level)
    if not settings.telegram_token:
        _exit_with_error("Telegram token not configured. Set DESMOND_TELEGRAM_TOKEN in your environment or .env file.")

    runtime = AgentRuntime(settings)
    transport = TelegramTransport(
        settings.telegram_token or "",
        wallets=settings.wallets,
        agent_address=settings.agent_address,
    )
    try:
        asyncio.run(runtime.serve(transport, keepalive=keepalive))
    except KeyboardInterrupt:
        typer.echo("stopped")


@app.command()
def chat(
    address: str = typer.Option(..., "--address", "-a", help="Wallet address used as the sender"),
    model: Optional[str] = typer.Option(None, "--model", help="provider:model override"),
) -> None:
    """Chat with the agent in a local direct conversation."""
    settings = get_settings()
    if model:
        settings = settings.model_copy(update={"model": model})
    configure_logging(profile="chat", level=settings.log_level)

    runtime = AgentRuntime(settings)
    transport = ConsoleTransport(
        user_address=address,
        agent_name=settings.agent_name,
        agent_address=settings.agent_address,
    )
    transport.console.print(f"[bold blue]{settings.agent_name}[/bold blue] [dim]model={settings.model}[/dim]")
    asyncio.run(runtime.serve(transport, keepalive=False, max_reconnects=0))


@app.command()
def tools() -> None:
    """List the registered capabilities."""
    settings = get_settings()
    runtime = AgentRuntime(settings)
    table = Table(title="Capabilities")
    table.add_column("Name", style="cyan")
    table.add_column("Effect", style="magenta")
    table.add_column("Scopes")
    table.add_column("Description")
    for capability in runtime.registry.descriptors():
        scopes = ", ".join(sorted(scope.value for scope in capability.scopes))
        table.add_row(capability.name, capability.effect.value, scopes, capability.description)
    Console().print(table)
    direct = len(runtime.registry.for_origin(Origin.DIRECT))
    group = len(runtime.registry.for_origin(Origin.GROUP))
    typer.echo(f"direct={direct} group={group}")


@app.command()
def ping() -> None:
    """Send one warm-up request to the model."""
    settings = get_settings()
    configure_logging(level=settings.log_level)
    runtime = AgentRuntime(settings)
    if not asyncio.run(runtime.ping_model()):
        raise typer.Exit(1)
    typer.echo("ok")


def main() -> None:
    app()
