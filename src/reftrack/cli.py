"""Command-line interface for reftrack."""

import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from reftrack.discord.client import DiscordAPIError, DiscordClient
from reftrack.discord.commands import COMMANDS
from reftrack.logging_config import configure_logging, get_logger
from reftrack.settings import settings
from reftrack.storage.db import Database
from reftrack.storage.repo import ReferralStore

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="reftrack",
    help="reftrack - Whop referral tracking with Discord rewards",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


def _store() -> ReferralStore:
    db = Database(settings.database_url)
    db.create_tables()
    return ReferralStore(db)


def _print_user(user) -> None:
    table = Table(title=f"User {user.user_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("referral_count", f"{user.referral_count} / {settings.reward_threshold}")
    table.add_row("rewarded", "yes" if user.rewarded else "no")
    console.print(table)


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    Database(settings.database_url).create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("serve")
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "0.0.0.0",
    port: Annotated[int | None, typer.Option("--port", "-p", help="Port (defaults to PORT)")] = None,
) -> None:
    """Run the HTTP server."""
    import uvicorn

    console.print(f"[bold blue]🚀 Server listening on port {port or settings.port}[/bold blue]")
    uvicorn.run(
        "reftrack.api.main:create_app",
        factory=True,
        host=host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


@app.command("register-commands")
def register_commands(
    guild: Annotated[bool, typer.Option("--guild", help="Register in GUILD_ID only (instant)")] = False,
) -> None:
    """Register the /ref and /refstats slash commands with Discord."""
    if not settings.client_id or not settings.discord_token:
        console.print("[bold red]❌ Missing CLIENT_ID or DISCORD_TOKEN[/bold red]")
        raise typer.Exit(1)
    if guild and not settings.guild_id:
        console.print("[bold red]❌ --guild requires GUILD_ID[/bold red]")
        raise typer.Exit(1)

    async def _register() -> list[dict]:
        client = DiscordClient(settings.discord_token)
        try:
            return await client.register_commands(
                settings.client_id,
                COMMANDS,
                guild_id=settings.guild_id if guild else None,
            )
        finally:
            await client.close()

    console.print("[bold blue]⏳ Registering slash commands...[/bold blue]")
    try:
        registered = asyncio.run(_register())
    except DiscordAPIError as e:
        console.print(f"[bold red]❌ Failed to register commands:[/bold red] {e}")
        raise typer.Exit(1)

    names = ", ".join(f"/{c.get('name')}" for c in registered)
    console.print(f"[bold green]✓[/bold green] Slash commands registered: {names}")


@app.command("user")
def show_user(
    user_id: Annotated[str, typer.Argument(help="Discord user id")],
) -> None:
    """Show a user's referral progress."""
    store = _store()
    user = store.get_user(user_id)
    if user is None:
        console.print(f"[yellow]No referral record for {user_id}[/yellow]")
        raise typer.Exit(0)
    _print_user(user)


@app.command("credit")
def credit_user(
    user_id: Annotated[str, typer.Argument(help="Discord user id")],
    count: Annotated[int, typer.Option("--count", "-c", min=1, help="Referrals to add")] = 1,
) -> None:
    """Manually add referrals to a user."""
    user = _store().add_referrals(user_id, count)
    console.print(f"[bold green]✓[/bold green] Added {count} referral(s)")
    _print_user(user)


@app.command("set")
def set_user(
    user_id: Annotated[str, typer.Argument(help="Discord user id")],
    referrals: Annotated[int, typer.Option("--referrals", "-r", min=0, help="Referral count")] = 0,
    rewarded: Annotated[bool, typer.Option("--rewarded/--not-rewarded", help="Reward flag")] = False,
) -> None:
    """Overwrite a user's referral state."""
    user = _store().set_referrals(user_id, referrals, rewarded)
    console.print("[bold green]✓[/bold green] Referral state updated")
    _print_user(user)


if __name__ == "__main__":
    app()
