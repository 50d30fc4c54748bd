"""
Room To Grow CLI Tool

Command-line interface for running and maintaining the tutor server.

Usage:
    rtg serve      - Start the API server
    rtg status     - Check a running server
    rtg models     - List selectable models
    rtg reset-db   - Drop and recreate all tables
"""
import asyncio
import os
import subprocess
import sys

import click
import httpx
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from app import __version__

# Load environment variables
load_dotenv()

console = Console()

# API Configuration
API_BASE = os.getenv("API_BASE_URL", "http://localhost:8000")


def start_server(port: int = 8000, reload: bool = False):
    """Start the FastAPI server in the foreground."""
    cmd = [sys.executable, "-m", "uvicorn", "app.main:app", f"--port={port}"]
    if reload:
        cmd.append("--reload")
    subprocess.run(cmd)


def render_counts(title: str, counts: dict[str, int]) -> Table:
    table = Table(title=title)
    table.add_column("Table", style="cyan")
    table.add_column("Rows", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count))
    return table


async def _reset_database() -> tuple[dict[str, int], dict[str, int]]:
    from app.database import close_db, count_rows, drop_db, init_db

    try:
        await init_db()
        before = await count_rows()
        await drop_db()
        await init_db()
        after = await count_rows()
    finally:
        await close_db()
    return before, after


async def _fetch_remote_ids() -> set[str]:
    from app.config import get_settings
    from app.core.providers import OpenRouterProvider

    settings = get_settings()
    provider = OpenRouterProvider(
        api_key=settings.OPENROUTER_API_KEY,
        base_url=settings.OPENROUTER_BASE_URL,
        timeout=settings.OPENROUTER_TIMEOUT,
    )
    try:
        return {model.id for model in await provider.list_models()}
    finally:
        await provider.close()


async def _current_counts() -> dict[str, int]:
    from app.database import close_db, count_rows, init_db

    try:
        await init_db()
        return await count_rows()
    finally:
        await close_db()


@click.group()
@click.version_option(version=__version__, prog_name="Room To Grow")
def main():
    """
    Room To Grow - AI tutor server

    Streaming tutor chat, flashcards and quizzes over OpenRouter.
    """
    pass


@main.command()
@click.option("--port", default=8000, help="Port to run server on")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(port: int, reload: bool):
    """
    Start the Room To Grow API server.

    Example:
        rtg serve --port 8000
    """
    if not os.getenv("OPENROUTER_API_KEY"):
        console.print("[yellow]⚠ OPENROUTER_API_KEY is not set; chat requests will fail[/yellow]")

    console.print(Panel(
        f"[bold green]Starting Room To Grow Server[/bold green]\n\n"
        f"API: [cyan]http://localhost:{port}/api/v1[/cyan]\n"
        f"API Docs: [cyan]http://localhost:{port}/docs[/cyan]\n\n"
        f"[dim]Press Ctrl+C to stop[/dim]",
        border_style="green"
    ))

    start_server(port=port, reload=reload)


@main.command()
@click.option("--deep", is_flag=True, help="Ask the server to contact OpenRouter too")
def status(deep: bool):
    """
    Check whether a server is running at API_BASE_URL.

    Example:
        rtg status --deep
    """
    url = f"{API_BASE}/health?deep=true" if deep else f"{API_BASE}/health"
    try:
        response = httpx.get(url, timeout=10.0 if deep else 2.0)
    except httpx.HTTPError as e:
        console.print(f"[red]✗ Could not connect to {API_BASE}: {e}[/red]")
        sys.exit(1)

    data = response.json()
    console.print(f"[green]✓[/green] {API_BASE} is {data.get('status', 'unknown')} (v{data.get('version', '?')})")
    for provider, configured in data.get("providers", {}).items():
        mark = "[green]✓[/green]" if configured else "[red]✗[/red]"
        console.print(f"  {mark} {provider}")


@main.command()
@click.option("--remote", is_flag=True, help="Check which models OpenRouter currently offers")
def models(remote: bool):
    """
    List the models clients can choose from.

    Example:
        rtg models --remote
    """
    from app.core.catalog import get_model_catalog
    from app.core.providers import ProviderError

    catalog = get_model_catalog()

    available = None
    if remote:
        try:
            available = asyncio.run(_fetch_remote_ids())
        except ProviderError as e:
            console.print(f"[red]✗ Could not list OpenRouter models: {e}[/red]")
            sys.exit(1)

    table = Table(title="Available Models")
    table.add_column("Model", style="cyan")
    table.add_column("Name")
    table.add_column("Provider")
    table.add_column("Images", justify="center")
    table.add_column("Pricing")
    if available is not None:
        table.add_column("Offered", justify="center")

    for candidate in catalog.models:
        name = candidate.display_name
        if candidate.id == catalog.default_model:
            name += " [green](default)[/green]"
        row = [
            candidate.id,
            name,
            candidate.provider,
            "✓" if candidate.supports_image_input else "",
            candidate.pricing,
        ]
        if available is not None:
            row.append("[green]✓[/green]" if candidate.id in available else "[red]✗[/red]")
        table.add_row(*row)

    console.print(table)
    console.print(f"\n[dim]Text fallbacks: {', '.join(catalog.text_fallbacks)}[/dim]")
    console.print(f"[dim]Vision fallbacks: {', '.join(catalog.vision_fallbacks)}[/dim]")


@main.command("reset-db")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
def reset_db(yes: bool):
    """
    Delete all users, conversations, messages and activities.

    Example:
        rtg reset-db --yes
    """
    console.print(render_counts("Current data", asyncio.run(_current_counts())))

    if not yes and not click.confirm("Delete ALL data?", default=False):
        console.print("[yellow]Aborted.[/yellow]")
        return

    before, after = asyncio.run(_reset_database())
    deleted = sum(before.values())
    console.print(render_counts("After reset", after))
    console.print(f"[green]✓ Database reset, {deleted} rows deleted[/green]")


if __name__ == "__main__":
    main()
