"""Command-line interface for the TCG Scanner service."""

import asyncio
import base64
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .core.types import CommitRequest, ScanResult
from .match.resolution import ScanSession
from .utils.config import ensure_storage_dirs, settings
from .utils.error_handler import CardScannerError, QuotaExceededError
from .utils.log import configure_logging, get_logger
from .utils.validation import decode_image, validate_game

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Rich console
console = Console()

app = typer.Typer(
    name="tcg-scanner",
    help="TCG Scanner - card identification, pricing and image cache",
    add_completion=False
)


def _read_image(path: Path) -> str:
    if not path.is_file():
        console.print(f"[red]❌ Image not found: {path}[/red]")
        raise typer.Exit(1)
    return base64.b64encode(path.read_bytes()).decode("ascii")


def _orchestrator():
    from .pipeline import ScanOrchestrator

    ensure_storage_dirs()
    return ScanOrchestrator()


def _money(value: Optional[float]) -> str:
    return f"${value:,.2f}" if value is not None else "[dim]n/a[/dim]"


def _result_table(result: ScanResult, title: str) -> Table:
    table = Table(title=title)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Card Name", result.card_name or "[red]Not detected[/red]")
    table.add_row("Game", result.game or "")
    table.add_row("Set", result.set_name or "")
    table.add_row("Number", result.number or "")
    table.add_row("Rarity", result.rarity or "")
    table.add_row("Market", _money(result.prices.market))
    table.add_row("Low / High", f"{_money(result.prices.low)} / {_money(result.prices.high)}")
    table.add_row("Confidence", f"{result.confidence:.0%}")
    table.add_row("Source", result.source.value if hasattr(result.source, "value") else str(result.source))
    table.add_row("Card Key", result.card_key or "")
    return table


def _candidates_table(result: ScanResult) -> Table:
    table = Table(title="Possible Matches")
    table.add_column("#", style="bold")
    table.add_column("Card Name", style="cyan")
    table.add_column("Set")
    table.add_column("Number")
    table.add_column("Market", justify="right")
    for i, candidate in enumerate(result.candidates, start=1):
        table.add_row(
            str(i), candidate.card_name, candidate.set_name or "", candidate.number or "",
            _money(candidate.prices.market),
        )
    return table


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    workers: int = typer.Option(1, "--workers", "-w", help="Worker processes"),
):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    ensure_storage_dirs()
    console.print(Panel.fit(
        f"[bold blue]TCG Scanner API[/bold blue]\n[dim]http://{host}:{port}[/dim]",
        border_style="blue"
    ))
    uvicorn.run("tcg_scanner.api.app:app", host=host, port=port, workers=workers)


@app.command()
def scan(
    image: Path = typer.Argument(..., help="Photo of the card"),
    game: Optional[str] = typer.Option(None, "--game", "-g", help="Game hint, e.g. pokemon or magic"),
    user: str = typer.Option("cli", "--user", "-u", help="User identity for the scan quota"),
    save: bool = typer.Option(False, "--save", "-s", help="Commit the photo once the card is resolved"),
):
    """Identify and price a card photo; prompts when several cards match."""
    image_data = _read_image(image)
    orchestrator = _orchestrator()

    try:
        with console.status("[bold green]Identifying card...", spinner="dots"):
            result = asyncio.run(orchestrator.scan(user, image_data, game))
    except QuotaExceededError as e:
        console.print(f"[red]❌ {e.message} Retry in {e.retry_after_s}s.[/red]")
        raise typer.Exit(2)
    except CardScannerError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        logger.error("Scan failed", error=str(e))
        raise typer.Exit(1)

    if result.error:
        console.print(f"[yellow]⚠ {result.error}[/yellow]")
        raise typer.Exit(1)

    session = ScanSession.resume(result)
    if result.needs_selection:
        console.print(_candidates_table(result))
        choice = typer.prompt("Which card did you scan?", type=int, default=1)
        try:
            result = session.select(choice - 1)
        except IndexError:
            console.print("[red]❌ No such candidate[/red]")
            raise typer.Exit(1)

    console.print(_result_table(result, "Scan Result"))
    if result.remaining_scans is not None:
        console.print(f"[dim]Scans left in this window: {result.remaining_scans}[/dim]")

    if save:
        request = session.commit_request(decode_image(image_data, settings.MAX_IMAGE_BYTES))
        committed = asyncio.run(orchestrator.commit(request))
        state = "reused" if committed.cached else "stored"
        console.print(f"[green]✓ Image {state}: {committed.image_url}[/green]")


@app.command()
def commit(
    image: Path = typer.Argument(..., help="Photo to store for the card"),
    game: str = typer.Option(..., "--game", "-g", help="Game identifier"),
    name: str = typer.Option(..., "--name", "-n", help="Card name"),
    set_name: Optional[str] = typer.Option(None, "--set", help="Set name"),
    number: Optional[str] = typer.Option(None, "--number", help="Collector number"),
    product_id: Optional[str] = typer.Option(None, "--product-id", help="Catalog product id"),
):
    """Store a card photo, reusing the existing image if one is cached."""
    try:
        request = CommitRequest(
            image=decode_image(_read_image(image), settings.MAX_IMAGE_BYTES),
            game=validate_game(game, required=True).value,
            card_name=name,
            set_name=set_name,
            card_number=number,
            product_id=product_id,
        )
        result = asyncio.run(_orchestrator().commit(request))
    except CardScannerError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ {result.title}[/green]")
    console.print(f"Image URL: {result.image_url}")
    console.print(f"Cached: {'yes' if result.cached else 'no'}")


@app.command()
def lookup(key: str = typer.Argument(..., help="Card key, e.g. pokemon:pid:12345")):
    """Look up the stored image for a card key."""
    found = asyncio.run(_orchestrator().lookup_image(key))
    if found.exists:
        console.print(f"[green]✓ {found.image_url}[/green]")
    else:
        console.print("[yellow]No image stored for this key[/yellow]")
        raise typer.Exit(1)


@app.command()
def backfill():
    """Index card images that were stored before the image index existed."""
    orchestrator = _orchestrator()
    with console.status("[bold green]Indexing stored images...", spinner="dots"):
        counts = orchestrator.images.backfill()

    table = Table(title="Backfill Summary")
    table.add_column("Result", style="cyan")
    table.add_column("Count", justify="right")
    for label, count in counts.items():
        table.add_row(label.capitalize(), str(count))
    console.print(table)


if __name__ == "__main__":
    app()
