"""Command-line interface functionality."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from nepse_advisor import __version__
from nepse_advisor.config import DATA_DIR, EVALUATION_HISTORY_LIMIT, TOP_N
from nepse_advisor.feed import CsvMarketFeed
from nepse_advisor.jobs import DailyJob, WeeklyJob
from nepse_advisor.models import ModelState
from nepse_advisor.output import (
    evaluations_table,
    generate_weekly_report,
    performers_table,
    predictions_table,
    save_json_report,
    weights_table,
)
from nepse_advisor.queries import (
    SECTOR_HISTORY_RANGES,
    get_evaluations,
    get_predictions,
    get_sector_history,
    get_sector_performance,
    get_stock_history,
    get_top_performers,
)
from nepse_advisor.records import MalformedRecordError
from nepse_advisor.sector_mapping import guess_sector, load_sector_mapping, save_sector_mapping
from nepse_advisor.store import ParquetTableStore, StoreError
from nepse_advisor.utils import setup_logging

logger = logging.getLogger("nepse_advisor")
console = Console()

app = typer.Typer(
    name="nepse-advisor",
    help="Track the NEPSE market and issue self-adjusting weekly predictions.",
    add_completion=False,
)

def version_callback(value: bool):
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]NEPSE Advisor v{__version__}[/bold blue]")
        raise typer.Exit()

@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    data_dir: Path = typer.Option(
        DATA_DIR,
        "--data-dir",
        "-d",
        help="Directory holding the Parquet tables.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable debug logging.",
    ),
):
    """NEPSE Advisor - weekly direction predictions that learn from their own errors."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()
    setup_logging(logging.DEBUG if verbose else logging.INFO)
    ctx.obj = {"data_dir": data_dir}

def get_store(ctx: typer.Context) -> ParquetTableStore:
    data_dir = ctx.obj["data_dir"] if ctx.obj else DATA_DIR
    return ParquetTableStore(data_dir)

def parse_reference(value: Optional[str]) -> Optional[datetime]:
    """Parse a --date option (YYYY-MM-DD)."""
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise typer.BadParameter(f"Invalid date '{value}', expected YYYY-MM-DD") from None

@app.command()
def daily(
    ctx: typer.Context,
    feed: Path = typer.Option(
        ...,
        "--feed",
        "-f",
        help="Market snapshot file (CSV or Parquet) written by the scraper.",
    ),
    sector_map: Optional[Path] = typer.Option(
        None,
        "--sector-map",
        help="CSV or Parquet file with symbol and sector columns.",
    ),
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Record the snapshot under this date (YYYY-MM-DD).",
    ),
):
    """Record today's market snapshot, top performers and sector summary."""
    reference = parse_reference(date)
    try:
        overrides = load_sector_mapping(sector_map) if sector_map else None
        job = DailyJob(get_store(ctx), CsvMarketFeed(feed, overrides))
        result = job.run(reference)
    except ValueError as e:
        logger.error(f"Error loading sector mapping: {e}")
        raise typer.Exit(1)

    if not result.ok:
        console.print(f"[red]Daily job failed: {result.error}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Daily job {result.status}: {result.observations} observations[/green]")

@app.command()
def weekly(
    ctx: typer.Context,
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Run the cycle as of this date (YYYY-MM-DD).",
    ),
    workers: int = typer.Option(
        1,
        "--workers",
        "-w",
        help="Threads used to compute predictions.",
    ),
    report: Optional[Path] = typer.Option(
        None,
        "--report",
        "-o",
        help="Path to save the markdown report.",
    ),
    save_json: Optional[Path] = typer.Option(
        None,
        "--save-json",
        help="Path to save structured JSON data.",
    ),
):
    """Aggregate the week, learn from matured predictions and predict the next week."""
    reference = parse_reference(date)
    store = get_store(ctx)
    try:
        state = ModelState.load(store)
    except (StoreError, MalformedRecordError) as e:
        logger.error(f"Error loading model weights: {e}")
        raise typer.Exit(1)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Running weekly cycle...", total=None)
        result = WeeklyJob(store, state, max_workers=workers).run(reference)

    if not result.ok:
        console.print(f"[red]Weekly job {result.status}: {result.error or ''}[/red]")
        raise typer.Exit(1)

    if result.predictions:
        console.print(predictions_table(result.predictions))
    if result.weights is not None:
        console.print(weights_table(result.weights))

    if report:
        report.write_text(generate_weekly_report(result))
        console.print(f"[green]Report saved to {report}[/green]")
    if save_json:
        save_json_report(result.to_dict(), save_json)
        console.print(f"[green]Structured data saved to {save_json}[/green]")

@app.command()
def predictions(ctx: typer.Context):
    """Show the latest batch of predictions."""
    try:
        latest_date, preds = get_predictions(get_store(ctx))
    except (StoreError, MalformedRecordError) as e:
        logger.error(f"Error reading predictions: {e}")
        raise typer.Exit(1)
    if not preds:
        console.print("[yellow]No predictions available.[/yellow]")
        return
    console.print(predictions_table(preds, title=f"Predictions ({latest_date})"))

@app.command()
def evaluations(
    ctx: typer.Context,
    limit: int = typer.Option(EVALUATION_HISTORY_LIMIT, "--limit", "-n", help="Number of evaluations to show."),
):
    """Show the most recent prediction evaluations and the current weights."""
    store = get_store(ctx)
    try:
        evals = get_evaluations(store, limit=limit)
        state = ModelState.load(store)
    except (StoreError, MalformedRecordError) as e:
        logger.error(f"Error reading evaluations: {e}")
        raise typer.Exit(1)
    if not evals:
        console.print("[yellow]No evaluations available.[/yellow]")
        return
    console.print(evaluations_table(evals))
    console.print(weights_table(state.snapshot()))

@app.command()
def weights(ctx: typer.Context):
    """Show the current model weights."""
    try:
        state = ModelState.load(get_store(ctx))
    except (StoreError, MalformedRecordError) as e:
        logger.error(f"Error loading model weights: {e}")
        raise typer.Exit(1)
    console.print(weights_table(state.snapshot()))

@app.command()
def top(
    ctx: typer.Context,
    period: str = typer.Option("daily", "--period", "-p", help="'daily' or 'weekly'."),
    kind: str = typer.Option("best", "--type", "-t", help="'best' or 'worst'."),
    limit: int = typer.Option(TOP_N, "--limit", "-n", help="Number of rows to show."),
):
    """Show the latest best or worst performers."""
    try:
        latest_date, rows = get_top_performers(get_store(ctx), period, kind, limit)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except StoreError as e:
        logger.error(f"Error reading performers: {e}")
        raise typer.Exit(1)
    if not rows:
        console.print("[yellow]No performers available.[/yellow]")
        return
    console.print(performers_table(rows, title=f"{period.capitalize()} {kind} performers ({latest_date})"))

@app.command()
def sectors(
    ctx: typer.Context,
    range_: Optional[str] = typer.Option(
        None,
        "--range",
        "-r",
        help=f"Show the average change history over a range ({', '.join(SECTOR_HISTORY_RANGES)}).",
    ),
):
    """Show the latest sector summary, or its history over a range as JSON."""
    store = get_store(ctx)
    try:
        if range_:
            typer.echo(json.dumps(get_sector_history(store, range_), indent=2))
            return
        latest_date, rows = get_sector_performance(store)
    except (StoreError, MalformedRecordError) as e:
        logger.error(f"Error reading sector summary: {e}")
        raise typer.Exit(1)

    if not rows:
        console.print("[yellow]No sector summary available.[/yellow]")
        return
    for row in rows:
        console.print(f"{row['sector']}: {row['avgChange']}% (volume {row['totalVolume']})")
    console.print(f"[dim]As of {latest_date}[/dim]")

@app.command()
def history(ctx: typer.Context, symbol: str = typer.Argument(..., help="Stock symbol.")):
    """Print the daily price and volume history of a symbol as JSON."""
    try:
        points = get_stock_history(get_store(ctx), symbol.upper())
    except (StoreError, MalformedRecordError) as e:
        logger.error(f"Error reading history for {symbol}: {e}")
        raise typer.Exit(1)
    if not points:
        console.print(f"[yellow]No history for {symbol}.[/yellow]")
        raise typer.Exit(1)
    typer.echo(json.dumps(points, indent=2))

@app.command("sector-map")
def build_sector_map(
    feed: Path = typer.Argument(..., help="Market snapshot file to read symbols from."),
    output: Path = typer.Option(..., "--output", "-o", help="Parquet file to write the mapping to."),
):
    """Guess a sector for every symbol in a snapshot and save the mapping."""
    try:
        observations = CsvMarketFeed(feed).fetch_live_market_data()
    except (OSError, MalformedRecordError) as e:
        logger.error(f"Error reading market snapshot: {e}")
        raise typer.Exit(1)
    mapping = {o.symbol: guess_sector(o.company_name, o.symbol) for o in observations}
    save_sector_mapping(mapping, output)
    console.print(f"[green]Saved {len(mapping)} sector assignments to {output}[/green]")