"""CLI interface for trendscout."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from trendscout.config import TrendscoutConfig, load_config, merge_cli_overrides
from trendscout.errors import StoreUnavailableError
from trendscout.pipeline.trends import TrendPipeline
from trendscout.trends.models import RunSummary, TrendRecord
from trendscout.trends.store import JsonTrendStore

app = typer.Typer(
    name="trendscout",
    help="Surface rising items from Reddit, Hacker News, GitHub and RSS.",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from trendscout import __version__

        console.print(f"trendscout {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .trendscout.toml file."),
    ] = None,
    store_dir: Annotated[
        Optional[Path],
        typer.Option("--store-dir", help="Directory holding the trend store file."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """TrendScout - catch trends before they peak."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config(config_path)
    ctx.obj = merge_cli_overrides(
        config,
        store_directory=str(store_dir) if store_dir is not None else None,
    )


def _config(ctx: typer.Context) -> TrendscoutConfig:
    return ctx.obj if isinstance(ctx.obj, TrendscoutConfig) else load_config()


def _open_store(config: TrendscoutConfig) -> JsonTrendStore:
    try:
        return JsonTrendStore(Path(config.store.directory).expanduser())
    except StoreUnavailableError as exc:
        console.print(f"[red]Store unavailable:[/red] {exc}")
        raise typer.Exit(1) from exc


def _records_table(title: str, records: list[TrendRecord]) -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Source")
    table.add_column("Title")
    table.add_column("Cluster")
    for rank, record in enumerate(records, start=1):
        table.add_row(
            str(rank),
            f"{record.rising_score:.2f}",
            record.source,
            record.title,
            record.cluster or "",
        )
    return table


def _summary_table(summary: RunSummary) -> Table:
    table = Table(title="Refresh summary")
    table.add_column("Source")
    table.add_column("Items", justify="right")
    table.add_column("Errors")
    for source, count in summary.per_source_counts.items():
        errors = summary.per_source_errors.get(source, [])
        table.add_row(source, str(count), "; ".join(errors))
    return table


@app.command()
def refresh(
    ctx: typer.Context,
    source: Annotated[
        Optional[list[str]],
        typer.Option("--source", "-s", help="Only fetch these sources."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the run summary as JSON."),
    ] = False,
) -> None:
    """Fetch all sources once, rescore and recluster."""
    config = merge_cli_overrides(_config(ctx), sources=source or None)
    store = _open_store(config)
    pipeline = TrendPipeline.from_config(config, store=store)

    try:
        summary = pipeline.run_once()
    except StoreUnavailableError as exc:
        console.print(f"[red]Store unavailable:[/red] {exc}")
        raise typer.Exit(1) from exc

    if as_json:
        typer.echo(summary.model_dump_json(indent=2))
        return

    console.print(_summary_table(summary))
    console.print(
        f"Processed {summary.processed} records into {summary.clusters} clusters"
        f" ({summary.skipped_records} skipped, {summary.duplicates_dropped} duplicates)."
    )


@app.command()
def top(
    ctx: typer.Context,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of trends to show.")] = 50,
    source: Annotated[
        Optional[str],
        typer.Option("--source", "-s", help="Only show trends from this source."),
    ] = None,
) -> None:
    """Show the highest rising scores."""
    store = _open_store(_config(ctx))
    if source:
        records = store.list_by_source(source, limit=limit)
        title = f"Top {source} trends"
    else:
        records = store.list_top_by_score(limit)
        title = "Top trends"

    if not records:
        console.print("No trends stored yet. Run `trendscout refresh` first.")
        raise typer.Exit(0)

    console.print(_records_table(title, records))


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show record counts per source and the current top trend."""
    store = _open_store(_config(ctx))
    counts = store.count_by_source()

    table = Table(title="Trend statistics")
    table.add_column("Source")
    table.add_column("Records", justify="right")
    for name, count in sorted(counts.items()):
        table.add_row(name, str(count))
    console.print(table)
    console.print(f"Total trends: {sum(counts.values())}")

    best = store.list_top_by_score(1)
    if best:
        console.print(f"Top trend: {best[0].title} ({best[0].rising_score:.2f})")


if __name__ == "__main__":
    app()
