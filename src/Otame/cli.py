"""Command line interface for the Otame title catalog.

Commands:
  - ingest: Load an AniDB, VNDB or anime-offline-database dump as a new generation
  - sweep: Reclaim rows of generations dead past the retention window
  - search: Ranked title search (one language or cascading)
  - lookup: Fetch records by natural key or row id
  - generations: List ingest generations and their state
"""

from __future__ import annotations

import contextlib
import logging
import signal
import threading
from datetime import timedelta
from pathlib import Path
from typing import Iterator, List, NoReturn, Optional

import typer
from pydantic import ValidationError as SettingsError

from .cancellation import CancellationToken
from .catalog import BulkIngestPipeline, CatalogStore, GenerationTracker, Record
from .errors import OtameError
from .logging_config import setup_logging
from .search import QueryService
from .settings import OtameSettings, SweepConfig
from .sources import DUMP_FORMATS, open_dump

logger = logging.getLogger(__name__)
app = typer.Typer(help="Otame title catalog: ingest dumps, sweep old generations, search titles")


def _fail(error: Exception) -> NoReturn:
    typer.echo(f"✗ Error: {error}", err=True)
    raise typer.Exit(1)


def _settings(ctx: typer.Context) -> OtameSettings:
    settings = ctx.obj
    if not isinstance(settings, OtameSettings):
        settings = OtameSettings.from_env()
    return settings


@contextlib.contextmanager
def _cancel_on_interrupt() -> Iterator[CancellationToken]:
    """Turn Ctrl-C into a cancellation so the open transaction rolls back cleanly."""

    token = CancellationToken()
    if threading.current_thread() is not threading.main_thread():
        yield token
        return
    previous = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel("interrupted"))
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)


def _format_record(record: Record) -> str:
    flags = record.flags.name if record.flags.name else str(int(record.flags))
    line = f"[{record.id}] {record.natural_key} ({record.language.value}, {flags}) {record.text}"
    for table, rows in record.children.items():
        values = ", ".join(" / ".join(str(value) for value in row) for row in rows)
        line += f"\n      {table}: {values}"
    return line


@app.callback()
def main_callback(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines"),
) -> None:
    """Global options shared by every command."""
    try:
        settings = OtameSettings.from_env()
        if db is not None:
            settings.store.db_path = db
        if log_level is not None:
            settings.logging.level = log_level
        if json_logs:
            settings.logging.json_output = True
    except (SettingsError, ValueError) as e:
        _fail(e)
    setup_logging(settings.logging)
    ctx.obj = settings


@app.command()
def ingest(
    ctx: typer.Context,
    dataset: str = typer.Argument(..., help="Dataset to write (e.g. anidb, vndb, aodb)"),
    path: Path = typer.Argument(..., help="Dump file; *.gz is decompressed on the fly"),
    dump_format: Optional[str] = typer.Option(
        None, "--format", "-f", help="Dump format: anidb, vndb or aodb (defaults to DATASET)"
    ),
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="replace (default) or append"),
) -> None:
    """Ingest a title dump as a new generation of DATASET."""
    settings = _settings(ctx)
    if dump_format is None:
        if dataset not in DUMP_FORMATS:
            _fail(ValueError(f"no dump format named after dataset {dataset!r}; pass --format"))
        dump_format = dataset
    decode = DUMP_FORMATS.get(dump_format)
    if decode is None:
        _fail(ValueError(f"unknown dump format {dump_format!r}; expected one of {sorted(DUMP_FORMATS)}"))
    try:
        with CatalogStore(settings.store) as store, open_dump(path) as stream, \
                _cancel_on_interrupt() as token:
            pipeline = BulkIngestPipeline(store, config=settings.ingest)
            result = pipeline.ingest(dataset, decode(stream), mode, cancel_token=token)
    except (OtameError, OSError) as e:
        _fail(e)

    if result.generation_id is None:
        typer.echo(f"✓ {dataset}: no records ingested ({result.mode.value})")
        return
    typer.echo(
        f"✓ {dataset}: ingested {result.count} records as generation {result.generation_id} "
        f"(ids {result.first_id}..{result.last_id}, {result.mode.value}, "
        f"{result.killed} generation(s) retired)"
    )


@app.command()
def sweep(
    ctx: typer.Context,
    retention_hours: Optional[float] = typer.Option(
        None, "--retention-hours", help="Reclaim generations dead for longer than this"
    ),
) -> None:
    """Delete rows of generations dead longer than the retention window."""
    settings = _settings(ctx)
    try:
        config = settings.sweep
        if retention_hours is not None:
            config = SweepConfig(retention=timedelta(hours=retention_hours))
        with CatalogStore(settings.store) as store, _cancel_on_interrupt() as token:
            result = GenerationTracker(store).sweep_expired(config.retention, cancel_token=token)
    except (OtameError, SettingsError) as e:
        _fail(e)
    typer.echo(
        f"✓ reclaimed {result.generations_reclaimed} generation(s), "
        f"{result.rows_deleted} row(s) deleted"
    )


@app.command()
def search(
    ctx: typer.Context,
    dataset: str = typer.Argument(..., help="Dataset to search"),
    query: str = typer.Argument(..., help="Search text"),
    language: Optional[str] = typer.Option(
        None, "--language", "-l", help="Search one index only (ja, en, x-jat)"
    ),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum number of results"),
) -> None:
    """Ranked title search; without --language every index is tried in cascade order."""
    settings = _settings(ctx)
    try:
        with CatalogStore(settings.store) as store:
            service = QueryService(store)
            if language is None:
                results = service.cascading_search(dataset, query, limit)
            else:
                results = service.search(dataset, language, query, limit)
    except OtameError as e:
        _fail(e)

    if not results:
        typer.echo(f"No results for {query!r} in {dataset}")
        return
    for scored in results:
        typer.echo(f"{scored.score:8.4f}  {_format_record(scored.record)}")


@app.command()
def lookup(
    ctx: typer.Context,
    dataset: str = typer.Argument(..., help="Dataset to read"),
    key: str = typer.Argument(..., help="Natural key, or row id with --id"),
    by_id: bool = typer.Option(False, "--id", help="Treat KEY as a row id"),
) -> None:
    """Fetch records directly, including rows of retired generations."""
    settings = _settings(ctx)
    try:
        with CatalogStore(settings.store) as store:
            service = QueryService(store)
            if by_id:
                records: List[Record] = [service.get_by_id(dataset, int(key))]
            else:
                records = service.get_by_natural_key(dataset, key)
    except (OtameError, ValueError) as e:
        _fail(e)

    typer.echo(f"{len(records)} record(s) for {key} in {dataset}:")
    for record in records:
        typer.echo(f"  {_format_record(record)}")


@app.command()
def generations(
    ctx: typer.Context,
    dataset: Optional[str] = typer.Argument(None, help="Restrict to one dataset"),
) -> None:
    """List generations, newest first."""
    settings = _settings(ctx)
    try:
        with CatalogStore(settings.store) as store:
            rows = GenerationTracker(store).list_generations(dataset)
    except OtameError as e:
        _fail(e)

    if not rows:
        typer.echo("No generations recorded")
        return
    for generation in rows:
        typer.echo(
            f"  #{generation.id:<5} {generation.dataset:<8} {generation.state.value:<9} "
            f"ids {generation.first_id}..{generation.last_id} ({generation.size}) "
            f"created {generation.created_at.isoformat()}"
        )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
