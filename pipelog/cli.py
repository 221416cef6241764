import asyncio
import json
from contextlib import aclosing
from pathlib import Path
from typing import Optional

import httpx
import typer

from pipelog.generator import SizeTieredGenerator
from pipelog.log import SQLiteLogStore
from pipelog.models import MAX_OFFSET
from pipelog.reader import BatchReader
from pipelog.settings import settings
from pipelog.utils.logging import setup_logging

app = typer.Typer(help="pipelog control interface")


def _db_path(db: Optional[Path]) -> str:
    return str(db) if db is not None else settings.SQLITE_DB_PATH


@app.command()
def serve(
    host: str = typer.Option(settings.SERVER_HOST, help="Interface to bind"),
    port: int = typer.Option(settings.SERVER_PORT, help="Port to listen on"),
):
    """
    Runs the poll server (and the generator for the configured data mode).
    """
    import uvicorn

    setup_logging(settings.LOG_LEVEL)
    uvicorn.run("pipelog.api:create_app", factory=True, host=host, port=port, log_config=None)


@app.command()
def generate(db: Optional[Path] = typer.Option(None, help="SQLite database path")):
    """
    Runs the size-tiered generator until the target population is reached.
    """
    setup_logging(settings.LOG_LEVEL)

    async def _generate() -> int:
        async with SQLiteLogStore(_db_path(db), read_timeout=settings.STORE_READ_TIMEOUT) as store:
            generator = SizeTieredGenerator(store, settings.generator_config())
            return await generator.run_to_completion()

    written = asyncio.run(_generate())
    typer.echo(f"Generated {written} records")


@app.command()
def stats(db: Optional[Path] = typer.Option(None, help="SQLite database path")):
    """
    Shows the record count per size tier.
    """
    path = _db_path(db)
    if not Path(path).exists():
        typer.echo(f"Error: Database {path} does not exist.")
        raise typer.Exit(code=1)

    cfg = settings.generator_config()

    async def _stats():
        async with SQLiteLogStore(path, read_timeout=settings.STORE_READ_TIMEOUT) as store:
            total = await store.count()
            large = await store.count_by_size(cfg.large.min_bytes)
            medium = await store.count_by_size(cfg.medium.min_bytes, cfg.large.min_bytes)
            oversize = await store.count_by_size(settings.OVERSIZE_THRESHOLD + 1)
            return total, large, medium, oversize, await store.max_offset()

    total, large, medium, oversize, max_offset = asyncio.run(_stats())
    typer.echo(f"Total:    {total} (max offset {max_offset})")
    typer.echo(f"Large:    {large} / {cfg.large.target_count}")
    typer.echo(f"Medium:   {medium} / {cfg.medium.target_count}")
    typer.echo(f"Small:    {total - large - medium}")
    typer.echo(f"Oversize: {oversize} (skipped by pollers, threshold {settings.OVERSIZE_THRESHOLD})")


@app.command()
def inspect(
    db: Optional[Path] = typer.Option(None, help="SQLite database path"),
    offset: int = typer.Option(0, min=0, max=MAX_OFFSET, help="Show records after this offset"),
    limit: int = typer.Option(10, min=1, help="Number of records to show"),
    budgeted: bool = typer.Option(False, help="Show exactly what a poll would return instead"),
):
    """
    Inspects the log directly, without going through the server.
    """
    path = _db_path(db)
    if not Path(path).exists():
        typer.echo(f"Error: Database {path} does not exist.")
        raise typer.Exit(code=1)

    async def _inspect():
        async with SQLiteLogStore(path, read_timeout=settings.STORE_READ_TIMEOUT) as store:
            if budgeted:
                reader = BatchReader(store, settings.POLL_BYTE_BUDGET, settings.OVERSIZE_THRESHOLD,
                                     verify_sizes=settings.VERIFY_RECORD_SIZES)
                batch = await reader.read_batch(offset)
                return batch.records[:limit]
            records = []
            async with aclosing(store.read_after(offset)) as scan:
                async for record in scan:
                    records.append(record)
                    if len(records) >= limit:
                        break
            return records

    records = asyncio.run(_inspect())
    typer.echo(f"--- Records after offset {offset} ---")
    for record in records:
        typer.echo(
            f"[{record.offset}] {record.created_at.isoformat()} | {record.topic} | "
            f"{record.key} | {record.event_type.value} | {record.size_bytes} bytes"
        )


@app.command()
def poll(
    url: str = typer.Argument("http://localhost:8080", help="Base URL of a pipelog server"),
    offset: int = typer.Option(0, min=0, max=MAX_OFFSET, help="Cursor: last offset already consumed"),
    show_data: bool = typer.Option(False, help="Print record payloads"),
):
    """
    Issues a single poll and prints the next cursor.
    """
    try:
        r = httpx.get(f"{url.rstrip('/')}/pipe/poll", params={"offset": offset}, timeout=30.0)
    except httpx.RequestError as e:
        typer.echo(f"Failed to connect to {url}: {e}")
        raise typer.Exit(code=1)

    if r.status_code == 204:
        typer.echo(f"No new data after offset {offset}")
        return
    if r.status_code != 200:
        typer.echo(f"Server returned {r.status_code}: {r.text}")
        raise typer.Exit(code=1)

    messages = r.json()
    for m in messages:
        line = f"[{m['offset']}] {m['createdAt']} | {m['topic']} | {m['msgKey']} | {m['eventType']}"
        if show_data:
            line += f" | {json.dumps(m['data'])}"
        typer.echo(line)
    typer.echo(f"{len(messages)} records; next offset: {messages[-1]['offset']}")


if __name__ == "__main__":
    app()
