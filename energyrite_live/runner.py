"""
CLI entrypoint for the EnergyRite live feed.
"""
import asyncio
import sys

import typer
from loguru import logger

from energyrite_live.shared.config import settings

app = typer.Typer(help="EnergyRite live vehicle feed")


def configure_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL.upper())


@app.command()
def server(
    host: str = typer.Option("0.0.0.0", help="Interface to bind"),
    port: int = typer.Option(settings.PORT, help="Port to bind"),
):
    """Start the FastAPI backend server using Uvicorn."""
    import uvicorn
    configure_logging()
    typer.echo(f"Starting server on port {port}...")
    uvicorn.run("energyrite_live.server.main:app", host=host, port=port, log_level=settings.LOG_LEVEL.lower())


@app.command()
def watch(
    cost_code: str | None = typer.Option(None, "--cost-code", help="Scope the feed to one cost code"),
    limit: int | None = typer.Option(None, help="Snapshot size (1-500)"),
    duration: float = typer.Option(300.0, help="Duration to watch in seconds"),
    base_url: str | None = typer.Option(None, help="Server base URL"),
):
    """Open the live feed and render it in a rich dashboard."""
    from energyrite_live.client.sse_client import VehicleStreamClient
    from energyrite_live.client.visualizer import Visualizer

    url = base_url or f"http://127.0.0.1:{settings.PORT}"
    client = VehicleStreamClient("cli_watch", url, cost_code=cost_code, limit=limit)
    title = f"EnergyRite live feed ({cost_code})" if cost_code else "EnergyRite live feed"
    visualizer = Visualizer(client, title)
    try:
        asyncio.run(visualizer.run(duration))
    except KeyboardInterrupt:
        pass


@app.command()
def stats(base_url: str | None = typer.Option(None, help="Server base URL")):
    """Query the server for live stream and pool stats."""
    import httpx
    url = base_url or f"http://127.0.0.1:{settings.PORT}"
    resp = httpx.get(f"{url}/stats")
    typer.echo(resp.json())


@app.command("check-db")
def check_db():
    """Connect with the configured settings and count the tracked vehicles."""
    from energyrite_live.server.database import Database
    from energyrite_live.server.snapshot import VEHICLE_TABLE

    async def _check() -> int:
        db = Database.from_settings(settings)
        await db.connect()
        try:
            return await db.fetchval(f"SELECT COUNT(*)::int FROM {VEHICLE_TABLE}")
        finally:
            await db.close()

    if settings.resolve_dsn() is None:
        typer.echo("Database is not configured (set DATABASE_URL or DB_HOST/DB_NAME/DB_USER/DB_PASSWORD).")
        raise typer.Exit(1)
    try:
        count = asyncio.run(_check())
    except Exception as e:
        typer.echo(f"Database check failed: {e}")
        raise typer.Exit(1)
    typer.echo(f"Database connection successful: {count} vehicles")


if __name__ == "__main__":
    app()
