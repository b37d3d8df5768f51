"""
CLI entrypoint for authsse.
"""
import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger

from authsse.client.parser import iter_records
from authsse.client.subscription import Subscription
from authsse.client.visualizer import Visualizer
from authsse.shared.config import settings
from authsse.shared.errors import SSEError
from authsse.shared.models import EventRecord

app = typer.Typer(help="Authenticated Server-Sent Events client")


@app.callback()
def main(log_level: str = typer.Option(settings.LOG_LEVEL, help="Loguru level for diagnostics on stderr")):
    logger.remove()
    logger.add(sys.stderr, level=log_level.upper())


def _static_token(token: str):
    async def get_token() -> str:
        return token
    return get_token


@app.command()
def tail(
    url: str = typer.Argument(settings.STREAM_PATH, help="Stream URL, absolute or relative to AUTHSSE_BASE_URL"),
    token: str = typer.Option(None, envvar="AUTHSSE_TOKEN", help="Bearer token"),
    event: str = typer.Option(None, help="Only show records of this event type"),
    duration: float = typer.Option(60.0, help="Seconds to stay subscribed"),
    plain: bool = typer.Option(False, "--plain", help="Print one JSON line per record instead of the dashboard"),
):
    """Subscribe to a stream and show its events."""
    token = token or settings.TOKEN
    if not token:
        typer.echo("A bearer token is required (--token or AUTHSSE_TOKEN).", err=True)
        raise typer.Exit(1)

    def on_message(record: EventRecord):
        if event is None or record.event_type == event:
            typer.echo(record.model_dump_json())

    failures: list[SSEError] = []
    subscription = Subscription(url, _static_token(token), on_message, failures.append)

    async def run_plain():
        subscription.start()
        try:
            await asyncio.wait_for(subscription.wait(), timeout=duration)
        except asyncio.TimeoutError:
            pass
        finally:
            subscription.stop()

    visualizer = None if plain else Visualizer(subscription, event_filter=event)
    try:
        if visualizer is None:
            asyncio.run(run_plain())
        else:
            asyncio.run(visualizer.run(duration))
    except KeyboardInterrupt:
        pass

    error = str(failures[0]) if failures else visualizer and visualizer.last_error
    if error:
        typer.echo(f"Stream failed: {error}", err=True)
        raise typer.Exit(1)


@app.command()
def parse(path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Captured text/event-stream body")):
    """Parse a captured stream file and print its records as JSON lines."""
    with path.open(encoding="utf-8", newline="") as f:
        for record in iter_records(f):
            typer.echo(record.model_dump_json())


@app.command()
def server(port: int = typer.Option(settings.PORT, help="Port for the demo server")):
    """Start the bearer-protected demo stream server using Uvicorn."""
    import uvicorn
    typer.echo(f"Starting demo server on port {port} (token: {settings.DEMO_TOKEN})...")
    uvicorn.run("authsse.server.main:app", host="127.0.0.1", port=port, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    app()
