from __future__ import annotations

from typing import Optional

import typer
import uvicorn

from cli.render import render_banner
from settings import get_settings


app = typer.Typer(
    help="Run the Semey smart city dashboard API.",
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
)


@app.command()
def serve(
    host: str = typer.Option(
        "0.0.0.0",
        "--host",
        help="Interface to bind.",
    ),
    port: Optional[int] = typer.Option(
        None,
        "--port",
        "-p",
        min=1,
        max=65535,
        help="Port to listen on (defaults to the PORT env var or 8080).",
    ),
) -> None:
    """Start the HTTP server."""
    settings = get_settings()
    listen_port = port if port is not None else settings.port
    render_banner(host=host, port=listen_port, environment=settings.environment)
    uvicorn.run(
        "app.main:app",
        host=host,
        port=listen_port,
        log_config=None,
        access_log=False,
    )


def main() -> None:
    app()
