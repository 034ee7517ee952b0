from __future__ import annotations

from typing import Any, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_banner(host: str, port: int, environment: str) -> None:
    display_host = "localhost" if host in {"0.0.0.0", "::"} else host
    base_url = f"http://{display_host}:{port}"
    echo_heading(f"Semey Smart City API running on port {port}")
    echo_key_values(
        [
            ("environment", environment),
            ("health check", f"{base_url}/health"),
            ("api base", f"{base_url}/api/v1"),
        ]
    )
