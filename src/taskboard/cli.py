from __future__ import annotations

import json

import click
import uvicorn

from taskboard.config import get_safe_config_report, get_settings


@click.group(name="taskboard", help="taskboard API server and tooling")
def cli() -> None:
    pass


@cli.command(name="serve")
@click.option("--host", default=None, help="Bind host (defaults to HOST).")
@click.option("--port", type=int, default=None, help="Bind port (defaults to PORT).")
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this run.")
def serve(host: str | None, port: int | None, log_level: str | None) -> None:
    """
    Run the API with uvicorn.
    """
    s = get_settings()
    if log_level:
        from taskboard.utils.log import set_log_level

        set_log_level(log_level)
    uvicorn.run(
        "taskboard.server:app",
        host=str(host or s.host),
        port=int(port or s.port),
        reload=False,
    )


@cli.command(name="config")
def show_config() -> None:
    """
    Print the effective configuration; secrets only as SET/UNSET.
    """
    click.echo(json.dumps(get_safe_config_report(), indent=2, sort_keys=True))


if __name__ == "__main__":  # pragma: no cover
    cli()
