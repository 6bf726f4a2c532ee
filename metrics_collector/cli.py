from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import typer
import uvicorn

from .config import AgentSettings, ServerSettings
from .log import LoggingConfig, configure_logging

app = typer.Typer(add_completion=False, help="Metrics agent and server.")


def _overrides(**options: Any) -> Dict[str, Any]:
    """Flags given on the command line win over the environment."""
    return {name: value for name, value in options.items() if value is not None}


@app.command()
def server(
    address: Optional[str] = typer.Option(None, "--address", "-a", help="host:port to listen on."),
    store_interval: Optional[int] = typer.Option(
        None, "--store-interval", "-i", help="Seconds between backups."
    ),
    file_storage_path: Optional[str] = typer.Option(
        None, "--file-storage-path", "-f", help="Backup file path."
    ),
    restore: Optional[bool] = typer.Option(
        None, "--restore/--no-restore", help="Restore the backup on startup."
    ),
    database_dsn: Optional[str] = typer.Option(None, "--database-dsn", "-d", help="Database DSN."),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Shared HMAC key."),
) -> None:
    """Run the metrics server."""
    from .main import create_app

    settings = ServerSettings(
        **_overrides(
            address=address,
            store_interval=store_interval,
            file_storage_path=file_storage_path,
            restore=restore,
            database_dsn=database_dsn,
            key=key,
        )
    )
    configure_logging(LoggingConfig.from_settings(settings, service="metrics-server"))
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        timeout_graceful_shutdown=settings.shutdown_timeout,
        log_config=None,
    )


@app.command()
def agent(
    address: Optional[str] = typer.Option(None, "--address", "-a", help="Server address."),
    poll_interval: Optional[int] = typer.Option(
        None, "--poll-interval", "-p", help="Seconds between samples."
    ),
    report_interval: Optional[int] = typer.Option(
        None, "--report-interval", "-r", help="Seconds between reports."
    ),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Shared HMAC key."),
) -> None:
    """Run the metrics agent."""
    from .services.agent import Agent

    settings = AgentSettings(
        **_overrides(
            address=address,
            poll_interval=poll_interval,
            report_interval=report_interval,
            key=key,
        )
    )
    configure_logging(LoggingConfig.from_settings(settings, service="metrics-agent"))
    asyncio.run(Agent(settings).run())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
