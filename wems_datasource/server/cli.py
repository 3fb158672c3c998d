"""Command-line interface for the WEMS datasource backend.

Two modes:

- ``--http``: serve the datasource HTTP API with uvicorn.
- check mode (default): load ``--config``, run every datasource's health
  check once, print the results and exit non-zero if any failed.

Usage
-----
    wems-datasource --config config.json
    wems-datasource --http --port 8080
"""

from __future__ import annotations

import argparse
import asyncio
import os
from pathlib import Path
from typing import Dict

from ..adapters import log_datasource_status
from ..config.models import EnvSettings
from ..observability import setup_logging
from ..schemas.wems_contract import HealthResult, HealthStatus
from .app import DatasourceServer, dispose_datasources, load_datasources
from .http import create_app


async def _check(config_path: Path) -> Dict[str, HealthResult]:
    """Register datasources from ``config_path`` and run their health checks.

    Parameters
    ----------
    config_path: Path
        Filesystem path to the JSON configuration file.
    """
    load_datasources(config_path, EnvSettings())
    log_datasource_status()
    server = DatasourceServer()
    try:
        return await server.check_all()
    finally:
        await dispose_datasources()


def _report(results: Dict[str, HealthResult]) -> int:
    """Print one line per datasource; return the process exit code."""
    if not results:
        print("no datasources configured")
        return 1
    failed = 0
    for uid, result in results.items():
        print(f"{uid}: {result.status.value} - {result.message}")
        if result.status is not HealthStatus.OK:
            failed += 1
    return 1 if failed else 0


def main() -> None:
    """CLI entrypoint for the WEMS datasource backend."""
    parser = argparse.ArgumentParser(description="WEMS datasource CLI")
    parser.add_argument("--config", help="Path to JSON app config")
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=[
            "CRITICAL",
            "ERROR",
            "WARNING",
            "INFO",
            "DEBUG",
        ],
        help="Logging level (overrides environment)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (once sets DEBUG)",
    )
    parser.add_argument(
        "--http",
        action="store_true",
        help="Run HTTP server",
    )
    parser.add_argument(
        "--host", default="127.0.0.1", help="HTTP bind host (default 127.0.0.1)"
    )
    parser.add_argument("--port", type=int, default=8080, help="HTTP port")
    args = parser.parse_args()

    # Determine effective log level
    env_level = os.environ.get("WEMS_DS_LOG_LEVEL", "INFO").upper()
    effective_level = args.log_level or ("DEBUG" if args.verbose > 0 else env_level)
    # Apply early so subsequent imports use configured level
    setup_logging(effective_level)

    if args.http:
        if args.config:
            os.environ["WEMS_DS_CONFIG"] = args.config
        # Lazy import uvicorn only for HTTP mode
        import importlib

        uvicorn = importlib.import_module("uvicorn")
        app = create_app()
        uvicorn.run(
            app,
            host=args.host,
            port=args.port,  # type: ignore[attr-defined]
            log_level=effective_level.lower(),
        )
        return

    if not args.config:
        parser.error("--config is required unless --http is used")
    try:
        results = asyncio.run(_check(Path(args.config)))
    except (OSError, ValueError) as exc:
        parser.error(f"cannot load config {args.config}: {exc}")
    raise SystemExit(_report(results))


if __name__ == "__main__":
    main()
