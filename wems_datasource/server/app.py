"""Datasource server lifecycle.

Loads datasource instances from configuration into the registry, prefetches
their first token on start and releases their HTTP clients on stop. Used by
both the HTTP app (lifespan) and the CLI.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..adapters import (
    get_available_datasource_ids,
    get_datasource,
    get_datasources,
    register_datasource,
)
from ..adapters.errors import TokenAcquisitionError
from ..adapters.wems import WemsDatasource
from ..config.models import (
    AppConfig,
    DatasourceInstanceSettings,
    DatasourceSettings,
    EnvSettings,
)
from ..schemas.wems_contract import HealthResult

logger = logging.getLogger(__name__)

DEFAULT_UID = "default"


def register_from_settings(
    uid: str, blob: DatasourceInstanceSettings
) -> WemsDatasource:
    """Create a datasource from a host settings blob and register it.

    Raises
    ------
    ValueError
        If the blob does not validate.
    """
    settings = DatasourceSettings.from_instance_settings(blob)
    datasource = WemsDatasource.from_settings(settings)
    register_datasource(uid, datasource)
    return datasource


def load_datasources(
    config_path: Optional[Path], settings: Optional[EnvSettings] = None
) -> List[str]:
    """Register every configured datasource and return their uids.

    Datasources come from the JSON config file, plus a ``default`` one from
    ``WEMS_DS_CLIENT_ID``/``WEMS_DS_CLIENT_SECRET`` unless the file already
    defines that uid.

    Raises
    ------
    OSError
        If the config file cannot be read.
    ValueError
        If the config file or a settings blob does not validate.
    """
    registered: List[str] = []
    if config_path is not None:
        cfg = AppConfig.load(config_path)
        for uid, blob in cfg.datasources.items():
            register_from_settings(uid, blob)
            registered.append(uid)
    if settings is not None and DEFAULT_UID not in registered:
        blob = settings.default_instance_settings()
        if blob is not None:
            register_from_settings(DEFAULT_UID, blob)
            registered.append(DEFAULT_UID)
    return registered


async def dispose_datasources() -> None:
    """Close the HTTP client of every registered datasource."""
    for datasource in get_datasources().values():
        await datasource.dispose()


class DatasourceServer:
    """Lifecycle owner of the registered datasources."""

    def __init__(self) -> None:
        self._started: bool = False

    async def start(self) -> List[Dict[str, Any]]:
        """Prefetch tokens for datasources that ask for it.

        Idempotent. Token failures are reported, not raised; the datasource
        stays registered and retries on its next call.

        Returns
        -------
        List[Dict[str, Any]]
            One connection status per prefetching datasource.
        """
        if self._started:
            logger.debug("server.start no-op: already started")
            return []
        self._started = True
        connections: List[Dict[str, Any]] = []
        for uid, datasource in get_datasources().items():
            if not datasource.prefetch_token:
                continue
            status: Dict[str, Any] = {"uid": uid, "ok": False}
            try:
                await datasource.tokens.ensure_valid_token()
                status["ok"] = True
            except TokenAcquisitionError as exc:
                status["error"] = str(exc)
            connections.append(status)
        logger.info("server.started")
        return connections

    async def stop(self) -> None:
        """Dispose every registered datasource. Idempotent."""
        if not self._started:
            logger.debug("server.stop no-op: not started")
            return
        self._started = False
        await dispose_datasources()
        logger.info("server.stopped")

    async def check_all(self) -> Dict[str, HealthResult]:
        """Run the health check of every registered datasource."""
        results: Dict[str, HealthResult] = {}
        for uid in get_available_datasource_ids():
            results[uid] = await get_datasource(uid).check_health()
        return results
