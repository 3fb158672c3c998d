"""WEMS datasource core and instance registry."""

from __future__ import annotations

import logging
from typing import Dict

from .wems import WemsDatasource

_datasources: Dict[str, WemsDatasource] = {}


def register_datasource(uid: str, datasource: WemsDatasource) -> None:
    """Register a datasource instance under its host `uid`."""
    _datasources[uid] = datasource


def get_datasource(uid: str) -> WemsDatasource:
    """Retrieve a registered datasource by `uid`."""
    return _datasources[uid]


def get_available_datasource_ids() -> list[str]:
    """Get list of registered datasource uids."""
    return list(_datasources.keys())


def get_datasources() -> Dict[str, WemsDatasource]:
    """Return a snapshot of the registry."""
    return dict(_datasources)


def log_datasource_status() -> None:
    """Log which datasources are configured."""
    logger = logging.getLogger(__name__)

    if not _datasources:
        logger.warning(
            "No WEMS datasources configured. Queries and resource lists are "
            "unavailable.\n"
            "  - 💡 Set WEMS_DS_CONFIG to a JSON config file, or\n"
            "  - 💡 Set WEMS_DS_CLIENT_ID and WEMS_DS_CLIENT_SECRET for a "
            "single 'default' datasource"
        )
    else:
        info = [f"'{uid}' ({ds.base_url})" for uid, ds in _datasources.items()]
        logger.info("WEMS datasources configured: %s", ", ".join(info))


def reset_datasources() -> None:
    """Test-only helper to clear registered datasources."""
    _datasources.clear()
