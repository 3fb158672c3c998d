"""Request/response models for the datasource HTTP surface."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, Field

from ..schemas.wems_contract import DataResponse


class QueryDataRequest(BaseModel):
    """Body of ``POST /datasources/{uid}/query``.

    Queries stay raw here: each one is validated on its own so that a
    malformed query only fails its own ``refId``.
    """

    queries: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Dashboard queries (refId, identifiers, timeRange).",
    )


class QueryDataResponse(BaseModel):
    """Per-query results keyed by ``refId``."""

    results: Dict[str, DataResponse] = Field(default_factory=dict)


class DatasourceInfo(BaseModel):
    """Public view of a configured datasource (no secrets)."""

    uid: str
    base_url: str


class DatasourceListResponse(BaseModel):
    """Response of ``GET /datasources``."""

    datasources: List[DatasourceInfo] = Field(default_factory=list)
