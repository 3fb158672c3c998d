"""Wire models for the WEMS API and the host-facing datasource surface.

Upstream models mirror the JSON documents exchanged with the WEMS REST API
(token request, endpoint description, appliance component, time-series
points). Host-facing models describe what the dashboard host sends to and
receives from this backend (queries, resource nodes, health results).

Upstream models ignore unknown fields since the WEMS API returns more than
this backend consumes.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Upstream (WEMS API)
# ---------------------------------------------------------------------------


class TokenRequest(BaseModel):
    """Payload for ``POST /v1/token``.

    Only the fields required to obtain a super token are sent.
    """

    application_components: Dict[str, List[str]] = Field(default_factory=dict)
    client_id: str
    client_secret: str
    endpoints: Dict[str, List[str]] = Field(default_factory=dict)
    platform_scopes: List[str] = Field(default_factory=list)
    super_token: bool = True


class Appliance(BaseModel):
    """Appliance entry of an endpoint description."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = ""
    friendly_name: str = Field("", alias="friendlyName")
    appliance_reference: int = Field(0, alias="applianceReference")

    @field_validator("friendly_name", mode="before")
    @classmethod
    def _none_name_is_blank(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("appliance_reference", mode="before")
    @classmethod
    def _none_reference_is_unset(cls, value: Any) -> Any:
        return 0 if value is None else value


class Process(BaseModel):
    """Process of an endpoint description; groups appliances."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    name: str = ""
    appliances: List[Appliance] = Field(default_factory=list)

    @field_validator("name", mode="before")
    @classmethod
    def _none_name_is_blank(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("appliances", mode="before")
    @classmethod
    def _none_appliances_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class EndpointDescription(BaseModel):
    """Response of ``GET /v1/endpoint/{id}/description``."""

    model_config = ConfigDict(extra="ignore")

    processes: List[Process] = Field(default_factory=list)

    @field_validator("processes", mode="before")
    @classmethod
    def _none_processes_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class ApplianceModel(BaseModel):
    """Response of ``GET /v1/component/appliance/{ref}``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    friendly_name: Optional[str] = Field(None, alias="friendlyName")


class TimeSeriesDataPoint(BaseModel):
    """One point of ``GET /v1/endpoint/{id}/series/...``.

    ``value`` keeps whatever JSON type the API sent; it is resolved to a
    number by :mod:`wems_datasource.domain.utils.values`.
    """

    model_config = ConfigDict(extra="ignore")

    time: int = 0
    value: Any = None

    @field_validator("time", mode="before")
    @classmethod
    def _none_time_is_epoch(cls, value: Any) -> Any:
        return 0 if value is None else value


# ---------------------------------------------------------------------------
# Host-facing
# ---------------------------------------------------------------------------


class ResourcePath(str, Enum):
    """Resource-list operations exposed to the host."""

    ENDPOINT_LIST = "endpoint-list"
    APPLIANCE_LIST = "appliance-list"
    SERVICE_LIST = "service-list"
    DATAPOINT_LIST = "datapoint-list"


class ResourceNode(BaseModel):
    """Generic ``{id, label}`` node of a cascading resource list."""

    id: str
    label: str


class ServiceNode(BaseModel):
    """Service node; the service URI doubles as its label."""

    uri: str
    label: str


def _from_epoch_ms(millis: float) -> datetime:
    try:
        return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"timestamp out of range: {millis}") from exc


def _parse_instant(value: Any) -> Any:
    """Accept epoch milliseconds (int/float/numeric string) or ISO-8601."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return _from_epoch_ms(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return _from_epoch_ms(int(value))
    return value


class TimeRange(BaseModel):
    """Requested time range of a dashboard query."""

    model_config = ConfigDict(populate_by_name=True)

    from_: datetime = Field(..., alias="from")
    to: datetime

    @field_validator("from_", "to", mode="before")
    @classmethod
    def _parse(cls, value: Any) -> Any:
        return _parse_instant(value)


class DataQuery(BaseModel):
    """One dashboard query as sent by the host.

    Identifying fields default to blank so that a missing field surfaces as
    a bad-request result for that query instead of a model error.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ref_id: str = Field("A", alias="refId")
    endpoint_id: str = ""
    appliance_id: str = ""
    service_uri: str = ""
    data_point: str = ""
    aggregate_function: Optional[str] = None
    create_empty_values: Optional[bool] = None
    unit: Optional[str] = None
    max_data_points: int = Field(0, alias="maxDataPoints")
    interval_ms: float = Field(0, alias="intervalMs")
    time_range: TimeRange = Field(..., alias="timeRange")


class HealthStatus(str, Enum):
    """Health-check outcome."""

    OK = "OK"
    ERROR = "ERROR"


class HealthResult(BaseModel):
    """Result of the health-check operation."""

    status: HealthStatus
    message: str


class DataResponse(BaseModel):
    """Result of one query: frames on success, error text otherwise."""

    frames: List[Dict[str, Any]] = Field(default_factory=list)
    error: Optional[str] = None
    status: int = 200


class ResourceResponse(BaseModel):
    """Status code and raw body of a resource-list operation."""

    status: int
    body: bytes
    content_type: str = "application/json"

    def json_body(self) -> Union[List[Any], Dict[str, Any], Any]:
        """Decode the body as JSON (test and diagnostic helper)."""
        return json.loads(self.body)
