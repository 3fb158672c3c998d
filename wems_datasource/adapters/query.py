"""Telemetry query execution.

:class:`TelemetryQueryExecutor` turns one :class:`QueryDescriptor` into one
``GET {base_url}/v1/endpoint/{endpoint}/series/{appliance}/{service}/{point}``
call and normalizes the answer into a :class:`TimeSeries`.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Dict, List

from pydantic import TypeAdapter, ValidationError

from ..domain.models import QueryDescriptor, TimeSeries
from ..schemas.wems_contract import TimeSeriesDataPoint
from ..utils.correlation import get_request_id
from .errors import BadRequestError, UpstreamError, missing_parameters
from .http_client import (
    LIST_TIMEOUT_SECONDS,
    TRANSPORT_ERRORS,
    WemsHttpClient,
    body_preview,
    body_text,
    status_text,
)
from .token import TokenManager

logger = logging.getLogger(__name__)

_POINTS_ADAPTER = TypeAdapter(List[TimeSeriesDataPoint])


def _unix_seconds(instant: datetime) -> int:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return math.floor(instant.timestamp())


def series_path(descriptor: QueryDescriptor) -> str:
    """Return the series API path for a descriptor."""
    return (
        f"/v1/endpoint/{descriptor.endpoint_id}/series/{descriptor.appliance_id}"
        f"/{descriptor.service_uri}/{descriptor.data_point}"
    )


def series_params(descriptor: QueryDescriptor) -> Dict[str, str]:
    """Build the series query parameters.

    ``from``/``to`` are always sent; the others only when set.
    """
    params = {
        "from": str(_unix_seconds(descriptor.time_from)),
        "to": str(_unix_seconds(descriptor.time_to)),
    }
    if descriptor.max_data_points > 0:
        params["limit"] = str(descriptor.max_data_points)
    if descriptor.interval.total_seconds() > 0:
        params["aggregateInterval"] = f"{int(descriptor.interval.total_seconds())}s"
    if descriptor.aggregate_function:
        params["aggregateFunction"] = descriptor.aggregate_function
    if descriptor.create_empty_values is not None:
        params["createEmptyValues"] = str(descriptor.create_empty_values).lower()
    return params


def validate_descriptor(descriptor: QueryDescriptor) -> None:
    """Reject descriptors with a blank identifying field.

    Raises
    ------
    BadRequestError
        Naming every blank field.
    """
    missing = missing_parameters(
        endpoint_id=descriptor.endpoint_id,
        appliance_id=descriptor.appliance_id,
        service_uri=descriptor.service_uri,
        data_point=descriptor.data_point,
    )
    if missing:
        raise BadRequestError(
            f"Missing required query fields: {', '.join(missing)}", missing=missing
        )


class TelemetryQueryExecutor:
    """Executes dashboard queries against the WEMS series endpoint."""

    def __init__(self, http: WemsHttpClient, tokens: TokenManager) -> None:
        self._http = http
        self._tokens = tokens

    async def execute(self, descriptor: QueryDescriptor) -> TimeSeries:
        """Fetch and normalize one series.

        Raises
        ------
        BadRequestError
            A mandatory field is blank; no network call was made.
        TokenAcquisitionError
            No valid token could be obtained.
        UpstreamError
            Transport failure, non-200 status or undecodable body.
        """
        validate_descriptor(descriptor)
        token = await self._tokens.ensure_valid_token()

        path = series_path(descriptor)
        try:
            response = await self._http.request(
                "GET",
                path,
                timeout=LIST_TIMEOUT_SECONDS,
                token=token,
                params=series_params(descriptor),
            )
        except TRANSPORT_ERRORS as exc:
            raise UpstreamError(f"Request failed: {exc}") from exc

        if response.status_code != 200:
            preview = body_preview(response.content)
            logger.error(
                "wems.query.status_error",
                extra={
                    "req_id": get_request_id(),
                    "path": path,
                    "status": response.status_code,
                    "body_preview": preview,
                },
            )
            detail = body_text(response.content)
            raise UpstreamError(
                f"WEMS API error: {status_text(response)} {detail}",
                status=response.status_code,
                body=response.content,
            )

        try:
            points = _POINTS_ADAPTER.validate_json(response.content)
            series = TimeSeries.from_points(points)
        except (ValidationError, ValueError, OverflowError, OSError) as exc:
            raise UpstreamError(f"Failed to decode WEMS response: {exc}") from exc

        logger.debug(
            "wems.query.done",
            extra={"req_id": get_request_id(), "path": path, "points": len(series)},
        )
        return series
