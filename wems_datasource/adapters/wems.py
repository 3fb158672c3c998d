"""WEMS datasource instance.

:class:`WemsDatasource` wires one set of credentials to its own HTTP client,
token manager, query executor and resource aggregator, and exposes the three
host operations: run queries, list a resource and check health. Errors of the
core are mapped here to the per-query and per-resource status codes the host
expects; nothing below this layer knows about HTTP status semantics of the
host surface.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Sequence

from ..config.models import Credentials, DatasourceSettings
from ..domain.models import QueryDescriptor
from ..schemas.wems_contract import (
    DataQuery,
    DataResponse,
    HealthResult,
    HealthStatus,
    ResourcePath,
    ResourceResponse,
)
from ..utils.correlation import get_request_id
from .errors import (
    BadRequestError,
    PassthroughError,
    TokenAcquisitionError,
    WemsError,
)
from .http_client import WemsHttpClient
from .query import TelemetryQueryExecutor
from .resources import ResourceAggregator
from .token import TokenManager

logger = logging.getLogger(__name__)

HEALTHY_MESSAGE = "Data source is working"


def _text(status: int, message: str) -> ResourceResponse:
    return ResourceResponse(
        status=status, body=message.encode("utf-8"), content_type="text/plain"
    )


def _json(payload: Any) -> ResourceResponse:
    return ResourceResponse(status=200, body=json.dumps(payload).encode("utf-8"))


class WemsDatasource:
    """One configured WEMS datasource.

    Parameters
    ----------
    credentials: Credentials
        Upstream credentials; never shared with another instance.
    token_validity_seconds: float
        Validity window assumed for each issued token.
    fan_out_limit: int
        Cap on concurrent appliance-model lookups (``0`` = unbounded).
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        token_validity_seconds: float = 1200,
        fan_out_limit: int = 0,
        prefetch_token: bool = True,
    ) -> None:
        self.credentials = credentials
        self.prefetch_token = prefetch_token
        self.http = WemsHttpClient(credentials.base_url)
        self.tokens = TokenManager(
            credentials, self.http, validity_seconds=token_validity_seconds
        )
        self.queries = TelemetryQueryExecutor(self.http, self.tokens)
        self.resources = ResourceAggregator(
            self.http, self.tokens, fan_out_limit=fan_out_limit
        )
        logger.info(
            "wems.datasource.init",
            extra={
                "base_url": credentials.base_url,
                "client_id": credentials.client_id,
                "token_validity_seconds": token_validity_seconds,
                "fan_out_limit": fan_out_limit,
            },
        )

    @classmethod
    def from_settings(cls, settings: DatasourceSettings) -> "WemsDatasource":
        """Create an instance from structured settings."""
        return cls(
            settings.credentials(),
            token_validity_seconds=settings.token_validity_seconds,
            fan_out_limit=settings.fan_out_limit,
            prefetch_token=settings.prefetch_token,
        )

    @property
    def base_url(self) -> str:
        return self.credentials.base_url

    # ---------------- Run queries ----------------
    async def query_data(
        self, queries: Sequence[Mapping[str, Any]]
    ) -> Dict[str, DataResponse]:
        """Run every query and key its result by ``refId``.

        Queries run one after the other; a failing query yields an error
        result and does not affect the others. A later query with the same
        ``refId`` replaces an earlier result.
        """
        results: Dict[str, DataResponse] = {}
        for raw in queries:
            ref_id = str(raw.get("refId", "A")) if isinstance(raw, Mapping) else "A"
            results[ref_id] = await self._query(raw)
        return results

    async def _query(self, raw: Any) -> DataResponse:
        try:
            query = DataQuery.model_validate(raw)
            descriptor = QueryDescriptor.from_data_query(query)
        except (ValueError, OverflowError) as exc:
            return DataResponse(error=f"json unmarshal: {exc}", status=400)
        try:
            series = await self.queries.execute(descriptor)
        except BadRequestError as exc:
            return DataResponse(error=str(exc), status=400)
        except TokenAcquisitionError as exc:
            logger.warning(
                "wems.query.token_error",
                extra={"req_id": get_request_id(), "ref_id": query.ref_id},
            )
            return DataResponse(error=f"Token error: {exc}", status=500)
        except WemsError as exc:
            logger.warning(
                "wems.query.failed",
                extra={
                    "req_id": get_request_id(),
                    "ref_id": query.ref_id,
                    "error": str(exc),
                },
            )
            return DataResponse(error=str(exc), status=500)
        return DataResponse(frames=[series.to_frame(unit=query.unit)])

    # ---------------- List resource ----------------
    async def call_resource(
        self, path: str, params: Optional[Mapping[str, str]] = None
    ) -> ResourceResponse:
        """Serve one resource-list call.

        Parameters
        ----------
        path: str
            One of the :class:`ResourcePath` values.
        params: Optional[Mapping[str, str]]
            Query-string parameters (``endpointId``, ``applianceId``,
            ``serviceUri``).

        Returns
        -------
        ResourceResponse
            200 with a JSON body, the upstream status and body for a
            forwarded non-200 answer, or a plain-text error (400, 404, 500).
        """
        params = params or {}
        try:
            resource = ResourcePath(path)
        except ValueError:
            return _text(404, "Not found")

        try:
            if resource is ResourcePath.ENDPOINT_LIST:
                body = await self.resources.endpoint_list()
                return ResourceResponse(status=200, body=body)
            if resource is ResourcePath.APPLIANCE_LIST:
                nodes = await self.resources.appliance_list(params.get("endpointId"))
                return _json([node.model_dump() for node in nodes])
            if resource is ResourcePath.SERVICE_LIST:
                services = await self.resources.service_list(
                    params.get("endpointId"), params.get("applianceId")
                )
                return _json([service.model_dump() for service in services])
            body = await self.resources.datapoint_list(
                params.get("endpointId"),
                params.get("applianceId"),
                params.get("serviceUri"),
            )
            return ResourceResponse(status=200, body=body)
        except BadRequestError as exc:
            return _text(400, str(exc))
        except TokenAcquisitionError as exc:
            return _text(500, f"Token error: {exc}")
        except PassthroughError as exc:
            return ResourceResponse(
                status=exc.status, body=exc.body, content_type=exc.content_type
            )
        except WemsError as exc:
            logger.warning(
                "wems.resources.failed",
                extra={"req_id": get_request_id(), "path": path, "error": str(exc)},
            )
            return _text(500, str(exc))

    # ---------------- Check health ----------------
    async def check_health(self) -> HealthResult:
        """Report whether a token can be obtained."""
        try:
            await self.tokens.ensure_valid_token()
        except TokenAcquisitionError as exc:
            return HealthResult(
                status=HealthStatus.ERROR, message=f"Token error: {exc}"
            )
        return HealthResult(status=HealthStatus.OK, message=HEALTHY_MESSAGE)

    async def dispose(self) -> None:
        """Release the HTTP client of this instance."""
        await self.http.aclose()
