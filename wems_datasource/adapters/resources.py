"""Resource discovery for the cascading query editor.

The four list operations walk the WEMS hierarchy one level at a time::

    endpoint-list   GET /v1/endpoint/                                  (as-is)
    appliance-list  GET /v1/endpoint/{e}/description                   (flattened)
                    + GET /v1/component/appliance/{ref} per appliance  (enrichment)
    service-list    GET /v1/endpoint/{e}/values/{a}                    (keys)
    datapoint-list  GET /v1/endpoint/{e}/values/{a}/{s}                (as-is)

Required parameters are checked before a token is requested. A non-200
answer of a primary list call is raised as :class:`PassthroughError` so the
caller can forward it untouched. Model lookups are best effort: any failure
leaves the appliance label without a model suffix.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from ..schemas.wems_contract import (
    Appliance,
    ApplianceModel,
    EndpointDescription,
    ResourceNode,
    ServiceNode,
)
from ..utils.correlation import get_request_id
from ..utils.fanout import gather_bounded
from .errors import BadRequestError, PassthroughError, UpstreamError, missing_parameters
from .http_client import (
    LIST_TIMEOUT_SECONDS,
    MODEL_LOOKUP_TIMEOUT_SECONDS,
    TRANSPORT_ERRORS,
    WemsHttpClient,
)
from .token import TokenManager

logger = logging.getLogger(__name__)

DESCRIPTION_PARAMS = {"includeApplianceConfiguration": "false", "draft": "false"}

_DESCRIPTION_ADAPTER = TypeAdapter(Optional[EndpointDescription])
_SERVICES_ADAPTER = TypeAdapter(Optional[Dict[str, Any]])


def _require(**params: Optional[str]) -> None:
    missing = missing_parameters(**params)
    if missing:
        raise BadRequestError(
            f"Missing {', '.join(missing)} parameter", missing=missing
        )


def base_label(appliance: Appliance, process_name: str) -> str:
    """Label of an appliance before model enrichment.

    Friendly name, or the id when the name is blank, followed by
    ``" (process)"`` when the owning process is named.
    """
    label = appliance.friendly_name or appliance.id
    if process_name:
        label = f"{label} ({process_name})"
    return label


class ResourceAggregator:
    """Serves the four resource lists of one datasource instance.

    Parameters
    ----------
    http: WemsHttpClient
        Shared executor of the instance.
    tokens: TokenManager
        Token source of the instance.
    fan_out_limit: int
        Cap on concurrent model lookups; ``0`` runs all of them at once.
    """

    def __init__(
        self, http: WemsHttpClient, tokens: TokenManager, *, fan_out_limit: int = 0
    ) -> None:
        self._http = http
        self._tokens = tokens
        self._fan_out_limit = fan_out_limit

    async def _get(
        self,
        path: str,
        token: str,
        *,
        params: Optional[Dict[str, str]] = None,
    ) -> bytes:
        try:
            response = await self._http.request(
                "GET", path, timeout=LIST_TIMEOUT_SECONDS, token=token, params=params
            )
        except TRANSPORT_ERRORS as exc:
            raise UpstreamError(f"Request failed: {exc}") from exc
        if response.status_code != 200:
            logger.info(
                "wems.resources.passthrough",
                extra={
                    "req_id": get_request_id(),
                    "path": path,
                    "status": response.status_code,
                },
            )
            raise PassthroughError(
                response.status_code,
                response.content,
                response.headers.get("content-type", "application/json"),
            )
        return response.content

    async def endpoint_list(self) -> bytes:
        """Return the raw endpoint list body."""
        token = await self._tokens.ensure_valid_token()
        return await self._get("/v1/endpoint/", token)

    async def appliance_list(self, endpoint_id: Optional[str]) -> List[ResourceNode]:
        """Return every appliance of an endpoint, labelled and model-enriched.

        Entries follow process order, then appliance order within a process,
        whatever order the model lookups complete in.

        Raises
        ------
        BadRequestError
            ``endpointId`` is blank.
        TokenAcquisitionError
            No token.
        PassthroughError
            The description call answered non-200.
        UpstreamError
            Transport failure or unparseable description.
        """
        _require(endpointId=endpoint_id)
        token = await self._tokens.ensure_valid_token()
        body = await self._get(
            f"/v1/endpoint/{endpoint_id}/description", token, params=DESCRIPTION_PARAMS
        )
        try:
            description = _DESCRIPTION_ADAPTER.validate_json(body)
        except ValidationError as exc:
            raise UpstreamError(f"Failed to parse appliances: {exc}") from exc
        if description is None:
            return []

        operations = [
            self._labelled(appliance, process.name, token)
            for process in description.processes
            for appliance in process.appliances
        ]
        nodes = await gather_bounded(
            operations, limit=self._fan_out_limit, operation_type="appliance_model"
        )
        logger.debug(
            "wems.resources.appliances",
            extra={
                "req_id": get_request_id(),
                "endpoint_id": endpoint_id,
                "count": len(nodes),
            },
        )
        return nodes

    async def _labelled(
        self, appliance: Appliance, process_name: str, token: str
    ) -> ResourceNode:
        label = base_label(appliance, process_name)
        if appliance.appliance_reference != 0:
            model = await self._model_name(appliance.appliance_reference, token)
            if model:
                label = f"{label} [{model}]"
        return ResourceNode(id=appliance.id, label=label)

    async def _model_name(self, reference: int, token: str) -> Optional[str]:
        """Look up the model friendly name; ``None`` on any failure."""
        path = f"/v1/component/appliance/{reference}"
        try:
            response = await self._http.request(
                "GET", path, timeout=MODEL_LOOKUP_TIMEOUT_SECONDS, token=token
            )
            if response.status_code != 200:
                logger.debug(
                    "wems.resources.model_lookup_status",
                    extra={
                        "req_id": get_request_id(),
                        "reference": reference,
                        "status": response.status_code,
                    },
                )
                return None
            return ApplianceModel.model_validate_json(response.content).friendly_name
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            logger.debug(
                "wems.resources.model_lookup_failed",
                extra={
                    "req_id": get_request_id(),
                    "reference": reference,
                    "error": str(exc),
                },
            )
            return None

    async def service_list(
        self, endpoint_id: Optional[str], appliance_id: Optional[str]
    ) -> List[ServiceNode]:
        """Return one node per top-level key of the appliance values document.

        The order follows the upstream document.
        """
        _require(endpointId=endpoint_id, applianceId=appliance_id)
        token = await self._tokens.ensure_valid_token()
        path = f"/v1/endpoint/{endpoint_id}/values/{appliance_id}"
        body = await self._get(path, token)
        try:
            values = _SERVICES_ADAPTER.validate_json(body)
        except ValidationError as exc:
            raise UpstreamError(f"Failed to parse service list: {exc}") from exc
        return [ServiceNode(uri=key, label=key) for key in (values or {})]

    async def datapoint_list(
        self,
        endpoint_id: Optional[str],
        appliance_id: Optional[str],
        service_uri: Optional[str],
    ) -> bytes:
        """Return the raw data-point document of one service."""
        _require(
            endpointId=endpoint_id, applianceId=appliance_id, serviceUri=service_uri
        )
        token = await self._tokens.ensure_valid_token()
        return await self._get(
            f"/v1/endpoint/{endpoint_id}/values/{appliance_id}/{service_uri}", token
        )
