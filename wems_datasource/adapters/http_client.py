"""Bounded-timeout HTTP executor for WEMS API calls.

Every upstream request of a datasource instance goes through one
:class:`WemsHttpClient`. It owns the shared ``httpx.AsyncClient``, applies a
per-call timeout, attaches the bearer token and logs each exchange with the
current request correlation id. It never retries and never interprets status
codes; callers decide what a non-200 answer means.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Mapping, Optional, Union

import httpx

from .. import __version__
from ..utils.correlation import get_request_id

logger = logging.getLogger(__name__)

TOKEN_TIMEOUT_SECONDS = 10.0
LIST_TIMEOUT_SECONDS = 20.0
MODEL_LOOKUP_TIMEOUT_SECONDS = 10.0

_BODY_PREVIEW_CHARS = 500

# Raised while building or sending a request. `InvalidURL` is not an
# `HTTPError`; it comes from identifiers carrying control characters.
TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


def body_text(content: bytes) -> str:
    """Decode a whole response body for error messages."""
    return content.decode("utf-8", errors="replace")


def body_preview(content: bytes) -> str:
    """Decode a response body for log messages, truncated."""
    text = body_text(content)
    if len(text) <= _BODY_PREVIEW_CHARS:
        return text
    return text[:_BODY_PREVIEW_CHARS] + "..."


def status_text(response: httpx.Response) -> str:
    """Return ``"<code> <reason>"`` for a response, e.g. ``"404 Not Found"``."""
    reason = response.reason_phrase
    return f"{response.status_code} {reason}" if reason else str(response.status_code)


class WemsHttpClient:
    """Thin wrapper around ``httpx.AsyncClient``.

    Parameters
    ----------
    base_url: str
        Normalized WEMS base URL (no trailing slash). Paths passed to
        :meth:`request` are appended verbatim.

    Attributes
    ----------
    _client: httpx.AsyncClient
        Shared async client. Replaceable via
        :meth:`inject_http_client_for_testing`.
    """

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url
        self._client = httpx.AsyncClient(
            headers={"User-Agent": f"wems-datasource/{__version__}"}
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def inject_http_client_for_testing(self, client: httpx.AsyncClient) -> None:
        """Replace underlying HTTP client (testing only).

        Unit tests pass an ``httpx.AsyncClient`` built on
        ``httpx.MockTransport``.
        """
        self._client = client

    def url(self, path: str) -> str:
        """Join the base URL and an API path such as ``/v1/token``."""
        return f"{self._base_url}{path}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        token: Optional[str] = None,
        params: Optional[Mapping[str, str]] = None,
        json: Any = None,
    ) -> httpx.Response:
        """Send one request and return the fully read response.

        Parameters
        ----------
        method: str
            HTTP method.
        path: str
            API path appended to the base URL; may carry a query string.
        timeout: float
            Total timeout in seconds for this call.
        token: Optional[str]
            Bearer token; adds ``Authorization`` and ``Accept`` headers.
        params: Optional[Mapping[str, str]]
            Query parameters, sent in mapping order.
        json: Any
            JSON body.

        Raises
        ------
        httpx.HTTPError
            On transport errors and timeouts.
        httpx.InvalidURL
            If the path cannot form a valid URL.
        """
        headers: Dict[str, Union[str, bytes]] = {}
        if token is not None:
            # Tokens keep undecodable bytes as surrogates; send them back as-is.
            headers["Authorization"] = f"Bearer {token}".encode(
                "utf-8", "surrogateescape"
            )
            headers["Accept"] = "application/json"
        started = time.monotonic()
        logger.debug(
            "wems.http.request",
            extra={
                "req_id": get_request_id(),
                "method": method,
                "path": path,
                "timeout_seconds": timeout,
            },
        )
        try:
            response = await self._client.request(
                method,
                self.url(path),
                headers=headers,
                params=dict(params) if params else None,
                json=json,
                timeout=timeout,
            )
        except httpx.TimeoutException:
            logger.warning(
                "wems.http.timeout",
                extra={
                    "req_id": get_request_id(),
                    "method": method,
                    "path": path,
                    "timeout_seconds": timeout,
                },
            )
            raise
        logger.debug(
            "wems.http.response",
            extra={
                "req_id": get_request_id(),
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return response

    async def aclose(self) -> None:
        """Close the underlying client."""
        await self._client.aclose()
