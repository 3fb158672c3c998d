"""Bearer-token lifecycle for one WEMS datasource instance.

:class:`TokenManager` owns the single cached token of an instance and its
expiry. :meth:`TokenManager.ensure_valid_token` is the only way callers get a
token: under an ``asyncio.Lock`` it returns the cached token while it stays
valid for at least :data:`SAFETY_MARGIN_SECONDS`, and otherwise requests a
new one from ``POST {base_url}/v1/token``. Concurrent callers queue on the
lock, so at most one token request is in flight per instance and nobody sees
a half-written token.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from ..config.models import DEFAULT_TOKEN_VALIDITY_SECONDS, Credentials
from ..schemas.wems_contract import TokenRequest
from ..utils.correlation import get_request_id
from .errors import TokenAcquisitionError
from .http_client import (
    TOKEN_TIMEOUT_SECONDS,
    TRANSPORT_ERRORS,
    WemsHttpClient,
    body_preview,
    body_text,
    status_text,
)

logger = logging.getLogger(__name__)

SAFETY_MARGIN_SECONDS = 60.0
TOKEN_PATH = "/v1/token"


class TokenManager:
    """Cached WEMS bearer token with serialized refresh.

    Parameters
    ----------
    credentials: Credentials
        Client id/secret used in the token request.
    http: WemsHttpClient
        Executor shared with the other components of the instance.
    validity_seconds: float
        Lifetime assumed for a freshly issued token.
    clock: Callable[[], float]
        Monotonic clock in seconds; injectable for tests.
    """

    def __init__(
        self,
        credentials: Credentials,
        http: WemsHttpClient,
        *,
        validity_seconds: float = DEFAULT_TOKEN_VALIDITY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._credentials = credentials
        self._http = http
        self._validity_seconds = float(validity_seconds)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._token: Optional[str] = None
        self._expires_at: float = 0.0

    @property
    def token(self) -> Optional[str]:
        """Currently cached token, valid or not (diagnostics only)."""
        return self._token

    @property
    def expires_in(self) -> Optional[float]:
        """Seconds until the cached token expires, or ``None`` without one."""
        if self._token is None:
            return None
        return self._expires_at - self._clock()

    def _is_fresh(self) -> bool:
        return (
            self._token is not None
            and self._clock() < self._expires_at - SAFETY_MARGIN_SECONDS
        )

    async def ensure_valid_token(self) -> str:
        """Return a token valid for at least the safety margin.

        Raises
        ------
        TokenAcquisitionError
            If a refresh was needed and failed. The cached token is left as
            it was before the attempt.
        """
        async with self._lock:
            if self._is_fresh():
                return self._token  # type: ignore[return-value]
            token = await self._request_token()
            self._token = token
            self._expires_at = self._clock() + self._validity_seconds
            logger.info(
                "wems.token.refreshed",
                extra={
                    "req_id": get_request_id(),
                    "base_url": self._credentials.base_url,
                    "valid_for_seconds": self._validity_seconds,
                },
            )
            return token

    async def _request_token(self) -> str:
        payload = TokenRequest(
            client_id=self._credentials.client_id,
            client_secret=self._credentials.client_secret,
        ).model_dump()
        logger.debug(
            "wems.token.request",
            extra={"req_id": get_request_id(), "base_url": self._credentials.base_url},
        )
        try:
            response = await self._http.request(
                "POST", TOKEN_PATH, timeout=TOKEN_TIMEOUT_SECONDS, json=payload
            )
        except TRANSPORT_ERRORS as exc:
            logger.warning(
                "wems.token.transport_error",
                extra={"req_id": get_request_id(), "error": str(exc)},
            )
            raise TokenAcquisitionError(f"failed to get WEMS token: {exc}") from exc

        if response.status_code != 200:
            detail = body_text(response.content)
            preview = body_preview(response.content)
            logger.error(
                "wems.token.status_error",
                extra={
                    "req_id": get_request_id(),
                    "status": response.status_code,
                    "body_preview": preview,
                },
            )
            raise TokenAcquisitionError(
                f"WEMS token request failed: {status_text(response)} {detail}",
                status=response.status_code,
                body=detail,
            )

        # The body itself is the token; it is not JSON-encoded. Bytes that are
        # not UTF-8 survive as surrogates and are re-encoded on the wire.
        return response.content.decode("utf-8", errors="surrogateescape")
