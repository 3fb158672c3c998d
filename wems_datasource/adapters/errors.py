"""Error kinds raised by the WEMS datasource core.

=========================  ====================================================
Exception                  Raised when
=========================  ====================================================
BadRequestError            required query/resource parameters are missing or
                           blank; raised before any network call
TokenAcquisitionError      the token endpoint is unreachable or answers
                           non-200
UpstreamError              a data endpoint fails (transport, non-200) or
                           returns a payload that cannot be parsed
PassthroughError           a forwarded list endpoint answers non-200; carries
                           the original status and body for the caller
=========================  ====================================================

None of these are retried inside the core.
"""

from __future__ import annotations

from typing import Optional, Sequence


class WemsError(Exception):
    """Base class for datasource errors."""


class BadRequestError(WemsError):
    """Missing or blank required parameters.

    Attributes
    ----------
    missing: tuple[str, ...]
        Names of the missing parameters, in declaration order.
    """

    def __init__(self, message: str, missing: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing = tuple(missing)


class TokenAcquisitionError(WemsError):
    """Bearer token could not be obtained."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class UpstreamError(WemsError):
    """A WEMS data or list call failed."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: bytes = b"",
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class PassthroughError(UpstreamError):
    """Non-200 answer of a forwarded list call; status and body are kept as-is.

    Attributes
    ----------
    content_type: str
        Upstream `Content-Type`, or `application/json` when none was sent.
    """

    status: int

    def __init__(
        self, status: int, body: bytes, content_type: str = "application/json"
    ) -> None:
        super().__init__(f"WEMS API answered {status}", status=status, body=body)
        self.content_type = content_type


def missing_parameters(**params: Optional[str]) -> list[str]:
    """Return the names of blank parameters, keeping argument order."""
    return [name for name, value in params.items() if not value]
