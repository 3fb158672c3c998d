"""Token manager: caching, refresh window, serialization and failures."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from wems_datasource.adapters.errors import TokenAcquisitionError
from wems_datasource.adapters.http_client import WemsHttpClient
from wems_datasource.adapters.token import SAFETY_MARGIN_SECONDS, TokenManager
from wems_datasource.config.models import Credentials


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def manager(fake_wems, clock) -> TokenManager:
    credentials = Credentials(
        client_id="cid", client_secret="secret", base_url="https://wems.test/wems"
    )
    http = WemsHttpClient(credentials.base_url)
    http.inject_http_client_for_testing(fake_wems.client())
    return TokenManager(credentials, http, validity_seconds=1200, clock=clock)


@pytest.mark.asyncio
async def test_cold_call_fetches_once_then_serves_cache(manager, fake_wems, clock):
    assert await manager.ensure_valid_token() == "tok-1"
    for _ in range(3):
        clock.now += 300  # 900s in total, well before expiry minus margin
        assert await manager.ensure_valid_token() == "tok-1"
    assert len(fake_wems.calls_to("/v1/token")) == 1


@pytest.mark.asyncio
async def test_token_request_payload_and_headers(manager, fake_wems):
    await manager.ensure_valid_token()
    (call,) = fake_wems.calls_to("/v1/token")
    assert call.method == "POST"
    assert str(call.url) == "https://wems.test/wems/v1/token"
    assert json.loads(call.content) == {
        "application_components": {},
        "client_id": "cid",
        "client_secret": "secret",
        "endpoints": {},
        "platform_scopes": [],
        "super_token": True,
    }
    assert "authorization" not in call.headers


@pytest.mark.asyncio
async def test_refresh_inside_safety_margin(manager, fake_wems, clock):
    bodies = iter(["tok-1", "tok-2"])
    fake_wems.route(
        "POST", "/v1/token", lambda _req: httpx.Response(200, text=next(bodies))
    )
    assert await manager.ensure_valid_token() == "tok-1"

    clock.now += 1200 - SAFETY_MARGIN_SECONDS - 1
    assert await manager.ensure_valid_token() == "tok-1"

    clock.now += 1
    assert await manager.ensure_valid_token() == "tok-2"
    assert len(fake_wems.calls_to("/v1/token")) == 2
    assert manager.expires_in == pytest.approx(1200)


@pytest.mark.asyncio
async def test_body_is_taken_verbatim(manager, fake_wems):
    fake_wems.route("POST", "/v1/token", httpx.Response(200, text='"quoted"\n'))
    assert await manager.ensure_valid_token() == '"quoted"\n'


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(manager, fake_wems):
    async def slow_token(_request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.01)
        return httpx.Response(200, text="tok-1")

    fake_wems.route("POST", "/v1/token", slow_token)
    tokens = await asyncio.gather(*(manager.ensure_valid_token() for _ in range(10)))
    assert tokens == ["tok-1"] * 10
    assert len(fake_wems.calls_to("/v1/token")) == 1


@pytest.mark.asyncio
async def test_non_200_on_cold_instance_leaves_no_token(manager, fake_wems):
    fake_wems.route("POST", "/v1/token", httpx.Response(401, text="bad credentials"))
    with pytest.raises(TokenAcquisitionError) as exc_info:
        await manager.ensure_valid_token()
    assert exc_info.value.status == 401
    assert "401 Unauthorized" in str(exc_info.value)
    assert "bad credentials" in str(exc_info.value)
    assert manager.token is None


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_token(manager, fake_wems, clock):
    await manager.ensure_valid_token()
    fake_wems.route("POST", "/v1/token", httpx.Response(500, text="down"))
    clock.now += 1200
    with pytest.raises(TokenAcquisitionError):
        await manager.ensure_valid_token()
    assert manager.token == "tok-1"
    assert len(fake_wems.calls_to("/v1/token")) == 2


@pytest.mark.asyncio
async def test_transport_error_is_token_acquisition_error(manager, fake_wems):
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    fake_wems.route("POST", "/v1/token", refuse)
    with pytest.raises(TokenAcquisitionError, match="failed to get WEMS token"):
        await manager.ensure_valid_token()
    assert manager.token is None


@pytest.mark.asyncio
async def test_no_retry_after_failure(manager, fake_wems):
    fake_wems.route("POST", "/v1/token", httpx.Response(503, text="busy"))
    with pytest.raises(TokenAcquisitionError):
        await manager.ensure_valid_token()
    assert len(fake_wems.calls_to("/v1/token")) == 1


@pytest.mark.asyncio
async def test_non_200_error_carries_the_whole_body(manager, fake_wems):
    body = "denied " * 200
    fake_wems.route("POST", "/v1/token", httpx.Response(401, text=body))
    with pytest.raises(TokenAcquisitionError) as exc_info:
        await manager.ensure_valid_token()
    assert str(exc_info.value) == f"WEMS token request failed: 401 Unauthorized {body}"
    assert exc_info.value.body == body


@pytest.mark.asyncio
async def test_non_utf8_token_is_sent_back_byte_for_byte(make_datasource, fake_wems):
    raw = b"tok-\xff\xfe"
    fake_wems.route("POST", "/v1/token", httpx.Response(200, content=raw))
    fake_wems.route("GET", "/v1/endpoint/", httpx.Response(200, json=[]))
    datasource = make_datasource()

    assert isinstance(await datasource.tokens.ensure_valid_token(), str)
    await datasource.resources.endpoint_list()

    (call,) = fake_wems.calls_to("/v1/endpoint/")
    sent = [value for key, value in call.headers.raw if key.lower() == b"authorization"]
    assert sent == [b"Bearer " + raw]
