"""Telemetry query executor against a mocked WEMS series endpoint."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from wems_datasource.adapters.errors import (
    BadRequestError,
    TokenAcquisitionError,
    UpstreamError,
)
from wems_datasource.domain.models import QueryDescriptor

SERIES_PATH = "/v1/endpoint/ep1/series/app1/svc1/power"
START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _descriptor(**overrides) -> QueryDescriptor:
    fields = dict(
        endpoint_id="ep1",
        appliance_id="app1",
        service_uri="svc1",
        data_point="power",
        time_from=START,
        time_to=START + timedelta(hours=1),
    )
    fields.update(overrides)
    return QueryDescriptor(**fields)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "blank", ["endpoint_id", "appliance_id", "service_uri", "data_point"]
)
async def test_blank_identifier_is_rejected_without_network(
    make_datasource, fake_wems, blank
):
    datasource = make_datasource()
    with pytest.raises(BadRequestError) as exc_info:
        await datasource.queries.execute(_descriptor(**{blank: ""}))
    assert exc_info.value.missing == (blank,)
    assert "Missing required query fields" in str(exc_info.value)
    assert fake_wems.calls == []


@pytest.mark.asyncio
async def test_all_blank_names_every_field(make_datasource, fake_wems):
    datasource = make_datasource()
    with pytest.raises(BadRequestError) as exc_info:
        await datasource.queries.execute(
            _descriptor(endpoint_id="", appliance_id="", service_uri="", data_point="")
        )
    assert exc_info.value.missing == (
        "endpoint_id",
        "appliance_id",
        "service_uri",
        "data_point",
    )
    assert fake_wems.calls == []


@pytest.mark.asyncio
async def test_value_coercion_keeps_upstream_order(make_datasource, fake_wems):
    fake_wems.route(
        "GET",
        SERIES_PATH,
        httpx.Response(
            200,
            json=[
                {"time": 0, "value": "3.5"},
                {"time": 1, "value": True},
                {"time": 2, "value": "notanumber"},
                {"time": 3, "value": 42},
            ],
        ),
    )
    datasource = make_datasource()
    series = await datasource.queries.execute(_descriptor())
    assert series.values == [3.5, 1.0, 0.0, 42.0]
    assert [int(ts.timestamp()) for ts in series.timestamps] == [0, 1, 2, 3]
    assert len(series) == 4


@pytest.mark.asyncio
async def test_points_are_not_resorted(make_datasource, fake_wems):
    fake_wems.route(
        "GET",
        SERIES_PATH,
        httpx.Response(
            200, json=[{"time": 20, "value": 2}, {"time": 10, "value": 1}]
        ),
    )
    series = await make_datasource().queries.execute(_descriptor())
    assert [int(ts.timestamp()) for ts in series.timestamps] == [20, 10]
    assert series.values == [2.0, 1.0]


@pytest.mark.asyncio
async def test_request_carries_token_and_minimal_params(make_datasource, fake_wems):
    fake_wems.route("GET", SERIES_PATH, httpx.Response(200, json=[]))
    await make_datasource().queries.execute(_descriptor())

    (call,) = fake_wems.calls_to(SERIES_PATH)
    assert call.headers["authorization"] == "Bearer tok-1"
    assert call.headers["accept"] == "application/json"
    assert dict(call.url.params) == {"from": "1704067200", "to": "1704070800"}


@pytest.mark.asyncio
async def test_optional_params_are_sent_when_set(make_datasource, fake_wems):
    fake_wems.route("GET", SERIES_PATH, httpx.Response(200, json=[]))
    await make_datasource().queries.execute(
        _descriptor(
            max_data_points=500,
            interval=timedelta(seconds=30),
            aggregate_function="mean",
            create_empty_values=False,
        )
    )
    (call,) = fake_wems.calls_to(SERIES_PATH)
    assert dict(call.url.params) == {
        "from": "1704067200",
        "to": "1704070800",
        "limit": "500",
        "aggregateInterval": "30s",
        "aggregateFunction": "mean",
        "createEmptyValues": "false",
    }


@pytest.mark.asyncio
async def test_sub_second_interval_truncates(make_datasource, fake_wems):
    fake_wems.route("GET", SERIES_PATH, httpx.Response(200, json=[]))
    await make_datasource().queries.execute(
        _descriptor(interval=timedelta(milliseconds=1500), create_empty_values=True)
    )
    (call,) = fake_wems.calls_to(SERIES_PATH)
    assert call.url.params["aggregateInterval"] == "1s"
    assert call.url.params["createEmptyValues"] == "true"


@pytest.mark.asyncio
async def test_non_200_is_upstream_error_with_status_and_body(
    make_datasource, fake_wems
):
    fake_wems.route("GET", SERIES_PATH, httpx.Response(500, text="boom"))
    with pytest.raises(UpstreamError) as exc_info:
        await make_datasource().queries.execute(_descriptor())
    assert str(exc_info.value) == "WEMS API error: 500 Internal Server Error boom"
    assert exc_info.value.status == 500


@pytest.mark.asyncio
async def test_malformed_body_is_upstream_error(make_datasource, fake_wems):
    fake_wems.route("GET", SERIES_PATH, httpx.Response(200, text="{not json"))
    with pytest.raises(UpstreamError, match="Failed to decode WEMS response"):
        await make_datasource().queries.execute(_descriptor())


@pytest.mark.asyncio
async def test_transport_error_is_upstream_error(make_datasource, fake_wems):
    def broken(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    fake_wems.route("GET", SERIES_PATH, broken)
    with pytest.raises(UpstreamError, match="Request failed"):
        await make_datasource().queries.execute(_descriptor())


@pytest.mark.asyncio
async def test_token_failure_propagates(make_datasource, fake_wems):
    fake_wems.route("POST", "/v1/token", httpx.Response(403, text="denied"))
    with pytest.raises(TokenAcquisitionError):
        await make_datasource().queries.execute(_descriptor())
    assert fake_wems.data_calls() == []


@pytest.mark.asyncio
async def test_non_200_error_embeds_the_whole_body(make_datasource, fake_wems):
    body = "e" * 2000
    fake_wems.route("GET", SERIES_PATH, httpx.Response(502, text=body))
    with pytest.raises(UpstreamError) as exc_info:
        await make_datasource().queries.execute(_descriptor())
    assert str(exc_info.value) == f"WEMS API error: 502 Bad Gateway {body}"


@pytest.mark.asyncio
async def test_control_character_in_identifier_is_upstream_error(
    make_datasource, fake_wems
):
    with pytest.raises(UpstreamError, match="Request failed"):
        await make_datasource().queries.execute(_descriptor(appliance_id="app\n1"))
    assert fake_wems.data_calls() == []
