#!/usr/bin/env python3
"""
Weather API tests — Open-Meteo + NWS payload parsing and client behavior.

The test_* functions run offline against canned payloads (pytest or
`python test_weather_apis.py --offline`).

Run without arguments for a smoke test against the live endpoints for one
resort (Crystal Mountain by default).  Pass a resort slug to test another:
    python test_weather_apis.py alta-ut
"""
from __future__ import annotations

import asyncio
import sys
import traceback

import aiohttp

import config
from utils.weather_client import (
    NWSClient,
    OpenMeteoClient,
    WeatherAPIError,
    _nws_grid_cache,
    _interval_start_date,
    nws_to_snow_map,
    parse_historical_response,
    parse_model_response,
    parse_nws_snowfall,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Canned payloads
# ═══════════════════════════════════════════════════════════════════════════════


def openmeteo_payload(hours=3, days=2, hrrr_cutoff=None):
    """A minimal single-model Open-Meteo response.

    With *hrrr_cutoff*, core hourly variables go null from that index on,
    the way a short-range model reports steps beyond its horizon.
    """
    times = [f"2026-02-18T{h:02d}:00" for h in range(hours)]

    def col(value):
        out = [value] * hours
        if hrrr_cutoff is not None:
            out[hrrr_cutoff:] = [None] * (hours - hrrr_cutoff)
        return out

    hourly = {
        "time": times,
        "temperature_2m": col(-6.0),
        "apparent_temperature": col(-11.0),
        "relative_humidity_2m": [85.0] * hours,
        "precipitation": col(0.4),
        "rain": [0.0] * hours,
        "snowfall": [0.28] * hours,
        "precipitation_probability": [None] * hours,
        "weather_code": [73] * hours,
        "wind_speed_10m": [12.0] * hours,
        "wind_direction_10m": [240.0] * hours,
        "wind_gusts_10m": [25.0] * hours,
        "freezing_level_height": col(900.0),
    }
    dates = [f"2026-02-{18 + d}" for d in range(days)]
    daily = {
        "time": dates,
        "weather_code": [73] * days,
        "temperature_2m_max": [-3.0] * days,
        "temperature_2m_min": [-9.0] * days,
        "apparent_temperature_max": [-7.0] * days,
        "apparent_temperature_min": [-16.0] * days,
        "uv_index_max": [1.5] * days,
        "precipitation_sum": [4.8] * days,
        "rain_sum": [0.0] * days,
        "snowfall_sum": [3.36] * days,
        "precipitation_probability_max": [80.0] * days,
        "wind_speed_10m_max": [30.0] * days,
        "wind_gusts_10m_max": [55.0] * days,
    }
    return {"latitude": 46.93, "longitude": -121.5, "hourly": hourly, "daily": daily}


NWS_GRID_PAYLOAD = {
    "properties": {
        "snowfallAmount": {
            "uom": "wmoUnit:mm",
            "values": [
                {"validTime": "2026-02-18T06:00:00+00:00/PT6H", "value": 25.4},
                {"validTime": "2026-02-18T12:00:00+00:00/PT6H", "value": 50.8},
                {"validTime": "2026-02-18T18:00:00+00:00/PT6H", "value": 0},
                {"validTime": "2026-02-19T00:00:00+00:00/PT12H", "value": 12.7},
                {"validTime": "2026-02-19T12:00:00+00:00/PT6H", "value": None},
                {"validTime": "garbage", "value": 10.0},
            ],
        }
    }
}


# ═══════════════════════════════════════════════════════════════════════════════
# 1. Open-Meteo forecast parsing
# ═══════════════════════════════════════════════════════════════════════════════


def test_parse_model_response_shapes():
    hourly, daily = parse_model_response(openmeteo_payload(), "gfs_seamless")
    assert len(hourly) == 3
    assert len(daily) == 2
    assert hourly.model == daily.model == "gfs_seamless"
    assert hourly.fields["temperature_2m"] == [-6.0, -6.0, -6.0]
    assert "snow_depth" not in hourly.fields


def test_parse_keeps_optional_snow_depth():
    data = openmeteo_payload()
    data["hourly"]["snow_depth"] = [1.1, 1.2, 1.3]
    hourly, _ = parse_model_response(data, "gfs_seamless")
    assert hourly.fields["snow_depth"] == [1.1, 1.2, 1.3]


def test_parse_ignores_misaligned_snow_depth():
    data = openmeteo_payload()
    data["hourly"]["snow_depth"] = [1.1]
    hourly, _ = parse_model_response(data, "gfs_seamless")
    assert "snow_depth" not in hourly.fields


def test_parse_trims_steps_outside_model_range():
    hourly, _ = parse_model_response(
        openmeteo_payload(hours=6, hrrr_cutoff=2), "ncep_hrrr_conus"
    )
    assert hourly.time == ["2026-02-18T00:00", "2026-02-18T01:00"]
    assert all(len(v) == 2 for v in hourly.fields.values())


def test_parse_keeps_non_core_nulls():
    hourly, _ = parse_model_response(openmeteo_payload(), "ecmwf_ifs025")
    assert len(hourly) == 3
    assert hourly.fields["precipitation_probability"] == [None, None, None]


def test_parse_length_mismatch_raises():
    data = openmeteo_payload()
    data["hourly"]["temperature_2m"] = [-6.0]
    try:
        parse_model_response(data, "gfs_seamless")
    except WeatherAPIError as exc:
        assert "temperature_2m" in str(exc)
        return
    raise AssertionError("Length mismatch accepted")


def test_parse_missing_variable_raises():
    data = openmeteo_payload()
    del data["daily"]["snowfall_sum"]
    try:
        parse_model_response(data, "gfs_seamless")
    except WeatherAPIError:
        return
    raise AssertionError("Missing daily variable accepted")


def test_parse_missing_block_raises():
    data = openmeteo_payload()
    del data["hourly"]
    try:
        parse_model_response(data, "gfs_seamless")
    except WeatherAPIError:
        return
    raise AssertionError("Missing hourly block accepted")


def test_parse_non_object_raises():
    try:
        parse_model_response(["nope"], "gfs_seamless")
    except WeatherAPIError:
        return
    raise AssertionError("Non-object payload accepted")


# ═══════════════════════════════════════════════════════════════════════════════
# 2. Open-Meteo archive parsing
# ═══════════════════════════════════════════════════════════════════════════════


def test_parse_historical():
    data = {
        "daily": {
            "time": ["2025-12-01", "2025-12-02"],
            "snowfall_sum": [12.6, None],
            "snow_depth_max": [0.9, 1.0],
            "temperature_2m_max": [-2.0, 1.5],
            "temperature_2m_min": [-8.0, -4.5],
        }
    }
    days = parse_historical_response(data)
    assert [d.date for d in days] == ["2025-12-01", "2025-12-02"]
    assert days[0].snowfall == 12.6
    assert days[1].snowfall == 0.0
    assert days[1].temperature_max == 1.5


def test_parse_historical_missing_columns_default_zero():
    days = parse_historical_response({"daily": {"time": ["2025-12-01"]}})
    assert days[0].snow_depth == 0.0


def test_parse_historical_missing_time_raises():
    try:
        parse_historical_response({"daily": {}})
    except WeatherAPIError:
        return
    raise AssertionError("Archive payload without time accepted")


# ═══════════════════════════════════════════════════════════════════════════════
# 3. NWS parsing
# ═══════════════════════════════════════════════════════════════════════════════


def test_interval_start_date():
    assert _interval_start_date("2026-02-18T06:00:00+00:00/PT6H") == "2026-02-18"
    assert _interval_start_date("2026-02-18T00:00:00+00:00/P1DT6H") == "2026-02-18"
    assert _interval_start_date("no-slash") is None
    assert _interval_start_date("/PT6H") is None


def test_nws_snowfall_buckets_by_start_date():
    days = parse_nws_snowfall(NWS_GRID_PAYLOAD)
    # 25.4mm + 50.8mm = 7.62cm on the 18th; 12.7mm = 1.27cm on the 19th
    assert [(d.date, d.snowfall_cm) for d in days] == [
        ("2026-02-18", 7.62),
        ("2026-02-19", 1.27),
    ]


def test_nws_snowfall_meters_default():
    data = {"properties": {"snowfallAmount": {
        "uom": "wmoUnit:m",
        "values": [{"validTime": "2026-02-18T06:00:00+00:00/PT6H", "value": 0.05}],
    }}}
    assert nws_to_snow_map(parse_nws_snowfall(data)) == {"2026-02-18": 5.0}


def test_nws_snowfall_centimeters():
    data = {"properties": {"snowfallAmount": {
        "uom": "wmoUnit:cm",
        "values": [{"validTime": "2026-02-18T06:00:00+00:00/PT6H", "value": 4.0}],
    }}}
    assert nws_to_snow_map(parse_nws_snowfall(data)) == {"2026-02-18": 4.0}


def test_nws_snowfall_empty():
    assert parse_nws_snowfall({}) == []
    assert parse_nws_snowfall({"properties": {"snowfallAmount": {"values": []}}}) == []


# ═══════════════════════════════════════════════════════════════════════════════
# 4. Client behavior (fake aiohttp session)
# ═══════════════════════════════════════════════════════════════════════════════


class FakeResponse:
    def __init__(self, status=200, payload=None, headers=None):
        self.status = status
        self._payload = payload
        self.headers = headers or {}

    async def json(self):
        return self._payload

    async def text(self):
        return str(self._payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Replays queued responses; records every requested URL + params."""

    closed = False

    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []

    def get(self, url, params=None):
        self.calls.append((url, params))
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_openmeteo_client_fetches_one_model():
    session = FakeSession([FakeResponse(payload=openmeteo_payload())])
    client = OpenMeteoClient(session=session)
    hourly, daily = asyncio.run(
        client.get_model_forecast(46.93, -121.5, 1800, "ncep_hrrr_conus")
    )
    assert len(hourly) == 3 and len(daily) == 2
    url, params = session.calls[0]
    assert url == config.OPENMETEO_FORECAST_URL
    assert params["models"] == "ncep_hrrr_conus"
    assert params["elevation"] == 1800
    assert "freezing_level_height" in params["hourly"]
    assert "snow_depth" in params["hourly"]


def test_openmeteo_client_http_error_raises():
    session = FakeSession([FakeResponse(status=500, payload="boom")])
    client = OpenMeteoClient(session=session)
    try:
        asyncio.run(client.get_model_forecast(46.93, -121.5, 1800, "gfs_seamless"))
    except WeatherAPIError as exc:
        assert "500" in str(exc)
        return
    raise AssertionError("HTTP 500 did not raise")


def test_openmeteo_client_retries_after_429():
    session = FakeSession([
        FakeResponse(status=429, headers={"Retry-After": "0"}),
        FakeResponse(payload=openmeteo_payload()),
    ])
    client = OpenMeteoClient(session=session)
    hourly, _ = asyncio.run(
        client.get_model_forecast(46.93, -121.5, 1800, "gfs_seamless")
    )
    assert len(hourly) == 3
    assert len(session.calls) == 2


def test_nws_client_returns_daily_totals():
    _nws_grid_cache.clear()
    session = FakeSession([
        FakeResponse(payload={"properties": {
            "forecastGridData": "https://api.weather.gov/gridpoints/SEW/145,17",
        }}),
        FakeResponse(payload=NWS_GRID_PAYLOAD),
    ])
    days = asyncio.run(NWSClient(session=session).get_snowfall(46.9282, -121.5045))
    assert nws_to_snow_map(days) == {"2026-02-18": 7.62, "2026-02-19": 1.27}
    assert session.calls[1][0].endswith("/gridpoints/SEW/145,17")
    assert (46.9282, -121.5045) in _nws_grid_cache


def test_nws_client_builds_grid_url_from_ids():
    _nws_grid_cache.clear()
    session = FakeSession([
        FakeResponse(payload={"properties": {"gridId": "SLC", "gridX": 108, "gridY": 166}}),
        FakeResponse(payload=NWS_GRID_PAYLOAD),
    ])
    asyncio.run(NWSClient(session=session).get_snowfall(40.5884, -111.6386))
    assert session.calls[1][0] == f"{config.NWS_API_BASE}/gridpoints/SLC/108,166"


def test_nws_client_failure_returns_empty():
    _nws_grid_cache.clear()
    session = FakeSession([
        FakeResponse(payload={"properties": {"forecastGridData": "https://example/grid"}}),
        FakeResponse(status=500, payload="Internal Server Error"),
    ])
    assert asyncio.run(NWSClient(session=session).get_snowfall(39.6, -106.35)) == []


def test_nws_client_outside_coverage_returns_empty():
    _nws_grid_cache.clear()
    session = FakeSession([FakeResponse(status=404, payload={})])
    assert asyncio.run(NWSClient(session=session).get_snowfall(42.86, 140.68)) == []


def test_nws_client_connection_error_returns_empty():
    _nws_grid_cache.clear()
    session = FakeSession([aiohttp.ClientConnectionError("refused")])
    assert asyncio.run(NWSClient(session=session).get_snowfall(39.6, -106.35)) == []


def _grid_then(payload):
    return FakeSession([
        FakeResponse(payload={"properties": {"forecastGridData": "https://example/grid"}}),
        FakeResponse(payload=payload),
    ])


def test_nws_client_string_amount_returns_empty():
    _nws_grid_cache.clear()
    session = _grid_then({"properties": {"snowfallAmount": {
        "uom": "wmoUnit:m",
        "values": [{"validTime": "2026-02-18T06:00:00+00:00/PT6H", "value": "0.05"}],
    }}})
    assert asyncio.run(NWSClient(session=session).get_snowfall(39.6, -106.35)) == []


def test_nws_client_null_properties_returns_empty():
    _nws_grid_cache.clear()
    session = _grid_then({"properties": None})
    assert asyncio.run(NWSClient(session=session).get_snowfall(39.6, -106.35)) == []


def test_nws_client_list_body_returns_empty():
    _nws_grid_cache.clear()
    session = _grid_then([{"unexpected": True}])
    assert asyncio.run(NWSClient(session=session).get_snowfall(39.6, -106.35)) == []


def test_nws_client_malformed_points_returns_empty():
    _nws_grid_cache.clear()
    session = FakeSession([FakeResponse(payload=["not", "an", "object"])])
    assert asyncio.run(NWSClient(session=session).get_snowfall(39.6, -106.35)) == []
    assert len(session.calls) == 1


# ═══════════════════════════════════════════════════════════════════════════════
# Live smoke test
# ═══════════════════════════════════════════════════════════════════════════════


async def smoke_test(slug: str) -> None:
    resort = config.resort_from_slug(slug)
    if resort is None:
        print(f"Unknown resort '{slug}'. Choose from: {', '.join(config.RESORTS)}")
        return
    mid = resort.elevation.mid
    print(f"\n{'=' * 60}")
    print(f"  Weather API Smoke Test — {resort.name} ({resort.slug})")
    print(f"  Coordinates: {resort.lat}, {resort.lon}  mid {mid}m")
    print(f"{'=' * 60}\n")

    async with aiohttp.ClientSession(headers={"User-Agent": config.USER_AGENT}) as session:
        openmeteo = OpenMeteoClient(session=session)
        nws = NWSClient(session=session)

        from services.model_average import models_for_country

        print("[1/2] Open-Meteo per-model forecasts...")
        for model in models_for_country(resort.country):
            try:
                hourly, daily = await openmeteo.get_model_forecast(
                    resort.lat, resort.lon, mid, model
                )
                snow = daily.fields["snowfall_sum"]
                print(f"  OK  {model:<18} {len(hourly)} hourly / {len(daily)} daily — "
                      f"snowfall_sum {snow}")
            except WeatherAPIError as exc:
                print(f"  FAIL {model} — {exc}")

        print("\n[2/2] NWS snowfall...")
        days = await nws.get_snowfall(resort.lat, resort.lon)
        if days:
            for d in days:
                print(f"  OK  [{d.date}] {d.snowfall_cm:.2f} cm")
        else:
            print("  WARN — no NWS snowfall (non-US resort, no snow, or API error)")

    print()


def _run_offline() -> int:
    passed = failed = 0
    for name, fn in list(globals().items()):
        if not name.startswith("test_") or not callable(fn):
            continue
        try:
            fn()
            print(f"  PASS: {name}")
            passed += 1
        except Exception:
            print(f"  FAIL: {name}")
            traceback.print_exc()
            failed += 1
    print(f"\n  RESULTS: {passed} passed, {failed} failed")
    return 1 if failed else 0


if __name__ == "__main__":
    if "--offline" in sys.argv:
        sys.exit(_run_offline())
    slug = sys.argv[1] if len(sys.argv) > 1 else "crystal-mountain-wa"
    asyncio.run(smoke_test(slug))
