from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

import config
from models.forecast import (
    CORE_DAILY_VARIABLES,
    CORE_HOURLY_VARIABLES,
    DAILY_VARIABLES,
    HOURLY_VARIABLES,
    OPTIONAL_HOURLY_VARIABLES,
    HistoricalSnowDay,
    ModelSeries,
    SecondarySnowDay,
)
from services.aggregation import round2

logger = logging.getLogger("freesnow.weather")

# NWS grid URL cache: (lat, lon) → gridpoint data URL
_nws_grid_cache: dict[tuple[float, float], str] = {}


class WeatherAPIError(Exception):
    """An upstream weather API failed or returned an unusable payload."""


def _validate_series(
    block: Any,
    required: list[str],
    coverage: list[str],
    optional: list[str],
    model: str,
    kind: str,
) -> ModelSeries:
    """
    Check an Open-Meteo ``hourly``/``daily`` block and turn it into a series.

    Every required variable must be a list as long as ``time``.  Timesteps
    where a *coverage* variable is null lie outside the model's range and
    are dropped; other nulls are kept and skipped by the merge.
    """
    if not isinstance(block, dict) or not isinstance(block.get("time"), list):
        raise WeatherAPIError(f"Open-Meteo {model}: missing {kind}.time array")

    times: list[str] = block["time"]
    columns: dict[str, list[Any]] = {}
    for name in required:
        values = block.get(name)
        if not isinstance(values, list) or len(values) != len(times):
            raise WeatherAPIError(
                f"Open-Meteo {model}: {kind}.{name} missing or length mismatch"
            )
        columns[name] = values
    for name in optional:
        values = block.get(name)
        if isinstance(values, list) and len(values) == len(times):
            columns[name] = values

    keep = [
        i for i in range(len(times))
        if all(columns[name][i] is not None for name in coverage)
    ]
    dropped = len(times) - len(keep)
    if dropped:
        logger.debug("Open-Meteo %s: dropped %d/%d %s steps outside model range",
                     model, dropped, len(times), kind)

    fields = {name: [values[i] for i in keep] for name, values in columns.items()}
    return ModelSeries(time=[times[i] for i in keep], fields=fields, model=model)


def parse_model_response(data: dict[str, Any], model: str) -> tuple[ModelSeries, ModelSeries]:
    """Validate a single-model Open-Meteo forecast payload → (hourly, daily)."""
    if not isinstance(data, dict):
        raise WeatherAPIError(f"Open-Meteo {model}: payload is not an object")
    hourly = _validate_series(
        data.get("hourly"), list(HOURLY_VARIABLES), CORE_HOURLY_VARIABLES,
        list(OPTIONAL_HOURLY_VARIABLES), model, "hourly",
    )
    daily = _validate_series(
        data.get("daily"), list(DAILY_VARIABLES), CORE_DAILY_VARIABLES, [], model, "daily",
    )
    return hourly, daily


def parse_historical_response(data: dict[str, Any]) -> list[HistoricalSnowDay]:
    daily = data.get("daily") if isinstance(data, dict) else None
    if not isinstance(daily, dict) or not isinstance(daily.get("time"), list):
        raise WeatherAPIError("Open-Meteo archive: missing daily.time array")

    snow = daily.get("snowfall_sum") or []
    depth = daily.get("snow_depth_max") or []
    tmax = daily.get("temperature_2m_max") or []
    tmin = daily.get("temperature_2m_min") or []

    def _at(values: list[Any], i: int) -> float:
        if i < len(values) and values[i] is not None:
            return float(values[i])
        return 0.0

    return [
        HistoricalSnowDay(
            date=t,
            snowfall=_at(snow, i),
            snow_depth=_at(depth, i),
            temperature_max=_at(tmax, i),
            temperature_min=_at(tmin, i),
        )
        for i, t in enumerate(daily["time"])
    ]


# ── Open-Meteo forecast ──────────────────────────────────────────────────────


class OpenMeteoClient:
    """Async client for the Open-Meteo forecast and archive APIs (no API key)."""

    def __init__(self, session: aiohttp.ClientSession | None = None) -> None:
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": config.USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=config.HTTP_TIMEOUT_SECONDS),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    # Class-level semaphore to limit concurrent Open-Meteo requests
    _semaphore: asyncio.Semaphore | None = None

    @classmethod
    def _get_semaphore(cls) -> asyncio.Semaphore:
        if cls._semaphore is None:
            cls._semaphore = asyncio.Semaphore(config.OPENMETEO_MAX_CONCURRENT)
        return cls._semaphore

    async def _get_json(self, url: str, params: dict[str, Any], label: str) -> dict[str, Any]:
        """GET with 429 back-off; raises WeatherAPIError once retries run out."""
        async with self._get_semaphore():
            session = await self._ensure_session()
            backoff = 1.0
            for attempt in range(config.OPENMETEO_MAX_RETRIES):
                try:
                    async with session.get(url, params=params) as resp:
                        if resp.status == 429:
                            retry_after = float(resp.headers.get("Retry-After", backoff))
                            logger.warning(
                                "Open-Meteo 429 for %s — backing off %.1fs (attempt %d)",
                                label, retry_after, attempt + 1,
                            )
                            await asyncio.sleep(retry_after)
                            backoff *= 2
                            continue
                        if resp.status != 200:
                            text = await resp.text()
                            raise WeatherAPIError(
                                f"Open-Meteo {label}: HTTP {resp.status}: {text[:200]}"
                            )
                        return await resp.json()
                except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                    if attempt == config.OPENMETEO_MAX_RETRIES - 1:
                        raise WeatherAPIError(f"Open-Meteo {label}: {exc}") from exc
                    logger.warning("Open-Meteo request error for %s (attempt %d): %s",
                                   label, attempt + 1, exc)
                    await asyncio.sleep(backoff)
                    backoff *= 2

        raise WeatherAPIError(f"Open-Meteo {label}: rate limited after retries")

    async def get_model_forecast(
        self,
        lat: float,
        lon: float,
        elevation: float,
        model: str,
        forecast_days: int = config.FORECAST_DAYS,
        past_days: int = config.PAST_DAYS,
        timezone: str = config.TIMEZONE,
    ) -> tuple[ModelSeries, ModelSeries]:
        """
        Fetch one model's hourly + daily forecast at a given elevation.

        Returns (hourly, daily) series.  Raises WeatherAPIError on HTTP
        failure or a malformed payload.
        """
        params = {
            "latitude": lat,
            "longitude": lon,
            "elevation": elevation,
            "hourly": ",".join([*HOURLY_VARIABLES, *OPTIONAL_HOURLY_VARIABLES]),
            "daily": ",".join(DAILY_VARIABLES),
            "models": model,
            "forecast_days": forecast_days,
            "past_days": past_days,
            "timezone": timezone,
        }
        label = f"{model} ({lat:.2f}, {lon:.2f}) @ {elevation:.0f}m"
        data = await self._get_json(config.OPENMETEO_FORECAST_URL, params, label)
        hourly, daily = parse_model_response(data, model)
        logger.info(
            "Open-Meteo OK %s: %d hourly, %d daily steps",
            label, len(hourly), len(daily),
        )
        return hourly, daily

    async def get_historical(
        self,
        lat: float,
        lon: float,
        elevation: float,
        start_date: str,
        end_date: str,
        timezone: str = config.TIMEZONE,
    ) -> list[HistoricalSnowDay]:
        """Fetch daily snowfall history from the Open-Meteo archive."""
        params = {
            "latitude": lat,
            "longitude": lon,
            "elevation": elevation,
            "start_date": start_date,
            "end_date": end_date,
            "daily": "snowfall_sum,snow_depth_max,temperature_2m_max,temperature_2m_min",
            "timezone": timezone,
        }
        label = f"archive ({lat:.2f}, {lon:.2f}) {start_date}..{end_date}"
        data = await self._get_json(config.OPENMETEO_ARCHIVE_URL, params, label)
        days = parse_historical_response(data)
        logger.info("Open-Meteo archive OK (%.2f, %.2f): %d days", lat, lon, len(days))
        return days


# ── NWS snowfall ─────────────────────────────────────────────────────────────


def _interval_start_date(valid_time: str) -> str | None:
    """Start date of an NWS validTime such as "2026-02-18T06:00:00+00:00/PT6H"."""
    parts = valid_time.split("/")
    if len(parts) != 2 or len(parts[0]) < 10:
        return None
    return parts[0][:10]


def _unit_to_cm(uom: str) -> float:
    """Multiplier from an NWS unit-of-measure code to centimetres."""
    if "mm" in uom:
        return 0.1
    if "cm" in uom:
        return 1.0
    return 100.0  # wmoUnit:m, the API default


def parse_nws_snowfall(data: dict[str, Any]) -> list[SecondarySnowDay]:
    """
    Bucket the gridpoint ``snowfallAmount`` intervals into daily totals (cm).

    Each interval's full amount is assigned to its start date; NWS intervals
    are mostly 6 h and rarely straddle midnight.
    """
    snowfall = data.get("properties", {}).get("snowfallAmount") or {}
    values = snowfall.get("values") or []
    if not values:
        return []

    to_cm = _unit_to_cm(snowfall.get("uom", ""))
    by_date: dict[str, float] = {}
    for entry in values:
        value = entry.get("value")
        if value is None or value <= 0:
            continue
        date_str = _interval_start_date(entry.get("validTime", ""))
        if date_str is None:
            continue
        by_date[date_str] = by_date.get(date_str, 0.0) + value * to_cm

    return [
        SecondarySnowDay(date=d, snowfall_cm=round2(cm))
        for d, cm in sorted(by_date.items())
    ]


def nws_to_snow_map(days: list[SecondarySnowDay]) -> dict[str, float]:
    """Convert NWS daily snowfall records into a {date: cm} lookup."""
    return {d.date: d.snowfall_cm for d in days}


class NWSClient:
    """Async client for the National Weather Service API (US only)."""

    def __init__(self, session: aiohttp.ClientSession | None = None) -> None:
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "User-Agent": config.USER_AGENT,
                    "Accept": "application/geo+json",
                },
                timeout=aiohttp.ClientTimeout(total=config.HTTP_TIMEOUT_SECONDS),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _get_grid_url(self, lat: float, lon: float) -> str | None:
        """Get the gridpoint data URL for the given coordinates (cached)."""
        cache_key = (round(lat, 4), round(lon, 4))
        if cache_key in _nws_grid_cache:
            return _nws_grid_cache[cache_key]

        session = await self._ensure_session()
        url = f"{config.NWS_API_BASE}/points/{lat:.4f},{lon:.4f}"

        try:
            async with session.get(url) as resp:
                if resp.status != 200:
                    # 404 means the point is outside NWS coverage
                    logger.debug("NWS points request failed: %d", resp.status)
                    return None
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.debug("NWS points request error: %s", exc)
            return None

        try:
            props = data.get("properties") or {}
            grid_url = props.get("forecastGridData")
            if not grid_url and props.get("gridId"):
                grid_url = (
                    f"{config.NWS_API_BASE}/gridpoints/"
                    f"{props['gridId']}/{props.get('gridX')},{props.get('gridY')}"
                )
        except (AttributeError, TypeError) as exc:
            logger.debug("NWS points payload malformed: %s", exc)
            return None
        if grid_url:
            _nws_grid_cache[cache_key] = grid_url
        return grid_url

    async def get_snowfall(self, lat: float, lon: float) -> list[SecondarySnowDay]:
        """
        Fetch the NWS quantitative snowfall forecast as daily totals (cm).

        Returns an empty list on any failure — NWS is an optional accuracy
        boost and occasionally answers with 500s.
        """
        grid_url = await self._get_grid_url(lat, lon)
        if not grid_url:
            return []

        session = await self._ensure_session()
        try:
            async with session.get(grid_url) as resp:
                if resp.status != 200:
                    logger.debug("NWS grid request failed: %d", resp.status)
                    return []
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.debug("NWS grid request error: %s", exc)
            return []

        try:
            days = parse_nws_snowfall(data)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.debug("NWS grid payload malformed: %s", exc)
            return []
        logger.info("NWS OK (%.2f, %.2f): %d days with snowfall", lat, lon, len(days))
        return days
