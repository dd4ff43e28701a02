"""
Forecast Engine — multi-model snow forecast per elevation band.

Pipeline (per band):
  1. Fetch every selected Open-Meteo model concurrently
  2. Merge the models on the union of their timestamps (mean/median/mode)
  3. Recalculate hourly snow/rain with elevation-aware SLR physics
  4. Rebuild daily snowfall/rain sums from the recalculated hours
  5. US only: blend daily snowfall with the NWS forecast (optional)

A resort forecast runs the three bands and one NWS fetch concurrently and
shares the NWS snow map between bands.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import config
from models.forecast import (
    BandForecast,
    HistoricalSnowDay,
    ResortForecast,
    daily_from_series,
    hourly_from_series,
)
from models.resort import ELEVATION_BANDS, Resort
from services.model_average import (
    apply_secondary_blend,
    merge_daily,
    merge_hourly,
    models_for_country,
)
from services.snow_recalc import recalculate_band
from utils.weather_client import NWSClient, OpenMeteoClient, nws_to_snow_map

logger = logging.getLogger("freesnow.forecast_engine")


class ForecastEngine:
    """Pulls model forecasts, reconciles them and builds band forecasts."""

    def __init__(
        self,
        openmeteo: OpenMeteoClient,
        nws: NWSClient | None = None,
        forecast_days: int = config.FORECAST_DAYS,
        past_days: int = config.PAST_DAYS,
        tz_name: str = config.TIMEZONE,
    ) -> None:
        self._openmeteo = openmeteo
        self._nws = nws
        self._forecast_days = forecast_days
        self._past_days = past_days
        self._tz_name = tz_name
        # Latest forecasts keyed by resort slug
        self.forecasts: dict[str, ResortForecast] = {}

    # ── Secondary source ─────────────────────────────────────────────────

    @staticmethod
    def has_secondary_source(resort: Resort) -> bool:
        return resort.country.upper() in config.SECONDARY_SOURCE_COUNTRIES

    async def fetch_secondary_map(self, resort: Resort) -> dict[str, float]:
        """
        NWS daily snowfall for *resort* as {date: cm}.

        Never raises: the secondary source is an optional accuracy boost, so
        any failure degrades to an empty map.
        """
        if self._nws is None or not self.has_secondary_source(resort):
            return {}
        try:
            days = await self._nws.get_snowfall(resort.lat, resort.lon)
        except Exception as exc:
            logger.debug("NWS unavailable for %s: %s", resort.slug, exc)
            return {}
        return nws_to_snow_map(days)

    # ── Band pipeline ────────────────────────────────────────────────────

    async def compute_band_forecast(
        self,
        resort: Resort,
        band: str,
        models: list[str] | None = None,
        secondary_map: dict[str, float] | None = None,
    ) -> BandForecast:
        """
        Build the forecast for one elevation band.

        A failed model fetch propagates to the caller.  When
        *secondary_map* is None and the resort's country has a secondary
        source, it is fetched here; pass ``{}`` to skip blending.
        """
        elevation = resort.elevation.for_band(band)
        models = models or models_for_country(resort.country)

        responses = await asyncio.gather(*[
            self._openmeteo.get_model_forecast(
                resort.lat, resort.lon, elevation, model,
                forecast_days=self._forecast_days,
                past_days=self._past_days,
                timezone=self._tz_name,
            )
            for model in models
        ])

        hourly = merge_hourly([h for h, _ in responses])
        daily = merge_daily([d for _, d in responses])

        forecast = BandForecast(
            band=band,
            elevation=elevation,
            hourly=hourly_from_series(hourly),
            daily=daily_from_series(daily),
            models=list(models),
        )
        recalculate_band(forecast)

        if secondary_map is None and self.has_secondary_source(resort):
            secondary_map = await self.fetch_secondary_map(resort)
        if secondary_map:
            apply_secondary_blend(forecast, secondary_map, config.NWS_BLEND_WEIGHT)

        logger.info(
            "%s %s (%.0fm): %d models, %d hours, %d days, %.1f cm total%s",
            resort.slug, band, elevation, len(models),
            len(forecast.hourly), len(forecast.daily), forecast.total_snowfall_cm,
            " [NWS blended]" if forecast.secondary_blended else "",
        )
        return forecast

    async def get_resort_forecast(self, resort: Resort) -> ResortForecast:
        """Forecast all three bands of a resort concurrently."""
        models = models_for_country(resort.country)

        tasks = [asyncio.ensure_future(self.fetch_secondary_map(resort))] + [
            asyncio.ensure_future(
                self.compute_band_forecast(resort, band, models, secondary_map={})
            )
            for band in ELEVATION_BANDS
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # One band failed: don't leave the others running unobserved
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        secondary_map, bands = results[0], results[1:]

        if secondary_map:
            for band in bands:
                apply_secondary_blend(band, secondary_map, config.NWS_BLEND_WEIGHT)

        base, mid, top = bands
        forecast = ResortForecast(
            resort=resort,
            fetched_at=datetime.now(timezone.utc),
            base=base,
            mid=mid,
            top=top,
        )
        self.forecasts[resort.slug] = forecast
        return forecast

    async def refresh_all(self, slugs: list[str] | None = None) -> dict[str, ResortForecast]:
        """
        Refresh forecasts for every watched resort.

        Returns only the forecasts built in this cycle; failed resorts are
        logged and left out (their previous forecast stays in the cache).
        """
        resorts: list[Resort] = []
        for slug in slugs or config.WATCHED_RESORTS:
            resort = config.resort_from_slug(slug)
            if resort is None:
                logger.warning("Unknown resort slug: %s", slug)
                continue
            resorts.append(resort)

        results = await asyncio.gather(
            *[self.get_resort_forecast(r) for r in resorts],
            return_exceptions=True,
        )
        fresh: dict[str, ResortForecast] = {}
        for resort, result in zip(resorts, results):
            if isinstance(result, Exception):
                logger.error("Failed to build forecast for %s: %s", resort.slug, result)
            else:
                fresh[resort.slug] = result

        logger.info(
            "Forecast engine refreshed — %d/%d resorts available",
            len(fresh), len(resorts),
        )
        return fresh

    async def get_historical(
        self, resort: Resort, start_date: str, end_date: str
    ) -> list[HistoricalSnowDay]:
        """Daily snowfall history at the resort's mid elevation."""
        return await self._openmeteo.get_historical(
            resort.lat, resort.lon, resort.elevation.mid,
            start_date, end_date, timezone=self._tz_name,
        )

    def get_forecast(self, slug: str) -> ResortForecast | None:
        """Retrieve the latest forecast for a resort slug."""
        return self.forecasts.get(slug)
