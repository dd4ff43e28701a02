"""
Snow recalculation — re-derive snowfall from total precipitation.

Open-Meteo's ``snowfall`` field uses a fixed ~7:1 snow-to-liquid ratio, which
badly underestimates snowfall in cold mountain air where real ratios are
12:1–20:1.  The API's ``elevation`` parameter also only shifts temperature by
lapse rate, so the rain/snow split comes from the grid cell and can report
rain at sub-freezing temperatures.

Recalculation uses:
  1. Freezing level vs. station elevation to fix the rain/snow split
  2. A temperature-dependent snow-liquid ratio (SLR), optionally adjusted
     for humidity and wind
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Sequence

import config
from models.forecast import BandForecast
from services.aggregation import round2

logger = logging.getLogger("freesnow.snow_recalc")


def snow_liquid_ratio(
    temp_c: float,
    relative_humidity: float | None = None,
    wind_speed_kmh: float | None = None,
) -> float:
    """
    Snow-liquid ratio in cm of snow per mm of liquid precipitation.

    Base ratio comes from a Roebber-style temperature lookup.  Humidity and
    wind adjustments are applied only when the caller supplies them:

    - Humidity: moist air grows large dendrites → fluffier snow → higher SLR;
      very dry air gives dense granular snow.
    - Wind: strong wind compacts and sublimates crystals → lower SLR at the
      ground.
    """
    for lower_bound, ratio in config.SLR_TEMPERATURE_BANDS:
        if temp_c > lower_bound:
            slr = ratio
            break
    else:
        slr = config.SLR_COLDEST

    # Rain and wet mix are not adjusted
    if temp_c > 0:
        return slr

    if relative_humidity is not None:
        for min_rh, factor in config.SLR_HUMIDITY_ADJUSTMENTS:
            if relative_humidity >= min_rh:
                slr *= factor
                break
        else:
            if relative_humidity < config.SLR_DRY_AIR_HUMIDITY:
                slr *= config.SLR_DRY_AIR_FACTOR

    if wind_speed_kmh is not None:
        for min_wind, factor in config.SLR_WIND_ADJUSTMENTS:
            if wind_speed_kmh >= min_wind:
                slr *= factor
                break

    return round2(slr)


def recalc_hourly(
    precipitation: float,
    temperature: float,
    freezing_level_height: float,
    station_elevation: float,
    relative_humidity: float | None = None,
    wind_speed: float | None = None,
) -> tuple[float, float]:
    """
    Recalculate one hour's snow/rain split.

    Returns ``(snowfall_cm, rain_mm)``.  When the station sits well above the
    freezing level all precipitation falls as snow; otherwise the station
    temperature decides, with a linear rain/snow mix between 0 °C and
    ``MARGINAL_ZONE_UPPER_C``.
    """
    if precipitation <= 0:
        return 0.0, 0.0

    if station_elevation > freezing_level_height + config.FREEZING_LEVEL_MARGIN_M:
        # Clamp so a mild station reading can't turn precip above the
        # freezing line into a zero SLR.
        slr = snow_liquid_ratio(min(temperature, 0.0), relative_humidity, wind_speed)
        return round2(precipitation * slr), 0.0

    if temperature <= 0:
        slr = snow_liquid_ratio(temperature, relative_humidity, wind_speed)
        return round2(precipitation * slr), 0.0

    upper = config.MARGINAL_ZONE_UPPER_C
    if temperature <= upper:
        snow_fraction = (upper - temperature) / upper
        snow_precip = precipitation * snow_fraction
        rain_precip = precipitation * (1 - snow_fraction)
        slr = snow_liquid_ratio(temperature, relative_humidity, wind_speed)
        return round2(snow_precip * slr), round2(rain_precip)

    return 0.0, round2(precipitation)


def recalc_daily_from_hourly(
    hourly_snowfall: Sequence[float],
    hourly_rain: Sequence[float],
) -> dict[str, float]:
    """Daily snowfall/rain sums from recalculated hourly values."""
    return {
        "snowfall_sum": round2(sum(hourly_snowfall)),
        "rain_sum": round2(sum(hourly_rain)),
    }


def recalculate_band(band: BandForecast) -> BandForecast:
    """
    Replace the vendor snowfall/rain of every hourly row with recalculated
    values, then rebuild daily sums from those rows.

    Mutates and returns *band*.  Days without any hourly rows keep the
    vendor's daily sums.
    """
    snow_by_date: dict[str, list[float]] = defaultdict(list)
    rain_by_date: dict[str, list[float]] = defaultdict(list)

    for hour in band.hourly:
        snow, rain = recalc_hourly(
            hour.precipitation,
            hour.temperature,
            hour.freezing_level_height,
            band.elevation,
            relative_humidity=hour.relative_humidity,
            wind_speed=hour.wind_speed,
        )
        hour.snowfall = snow
        hour.rain = rain
        snow_by_date[hour.date].append(snow)
        rain_by_date[hour.date].append(rain)

    for day in band.daily:
        if day.date not in snow_by_date:
            continue
        before = day.snowfall_sum
        totals = recalc_daily_from_hourly(snow_by_date[day.date], rain_by_date[day.date])
        day.snowfall_sum = totals["snowfall_sum"]
        day.rain_sum = totals["rain_sum"]
        logger.debug(
            "%s band %s: snowfall %.2f → %.2f cm (recalculated)",
            band.band, day.date, before, day.snowfall_sum,
        )

    return band
