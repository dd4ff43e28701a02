"""
Multi-model averaging, secondary-source blending and model selection.

Merging N forecast models (one Open-Meteo response per model) smooths out
individual model biases.  Series are aligned on the **union** of their
timestamps by key lookup, never by position, so a short-range model such as
HRRR (48 h) contributes only inside its window while the global models cover
the rest.

Per-field rules:
  - precipitation / rain / snowfall → median (resists one model's spike)
  - weather code                    → mode (categorical)
  - wind direction                  → circular mean
  - everything else                 → mean
"""
from __future__ import annotations

import logging
from typing import Iterable, Mapping

import config
from models.forecast import BandForecast, DailyMetrics, ModelSeries
from services.aggregation import AGGREGATORS, round2

logger = logging.getLogger("freesnow.model_average")


class InvalidInputError(ValueError):
    """Raised when a merge is asked to combine no models at all."""


HOURLY_FIELD_RULES: dict[str, str] = {
    "temperature_2m": "mean",
    "apparent_temperature": "mean",
    "relative_humidity_2m": "mean",
    "precipitation": "median",
    "rain": "median",
    "snowfall": "median",
    "precipitation_probability": "mean",
    "weather_code": "mode",
    "wind_speed_10m": "mean",
    "wind_direction_10m": "circular_mean",
    "wind_gusts_10m": "mean",
    "freezing_level_height": "mean",
    "snow_depth": "mean",
}

DAILY_FIELD_RULES: dict[str, str] = {
    "weather_code": "mode",
    "temperature_2m_max": "mean",
    "temperature_2m_min": "mean",
    "apparent_temperature_max": "mean",
    "apparent_temperature_min": "mean",
    "uv_index_max": "mean",
    "precipitation_sum": "median",
    "rain_sum": "median",
    "snowfall_sum": "median",
    "precipitation_probability_max": "mean",
    "wind_speed_10m_max": "mean",
    "wind_gusts_10m_max": "mean",
}


def _merge(models: list[ModelSeries], rules: Mapping[str, str]) -> ModelSeries:
    if not models:
        raise InvalidInputError("No model data to merge")
    if len(models) == 1:
        return models[0]

    indexes = [m.time_index() for m in models]
    times = sorted(set().union(*indexes))

    # Any field carried by at least one model is emitted.  Fields without a
    # rule fall back to the mean.
    field_names: list[str] = []
    for m in models:
        for name in m.fields:
            if name not in field_names:
                field_names.append(name)

    out: dict[str, list[float | None]] = {name: [] for name in field_names}
    for t in times:
        for name in field_names:
            rule = rules.get(name, "mean")
            values: list[float] = []
            for model, index in zip(models, indexes):
                row = index.get(t)
                if row is None:
                    continue
                v = model.value(name, row)
                if v is not None:
                    values.append(v)

            # No contributor: keep the gap, row conversion decides the default
            if not values:
                out[name].append(None)
                continue

            merged = AGGREGATORS[rule](values)
            if rule == "mode":
                out[name].append(merged)
            elif rule == "circular_mean":
                out[name].append(round2(merged) % 360.0)
            else:
                out[name].append(round2(merged))

    merged_series = ModelSeries(
        time=times,
        fields=out,
        model="+".join(m.model for m in models),
    )
    logger.debug(
        "Merged %d models (%s) → %d timesteps",
        len(models), merged_series.model, len(times),
    )
    return merged_series


def merge_hourly(models: list[ModelSeries]) -> ModelSeries:
    """Merge N hourly model series into one."""
    return _merge(models, HOURLY_FIELD_RULES)


def merge_daily(models: list[ModelSeries]) -> ModelSeries:
    """Merge N daily model series into one (same strategy as hourly)."""
    return _merge(models, DAILY_FIELD_RULES)


# ── Secondary-source blending ────────────────────────────────────────────────


def blend_with_secondary(
    daily: Iterable[DailyMetrics],
    secondary_map: Mapping[str, float],
    secondary_weight: float = config.NWS_BLEND_WEIGHT,
) -> dict[str, float]:
    """
    Blend model daily snowfall with the secondary source's daily snowfall.

    Returns ``{date: snowfall_cm}``.  Dates the secondary source doesn't
    cover keep the model value as-is.
    """
    model_weight = 1 - secondary_weight
    result: dict[str, float] = {}
    for day in daily:
        secondary = secondary_map.get(day.date)
        if secondary is None:
            result[day.date] = day.snowfall_sum
        else:
            result[day.date] = round2(model_weight * day.snowfall_sum + secondary_weight * secondary)
    return result


def apply_secondary_blend(
    band: BandForecast,
    secondary_map: Mapping[str, float],
    secondary_weight: float = config.NWS_BLEND_WEIGHT,
) -> BandForecast:
    """Overwrite ``band.daily[].snowfall_sum`` with blended values (in place)."""
    if not secondary_map:
        return band

    blended = blend_with_secondary(band.daily, secondary_map, secondary_weight)
    for day in band.daily:
        value = blended.get(day.date)
        if value is None:
            continue
        if day.date in secondary_map and abs(value - day.snowfall_sum) > 5.0:
            logger.info(
                "%s band %s: models (%.1f cm) and NWS (%.1f cm) disagree — blended %.1f cm",
                band.band, day.date, day.snowfall_sum, secondary_map[day.date], value,
            )
        day.snowfall_sum = value
    band.secondary_blended = True
    return band


# ── Model selection ──────────────────────────────────────────────────────────


def models_for_country(country: str) -> list[str]:
    """
    Open-Meteo model ids to request for a resort in *country*.

    US resorts add HRRR for short-range detail, Canadian resorts add GEM;
    everywhere else gets the global baseline models only.
    """
    models = config.MODELS_BY_COUNTRY.get(country.upper(), config.GLOBAL_MODELS)
    return list(models)
