"""
Forecast data structures — raw/merged model series and the per-band forecast.

A ``ModelSeries`` is what the HTTP layer hands to the core: a time axis plus
named numeric arrays indexed in parallel with it, using Open-Meteo variable
names.  After merging, the series is converted into named ``HourlyMetrics`` /
``DailyMetrics`` rows that make up a ``BandForecast``.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from models.resort import Resort

# Open-Meteo variable name → HourlyMetrics attribute
HOURLY_VARIABLES: dict[str, str] = {
    "temperature_2m": "temperature",
    "apparent_temperature": "apparent_temperature",
    "relative_humidity_2m": "relative_humidity",
    "precipitation": "precipitation",
    "rain": "rain",
    "snowfall": "snowfall",
    "precipitation_probability": "precipitation_probability",
    "weather_code": "weather_code",
    "wind_speed_10m": "wind_speed",
    "wind_direction_10m": "wind_direction",
    "wind_gusts_10m": "wind_gusts",
    "freezing_level_height": "freezing_level_height",
}
# Present only for some models; never required
OPTIONAL_HOURLY_VARIABLES: dict[str, str] = {"snow_depth": "snow_depth"}
# A timestep is inside a model's range only if these are non-null
CORE_HOURLY_VARIABLES = ["temperature_2m", "precipitation", "freezing_level_height"]
# Left as None when no model supplies them (SLR treats None as "not supplied")
NULLABLE_HOURLY_ATTRS = {"relative_humidity", "wind_speed", "snow_depth"}

# Open-Meteo variable name → DailyMetrics attribute
DAILY_VARIABLES: dict[str, str] = {
    "weather_code": "weather_code",
    "temperature_2m_max": "temperature_max",
    "temperature_2m_min": "temperature_min",
    "apparent_temperature_max": "apparent_temperature_max",
    "apparent_temperature_min": "apparent_temperature_min",
    "uv_index_max": "uv_index_max",
    "precipitation_sum": "precipitation_sum",
    "rain_sum": "rain_sum",
    "snowfall_sum": "snowfall_sum",
    "precipitation_probability_max": "precipitation_probability_max",
    "wind_speed_10m_max": "wind_speed_max",
    "wind_gusts_10m_max": "wind_gusts_max",
}
CORE_DAILY_VARIABLES = ["temperature_2m_max", "temperature_2m_min", "precipitation_sum"]


@dataclass
class ModelSeries:
    """One weather model's (or a merged) time series.

    ``time`` holds ascending ISO-8601 strings; every list in ``fields`` has
    the same length as ``time``.
    """

    time: list[str]
    fields: dict[str, list[float | None]] = field(default_factory=dict)
    model: str = ""  # model id, or "+"-joined ids for a merged series

    def __len__(self) -> int:
        return len(self.time)

    def time_index(self) -> dict[str, int]:
        """Map each timestamp to its row index."""
        return {t: i for i, t in enumerate(self.time)}

    def value(self, name: str, row: int) -> float | None:
        values = self.fields.get(name)
        if values is None or row >= len(values):
            return None
        return values[row]


@dataclass
class HourlyMetrics:
    """One hour of forecast at a single elevation band."""

    time: str  # ISO-8601 local time
    temperature: float  # °C
    apparent_temperature: float  # °C
    relative_humidity: float | None  # %, None when no model supplied it
    precipitation: float  # mm
    rain: float  # mm
    snowfall: float  # cm
    precipitation_probability: float  # %
    weather_code: int  # WMO code
    wind_speed: float | None  # km/h, None when no model supplied it
    wind_direction: float  # degrees
    wind_gusts: float  # km/h
    freezing_level_height: float  # m above sea level
    snow_depth: float | None = None  # m, model-only

    @property
    def date(self) -> str:
        return self.time[:10]


@dataclass
class DailyMetrics:
    """One day of forecast at a single elevation band."""

    date: str  # YYYY-MM-DD
    weather_code: int
    temperature_max: float  # °C
    temperature_min: float  # °C
    apparent_temperature_max: float  # °C
    apparent_temperature_min: float  # °C
    uv_index_max: float
    precipitation_sum: float  # mm
    rain_sum: float  # mm
    snowfall_sum: float  # cm
    precipitation_probability_max: float  # %
    wind_speed_max: float  # km/h
    wind_gusts_max: float  # km/h


def _rows(
    series: ModelSeries, names: dict[str, str], nullable: frozenset[str] | set[str] = frozenset()
) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for i in range(len(series)):
        row: dict[str, Any] = {}
        for api_name, attr in names.items():
            v = series.value(api_name, i)
            if v is None and attr not in nullable:
                v = 0.0
            row[attr] = v
        row["weather_code"] = int(row["weather_code"])
        rows.append(row)
    return rows


def hourly_from_series(series: ModelSeries) -> list[HourlyMetrics]:
    """Convert a (merged) hourly series into named rows."""
    rows = _rows(series, {**HOURLY_VARIABLES, **OPTIONAL_HOURLY_VARIABLES}, NULLABLE_HOURLY_ATTRS)
    return [HourlyMetrics(time=t, **row) for t, row in zip(series.time, rows)]


def daily_from_series(series: ModelSeries) -> list[DailyMetrics]:
    """Convert a (merged) daily series into named rows."""
    rows = _rows(series, DAILY_VARIABLES)
    return [DailyMetrics(date=t, **row) for t, row in zip(series.time, rows)]


@dataclass
class BandForecast:
    """Final forecast for one elevation band of a resort."""

    band: str  # "base", "mid" or "top"
    elevation: float  # meters
    hourly: list[HourlyMetrics] = field(default_factory=list)
    daily: list[DailyMetrics] = field(default_factory=list)
    models: list[str] = field(default_factory=list)  # model ids that contributed
    secondary_blended: bool = False

    def day(self, date_str: str) -> DailyMetrics | None:
        for d in self.daily:
            if d.date == date_str:
                return d
        return None

    @property
    def total_snowfall_cm(self) -> float:
        return round(sum(d.snowfall_sum for d in self.daily), 2)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ResortForecast:
    """Forecasts for all three elevation bands of one resort."""

    resort: Resort
    fetched_at: datetime
    base: BandForecast
    mid: BandForecast
    top: BandForecast

    def band(self, name: str) -> BandForecast:
        if name not in ("base", "mid", "top"):
            raise ValueError(f"Unknown elevation band: {name!r}")
        return getattr(self, name)

    @property
    def bands(self) -> list[BandForecast]:
        return [self.base, self.mid, self.top]


@dataclass
class SecondarySnowDay:
    """Daily snowfall total from the secondary (NWS) source."""

    date: str  # YYYY-MM-DD
    snowfall_cm: float


@dataclass
class HistoricalSnowDay:
    """One day of observed/reanalysis snowfall history."""

    date: str
    snowfall: float  # cm
    snow_depth: float  # cm
    temperature_max: float  # °C
    temperature_min: float  # °C
