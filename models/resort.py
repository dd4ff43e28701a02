from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ElevationBand = Literal["base", "mid", "top"]
ELEVATION_BANDS: tuple[ElevationBand, ...] = ("base", "mid", "top")


@dataclass(frozen=True)
class ResortElevation:
    """Representative elevations (meters above sea level) of a resort's bands."""

    base: float
    mid: float
    top: float

    def for_band(self, band: str) -> float:
        if band not in ELEVATION_BANDS:
            raise ValueError(f"Unknown elevation band: {band!r}")
        return getattr(self, band)


@dataclass(frozen=True)
class Resort:
    """Static description of a ski resort (one row of the resort dataset)."""

    slug: str  # URL-safe unique key, e.g. "vail-co"
    name: str
    region: str  # state / province / region label
    country: str  # ISO 3166-1 alpha-2
    lat: float
    lon: float
    elevation: ResortElevation
    vertical_drop: float  # meters
    lifts: int | None = None
    acres: float | None = None
    website: str | None = None
