"""
Snow alerts — flag the next powder day for watched resorts.

An alert fires for the first forecast day whose mid-band snowfall reaches the
threshold.  Each resort is alerted at most once per snow day.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

import config
from models.forecast import DailyMetrics, ResortForecast
from utils.units import cm_to_in

logger = logging.getLogger("freesnow.snow_alerts")


@dataclass
class SnowAlert:
    """A forecast snow day at or above the alert threshold."""

    slug: str
    resort_name: str
    date: str
    snowfall_cm: float
    threshold_cm: float

    @property
    def snowfall_in(self) -> float:
        return round(cm_to_in(self.snowfall_cm), 1)

    @property
    def message(self) -> str:
        return (
            f"{self.resort_name}: {self.snowfall_in:.1f}\" forecast on {self.date} "
            f"(≥ {cm_to_in(self.threshold_cm):.1f}\")"
        )


def find_next_snow_day(
    daily: Iterable[DailyMetrics], threshold_cm: float
) -> DailyMetrics | None:
    """First day whose snowfall is at or above *threshold_cm*, or None."""
    for day in daily:
        if day.snowfall_sum >= threshold_cm:
            return day
    return None


class SnowAlertChecker:
    """Tracks which snow day each resort was last alerted for."""

    def __init__(
        self,
        threshold_cm: float = config.SNOW_ALERT_THRESHOLD_CM,
        notified: dict[str, str] | None = None,
    ) -> None:
        self.threshold_cm = threshold_cm
        # slug → date of the last alerted snow day
        self.notified: dict[str, str] = dict(notified or {})

    def check(self, forecast: ResortForecast) -> SnowAlert | None:
        resort = forecast.resort
        day = find_next_snow_day(forecast.mid.daily, self.threshold_cm)
        if day is None:
            return None
        if self.notified.get(resort.slug) == day.date:
            logger.debug("Already alerted %s for %s", resort.slug, day.date)
            return None

        self.notified[resort.slug] = day.date
        alert = SnowAlert(
            slug=resort.slug,
            resort_name=resort.name,
            date=day.date,
            snowfall_cm=day.snowfall_sum,
            threshold_cm=self.threshold_cm,
        )
        logger.info("Snow alert — %s", alert.message)
        return alert

    def check_all(self, forecasts: Iterable[ResortForecast]) -> list[SnowAlert]:
        alerts = []
        for forecast in forecasts:
            alert = self.check(forecast)
            if alert is not None:
                alerts.append(alert)
        return alerts
