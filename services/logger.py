from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from models.forecast import ResortForecast
from services.snow_alerts import SnowAlert

logger = logging.getLogger("freesnow.logger")

_BASE_DIR = Path(__file__).resolve().parent.parent / "data" / "logs"


def _ensure_dir(subdir: str) -> Path:
    path = _BASE_DIR / subdir
    path.mkdir(parents=True, exist_ok=True)
    return path


def _today_str() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def _append_jsonl(subdir: str, record: dict[str, Any]) -> None:
    """Append a single JSON record to today's JSONL file in the given subdirectory."""
    try:
        dir_path = _ensure_dir(subdir)
        filepath = dir_path / f"{_today_str()}.jsonl"
        with open(filepath, "a") as f:
            f.write(json.dumps(record, default=str) + "\n")
    except OSError as exc:
        logger.error("Failed to write %s log: %s", subdir, exc)


def log_forecast(
    forecast: ResortForecast,
    timestamp: datetime | None = None,
) -> None:
    """Log a resort forecast's daily summary per band to data/logs/forecasts/."""
    ts = timestamp or datetime.now(timezone.utc)
    record = {
        "timestamp": ts.isoformat(),
        "fetched_at": forecast.fetched_at.isoformat(),
        "resort": forecast.resort.slug,
        "bands": {
            band.band: {
                "elevation": band.elevation,
                "models": band.models,
                "nws_blended": band.secondary_blended,
                "total_snowfall_cm": band.total_snowfall_cm,
                "daily": [
                    {
                        "date": d.date,
                        "snowfall_cm": d.snowfall_sum,
                        "rain_mm": d.rain_sum,
                        "temp_max": d.temperature_max,
                        "temp_min": d.temperature_min,
                        "weather_code": d.weather_code,
                    }
                    for d in band.daily
                ],
            }
            for band in forecast.bands
        },
    }
    _append_jsonl("forecasts", record)


def log_snow_alert(
    alert: SnowAlert,
    timestamp: datetime | None = None,
) -> None:
    """Log a snow alert to data/logs/alerts/."""
    ts = timestamp or datetime.now(timezone.utc)
    record = {
        "timestamp": ts.isoformat(),
        "resort": alert.slug,
        "date": alert.date,
        "snowfall_cm": alert.snowfall_cm,
        "threshold_cm": alert.threshold_cm,
        "message": alert.message,
    }
    _append_jsonl("alerts", record)
