#!/usr/bin/env python3
"""
FreeSnow v1.0 — Multi-model ski resort snow forecaster.

Continuously refreshes elevation-band forecasts for the watched resorts,
recalculating snowfall with SLR physics and blending NWS data for US resorts,
and raises snow alerts when a powder day appears in the forecast.
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys

import aiohttp

import config
from models.forecast import ResortForecast
from services.forecast_engine import ForecastEngine
from services.logger import log_forecast, log_snow_alert
from services.snow_alerts import SnowAlertChecker
from utils.units import fmt_elevation, fmt_snow, weather_description
from utils.weather_client import NWSClient, OpenMeteoClient

# ── Logging setup ─────────────────────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("freesnow")

# ── Shared state ──────────────────────────────────────────────────────────────
_shutdown_event = asyncio.Event()
_forecasts_updated = asyncio.Event()


def _print_banner() -> None:
    n_resorts = len(config.WATCHED_RESORTS)
    alert_status = (
        f"{fmt_snow(config.SNOW_ALERT_THRESHOLD_CM)}+" if config.SNOW_ALERT_ENABLED else "DISABLED"
    )
    banner = f"""
╔══════════════════════════════════════╗
║         FreeSnow v1.0                ║
║  Multi-model snow forecast           ║
║  Watching {n_resorts} resorts{' ' * (19 - len(str(n_resorts)))}║
║  Snow alerts: {alert_status:<23s}║
╚══════════════════════════════════════╝"""
    print(banner)


def format_summary(forecast: ResortForecast) -> str:
    """One line per band: elevation, next days' snowfall, today's weather."""
    lines = [f"{forecast.resort.name} ({forecast.resort.country})"]
    for band in forecast.bands:
        days = " ".join(f"{d.date[5:]}:{fmt_snow(d.snowfall_sum)}" for d in band.daily[:5])
        label = ""
        if band.daily:
            text, icon = weather_description(band.daily[0].weather_code)
            label = f"{icon} {text}"
        lines.append(
            f"  {band.band:<4} {fmt_elevation(band.elevation):>8}  {days}  {label}"
        )
    return "\n".join(lines)


# ── Loop tasks ────────────────────────────────────────────────────────────────


async def forecast_refresh_loop(engine: ForecastEngine) -> None:
    """Refresh resort forecasts every FORECAST_REFRESH_INTERVAL_SECONDS."""
    while not _shutdown_event.is_set():
        try:
            forecasts = await engine.refresh_all()
            for forecast in forecasts.values():
                log_forecast(forecast)
                print(format_summary(forecast))
            _forecasts_updated.set()
            logger.info("Forecast refresh complete — %d resorts", len(forecasts))
        except Exception as exc:
            logger.error("Forecast refresh loop error: %s", exc)

        try:
            await asyncio.wait_for(
                _shutdown_event.wait(),
                timeout=config.FORECAST_REFRESH_INTERVAL_SECONDS,
            )
            break  # shutdown requested
        except asyncio.TimeoutError:
            pass


async def snow_alert_loop(engine: ForecastEngine, checker: SnowAlertChecker) -> None:
    """Check fresh forecasts for powder days whenever they update."""
    while not _shutdown_event.is_set():
        try:
            await asyncio.wait_for(_forecasts_updated.wait(), timeout=30.0)
        except asyncio.TimeoutError:
            continue

        _forecasts_updated.clear()

        try:
            for alert in checker.check_all(engine.forecasts.values()):
                log_snow_alert(alert)
                print(f"❄️  {alert.message}")
        except Exception as exc:
            logger.error("Snow alert loop error: %s", exc)


# ── Main ──────────────────────────────────────────────────────────────────────


async def main() -> None:
    _print_banner()

    # Set up graceful shutdown
    loop = asyncio.get_running_loop()
    for sig_name in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig_name, lambda: _shutdown_event.set())

    # Create shared HTTP session
    async with aiohttp.ClientSession(
        headers={"User-Agent": config.USER_AGENT},
        timeout=aiohttp.ClientTimeout(total=config.HTTP_TIMEOUT_SECONDS),
    ) as session:
        openmeteo = OpenMeteoClient(session=session)
        nws = NWSClient(session=session)
        engine = ForecastEngine(openmeteo, nws)

        logger.info("All services initialized — starting loops")

        tasks = [
            asyncio.create_task(forecast_refresh_loop(engine), name="forecast_refresh"),
        ]
        if config.SNOW_ALERT_ENABLED:
            checker = SnowAlertChecker(config.SNOW_ALERT_THRESHOLD_CM)
            tasks.append(
                asyncio.create_task(snow_alert_loop(engine, checker), name="snow_alerts")
            )

        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            pass
        finally:
            logger.info("Shutting down gracefully...")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("FreeSnow stopped.")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested via Ctrl+C")
        sys.exit(0)
