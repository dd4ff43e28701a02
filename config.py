import os
from dotenv import load_dotenv

from models.resort import Resort, ResortElevation

load_dotenv()

# ── Weather APIs ──────────────────────────────────────────────────────────────
OPENMETEO_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
OPENMETEO_ARCHIVE_URL = "https://archive-api.open-meteo.com/v1/archive"
NWS_API_BASE = "https://api.weather.gov"
USER_AGENT = os.getenv("FREESNOW_USER_AGENT", "FreeSnow/1.0 (snow-forecast)")

OPENMETEO_MAX_CONCURRENT = 4  # parallel Open-Meteo requests per process
OPENMETEO_MAX_RETRIES = 4
HTTP_TIMEOUT_SECONDS = 20

FORECAST_DAYS = int(os.getenv("FORECAST_DAYS", "7"))
PAST_DAYS = int(os.getenv("PAST_DAYS", "0"))
TIMEZONE = os.getenv("FORECAST_TIMEZONE", "auto")  # Open-Meteo resolves "auto" per location
FORECAST_REFRESH_INTERVAL_SECONDS = 1800  # 30 minutes

# ── Model selection ───────────────────────────────────────────────────────────
GLOBAL_MODELS = ["gfs_seamless", "ecmwf_ifs025"]
MODELS_BY_COUNTRY: dict[str, list[str]] = {
    "US": GLOBAL_MODELS + ["ncep_hrrr_conus"],  # HRRR 3 km, ~48 h range
    "CA": GLOBAL_MODELS + ["gem_seamless"],  # Environment Canada GEM
}

# ── Secondary source (NWS) ────────────────────────────────────────────────────
SECONDARY_SOURCE_COUNTRIES = {"US"}
NWS_BLEND_WEIGHT = float(os.getenv("NWS_BLEND_WEIGHT", "0.3"))

# ── Snow physics ──────────────────────────────────────────────────────────────
# Station must sit this far above the freezing level to force all-snow
FREEZING_LEVEL_MARGIN_M = 100.0
# Upper bound of the 0..N °C rain/snow mix zone
MARGINAL_ZONE_UPPER_C = 2.0

# (exclusive lower temperature bound °C, cm snow per mm liquid), warmest first
SLR_TEMPERATURE_BANDS: list[tuple[float, float]] = [
    (2.0, 0.0),
    (0.0, 0.5),
    (-2.0, 1.0),
    (-5.0, 1.2),
    (-10.0, 1.5),
    (-15.0, 1.8),
]
SLR_COLDEST = 2.0

# (minimum relative humidity %, multiplier), checked in order
SLR_HUMIDITY_ADJUSTMENTS: list[tuple[float, float]] = [(90.0, 1.15), (80.0, 1.10)]
SLR_DRY_AIR_HUMIDITY = 50.0
SLR_DRY_AIR_FACTOR = 0.90
# (minimum wind km/h, multiplier), checked in order
SLR_WIND_ADJUSTMENTS: list[tuple[float, float]] = [(50.0, 0.80), (30.0, 0.90)]

# ── Snow alerts ───────────────────────────────────────────────────────────────
SNOW_ALERT_ENABLED = os.getenv("SNOW_ALERT_ENABLED", "true").lower() == "true"
SNOW_ALERT_THRESHOLD_CM = float(os.getenv("SNOW_ALERT_THRESHOLD_CM", "7.62"))  # 3 in

# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ── Resort dataset ────────────────────────────────────────────────────────────
# slug → Resort. Elevations in meters above sea level.
RESORTS: dict[str, Resort] = {
    r.slug: r
    for r in [
        Resort(
            slug="crystal-mountain-wa",
            name="Crystal Mountain",
            region="Washington",
            country="US",
            lat=46.9282,
            lon=-121.5045,
            elevation=ResortElevation(base=1341, mid=1800, top=2134),
            vertical_drop=793,
            lifts=11,
            acres=2600,
            website="https://www.crystalmountainresort.com",
        ),
        Resort(
            slug="vail-co",
            name="Vail",
            region="Colorado",
            country="US",
            lat=39.6061,
            lon=-106.3550,
            elevation=ResortElevation(base=2476, mid=2979, top=3527),
            vertical_drop=1051,
            lifts=31,
            acres=5317,
            website="https://www.vail.com",
        ),
        Resort(
            slug="alta-ut",
            name="Alta",
            region="Utah",
            country="US",
            lat=40.5884,
            lon=-111.6386,
            elevation=ResortElevation(base=2600, mid=2900, top=3216),
            vertical_drop=616,
            lifts=6,
            acres=2614,
            website="https://www.alta.com",
        ),
        Resort(
            slug="whistler-blackcomb-bc",
            name="Whistler Blackcomb",
            region="British Columbia",
            country="CA",
            lat=50.1163,
            lon=-122.9574,
            elevation=ResortElevation(base=675, mid=1500, top=2284),
            vertical_drop=1609,
            lifts=37,
            acres=8171,
            website="https://www.whistlerblackcomb.com",
        ),
        Resort(
            slug="niseko-united-jp",
            name="Niseko United",
            region="Hokkaido",
            country="JP",
            lat=42.8048,
            lon=140.6874,
            elevation=ResortElevation(base=255, mid=750, top=1308),
            vertical_drop=1053,
            lifts=38,
        ),
        Resort(
            slug="zermatt-ch",
            name="Zermatt",
            region="Valais",
            country="CH",
            lat=45.9763,
            lon=7.6586,
            elevation=ResortElevation(base=1620, mid=2600, top=3883),
            vertical_drop=2263,
            lifts=52,
        ),
    ]
}

# Resorts refreshed by the long-running process (comma-separated slugs)
WATCHED_RESORTS = [
    s.strip()
    for s in os.getenv("WATCHED_RESORTS", ",".join(RESORTS)).split(",")
    if s.strip()
]


def resort_from_slug(slug: str) -> Resort | None:
    """Return the resort registered under *slug*, or None."""
    return RESORTS.get(slug.strip().lower())
