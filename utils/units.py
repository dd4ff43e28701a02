"""WMO weather codes and display unit conversions."""
from __future__ import annotations

# WMO weather interpretation code → (label, icon)
# https://open-meteo.com/en/docs#weathervariables
WMO_CODES: dict[int, tuple[str, str]] = {
    0: ("Clear sky", "☀️"),
    1: ("Mainly clear", "\U0001f324️"),
    2: ("Partly cloudy", "⛅"),
    3: ("Overcast", "☁️"),
    45: ("Fog", "\U0001f32b️"),
    48: ("Rime fog", "\U0001f32b️"),
    51: ("Light drizzle", "\U0001f326️"),
    53: ("Drizzle", "\U0001f326️"),
    55: ("Dense drizzle", "\U0001f327️"),
    56: ("Light freezing drizzle", "\U0001f327️"),
    57: ("Freezing drizzle", "\U0001f327️"),
    61: ("Slight rain", "\U0001f326️"),
    63: ("Rain", "\U0001f327️"),
    65: ("Heavy rain", "\U0001f327️"),
    66: ("Light freezing rain", "\U0001f327️"),
    67: ("Freezing rain", "\U0001f327️"),
    71: ("Slight snow", "\U0001f328️"),
    73: ("Snow", "\U0001f328️"),
    75: ("Heavy snow", "❄️"),
    77: ("Snow grains", "❄️"),
    80: ("Slight rain showers", "\U0001f326️"),
    81: ("Rain showers", "\U0001f327️"),
    82: ("Violent rain showers", "\U0001f327️"),
    85: ("Slight snow showers", "\U0001f328️"),
    86: ("Heavy snow showers", "❄️"),
    95: ("Thunderstorm", "⛈️"),
    96: ("Thunderstorm w/ hail", "⛈️"),
    99: ("Thunderstorm w/ heavy hail", "⛈️"),
}


def weather_description(code: int) -> tuple[str, str]:
    """Return (label, icon) for a WMO weather code."""
    return WMO_CODES.get(code, (f"Code {code}", "❓"))


def cm_to_in(cm: float) -> float:
    return cm / 2.54


def c_to_f(celsius: float) -> float:
    return celsius * 9 / 5 + 32


def m_to_ft(meters: float) -> float:
    return meters * 3.28084


def fmt_temp(celsius: float, unit: str = "F") -> str:
    if unit == "F":
        return f"{round(c_to_f(celsius))}°F"
    return f"{round(celsius)}°C"


def fmt_elevation(meters: float, unit: str = "ft") -> str:
    if unit == "ft":
        return f"{round(m_to_ft(meters)):,}ft"
    return f"{round(meters):,}m"


def fmt_snow(cm: float, unit: str = "in") -> str:
    if unit == "in":
        return f"{cm_to_in(cm):.1f}\""
    return f"{cm:.1f}cm"


def rain_dot_rating(rain_inches: float) -> int:
    """
    Rain intensity as 0-3 dots:
    0 = none, 1 = up to 0.1", 2 = up to 0.5", 3 = more.
    """
    if rain_inches <= 0:
        return 0
    if rain_inches <= 0.1:
        return 1
    if rain_inches <= 0.5:
        return 2
    return 3
