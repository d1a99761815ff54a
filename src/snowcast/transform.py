"""Pure mapping from an Open-Meteo daily forecast to display-ready day records.

Nothing in this module performs I/O. Rounding is half-up (``floor(x + 0.5)``):
``2.5`` becomes ``3`` and ``-2.5`` becomes ``-2``.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time
from typing import Sequence

from .domain.models import DayRecord, Location, RawForecast, ResortForecast

WEATHER_CODE_TEXT: dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Rime fog",
    51: "Light drizzle",
    53: "Drizzle",
    55: "Heavy drizzle",
    56: "Freezing drizzle",
    57: "Heavy freezing drizzle",
    61: "Light rain",
    63: "Rain",
    65: "Heavy rain",
    66: "Freezing rain",
    67: "Heavy freezing rain",
    71: "Light snow",
    73: "Snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Light showers",
    81: "Showers",
    82: "Heavy showers",
    85: "Light snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm + hail",
    99: "Thunderstorm + heavy hail",
}
# Unmapped or missing codes.
FALLBACK_WEATHER_TEXT = "Cloudy"

COMPASS_POINTS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")
WEEKDAY_ABBREVIATIONS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

# Value used when an upstream array is short or holds null at a given day.
MISSING_VALUE_DEFAULTS: dict[str, float | None] = {
    "temperature_2m_max": 0.0,
    "temperature_2m_min": 0.0,
    "snowfall_sum": 0.0,
    "precipitation_sum": 0.0,
    "windspeed_10m_max": 0.0,
    "weathercode": None,
    "winddirection_10m_dominant": None,
}

MIN_SNOW_CM = 0.1
MIN_RAIN_MM = 0.5
SNOW_DAY_THRESHOLD_CM = 1.0
HEAVY_SNOW_TOTAL_CM = 30.0
MODERATE_SNOW_TOTAL_CM = 10.0
LIGHT_SNOW_TOTAL_CM = 2.0


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _series(raw: RawForecast, field_name: str) -> list:
    values: Sequence = getattr(raw, field_name)
    default = MISSING_VALUE_DEFAULTS[field_name]
    series = []
    for index in range(len(raw.time)):
        value = values[index] if index < len(values) else None
        series.append(default if value is None else value)
    return series


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    return f"{value:g}"


def format_day_label(day: date) -> str:
    # Evaluated at local noon so a midnight-adjacent offset can never shift the day.
    noon = datetime.combine(day, time(hour=12))
    return f"{WEEKDAY_ABBREVIATIONS[noon.weekday()]} {noon.day}"


def format_snow(cm: float | None) -> str:
    if cm is None or cm < MIN_SNOW_CM:
        return "0"
    return f"{round_half_up(cm)}cm"


def format_rain(mm: float | None) -> str | None:
    if mm is None or mm <= MIN_RAIN_MM:
        return None
    return f"{round_half_up(mm)}mm"


def weather_code_to_text(code: int | None) -> str:
    if code is None:
        return FALLBACK_WEATHER_TEXT
    return WEATHER_CODE_TEXT.get(code, FALLBACK_WEATHER_TEXT)


def degrees_to_cardinal(degrees: float | None) -> str:
    if degrees is None:
        return ""
    return COMPASS_POINTS[round_half_up(degrees / 45) % 8]


def summarize(snowfall: Sequence[float], highs: Sequence[float], lows: Sequence[float]) -> str:
    total_snow = sum(snowfall)
    if total_snow > HEAVY_SNOW_TOTAL_CM:
        snow_days = sum(1 for cm in snowfall if cm > SNOW_DAY_THRESHOLD_CM)
        summary = f"Heavy snow — ~{round_half_up(total_snow)}cm over {snow_days} days."
    elif total_snow > MODERATE_SNOW_TOTAL_CM:
        summary = f"Moderate snow — ~{round_half_up(total_snow)}cm."
    elif total_snow > LIGHT_SNOW_TOTAL_CM:
        summary = f"Light snow — ~{round_half_up(total_snow)}cm."
    else:
        summary = "Mostly dry."

    if highs and lows:
        summary += f" {_format_number(min(lows))}°C to {_format_number(max(highs))}°C."
    return summary


def transform(raw: RawForecast, location: Location) -> ResortForecast:
    highs = _series(raw, "temperature_2m_max")
    lows = _series(raw, "temperature_2m_min")
    snowfall = _series(raw, "snowfall_sum")
    precipitation = _series(raw, "precipitation_sum")
    codes = _series(raw, "weathercode")
    wind_speeds = _series(raw, "windspeed_10m_max")
    wind_directions = _series(raw, "winddirection_10m_dominant")

    days = [
        DayRecord(
            date=day,
            label=format_day_label(day),
            high_c=round_half_up(highs[index]),
            low_c=round_half_up(lows[index]),
            snow_label=format_snow(snowfall[index]),
            rain_label=format_rain(precipitation[index]),
            weather_text=weather_code_to_text(codes[index]),
            wind_max_label=f"{round_half_up(wind_speeds[index])} km/h",
            wind_direction=degrees_to_cardinal(wind_directions[index]),
        )
        for index, day in enumerate(raw.time)
    ]

    return ResortForecast(
        days=days,
        summary=summarize(snowfall, highs, lows),
        elevation_label=f"{location.elevation_m}m",
        name=location.name,
    )
