from .base import (
    FetchErrorKind,
    FetchResult,
    ForecastClient,
    ForecastFetchError,
    WeatherAdapterError,
)
from .open_meteo import OpenMeteoForecastClient

__all__ = [
    "FetchErrorKind",
    "FetchResult",
    "ForecastClient",
    "ForecastFetchError",
    "OpenMeteoForecastClient",
    "WeatherAdapterError",
]
