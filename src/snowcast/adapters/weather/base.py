from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from ...deadline import Deadline
from ...domain.models import Location, RawForecast


class FetchErrorKind(str, Enum):
    TIMEOUT = "timeout"
    UPSTREAM_STATUS = "upstream_status"
    MALFORMED_PAYLOAD = "malformed_payload"
    TRANSPORT = "transport"


class WeatherAdapterError(RuntimeError):
    """Raised when a weather provider request cannot be completed."""


class ForecastFetchError(WeatherAdapterError):
    """Raised when one location's forecast could not be fetched or parsed."""

    def __init__(self, kind: FetchErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True, slots=True)
class FetchResult:
    location_id: str
    forecast: RawForecast | None = None
    error: FetchErrorKind | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.forecast is not None


class ForecastClient(Protocol):
    def fetch(self, location: Location, deadline: Deadline) -> FetchResult:
        """Fetch one location's raw daily forecast without raising for provider failures."""
