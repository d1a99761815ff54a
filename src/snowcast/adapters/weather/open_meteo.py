from __future__ import annotations

import json
import logging
import socket
from http.client import HTTPException
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from pydantic import ValidationError

from ...deadline import Deadline
from ...domain.models import Location, RawForecast
from .base import FetchErrorKind, FetchResult, ForecastFetchError

LOGGER = logging.getLogger(__name__)

OPEN_METEO_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
DEFAULT_TIMEOUT_SECONDS = 8.0
FORECAST_DAYS = 6
READ_CHUNK_BYTES = 64 * 1024

DAILY_FIELDS = (
    "temperature_2m_max",
    "temperature_2m_min",
    "snowfall_sum",
    "precipitation_sum",
    "weathercode",
    "windspeed_10m_max",
    "winddirection_10m_dominant",
)

Opener = Callable[..., Any]


def _response_socket(response: Any) -> socket.socket | None:
    # http.client keeps the connection socket behind fp (BufferedReader) -> raw (SocketIO).
    raw = getattr(getattr(response, "fp", None), "raw", None)
    sock = getattr(raw, "_sock", None)
    return sock if isinstance(sock, socket.socket) else None


def _read_body(response: Any, deadline: Deadline) -> bytes:
    sock = _response_socket(response)
    chunks: list[bytes] = []
    while True:
        remaining = deadline.remaining()
        if remaining <= 0:
            raise ForecastFetchError(FetchErrorKind.TIMEOUT, "Deadline expired while reading response")
        if sock is not None:
            sock.settimeout(remaining)
        chunk = response.read1(READ_CHUNK_BYTES)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def _parse_daily(body: bytes) -> RawForecast:
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ForecastFetchError(
            FetchErrorKind.MALFORMED_PAYLOAD, "Open-Meteo response was not valid JSON"
        ) from exc

    if not isinstance(payload, dict):
        raise ForecastFetchError(FetchErrorKind.MALFORMED_PAYLOAD, "Unexpected Open-Meteo response shape")

    daily_data = payload.get("daily")
    if not isinstance(daily_data, dict) or daily_data.get("time") is None:
        raise ForecastFetchError(
            FetchErrorKind.MALFORMED_PAYLOAD, "Open-Meteo response did not include daily.time"
        )

    try:
        return RawForecast.model_validate(daily_data)
    except ValidationError as exc:
        raise ForecastFetchError(
            FetchErrorKind.MALFORMED_PAYLOAD, "Open-Meteo daily forecast payload was invalid"
        ) from exc


class OpenMeteoForecastClient:
    def __init__(
        self,
        *,
        base_url: str = OPEN_METEO_FORECAST_URL,
        timezone_name: str = "Europe/Paris",
        user_agent: str = "snowcast/0.1",
        opener: Opener = urlopen,
    ) -> None:
        self._base_url = base_url
        self._timezone_name = timezone_name
        self._user_agent = user_agent
        self._opener = opener

    def build_url(self, location: Location) -> str:
        params = {
            "latitude": str(location.lat),
            "longitude": str(location.lon),
            "elevation": str(location.elevation_m),
            "daily": ",".join(DAILY_FIELDS),
            "timezone": self._timezone_name,
            "forecast_days": str(FORECAST_DAYS),
        }
        return f"{self._base_url}?{urlencode(params)}"

    def get_forecast(self, location: Location, deadline: Deadline) -> RawForecast:
        if deadline.expired:
            raise ForecastFetchError(FetchErrorKind.TIMEOUT, "Deadline expired before request was sent")

        url = self.build_url(location)
        request = Request(url, headers={"User-Agent": self._user_agent})
        LOGGER.debug("Requesting forecast for '%s' from %s", location.id, url)
        try:
            with self._opener(request, timeout=deadline.remaining()) as response:
                status = getattr(response, "status", 200)
                if not 200 <= status < 300:
                    raise ForecastFetchError(
                        FetchErrorKind.UPSTREAM_STATUS, f"Open-Meteo returned HTTP {status}"
                    )
                body = _read_body(response, deadline)
        except HTTPError as exc:
            raise ForecastFetchError(
                FetchErrorKind.UPSTREAM_STATUS, f"Open-Meteo returned HTTP {exc.code}"
            ) from exc
        except URLError as exc:
            if isinstance(exc.reason, TimeoutError):
                raise ForecastFetchError(FetchErrorKind.TIMEOUT, "Open-Meteo request timed out") from exc
            raise ForecastFetchError(
                FetchErrorKind.TRANSPORT, f"Open-Meteo request failed: {exc.reason}"
            ) from exc
        except TimeoutError as exc:
            raise ForecastFetchError(FetchErrorKind.TIMEOUT, "Open-Meteo request timed out") from exc
        except (OSError, HTTPException) as exc:
            raise ForecastFetchError(FetchErrorKind.TRANSPORT, f"Open-Meteo request failed: {exc}") from exc

        return _parse_daily(body)

    def fetch(self, location: Location, deadline: Deadline) -> FetchResult:
        try:
            forecast = self.get_forecast(location, deadline)
        except ForecastFetchError as exc:
            return FetchResult(location_id=location.id, error=exc.kind, detail=str(exc))
        return FetchResult(location_id=location.id, forecast=forecast)
