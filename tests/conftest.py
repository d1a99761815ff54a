"""Shared fixtures for the forecast pipeline tests."""

from __future__ import annotations

import io
import json
import socket
import threading
from typing import Any, Callable
from urllib.parse import parse_qs, urlparse

import pytest

from snowcast.domain.models import Location, RawForecast
from snowcast.domain.registry import DEFAULT_LOCATIONS, LocationRegistry


class FakeResponse:
    """Minimal stand-in for the object returned by ``urllib.request.urlopen``."""

    def __init__(self, body: bytes, status: int = 200, on_read: Callable[[], None] | None = None) -> None:
        self.status = status
        self._stream = io.BytesIO(body)
        self._on_read = on_read

    def read(self, size: int = -1) -> bytes:
        if self._on_read is not None:
            self._on_read()
        return self._stream.read(size)

    def read1(self, size: int = -1) -> bytes:
        return self.read(size)

    def __enter__(self) -> FakeResponse:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._stream.close()


class FakeOpener:
    """Routes requests by latitude to canned bodies or exceptions."""

    def __init__(self, routes: dict[str, Any] | None = None, default: Any = None) -> None:
        self.routes = routes or {}
        self.default = default
        self.calls: list[tuple[str, float]] = []

    def __call__(self, request, timeout: float):
        self.calls.append((request.full_url, timeout))
        query = parse_qs(urlparse(request.full_url).query)
        outcome = self.routes.get(query["latitude"][0], self.default)
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(request, timeout)
        if isinstance(outcome, FakeResponse):
            return outcome
        return FakeResponse(json.dumps(outcome).encode("utf-8"))


@pytest.fixture
def sample_daily() -> dict[str, Any]:
    """Six days starting on Sunday 2024-01-07 with ~35cm of snow."""
    return {
        "time": ["2024-01-07", "2024-01-08", "2024-01-09", "2024-01-10", "2024-01-11", "2024-01-12"],
        "temperature_2m_max": [-2.0, -4.5, 1.2, 3.0, 5.5, 4.0],
        "temperature_2m_min": [-8.0, -10.5, -6.0, -3.0, -1.0, -2.5],
        "snowfall_sum": [12.0, 8.5, 10.0, 4.5, 0.0, None],
        "precipitation_sum": [14.0, 9.0, 11.0, 5.0, 0.5, 0.6],
        "weathercode": [73, 75, 71, 3, 0, 100],
        "windspeed_10m_max": [25.4, 30.0, 18.6, 12.0, 8.0, 10.5],
        "winddirection_10m_dominant": [0, 90, 360, 225, None, 22.5],
    }


@pytest.fixture
def sample_payload(sample_daily) -> dict[str, Any]:
    return {
        "latitude": 45.92,
        "longitude": 6.87,
        "timezone": "Europe/Paris",
        "daily": sample_daily,
    }


@pytest.fixture
def raw_forecast(sample_daily) -> RawForecast:
    return RawForecast.model_validate(sample_daily)


@pytest.fixture
def chamonix() -> Location:
    return DEFAULT_LOCATIONS[0]


@pytest.fixture
def registry() -> LocationRegistry:
    return LocationRegistry(DEFAULT_LOCATIONS)


@pytest.fixture
def fake_opener_factory() -> Callable[..., FakeOpener]:
    return FakeOpener


@pytest.fixture
def fake_response_factory() -> Callable[..., FakeResponse]:
    return FakeResponse


class SlowHttpServer:
    """Local HTTP server that sends headers, then drips the body one byte at a time.

    ``interval`` is the pause between bytes; ``None`` sends nothing after the
    headers. The advertised body length is never reached, so a reader that
    trusts only its socket timeout keeps waiting.
    """

    def __init__(self, interval: float | None) -> None:
        self.interval = interval
        self._listener = socket.create_server(("127.0.0.1", 0))
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    @property
    def url(self) -> str:
        host, port = self._listener.getsockname()[:2]
        return f"http://{host}:{port}/v1/forecast"

    def start(self) -> SlowHttpServer:
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        self._listener.close()
        self._thread.join(timeout=5)

    def _serve(self) -> None:
        try:
            conn, _ = self._listener.accept()
        except OSError:
            return
        with conn:
            try:
                conn.recv(65536)
                conn.sendall(
                    b"HTTP/1.1 200 OK\r\n"
                    b"Content-Type: application/json\r\n"
                    b"Content-Length: 100000\r\n\r\n"
                )
                while not self._stop.is_set():
                    if self.interval is None:
                        self._stop.wait(0.05)
                        continue
                    conn.sendall(b" ")
                    self._stop.wait(self.interval)
            except OSError:
                return


@pytest.fixture
def slow_http_server():
    servers: list[SlowHttpServer] = []

    def _start(interval: float | None) -> SlowHttpServer:
        server = SlowHttpServer(interval).start()
        servers.append(server)
        return server

    yield _start
    for server in servers:
        server.stop()
