from __future__ import annotations

import logging
import math
from collections import Counter
from concurrent.futures import ALL_COMPLETED, CancelledError, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from .adapters.weather import FetchErrorKind, ForecastClient, OpenMeteoForecastClient
from .adapters.weather.open_meteo import DEFAULT_TIMEOUT_SECONDS
from .deadline import Deadline
from .domain.models import AggregateResponse, Location, ResortForecast
from .domain.registry import LocationRegistry
from .settings import AppSettings
from .transform import transform

LOGGER = logging.getLogger(__name__)

DEFAULT_SOURCE = "Open-Meteo"
JOIN_GRACE_SECONDS = 1.0


class AggregateFailure(RuntimeError):
    """Raised when the fan-out itself cannot run to completion."""


class LocationStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class LocationOutcome:
    location_id: str
    status: LocationStatus
    forecast: ResortForecast | None = None
    error: FetchErrorKind | None = None

    @classmethod
    def failed(cls, location_id: str, error: FetchErrorKind | None = None) -> LocationOutcome:
        return cls(location_id=location_id, status=LocationStatus.FAILED, error=error)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_failures(failures: Counter[str]) -> str:
    if not failures:
        return ""
    return " (failed: " + ", ".join(f"{kind}={count}" for kind, count in sorted(failures.items())) + ")"


class ForecastAggregator:
    """Fetch every registered location concurrently and merge the successes.

    Each location gets its own unit of work and its own deadline. The call
    returns once every unit has succeeded or failed, or once the join window
    (the per-location timeout for each scheduling round plus a short grace)
    closes; a unit still running then counts as timed out. Results are merged
    afterwards on the calling thread, in registry order, so the response map
    never has more than one writer. ``max_workers`` bounds concurrency for
    large registries; the default runs one worker per location.
    """

    def __init__(
        self,
        client: ForecastClient,
        registry: LocationRegistry,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_workers: int | None = None,
        source: str = DEFAULT_SOURCE,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._client = client
        self._registry = registry
        self._timeout_seconds = timeout_seconds
        self._max_workers = max_workers
        self._source = source
        self._clock = clock

    @property
    def registry(self) -> LocationRegistry:
        return self._registry

    def aggregate(self) -> AggregateResponse:
        outcomes = self._collect_outcomes()

        forecasts: dict[str, ResortForecast] = {}
        failures: Counter[str] = Counter()
        for outcome in outcomes:
            if outcome.status is LocationStatus.SUCCEEDED and outcome.forecast is not None:
                forecasts[outcome.location_id] = outcome.forecast
            else:
                failures[outcome.error.value if outcome.error else "unexpected"] += 1

        LOGGER.info(
            "Aggregated forecasts for %d/%d locations%s",
            len(forecasts),
            len(outcomes),
            _format_failures(failures),
        )
        return AggregateResponse(
            forecasts=forecasts,
            resort_count=len(forecasts),
            source=self._source,
            fetched_at=self._clock(),
        )

    def _collect_outcomes(self) -> list[LocationOutcome]:
        locations = list(self._registry)
        if not locations:
            return []

        workers = self._max_workers or len(locations)
        join_timeout = self._timeout_seconds * math.ceil(len(locations) / workers) + JOIN_GRACE_SECONDS
        try:
            pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="forecast")
            try:
                futures: list[Future[LocationOutcome]] = [
                    pool.submit(self._run_location, location) for location in locations
                ]
                wait(futures, timeout=join_timeout, return_when=ALL_COMPLETED)
                outcomes = []
                for location, future in zip(locations, futures):
                    if future.done():
                        outcomes.append(future.result())
                        continue
                    # Worker stuck past its deadline; it is abandoned, not joined.
                    LOGGER.warning(
                        "Forecast for '%s' still running after %.1fs; marking as timed out",
                        location.id,
                        join_timeout,
                    )
                    outcomes.append(LocationOutcome.failed(location.id, FetchErrorKind.TIMEOUT))
                return outcomes
            finally:
                pool.shutdown(wait=False, cancel_futures=True)
        except (RuntimeError, CancelledError) as exc:
            raise AggregateFailure(f"Forecast fan-out did not complete: {exc}") from exc

    def _run_location(self, location: Location) -> LocationOutcome:
        deadline = Deadline.after(self._timeout_seconds)
        try:
            result = self._client.fetch(location, deadline)
            if result.forecast is None:
                LOGGER.warning(
                    "Forecast for '%s' unavailable (%s): %s",
                    location.id,
                    result.error.value if result.error else "unknown",
                    result.detail,
                )
                return LocationOutcome.failed(location.id, result.error)

            forecast = transform(result.forecast, location)
        except Exception:
            LOGGER.exception("Forecast for '%s' failed", location.id)
            return LocationOutcome.failed(location.id)

        return LocationOutcome(
            location_id=location.id,
            status=LocationStatus.SUCCEEDED,
            forecast=forecast,
        )


def build_forecast_client(settings: AppSettings) -> OpenMeteoForecastClient:
    upstream = settings.yaml.upstream
    return OpenMeteoForecastClient(
        base_url=upstream.base_url,
        timezone_name=upstream.timezone,
        user_agent=upstream.user_agent,
    )


def build_aggregator(settings: AppSettings) -> ForecastAggregator:
    return ForecastAggregator(
        build_forecast_client(settings),
        settings.registry,
        timeout_seconds=settings.yaml.upstream.timeout_seconds,
        max_workers=settings.yaml.aggregation.max_workers,
        source=settings.yaml.aggregation.source,
    )
