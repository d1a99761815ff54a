from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .aggregator import AggregateFailure, ForecastAggregator, build_aggregator
from .domain.models import isoformat_utc
from .settings import AppSettings, load_settings

LOGGER = logging.getLogger(__name__)

SettingsLoader = Callable[[], AppSettings]
AggregatorFactory = Callable[[AppSettings], ForecastAggregator]


def _get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def _get_aggregator(request: Request) -> ForecastAggregator:
    return request.app.state.aggregator


def create_app(
    settings_loader: SettingsLoader = load_settings,
    aggregator_factory: AggregatorFactory = build_aggregator,
) -> FastAPI:
    """Build the app. Run with ``uvicorn --factory snowcast.main:create_app``.

    Settings are loaded here rather than at startup because the CORS origins
    have to be fixed before the middleware stack is built.
    """
    settings = settings_loader()

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        application.state.settings = settings
        application.state.aggregator = aggregator_factory(settings)
        application.state.started_at_utc = datetime.now(timezone.utc)
        LOGGER.info(
            "Forecast service started with %d locations (%s)",
            len(settings.registry),
            settings.env.snowcast_env,
        )
        yield
        LOGGER.info("Forecast service stopped")

    application = FastAPI(title="Snowcast", version="0.1.0", lifespan=lifespan)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.yaml.http.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @application.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            {"error": exc.detail},
            status_code=exc.status_code,
            headers=exc.headers,
        )

    @application.get("/api/forecast", response_class=JSONResponse)
    async def forecast(request: Request) -> JSONResponse:
        settings = _get_settings(request)
        aggregator = _get_aggregator(request)
        try:
            response = await run_in_threadpool(aggregator.aggregate)
        except AggregateFailure as exc:
            LOGGER.exception("Forecast aggregation failed")
            return JSONResponse(
                {"error": str(exc), "fetchedAt": isoformat_utc(datetime.now(timezone.utc))},
                status_code=502,
                headers={"Cache-Control": "no-store"},
            )

        return JSONResponse(
            response.to_payload(),
            headers={"Cache-Control": settings.yaml.http.cache_control},
        )

    @application.get("/health", response_class=JSONResponse)
    async def health(request: Request) -> JSONResponse:
        settings = _get_settings(request)
        return JSONResponse(
            {
                "status": "ok",
                "service": "snowcast",
                "environment": settings.env.snowcast_env,
                "locations": list(settings.registry.ids()),
                "started_at_utc": request.app.state.started_at_utc.isoformat(),
                "timestamp_utc": datetime.now(timezone.utc).isoformat(),
            }
        )

    return application
