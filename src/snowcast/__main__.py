from __future__ import annotations

import logging

import uvicorn

from .main import create_app
from .settings import load_settings


def run() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=settings.env.snowcast_log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    application = create_app(lambda: settings)
    uvicorn.run(
        application,
        host=settings.env.snowcast_host,
        port=settings.env.snowcast_port,
        log_level=settings.env.snowcast_log_level.lower(),
    )


if __name__ == "__main__":
    run()
