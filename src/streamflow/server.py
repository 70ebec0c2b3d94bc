"""Entrypoint for running the settlement API under uvicorn."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from streamflow.config.observability import ObservabilitySettings
from streamflow.infrastructure.http.middleware import request_logging_middleware
from streamflow.infrastructure.http.routes import add_session_routes
from streamflow.observability.logging import configure_logging
from streamflow.observability.tracing import configure_tracing
from streamflow.runtime.bootstrap import RuntimeContext, build_runtime
from streamflow.runtime.settings import Settings

logger = logging.getLogger("streamflow.runtime")


def create_app(runtime: RuntimeContext) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            "streamflow_started",
            extra={"data": {"production_mode": not runtime.verifier.simulated}},
        )
        yield
        logger.info("streamflow_stopped")

    app = FastAPI(title="StreamFlow Settlement API", version="0.1.0", lifespan=lifespan)
    app.middleware("http")(request_logging_middleware)
    add_session_routes(app, runtime.route_deps_provider)
    return app


def main() -> None:
    import uvicorn

    configure_logging(json_lines=ObservabilitySettings().log_json)
    settings = Settings.load()
    configure_tracing(service_name=settings.observability.service_name)
    runtime = build_runtime(settings)

    config = uvicorn.Config(
        create_app(runtime),
        host=settings.host,
        port=settings.port,
        # logging already setup
        log_config=None,
    )
    uvicorn.Server(config).run()


__all__ = ["create_app", "main"]
