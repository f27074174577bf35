from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gatedcounter.api.errors import ApiError, api_error_handler
from gatedcounter.api.routes_public import public_router
from gatedcounter.api.security import RequestSizeLimitMiddleware
from gatedcounter.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from gatedcounter.runtime.chain_config import apply_chain_config_to_env, load_chain_config
from gatedcounter.runtime.executor_boot import build_executor as _build_executor
from gatedcounter.runtime.log import HTTP_LOGGER, log_event


def build_executor():
    """Build a GatedCounterExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `gatedcounter.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor()


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load chain config, export it to env, attach the executor
      - False: keep lightweight for unit tests / import-time validation
    """
    if boot_runtime:
        apply_chain_config_to_env(load_chain_config())
    configure_structured_logging()

    mode = os.environ.get("GATEDCOUNTER_MODE", "prod").strip().lower()
    logger = logging.getLogger(HTTP_LOGGER)

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        ex = getattr(app.state, "executor", None)
        log_event(logger, "api_started", mode=mode, chain_id=getattr(ex, "chain_id", None))
        yield
        log_event(logger, "api_stopped", chain_id=getattr(ex, "chain_id", None))

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(
            title="Gated Counter API",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=_lifespan,
        )
    else:
        app = FastAPI(title="Gated Counter API", lifespan=_lifespan)

    app.state.executor = build_executor() if boot_runtime else None

    app.add_exception_handler(ApiError, api_error_handler)

    # --- Middleware ---
    # Size limiter runs inside the request logger so rejected bodies are logged too.
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    # --- Routers ---
    app.include_router(public_router)

    return app
