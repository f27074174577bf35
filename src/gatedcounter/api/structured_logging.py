# src/gatedcounter/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from gatedcounter.runtime.log import HTTP_LOGGER, log_event

_CONFIGURED_FLAG = "_gatedcounter_configured"


def configure_structured_logging() -> None:
    """Send JSONL log lines to stderr at GATEDCOUNTER_LOG_LEVEL (default INFO).

    Repeat calls only adjust the level.
    """
    level_name = (os.environ.get("GATEDCOUNTER_LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, _CONFIGURED_FLAG, False):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.handlers = [handler]
    setattr(root, _CONFIGURED_FLAG, True)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` event per request, tagged with an x-request-id that is echoed back."""

    def __init__(self, app) -> None:
        super().__init__(app)
        self._logger = logging.getLogger(HTTP_LOGGER)

    async def dispatch(self, request: Request, call_next):
        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex

        status = 500
        try:
            response = await call_next(request)
            status = int(response.status_code)
            response.headers.setdefault("x-request-id", request_id)
            return response
        finally:
            log_event(
                self._logger,
                "http_request",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status=status,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
