# src/gatedcounter/runtime/log.py
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict


Json = Dict[str, Any]

EXECUTOR_LOGGER = "gatedcounter.executor"
HTTP_LOGGER = "gatedcounter.http"


def _now_ms() -> int:
    return int(time.time() * 1000)


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Emit a single JSONL log event.

    Used by the executor and the HTTP middleware; programs never log.
    """
    payload: Json = {"ts_ms": _now_ms(), "event": str(event)}
    payload.update(fields)
    try:
        logger.info(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    except (TypeError, ValueError):
        parts = [f"event={event}"] + [f"{k}={fields.get(k)!r}" for k in sorted(fields.keys())]
        logger.info(" ".join(parts))


__all__ = ["EXECUTOR_LOGGER", "HTTP_LOGGER", "log_event"]
