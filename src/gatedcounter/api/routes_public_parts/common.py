from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from gatedcounter.api.errors import ApiError
from gatedcounter.crypto.address import is_valid_identity

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _identity_param(value: str, *, field: str) -> str:
    """Path params naming identities must be base58 32-byte keys."""
    v = str(value or "").strip()
    if not is_valid_identity(v):
        raise ApiError.bad_request("bad_identity", f"{field} must be a base58 32-byte identity", {field: v})
    return v
