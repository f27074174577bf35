from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from gatedcounter.api.errors import ApiError
from gatedcounter.api.routes_public_parts.common import _executor, _identity_param

router = APIRouter()

Json = Dict[str, Any]


@router.get("/counters/{owner}")
def counter_get(request: Request, owner: str) -> Json:
    ex = _executor(request)
    owner = _identity_param(owner, field="owner")
    counter = ex.get_counter(owner)
    if counter is None:
        raise ApiError.not_found("counter_not_found", "no counter for owner", {"owner": owner})
    return {"ok": True, "counter": counter}
