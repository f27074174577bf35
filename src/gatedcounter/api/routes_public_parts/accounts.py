from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from gatedcounter.api.routes_public_parts.common import _executor, _identity_param

router = APIRouter()

Json = Dict[str, Any]


@router.get("/accounts/{account}")
def account_get(request: Request, account: str) -> Json:
    ex = _executor(request)
    account = _identity_param(account, field="account")
    return {"ok": True, "account": ex.get_account(account)}
