from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from gatedcounter.api.errors import ApiError
from gatedcounter.api.routes_public_parts.common import _executor, _identity_param

router = APIRouter()

Json = Dict[str, Any]


@router.get("/whitelists/{whitelist_id}")
def whitelist_get(request: Request, whitelist_id: str) -> Json:
    ex = _executor(request)
    whitelist_id = _identity_param(whitelist_id, field="whitelist_id")
    cfg = ex.get_whitelist(whitelist_id)
    if cfg is None:
        raise ApiError.not_found("whitelist_not_found", "no whitelist config at id", {"whitelist_id": whitelist_id})
    return {"ok": True, "whitelist": cfg}


@router.get("/whitelists/{whitelist_id}/members")
def whitelist_members(request: Request, whitelist_id: str) -> Json:
    ex = _executor(request)
    whitelist_id = _identity_param(whitelist_id, field="whitelist_id")
    if ex.get_whitelist(whitelist_id) is None:
        raise ApiError.not_found("whitelist_not_found", "no whitelist config at id", {"whitelist_id": whitelist_id})
    members = ex.list_members(whitelist_id)
    return {"ok": True, "whitelist_id": whitelist_id, "members": members, "count": len(members)}


@router.get("/whitelists/{whitelist_id}/members/{wallet}")
def whitelist_member(request: Request, whitelist_id: str, wallet: str) -> Json:
    ex = _executor(request)
    whitelist_id = _identity_param(whitelist_id, field="whitelist_id")
    wallet = _identity_param(wallet, field="wallet")
    return {
        "ok": True,
        "whitelist_id": whitelist_id,
        "wallet": wallet,
        "wallet_record": ex.membership_address(whitelist_id, wallet),
        "member": ex.is_member(whitelist_id, wallet),
    }
