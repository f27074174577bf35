from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from gatedcounter.api.errors import ApiError
from gatedcounter.api.routes_public_parts.common import _executor
from gatedcounter.api.schemas import TxSubmitRequest
from gatedcounter.runtime.errors import ErrorKind

router = APIRouter()

Json = Dict[str, Any]

_FORBIDDEN = {
    ErrorKind.MISSING_SIGNATURE,
    ErrorKind.INVALID_SIGNATURE,
    ErrorKind.AUTHORITY_MISMATCH,
}
_CONFLICT = {
    ErrorKind.ALREADY_LINKED,
    ErrorKind.ALREADY_INITIALIZED,
    ErrorKind.DUPLICATE_MEMBER,
    ErrorKind.BAD_NONCE,
    ErrorKind.DUPLICATE_TRANSACTION,
}
_NOT_FOUND = {
    ErrorKind.ACCOUNT_NOT_FOUND,
    ErrorKind.UNKNOWN_PROGRAM,
}


def _rejection(kind: ErrorKind, reason: str, details: Json) -> ApiError:
    code = kind.value
    if kind in _FORBIDDEN:
        return ApiError.forbidden(code, reason, details)
    if kind in _CONFLICT:
        return ApiError.conflict(code, reason, details)
    if kind in _NOT_FOUND:
        return ApiError.not_found(code, reason, details)
    return ApiError.bad_request(code, reason, details)


@router.post("/tx/submit")
def tx_submit(request: Request, body: TxSubmitRequest) -> Json:
    """Verify, apply and persist a signed tx envelope.

    Returns:
      { ok: true, tx_id, result } on success; a rejected tx raises ApiError whose
      code is the ErrorKind name.
    """
    ex = _executor(request)
    res = ex.submit_tx(body.model_dump())
    if not res.ok:
        details: Json = {"tx_id": res.tx_id}
        if res.details:
            details.update(res.details)
        raise _rejection(res.kind or ErrorKind.INVALID_INSTRUCTION, res.reason, details)
    return {"ok": True, "tx_id": res.tx_id, "result": res.meta}


@router.get("/tx/{tx_id}")
def tx_receipt(request: Request, tx_id: str) -> Json:
    ex = _executor(request)
    receipt = ex.get_receipt(tx_id)
    if receipt is None:
        raise ApiError.not_found("tx_not_found", "no receipt for tx_id", {"tx_id": tx_id})
    return {"ok": True, "receipt": receipt}
