# src/gatedcounter/programs/common.py
from __future__ import annotations

from typing import Any, Dict, Optional

from gatedcounter.crypto.address import is_valid_identity
from gatedcounter.runtime.errors import ErrorKind, ProgramError

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) else ""


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def require_identity(payload: Json, key: str, *, instruction: str) -> str:
    v = _as_str(payload.get(key))
    if not v:
        raise ProgramError(ErrorKind.INVALID_PAYLOAD, f"missing_{key}", {"instruction": instruction})
    if not is_valid_identity(v):
        raise ProgramError(ErrorKind.INVALID_PAYLOAD, f"bad_{key}", {"instruction": instruction, key: v})
    return v


def optional_identity(payload: Json, key: str, *, instruction: str) -> Optional[str]:
    if payload.get(key) in (None, ""):
        return None
    return require_identity(payload, key, instruction=instruction)


def require_bump(payload: Json, key: str, *, instruction: str) -> int:
    raw = payload.get(key)
    if isinstance(raw, bool) or raw is None:
        raise ProgramError(ErrorKind.INVALID_PAYLOAD, f"missing_{key}", {"instruction": instruction})
    try:
        b = int(raw)
    except (TypeError, ValueError):
        raise ProgramError(ErrorKind.INVALID_PAYLOAD, f"bad_{key}", {"instruction": instruction, key: raw})
    if b < 0 or b > 255:
        raise ProgramError(ErrorKind.INVALID_PAYLOAD, f"{key}_out_of_range", {"instruction": instruction, key: b})
    return b


__all__ = ["_as_dict", "_as_str", "optional_identity", "require_bump", "require_identity"]
