from __future__ import annotations

import time

from fastapi import APIRouter, Request

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/health")
def v1_health(request: Request) -> dict[str, object]:
    # Never raises: reports executor=None when the runtime is not booted.
    ex = getattr(request.app.state, "executor", None)
    out: dict[str, object] = {
        "ok": True,
        "service": "gatedcounter",
        "version": "v1",
        "ts_ms": _now_ms(),
        "chain_id": None,
        "seq": None,
        "executor": ex is not None,
    }
    if ex is not None:
        out.update(
            {
                "chain_id": ex.chain_id,
                "seq": int(ex.state.get("seq", 0)),
                "sigverify": ex.sigverify,
                "counter_program_id": ex.counter_program_id,
                "whitelist_program_id": ex.whitelist_program_id,
            }
        )
    return out
