# src/gatedcounter/programs/whitelist.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from gatedcounter.crypto.address import membership_address, membership_seeds, verify_program_address
from gatedcounter.ledger.constants import KIND_WALLET_MEMBERSHIP, KIND_WHITELIST_CONFIG, U64_MAX
from gatedcounter.ledger.records import (
    WalletMembership,
    WhitelistConfig,
    close_record,
    init_record,
    load_record,
    peek_record,
    record_exists,
    store_record,
)
from gatedcounter.ledger.state import LedgerView
from gatedcounter.programs.common import _as_dict, optional_identity, require_identity
from gatedcounter.runtime.errors import ErrorKind, ProgramError, checked_add, checked_sub
from gatedcounter.runtime.invoke import InvokeContext

Json = Dict[str, Any]


WHITELIST_INSTRUCTIONS: Set[str] = {
    "CREATE_WHITELIST",
    "SET_CONTROLLER",
    "ADD_MEMBER",
    "REMOVE_MEMBER",
    "CHECK_MEMBER",
}


def _load_config(state: Json, ctx: InvokeContext, whitelist_id: str) -> WhitelistConfig:
    return load_record(state, whitelist_id, program=ctx.program_id, kind=KIND_WHITELIST_CONFIG)


def _require_controller(ctx: InvokeContext, cfg: WhitelistConfig, whitelist_id: str) -> None:
    if not ctx.is_signer(cfg.controller):
        raise ProgramError(
            ErrorKind.AUTHORITY_MISMATCH,
            "controller_must_sign",
            {"whitelist": whitelist_id, "controller": cfg.controller},
        )


def _membership_address(ctx: InvokeContext, whitelist_id: str, wallet: str, supplied: Optional[str]) -> str:
    """Derive the membership address; a client-supplied one must match it."""
    addr, bump = membership_address(whitelist_id, wallet, ctx.program_id)
    if supplied is not None and supplied != addr:
        # Re-derive through the verifier so the error carries both addresses.
        verify_program_address(supplied, membership_seeds(whitelist_id, wallet), bump, ctx.program_id)
    return addr


def _create_whitelist(state: Json, ctx: InvokeContext, payload: Json) -> Json:
    t = "CREATE_WHITELIST"
    creator = require_identity(payload, "creator", instruction=t)
    whitelist_id = require_identity(payload, "whitelist", instruction=t)

    ctx.require_signer(creator, role="creator")
    # The config lives at a fresh keypair identity, which must co-sign its creation.
    ctx.require_signer(whitelist_id, role="whitelist")

    init_record(
        state,
        whitelist_id,
        program=ctx.program_id,
        kind=KIND_WHITELIST_CONFIG,
        payer=creator,
        value=WhitelistConfig(controller=creator, member_count=0),
    )
    return {"applied": t, "whitelist": whitelist_id, "controller": creator}


def _set_controller(state: Json, ctx: InvokeContext, payload: Json) -> Json:
    t = "SET_CONTROLLER"
    whitelist_id = require_identity(payload, "whitelist", instruction=t)
    current = require_identity(payload, "current_controller", instruction=t)
    new_controller = require_identity(payload, "new_controller", instruction=t)

    cfg = _load_config(state, ctx, whitelist_id)
    if cfg.controller != current:
        raise ProgramError(
            ErrorKind.AUTHORITY_MISMATCH,
            "current_controller_mismatch",
            {"whitelist": whitelist_id, "controller": cfg.controller, "claimed": current},
        )
    ctx.require_signer(current, role="current_controller")

    previous = cfg.controller
    cfg.controller = new_controller
    store_record(state, whitelist_id, program=ctx.program_id, kind=KIND_WHITELIST_CONFIG, value=cfg)
    return {"applied": t, "whitelist": whitelist_id, "previous": previous, "controller": new_controller}


def _add_member(state: Json, ctx: InvokeContext, payload: Json) -> Json:
    t = "ADD_MEMBER"
    whitelist_id = require_identity(payload, "whitelist", instruction=t)
    wallet = require_identity(payload, "wallet", instruction=t)
    supplied = optional_identity(payload, "wallet_record", instruction=t)
    payer = optional_identity(payload, "payer", instruction=t)

    cfg = _load_config(state, ctx, whitelist_id)
    _require_controller(ctx, cfg, whitelist_id)
    if payer is not None:
        ctx.require_signer(payer, role="payer")

    addr = _membership_address(ctx, whitelist_id, wallet, supplied)
    if record_exists(state, addr):
        raise ProgramError(ErrorKind.DUPLICATE_MEMBER, "wallet_already_member", {"whitelist": whitelist_id, "wallet": wallet})

    cfg.member_count = checked_add(cfg.member_count, 1, limit=U64_MAX, field="member_count")

    init_record(
        state,
        addr,
        program=ctx.program_id,
        kind=KIND_WALLET_MEMBERSHIP,
        payer=payer or cfg.controller,
        value=WalletMembership(),
        index={"whitelist": whitelist_id, "wallet": wallet},
    )
    store_record(state, whitelist_id, program=ctx.program_id, kind=KIND_WHITELIST_CONFIG, value=cfg)
    return {
        "applied": t,
        "whitelist": whitelist_id,
        "wallet": wallet,
        "wallet_record": addr,
        "member_count": cfg.member_count,
    }


def _remove_member(state: Json, ctx: InvokeContext, payload: Json) -> Json:
    t = "REMOVE_MEMBER"
    whitelist_id = require_identity(payload, "whitelist", instruction=t)
    wallet = require_identity(payload, "wallet", instruction=t)
    refund_receiver = require_identity(payload, "refund_receiver", instruction=t)
    supplied = optional_identity(payload, "wallet_record", instruction=t)

    cfg = _load_config(state, ctx, whitelist_id)
    _require_controller(ctx, cfg, whitelist_id)

    addr = _membership_address(ctx, whitelist_id, wallet, supplied)
    if not record_exists(state, addr):
        raise ProgramError(ErrorKind.NOT_A_MEMBER, "wallet_not_member", {"whitelist": whitelist_id, "wallet": wallet})

    cfg.member_count = checked_sub(cfg.member_count, 1, field="member_count")

    reclaimed = close_record(
        state,
        addr,
        program=ctx.program_id,
        kind=KIND_WALLET_MEMBERSHIP,
        refund_receiver=refund_receiver,
    )
    store_record(state, whitelist_id, program=ctx.program_id, kind=KIND_WHITELIST_CONFIG, value=cfg)
    return {
        "applied": t,
        "whitelist": whitelist_id,
        "wallet": wallet,
        "refund_receiver": refund_receiver,
        "reclaimed_space": reclaimed,
        "member_count": cfg.member_count,
    }


def _check_member(state: Json, ctx: InvokeContext, payload: Json) -> Json:
    t = "CHECK_MEMBER"
    whitelist_id = require_identity(payload, "whitelist", instruction=t)
    wallet = require_identity(payload, "wallet", instruction=t)
    supplied = optional_identity(payload, "wallet_record", instruction=t)

    _load_config(state, ctx, whitelist_id)
    addr = _membership_address(ctx, whitelist_id, wallet, supplied)

    rec = peek_record(state, addr)
    if rec is None or rec.get("program") != ctx.program_id or rec.get("kind") != KIND_WALLET_MEMBERSHIP:
        raise ProgramError(ErrorKind.NOT_A_MEMBER, "wallet_not_member", {"whitelist": whitelist_id, "wallet": wallet})
    return {"applied": t, "whitelist": whitelist_id, "wallet": wallet, "member": True}


def apply_whitelist(state: Json, ctx: InvokeContext, instruction: str, payload: Json) -> Json:
    t = str(instruction or "").strip().upper()
    if t not in WHITELIST_INSTRUCTIONS:
        raise ProgramError(ErrorKind.INVALID_INSTRUCTION, "unknown_instruction", {"program": ctx.program_id, "instruction": t})

    payload = _as_dict(payload)
    if t == "CREATE_WHITELIST":
        return _create_whitelist(state, ctx, payload)
    if t == "SET_CONTROLLER":
        return _set_controller(state, ctx, payload)
    if t == "ADD_MEMBER":
        return _add_member(state, ctx, payload)
    if t == "REMOVE_MEMBER":
        return _remove_member(state, ctx, payload)
    return _check_member(state, ctx, payload)


# ---------------------------------------------------------------------------
# Read-only queries
# ---------------------------------------------------------------------------


def get_config(state: Json, whitelist_id: str) -> Optional[WhitelistConfig]:
    return LedgerView.from_ledger(state).get_whitelist(whitelist_id)


def is_member(state: Json, whitelist_id: str, wallet: str) -> bool:
    return LedgerView.from_ledger(state).is_member(whitelist_id, wallet)


def list_members(state: Json, whitelist_id: str) -> List[str]:
    return [str(r.get("wallet")) for r in LedgerView.from_ledger(state).membership_records(whitelist_id)]


__all__ = ["WHITELIST_INSTRUCTIONS", "apply_whitelist", "get_config", "is_member", "list_members"]
