# src/gatedcounter/programs/counter.py
from __future__ import annotations

from typing import Any, Dict, Optional, Set

from gatedcounter.crypto.address import (
    NULL_ADDRESS,
    counter_address,
    counter_seeds,
    verify_program_address,
)
from gatedcounter.ledger.constants import KIND_COUNTER, U64_MAX
from gatedcounter.ledger.records import Counter, init_record, load_record, store_record
from gatedcounter.ledger.state import LedgerView
from gatedcounter.programs.common import _as_dict, optional_identity, require_bump, require_identity
from gatedcounter.runtime.errors import ErrorKind, ProgramError, checked_add
from gatedcounter.runtime.invoke import Capability, InvokeContext, invoke_signed
from gatedcounter.runtime.state_invariants import whitelist_program_id

Json = Dict[str, Any]

STATE_CREATED = "Created"
STATE_LINKED = "Linked"


COUNTER_INSTRUCTIONS: Set[str] = {
    "CREATE_COUNTER",
    "LINK_WHITELIST",
    "UNLINK_WHITELIST",
    "GRANT_ACCESS",
    "RETRACT_ACCESS",
    "INCREMENT_IF_MEMBER",
}


def counter_state(counter: Counter) -> str:
    return STATE_LINKED if counter.is_linked else STATE_CREATED


def _capability(ctx: InvokeContext, counter: Counter) -> Capability:
    return Capability(program_id=ctx.program_id, seeds=tuple(counter_seeds(counter.owner)), bump=counter.bump)


def _load_owned_counter(state: Json, ctx: InvokeContext, owner: str) -> tuple[str, Counter]:
    """Load the counter derived from `owner` and check it names `owner` as authority."""
    addr, _ = counter_address(owner, ctx.program_id)
    counter: Counter = load_record(state, addr, program=ctx.program_id, kind=KIND_COUNTER)
    if counter.owner != owner:
        raise ProgramError(ErrorKind.AUTHORITY_MISMATCH, "owner_mismatch", {"counter": addr, "owner": counter.owner, "claimed": owner})
    # The stored bump must still reproduce the record address.
    verify_program_address(addr, counter_seeds(owner), counter.bump, ctx.program_id)
    return addr, counter


def _require_linked(addr: str, counter: Counter) -> None:
    if not counter.is_linked:
        raise ProgramError(ErrorKind.NOT_INITIALIZED, "whitelist_not_linked", {"counter": addr})


def _create_counter(state: Json, ctx: InvokeContext, payload: Json) -> Json:
    t = "CREATE_COUNTER"
    owner = require_identity(payload, "owner", instruction=t)
    bump = require_bump(payload, "bump", instruction=t)
    supplied = optional_identity(payload, "counter", instruction=t)

    ctx.require_signer(owner, role="owner")

    canonical, canonical_bump = counter_address(owner, ctx.program_id)
    if bump != canonical_bump:
        raise ProgramError(
            ErrorKind.ADDRESS_DERIVATION_MISMATCH,
            "non_canonical_bump",
            {"bump": bump, "canonical_bump": canonical_bump, "counter": canonical},
        )
    if supplied is not None:
        verify_program_address(supplied, counter_seeds(owner), bump, ctx.program_id)

    init_record(
        state,
        canonical,
        program=ctx.program_id,
        kind=KIND_COUNTER,
        payer=owner,
        value=Counter(owner=owner, linked_whitelist=NULL_ADDRESS, count=0, bump=bump),
        index={"owner": owner},
    )
    return {"applied": t, "counter": canonical, "owner": owner, "bump": bump}


def _link_whitelist(state: Json, ctx: InvokeContext, payload: Json) -> Json:
    t = "LINK_WHITELIST"
    owner = require_identity(payload, "owner", instruction=t)
    whitelist_id = require_identity(payload, "whitelist", instruction=t)

    ctx.require_signer(owner, role="owner")
    addr, counter = _load_owned_counter(state, ctx, owner)

    if counter.is_linked:
        raise ProgramError(ErrorKind.ALREADY_LINKED, "whitelist_already_linked", {"counter": addr, "whitelist": counter.linked_whitelist})

    wl_program = whitelist_program_id(state)
    cap = _capability(ctx, counter)

    # Create + delegate run against the same working state; any failure discards both.
    invoke_signed(
        state,
        ctx,
        wl_program,
        "CREATE_WHITELIST",
        {"creator": owner, "whitelist": whitelist_id},
        forward_signers=[owner, whitelist_id],
    )
    invoke_signed(
        state,
        ctx,
        wl_program,
        "SET_CONTROLLER",
        {"whitelist": whitelist_id, "current_controller": owner, "new_controller": cap.address},
        forward_signers=[owner],
    )

    counter.linked_whitelist = whitelist_id
    store_record(state, addr, program=ctx.program_id, kind=KIND_COUNTER, value=counter)
    return {"applied": t, "counter": addr, "whitelist": whitelist_id, "controller": cap.address}


def _unlink_whitelist(state: Json, ctx: InvokeContext, payload: Json) -> Json:
    t = "UNLINK_WHITELIST"
    owner = require_identity(payload, "owner", instruction=t)

    ctx.require_signer(owner, role="owner")
    addr, counter = _load_owned_counter(state, ctx, owner)
    _require_linked(addr, counter)

    # The old config is left as-is, still controlled by this counter's capability.
    previous = counter.linked_whitelist
    counter.linked_whitelist = NULL_ADDRESS
    store_record(state, addr, program=ctx.program_id, kind=KIND_COUNTER, value=counter)
    return {"applied": t, "counter": addr, "previous_whitelist": previous}


def _grant_access(state: Json, ctx: InvokeContext, payload: Json) -> Json:
    t = "GRANT_ACCESS"
    owner = require_identity(payload, "owner", instruction=t)
    wallet = require_identity(payload, "wallet", instruction=t)
    wallet_record = optional_identity(payload, "wallet_record", instruction=t)

    ctx.require_signer(owner, role="owner")
    addr, counter = _load_owned_counter(state, ctx, owner)
    _require_linked(addr, counter)

    inner: Json = {"whitelist": counter.linked_whitelist, "wallet": wallet, "payer": owner}
    if wallet_record is not None:
        inner["wallet_record"] = wallet_record

    out = invoke_signed(
        state,
        ctx,
        whitelist_program_id(state),
        "ADD_MEMBER",
        inner,
        [_capability(ctx, counter)],
        forward_signers=[owner],
    )
    return {"applied": t, "counter": addr, "whitelist": counter.linked_whitelist, "wallet": wallet, "member_count": out.get("member_count")}


def _retract_access(state: Json, ctx: InvokeContext, payload: Json) -> Json:
    t = "RETRACT_ACCESS"
    owner = require_identity(payload, "owner", instruction=t)
    wallet = require_identity(payload, "wallet", instruction=t)
    refund_receiver = optional_identity(payload, "refund_receiver", instruction=t) or owner
    wallet_record = optional_identity(payload, "wallet_record", instruction=t)

    ctx.require_signer(owner, role="owner")
    addr, counter = _load_owned_counter(state, ctx, owner)
    _require_linked(addr, counter)

    inner: Json = {"whitelist": counter.linked_whitelist, "wallet": wallet, "refund_receiver": refund_receiver}
    if wallet_record is not None:
        inner["wallet_record"] = wallet_record

    out = invoke_signed(
        state,
        ctx,
        whitelist_program_id(state),
        "REMOVE_MEMBER",
        inner,
        [_capability(ctx, counter)],
        forward_signers=[owner],
    )
    return {
        "applied": t,
        "counter": addr,
        "whitelist": counter.linked_whitelist,
        "wallet": wallet,
        "refund_receiver": refund_receiver,
        "member_count": out.get("member_count"),
    }


def _increment_if_member(state: Json, ctx: InvokeContext, payload: Json) -> Json:
    t = "INCREMENT_IF_MEMBER"
    wallet = require_identity(payload, "wallet", instruction=t)
    owner = require_identity(payload, "owner", instruction=t)
    wallet_record = optional_identity(payload, "wallet_record", instruction=t)

    # The wallet submits; the owner is only the authority of record.
    ctx.require_signer(wallet, role="wallet")
    addr, counter = _load_owned_counter(state, ctx, owner)
    _require_linked(addr, counter)

    inner: Json = {"whitelist": counter.linked_whitelist, "wallet": wallet}
    if wallet_record is not None:
        inner["wallet_record"] = wallet_record

    try:
        invoke_signed(
            state,
            ctx,
            whitelist_program_id(state),
            "CHECK_MEMBER",
            inner,
            [_capability(ctx, counter)],
            forward_signers=[],
        )
    except ProgramError as e:
        if e.kind == ErrorKind.NOT_A_MEMBER:
            raise
        if e.kind == ErrorKind.ADDRESS_DERIVATION_MISMATCH:
            raise
        raise ProgramError(ErrorKind.NOT_A_MEMBER, "membership_check_failed", {"wallet": wallet, "cause": e.kind.value}) from e

    counter.count = checked_add(counter.count, 1, limit=U64_MAX, field="count")
    store_record(state, addr, program=ctx.program_id, kind=KIND_COUNTER, value=counter)
    return {"applied": t, "counter": addr, "wallet": wallet, "count": counter.count}


def apply_counter(state: Json, ctx: InvokeContext, instruction: str, payload: Json) -> Json:
    t = str(instruction or "").strip().upper()
    if t not in COUNTER_INSTRUCTIONS:
        raise ProgramError(ErrorKind.INVALID_INSTRUCTION, "unknown_instruction", {"program": ctx.program_id, "instruction": t})

    payload = _as_dict(payload)
    if t == "CREATE_COUNTER":
        return _create_counter(state, ctx, payload)
    if t == "LINK_WHITELIST":
        return _link_whitelist(state, ctx, payload)
    if t == "UNLINK_WHITELIST":
        return _unlink_whitelist(state, ctx, payload)
    if t == "GRANT_ACCESS":
        return _grant_access(state, ctx, payload)
    if t == "RETRACT_ACCESS":
        return _retract_access(state, ctx, payload)
    return _increment_if_member(state, ctx, payload)


# ---------------------------------------------------------------------------
# Read-only queries
# ---------------------------------------------------------------------------


def get_counter(state: Json, owner: str) -> Optional[Counter]:
    return LedgerView.from_ledger(state).get_counter(owner)


__all__ = [
    "COUNTER_INSTRUCTIONS",
    "STATE_CREATED",
    "STATE_LINKED",
    "apply_counter",
    "counter_state",
    "get_counter",
]
