# src/gatedcounter/tx/builders.py
"""Client-side envelope builders.

Each builder returns an unsigned envelope dict with the signer list the program
expects. Derived addresses (counter, membership record) and the canonical bump
are computed here so callers never have to.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from gatedcounter.crypto.address import counter_address, membership_address
from gatedcounter.crypto.sig import canonical_tx_message, identity_of, sign_ed25519
from gatedcounter.ledger.constants import COUNTER_PROGRAM_ID, WHITELIST_PROGRAM_ID

Json = Dict[str, Any]


def _envelope(program: str, instruction: str, signers: List[str], payload: Json) -> Json:
    seen: List[str] = []
    for s in signers:
        if s not in seen:
            seen.append(s)
    return {
        "program": program,
        "instruction": instruction,
        "signers": seen,
        "payload": payload,
        "nonce": 0,
        "sigs": {},
    }


def with_nonce(env: Json, nonce: int) -> Json:
    """Copy of `env` carrying `nonce` for its first signer. Existing signatures are dropped."""
    out = dict(env)
    out["nonce"] = int(nonce)
    out["sigs"] = {}
    return out


def sign_envelope(env: Json, *, chain_id: str, keys: Iterable[Ed25519PrivateKey]) -> Json:
    """Attach signatures from `keys`; each key must belong to a declared signer."""
    signers = [str(s) for s in env.get("signers") or []]
    msg = canonical_tx_message(
        chain_id=chain_id,
        program=str(env.get("program") or ""),
        instruction=str(env.get("instruction") or ""),
        signers=signers,
        payload=env.get("payload") or {},
        nonce=int(env.get("nonce") or 0),
    )
    sigs = dict(env.get("sigs") or {})
    for key in keys:
        ident = identity_of(key)
        if ident not in signers:
            raise ValueError(f"key {ident} is not a declared signer")
        sigs[ident] = sign_ed25519(message=msg, privkey=key)
    out = dict(env)
    out["sigs"] = sigs
    return out


# ---------------------------------------------------------------------------
# Whitelist program
# ---------------------------------------------------------------------------


def create_whitelist(*, creator: str, whitelist: str, program_id: str = WHITELIST_PROGRAM_ID) -> Json:
    return _envelope(program_id, "CREATE_WHITELIST", [creator, whitelist], {"creator": creator, "whitelist": whitelist})


def set_controller(
    *,
    whitelist: str,
    current_controller: str,
    new_controller: str,
    program_id: str = WHITELIST_PROGRAM_ID,
) -> Json:
    payload = {"whitelist": whitelist, "current_controller": current_controller, "new_controller": new_controller}
    return _envelope(program_id, "SET_CONTROLLER", [current_controller], payload)


def add_member(
    *,
    whitelist: str,
    wallet: str,
    controller: str,
    payer: Optional[str] = None,
    program_id: str = WHITELIST_PROGRAM_ID,
) -> Json:
    record, _ = membership_address(whitelist, wallet, program_id)
    payload: Json = {"whitelist": whitelist, "wallet": wallet, "wallet_record": record}
    signers = [controller]
    if payer is not None:
        payload["payer"] = payer
        signers.append(payer)
    return _envelope(program_id, "ADD_MEMBER", signers, payload)


def remove_member(
    *,
    whitelist: str,
    wallet: str,
    controller: str,
    refund_receiver: str,
    program_id: str = WHITELIST_PROGRAM_ID,
) -> Json:
    record, _ = membership_address(whitelist, wallet, program_id)
    payload = {"whitelist": whitelist, "wallet": wallet, "wallet_record": record, "refund_receiver": refund_receiver}
    return _envelope(program_id, "REMOVE_MEMBER", [controller], payload)


def check_member(*, whitelist: str, wallet: str, program_id: str = WHITELIST_PROGRAM_ID) -> Json:
    record, _ = membership_address(whitelist, wallet, program_id)
    return _envelope(program_id, "CHECK_MEMBER", [], {"whitelist": whitelist, "wallet": wallet, "wallet_record": record})


# ---------------------------------------------------------------------------
# Counter program
# ---------------------------------------------------------------------------


def create_counter(*, owner: str, program_id: str = COUNTER_PROGRAM_ID) -> Json:
    counter, bump = counter_address(owner, program_id)
    return _envelope(program_id, "CREATE_COUNTER", [owner], {"owner": owner, "counter": counter, "bump": bump})


def link_whitelist(*, owner: str, whitelist: str, program_id: str = COUNTER_PROGRAM_ID) -> Json:
    # The fresh whitelist identity co-signs its own creation.
    return _envelope(program_id, "LINK_WHITELIST", [owner, whitelist], {"owner": owner, "whitelist": whitelist})


def unlink_whitelist(*, owner: str, program_id: str = COUNTER_PROGRAM_ID) -> Json:
    return _envelope(program_id, "UNLINK_WHITELIST", [owner], {"owner": owner})


def grant_access(
    *,
    owner: str,
    wallet: str,
    whitelist: Optional[str] = None,
    program_id: str = COUNTER_PROGRAM_ID,
    whitelist_program_id: str = WHITELIST_PROGRAM_ID,
) -> Json:
    payload: Json = {"owner": owner, "wallet": wallet}
    if whitelist is not None:
        payload["wallet_record"] = membership_address(whitelist, wallet, whitelist_program_id)[0]
    return _envelope(program_id, "GRANT_ACCESS", [owner], payload)


def retract_access(
    *,
    owner: str,
    wallet: str,
    refund_receiver: Optional[str] = None,
    whitelist: Optional[str] = None,
    program_id: str = COUNTER_PROGRAM_ID,
    whitelist_program_id: str = WHITELIST_PROGRAM_ID,
) -> Json:
    payload: Json = {"owner": owner, "wallet": wallet}
    if refund_receiver is not None:
        payload["refund_receiver"] = refund_receiver
    if whitelist is not None:
        payload["wallet_record"] = membership_address(whitelist, wallet, whitelist_program_id)[0]
    return _envelope(program_id, "RETRACT_ACCESS", [owner], payload)


def increment_if_member(
    *,
    wallet: str,
    owner: str,
    whitelist: Optional[str] = None,
    program_id: str = COUNTER_PROGRAM_ID,
    whitelist_program_id: str = WHITELIST_PROGRAM_ID,
) -> Json:
    payload: Json = {"wallet": wallet, "owner": owner}
    if whitelist is not None:
        payload["wallet_record"] = membership_address(whitelist, wallet, whitelist_program_id)[0]
    return _envelope(program_id, "INCREMENT_IF_MEMBER", [wallet], payload)


__all__ = [
    "add_member",
    "check_member",
    "create_counter",
    "create_whitelist",
    "grant_access",
    "increment_if_member",
    "link_whitelist",
    "remove_member",
    "retract_access",
    "set_controller",
    "sign_envelope",
    "unlink_whitelist",
    "with_nonce",
]
