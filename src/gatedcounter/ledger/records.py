# src/gatedcounter/ledger/records.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from gatedcounter.crypto.address import NULL_ADDRESS
from gatedcounter.ledger.constants import (
    KIND_COUNTER,
    KIND_WALLET_MEMBERSHIP,
    KIND_WHITELIST_CONFIG,
    RECORD_SPACE,
)
from gatedcounter.runtime.errors import ErrorKind, ProgramError

Json = Dict[str, Any]


@dataclass
class Counter:
    owner: str
    linked_whitelist: str = NULL_ADDRESS
    count: int = 0
    bump: int = 0

    @property
    def is_linked(self) -> bool:
        return bool(self.linked_whitelist) and self.linked_whitelist != NULL_ADDRESS

    @staticmethod
    def from_json(j: Json) -> "Counter":
        return Counter(
            owner=str(j.get("owner", "")),
            linked_whitelist=str(j.get("linked_whitelist") or NULL_ADDRESS),
            count=int(j.get("count", 0)),
            bump=int(j.get("bump", 0)),
        )

    def to_json(self) -> Json:
        return asdict(self)


@dataclass
class WhitelistConfig:
    controller: str
    member_count: int = 0

    @staticmethod
    def from_json(j: Json) -> "WhitelistConfig":
        return WhitelistConfig(
            controller=str(j.get("controller", "")),
            member_count=int(j.get("member_count", 0)),
        )

    def to_json(self) -> Json:
        return asdict(self)


@dataclass
class WalletMembership:
    """Existence-only record: its presence is the membership fact."""

    @staticmethod
    def from_json(j: Json) -> "WalletMembership":
        return WalletMembership()

    def to_json(self) -> Json:
        return {}


_DECODERS = {
    KIND_COUNTER: Counter.from_json,
    KIND_WHITELIST_CONFIG: WhitelistConfig.from_json,
    KIND_WALLET_MEMBERSHIP: WalletMembership.from_json,
}


def ensure_records_root(state: Json) -> Json:
    r = state.get("records")
    if not isinstance(r, dict):
        r = {}
        state["records"] = r
    return r


def _ensure_account(state: Json, account_id: str) -> Json:
    accounts = state.get("accounts")
    if not isinstance(accounts, dict):
        accounts = {}
        state["accounts"] = accounts
    acct = accounts.get(account_id)
    if not isinstance(acct, dict):
        acct = {}
        accounts[account_id] = acct
    return acct


def record_exists(state: Json, address: str) -> bool:
    return isinstance(ensure_records_root(state).get(address), dict)


def peek_record(state: Json, address: str) -> Optional[Json]:
    """Raw record envelope or None, no ownership check (read-only callers)."""
    rec = state.get("records", {}).get(address) if isinstance(state.get("records"), dict) else None
    return rec if isinstance(rec, dict) else None


def load_record(state: Json, address: str, *, program: str, kind: str) -> Any:
    """Load and decode a record owned by `program`.

    Raises:
      AccountNotFound if nothing lives at `address`
      ProgramOwnerMismatch if it belongs to another program or has another kind
    """
    rec = ensure_records_root(state).get(address)
    if not isinstance(rec, dict):
        raise ProgramError(ErrorKind.ACCOUNT_NOT_FOUND, "record_not_found", {"address": address, "kind": kind})
    if rec.get("program") != program:
        raise ProgramError(
            ErrorKind.PROGRAM_OWNER_MISMATCH,
            "record_owned_by_other_program",
            {"address": address, "owner": rec.get("program"), "program": program},
        )
    if rec.get("kind") != kind:
        raise ProgramError(
            ErrorKind.PROGRAM_OWNER_MISMATCH,
            "record_kind_mismatch",
            {"address": address, "have": rec.get("kind"), "want": kind},
        )
    data = rec.get("data")
    return _DECODERS[kind](data if isinstance(data, dict) else {})


def init_record(
    state: Json,
    address: str,
    *,
    program: str,
    kind: str,
    payer: str,
    value: Any,
    index: Optional[Json] = None,
) -> None:
    """Allocate a new fixed-size record. Fails AlreadyInitialized if the address is taken.

    `index` is lookup metadata kept on the envelope, never part of the record data.
    """
    records = ensure_records_root(state)
    if isinstance(records.get(address), dict):
        raise ProgramError(ErrorKind.ALREADY_INITIALIZED, "record_already_exists", {"address": address, "kind": kind})
    rec: Json = dict(index or {})
    rec.update(
        {
            "address": address,
            "program": program,
            "kind": kind,
            "space": int(RECORD_SPACE[kind]),
            "payer": payer,
            "data": value.to_json(),
        }
    )
    records[address] = rec


def store_record(state: Json, address: str, *, program: str, kind: str, value: Any) -> None:
    # Re-validate ownership before every write.
    load_record(state, address, program=program, kind=kind)
    ensure_records_root(state)[address]["data"] = value.to_json()


def account_nonce(state: Json, account_id: str) -> int:
    accounts = state.get("accounts")
    acct = accounts.get(account_id) if isinstance(accounts, dict) else None
    if not isinstance(acct, dict):
        return 0
    return int(acct.get("nonce", 0) or 0)


def set_account_nonce(state: Json, account_id: str, nonce: int) -> None:
    _ensure_account(state, account_id)["nonce"] = int(nonce)


def close_record(state: Json, address: str, *, program: str, kind: str, refund_receiver: str) -> int:
    """Destroy a record and credit its allocation to `refund_receiver`. Returns the space reclaimed."""
    load_record(state, address, program=program, kind=kind)
    rec = ensure_records_root(state).pop(address)
    space = int(rec.get("space", 0) or 0)
    acct = _ensure_account(state, refund_receiver)
    acct["reclaimed_space"] = int(acct.get("reclaimed_space", 0) or 0) + space
    return space


__all__ = [
    "Counter",
    "WalletMembership",
    "WhitelistConfig",
    "account_nonce",
    "close_record",
    "ensure_records_root",
    "init_record",
    "load_record",
    "peek_record",
    "record_exists",
    "set_account_nonce",
    "store_record",
]
