from __future__ import annotations

from dataclasses import dataclass, field
import copy
from typing import Any, Dict, List, Optional

from gatedcounter.crypto.address import counter_address, membership_address
from gatedcounter.ledger.constants import (
    COUNTER_PROGRAM_ID,
    KIND_COUNTER,
    KIND_WALLET_MEMBERSHIP,
    KIND_WHITELIST_CONFIG,
    WHITELIST_PROGRAM_ID,
)
from gatedcounter.ledger.records import Counter, WhitelistConfig


Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class LedgerView:
    """
    Immutable read-only ledger view used by the API and query helpers.
    """

    records: Dict[str, Any] = field(default_factory=dict)
    accounts: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_ledger(cls, state: Dict[str, Any]) -> "LedgerView":
        return cls(
            records=copy.deepcopy(state.get("records", {})) if isinstance(state.get("records"), dict) else {},
            accounts=copy.deepcopy(state.get("accounts", {})) if isinstance(state.get("accounts"), dict) else {},
            params=copy.deepcopy(state.get("params", {})) if isinstance(state.get("params"), dict) else {},
        )

    @property
    def counter_program_id(self) -> str:
        return str(self.params.get("counter_program_id") or COUNTER_PROGRAM_ID)

    @property
    def whitelist_program_id(self) -> str:
        return str(self.params.get("whitelist_program_id") or WHITELIST_PROGRAM_ID)

    def get_record(self, address: str, *, kind: Optional[str] = None) -> Optional[Json]:
        rec = self.records.get(address)
        if not isinstance(rec, dict):
            return None
        if kind is not None and rec.get("kind") != kind:
            return None
        return rec

    def get_counter(self, owner: str) -> Optional[Counter]:
        addr, _ = counter_address(owner, self.counter_program_id)
        rec = self.get_record(addr, kind=KIND_COUNTER)
        if rec is None or rec.get("program") != self.counter_program_id:
            return None
        return Counter.from_json(rec.get("data") or {})

    def get_whitelist(self, whitelist_id: str) -> Optional[WhitelistConfig]:
        rec = self.get_record(whitelist_id, kind=KIND_WHITELIST_CONFIG)
        if rec is None or rec.get("program") != self.whitelist_program_id:
            return None
        return WhitelistConfig.from_json(rec.get("data") or {})

    def is_member(self, whitelist_id: str, wallet: str) -> bool:
        addr, _ = membership_address(whitelist_id, wallet, self.whitelist_program_id)
        rec = self.get_record(addr, kind=KIND_WALLET_MEMBERSHIP)
        return rec is not None and rec.get("program") == self.whitelist_program_id

    def membership_records(self, whitelist_id: str) -> List[Json]:
        """Membership envelopes whose index metadata points at `whitelist_id`."""
        out: List[Json] = []
        for rec in self.records.values():
            if not isinstance(rec, dict):
                continue
            if rec.get("kind") != KIND_WALLET_MEMBERSHIP:
                continue
            if rec.get("whitelist") != whitelist_id:
                continue
            out.append(rec)
        out.sort(key=lambda r: str(r.get("wallet") or ""))
        return out

    def reclaimed_space(self, account_id: str) -> int:
        acct = self.accounts.get(account_id)
        if not isinstance(acct, dict):
            return 0
        try:
            return int(acct.get("reclaimed_space", 0))
        except Exception:
            return 0

    def nonce(self, account_id: str) -> int:
        acct = self.accounts.get(account_id)
        if not isinstance(acct, dict):
            return 0
        return int(acct.get("nonce", 0) or 0)
