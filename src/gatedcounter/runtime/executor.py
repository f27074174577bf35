from __future__ import annotations

import copy
import hashlib
import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from gatedcounter.crypto.address import counter_address, membership_address
from gatedcounter.crypto.sig import canonical_tx_message, verify_signers
from gatedcounter.ledger.constants import COUNTER_PROGRAM_ID, WHITELIST_PROGRAM_ID
from gatedcounter.ledger.records import account_nonce, set_account_nonce
from gatedcounter.ledger.state import LedgerView
from gatedcounter.programs.counter import counter_state
from gatedcounter.runtime.domain_apply import apply_tx_atomic
from gatedcounter.runtime.errors import ErrorKind, ProgramError
from gatedcounter.runtime.log import EXECUTOR_LOGGER, log_event
from gatedcounter.runtime.sqlite_db import SqliteDB, SqliteLedgerStore
from gatedcounter.runtime.state_invariants import ensure_state
from gatedcounter.runtime.tx_types import TxEnvelope, TxResult

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _ensure_parent(path: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)


def compute_tx_id(chain_id: str, env: TxEnvelope) -> str:
    """sha256 over the canonical signing message; signatures never affect the id."""
    msg = canonical_tx_message(
        chain_id=chain_id,
        program=env.program,
        instruction=env.instruction,
        signers=env.signers,
        payload=env.payload,
        nonce=env.nonce,
    )
    return hashlib.sha256(msg).hexdigest()


class ExecutorError(RuntimeError):
    pass


class GatedCounterExecutor:
    """Applies signed tx envelopes to the ledger and persists every outcome in SQLite."""

    def __init__(
        self,
        *,
        db_path: str,
        chain_id: str,
        sigverify: bool = True,
        counter_program_id: str = COUNTER_PROGRAM_ID,
        whitelist_program_id: str = WHITELIST_PROGRAM_ID,
    ) -> None:
        self.chain_id = str(chain_id)
        self.sigverify = bool(sigverify)
        self.counter_program_id = str(counter_program_id)
        self.whitelist_program_id = str(whitelist_program_id)

        self.db_path = str(db_path)
        _ensure_parent(self.db_path)

        self._db = SqliteDB(path=self.db_path)
        self._store = SqliteLedgerStore(db=self._db)
        self._lock = threading.Lock()
        self._log = logging.getLogger(EXECUTOR_LOGGER)

        # Load or initialize state.
        if self._store.exists():
            self.state = self._store.read()
        else:
            self.state = self._initial_state()
            self._store.write(self.state)

        ensure_state(self.state)
        params = self.state["params"]

        # Fail-closed if the snapshot belongs to another chain or program set.
        st_chain_id = str(params.get("chain_id") or "").strip()
        if st_chain_id and st_chain_id != self.chain_id:
            raise ExecutorError(
                f"chain_id mismatch: db={st_chain_id!r} executor={self.chain_id!r}. Refuse to start."
            )
        for key, want in (
            ("counter_program_id", self.counter_program_id),
            ("whitelist_program_id", self.whitelist_program_id),
        ):
            have = str(params.get(key) or "")
            if have != want:
                raise ExecutorError(f"{key} mismatch: db={have!r} executor={want!r}. Refuse to start.")

        if not st_chain_id:
            params["chain_id"] = self.chain_id
            self._store.write(self.state)

    def _initial_state(self) -> Json:
        return {
            "seq": 0,
            "records": {},
            "accounts": {},
            "params": {
                "chain_id": self.chain_id,
                "counter_program_id": self.counter_program_id,
                "whitelist_program_id": self.whitelist_program_id,
            },
            "created_ms": _now_ms(),
        }

    # ----------------------------
    # Public accessors
    # ----------------------------

    def read_state(self) -> Json:
        return copy.deepcopy(self.state)

    def view(self) -> LedgerView:
        return LedgerView.from_ledger(self.state)

    def get_receipt(self, tx_id: str) -> Optional[Json]:
        return self._store.get_receipt(tx_id)

    # ----------------------------
    # Submission
    # ----------------------------

    def _check_signatures(self, env: TxEnvelope) -> Optional[TxResult]:
        msg = canonical_tx_message(
            chain_id=self.chain_id,
            program=env.program,
            instruction=env.instruction,
            signers=env.signers,
            payload=env.payload,
            nonce=env.nonce,
        )
        ok, details = verify_signers(message=msg, signers=env.signers, sigs=env.sigs)
        if ok:
            return None
        reason = str(details.get("reason") or "")
        kind = ErrorKind.MISSING_SIGNATURE if reason == "missing_signature" else ErrorKind.INVALID_SIGNATURE
        return TxResult.reject(kind, reason, {"signers": details.get("signers", [])})

    def _check_nonce(self, env: TxEnvelope) -> Optional[TxResult]:
        account = env.nonce_account
        if not account:
            return TxResult.reject(ErrorKind.MISSING_SIGNATURE, "no_signers", {"signers": []})
        expected = account_nonce(self.state, account) + 1
        if env.nonce != expected:
            return TxResult.reject(
                ErrorKind.BAD_NONCE,
                "nonce_must_be_next",
                {"account": account, "expected": expected, "got": env.nonce},
            )
        return None

    def _admission_reject(self, env: TxEnvelope, tx_id: str) -> Optional[TxResult]:
        """Signatures, then replay, then nonce. Failures here are not persisted."""
        res = self._check_signatures(env) if self.sigverify else None
        if res is None and self._store.get_receipt(tx_id) is not None:
            res = TxResult.reject(ErrorKind.DUPLICATE_TRANSACTION, "tx_already_recorded", {})
        if res is None:
            res = self._check_nonce(env)
        if res is None:
            return None
        return TxResult.reject(res.kind or ErrorKind.INVALID_SIGNATURE, res.reason, res.details, tx_id=tx_id)

    def submit_tx(self, env: Any) -> TxResult:
        """Verify, apply and persist one tx envelope.

        An authenticated tx with the next nonce always gets a receipt keyed by tx_id
        and consumes the nonce of its first signer. If the program rejects it, no
        other part of the ledger changes. Txs failing signature, replay or nonce
        checks leave no trace in the store.
        """
        try:
            env_norm = TxEnvelope.from_json(env)
        except (TypeError, ValueError) as e:
            res = TxResult.reject(ErrorKind.INVALID_PAYLOAD, "bad_envelope", {"error": str(e)})
            log_event(self._log, "tx_rejected", kind=res.kind.value, reason=res.reason, tx_id="")
            return res

        tx_id = compute_tx_id(self.chain_id, env_norm)

        with self._lock:
            res = self._admission_reject(env_norm, tx_id)
            if res is None:
                working = copy.deepcopy(self.state)
                set_account_nonce(working, env_norm.nonce_account, env_norm.nonce)
                try:
                    meta = apply_tx_atomic(working, env_norm, tx_id=tx_id)
                    working["seq"] = int(working.get("seq", 0)) + 1
                    res = TxResult.admit(meta, tx_id=tx_id)
                except ProgramError as e:
                    res = TxResult.from_error(e, tx_id=tx_id)

                receipt: Json = dict(res.to_json())
                receipt.update(
                    {
                        "program": env_norm.program,
                        "instruction": env_norm.instruction,
                        "nonce": env_norm.nonce,
                        "seq": int(working.get("seq", 0)),
                    }
                )
                self._store.commit(working, receipt)
                self.state = working
            seq = int(self.state.get("seq", 0))

        if res.ok:
            log_event(
                self._log,
                "tx_applied",
                tx_id=tx_id,
                program=env_norm.program,
                instruction=env_norm.instruction,
                seq=seq,
            )
        else:
            log_event(
                self._log,
                "tx_rejected",
                tx_id=tx_id,
                program=env_norm.program,
                instruction=env_norm.instruction,
                kind=res.kind.value if res.kind is not None else None,
                reason=res.reason,
            )
        return res

    # ----------------------------
    # Queries
    # ----------------------------

    def get_counter(self, owner: str) -> Optional[Json]:
        counter = self.view().get_counter(owner)
        if counter is None:
            return None
        addr, _ = counter_address(owner, self.counter_program_id)
        out = counter.to_json()
        out.update({"address": addr, "state": counter_state(counter)})
        return out

    def get_whitelist(self, whitelist_id: str) -> Optional[Json]:
        cfg = self.view().get_whitelist(whitelist_id)
        if cfg is None:
            return None
        out = cfg.to_json()
        out["whitelist"] = whitelist_id
        return out

    def list_members(self, whitelist_id: str) -> List[str]:
        return [str(r.get("wallet")) for r in self.view().membership_records(whitelist_id)]

    def is_member(self, whitelist_id: str, wallet: str) -> bool:
        return self.view().is_member(whitelist_id, wallet)

    def membership_address(self, whitelist_id: str, wallet: str) -> str:
        addr, _ = membership_address(whitelist_id, wallet, self.whitelist_program_id)
        return addr

    def reclaimed_space(self, account_id: str) -> int:
        return self.view().reclaimed_space(account_id)

    def next_nonce(self, account_id: str) -> int:
        return self.view().nonce(account_id) + 1

    def get_account(self, account_id: str) -> Json:
        """Per-account bookkeeping; unknown accounts read as fresh ones."""
        view = self.view()
        nonce = view.nonce(account_id)
        return {
            "account": account_id,
            "nonce": nonce,
            "next_nonce": nonce + 1,
            "reclaimed_space": view.reclaimed_space(account_id),
        }
