from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

from gatedcounter.runtime.errors import ErrorKind, ProgramError


@dataclass(frozen=True)
class TxReject:
    kind: ErrorKind
    reason: str
    details: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class TxResult:
    """Outcome of one transaction: either applied (ok) or rejected with a closed ErrorKind."""

    ok: bool
    kind: Optional[ErrorKind]
    reason: str
    details: Optional[Dict[str, Any]] = None
    meta: Optional[Dict[str, Any]] = None
    tx_id: str = ""

    def __iter__(self) -> Iterator[Any]:
        """Allow `ok, rej = executor.submit_tx(...)` unpacking."""
        if self.ok:
            yield True
            yield None
        else:
            yield False
            yield TxReject(self.kind or ErrorKind.INVALID_INSTRUCTION, self.reason, self.details)

    @staticmethod
    def admit(meta: Optional[Dict[str, Any]] = None, *, tx_id: str = "") -> "TxResult":
        return TxResult(True, None, "applied", None, meta or {}, tx_id)

    @staticmethod
    def reject(
        kind: ErrorKind,
        reason: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        tx_id: str = "",
    ) -> "TxResult":
        return TxResult(False, kind, reason, details, None, tx_id)

    @staticmethod
    def from_error(e: ProgramError, *, tx_id: str = "") -> "TxResult":
        details = e.details if isinstance(e.details, dict) else ({"details": e.details} if e.details is not None else None)
        return TxResult.reject(e.kind, e.reason, details, tx_id=tx_id)

    def to_json(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "kind": self.kind.value if self.kind is not None else None,
            "reason": self.reason,
            "details": self.details,
            "meta": self.meta,
            "tx_id": self.tx_id,
        }


@dataclass(frozen=True)
class TxEnvelope:
    program: str
    instruction: str
    signers: Tuple[str, ...]
    payload: Dict[str, Any]
    sigs: Dict[str, str] = field(default_factory=dict)
    # Sequence number of the first signer; must be exactly one above its stored nonce.
    nonce: int = 0

    @property
    def nonce_account(self) -> str:
        return self.signers[0] if self.signers else ""

    @staticmethod
    def from_json(j: Any) -> "TxEnvelope":
        if isinstance(j, TxEnvelope):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        signers = j.get("signers") or []
        if isinstance(signers, str):
            signers = [signers]
        sigs = j.get("sigs") or {}
        return TxEnvelope(
            program=str(j.get("program", "") or "").strip(),
            instruction=str(j.get("instruction", "") or "").strip().upper(),
            signers=tuple(str(s).strip() for s in signers if str(s).strip()),
            payload=dict(j.get("payload", {}) or {}),
            sigs={str(k): str(v) for k, v in dict(sigs).items()},
            nonce=int(j.get("nonce", 0) or 0),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "program": self.program,
            "instruction": self.instruction,
            "signers": list(self.signers),
            "payload": self.payload,
            "nonce": self.nonce,
            "sigs": dict(self.sigs),
        }
