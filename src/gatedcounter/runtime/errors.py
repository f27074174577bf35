from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced by programs and the runtime."""

    # Counter / whitelist protocol
    ALREADY_LINKED = "AlreadyLinked"
    NOT_INITIALIZED = "NotInitialized"
    DUPLICATE_MEMBER = "DuplicateMember"
    NOT_A_MEMBER = "NotAMember"
    COUNTER_OVERFLOW = "CounterOverflow"
    COUNTER_UNDERFLOW = "CounterUnderflow"
    AUTHORITY_MISMATCH = "AuthorityMismatch"
    ADDRESS_DERIVATION_MISMATCH = "AddressDerivationMismatch"

    # Record lifecycle
    ALREADY_INITIALIZED = "AlreadyInitialized"
    ACCOUNT_NOT_FOUND = "AccountNotFound"
    PROGRAM_OWNER_MISMATCH = "ProgramOwnerMismatch"

    # Envelope / runtime
    MISSING_SIGNATURE = "MissingSignature"
    INVALID_SIGNATURE = "InvalidSignature"
    INVALID_PAYLOAD = "InvalidPayload"
    INVALID_INSTRUCTION = "InvalidInstruction"
    UNKNOWN_PROGRAM = "UnknownProgram"
    BAD_NONCE = "BadNonce"
    DUPLICATE_TRANSACTION = "DuplicateTransaction"

    # Addressing
    INVALID_SEEDS = "InvalidSeeds"
    ADDRESS_DERIVATION_EXHAUSTED = "AddressDerivationExhausted"

    def __str__(self) -> str:
        return self.value


@dataclass
class ProgramError(Exception):
    """Canonical error type for program execution and dispatch failures."""

    kind: ErrorKind
    reason: str
    details: Any | None = None

    @property
    def code(self) -> str:
        return self.kind.value

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.kind.value}:{self.reason}"
        return f"{self.kind.value}:{self.reason}:{self.details}"


def checked_add(value: int, delta: int, *, limit: int, field: str) -> int:
    out = int(value) + int(delta)
    if out > int(limit):
        raise ProgramError(ErrorKind.COUNTER_OVERFLOW, f"{field}_overflow", {field: int(value), "delta": int(delta)})
    return out


def checked_sub(value: int, delta: int, *, field: str) -> int:
    out = int(value) - int(delta)
    if out < 0:
        raise ProgramError(ErrorKind.COUNTER_UNDERFLOW, f"{field}_underflow", {field: int(value), "delta": int(delta)})
    return out


__all__ = ["ErrorKind", "ProgramError", "checked_add", "checked_sub"]
