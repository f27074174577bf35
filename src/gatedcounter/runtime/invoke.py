# src/gatedcounter/runtime/invoke.py
from __future__ import annotations

"""Invocation context and cross-program calls.

A program never relies on ambient call-stack identity. The principals that
authenticated a call travel explicitly in `InvokeContext.signers`, and a program
that wants to act as a principal of its own presents a `Capability`: the seeds +
bump of an address derived under its program id. The runtime checks that the
capability belongs to the calling program, derives its address and adds it to the
callee's signer set.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Sequence, Tuple

from gatedcounter.crypto.address import Seed, create_program_address
from gatedcounter.runtime.errors import ErrorKind, ProgramError

Json = Dict[str, Any]

# Nested invocation depth cap (the outer call is depth 1).
MAX_INVOKE_DEPTH = 4


@dataclass(frozen=True)
class Capability:
    """Signing authority of a derived address, held by the program that derived it."""

    program_id: str
    seeds: Tuple[Seed, ...]
    bump: int

    @property
    def address(self) -> str:
        return create_program_address([*self.seeds, bytes([int(self.bump) & 0xFF])], self.program_id)


ProgramFn = Callable[[Json, "InvokeContext", str, Json], Json]


@dataclass(frozen=True)
class InvokeContext:
    program_id: str
    signers: FrozenSet[str]
    programs: Mapping[str, ProgramFn] = field(default_factory=dict)
    depth: int = 1
    tx_id: str = ""

    def is_signer(self, identity: str) -> bool:
        return str(identity) in self.signers

    def require_signer(self, identity: str, *, role: str) -> None:
        if not self.is_signer(identity):
            raise ProgramError(
                ErrorKind.AUTHORITY_MISMATCH,
                f"{role}_must_sign",
                {"role": role, "identity": str(identity), "program": self.program_id},
            )


def invoke_signed(
    state: Json,
    ctx: InvokeContext,
    target_program: str,
    instruction: str,
    payload: Json,
    capabilities: Sequence[Capability] = (),
    *,
    forward_signers: Optional[Sequence[str]] = None,
) -> Json:
    """Call `target_program` from inside `ctx.program_id` against the same working state.

    forward_signers: outer signers passed through to the callee (default: all of them).
    capabilities: derived addresses the caller signs for; each must belong to the caller.
    """
    fn = ctx.programs.get(target_program)
    if fn is None:
        raise ProgramError(ErrorKind.UNKNOWN_PROGRAM, "invoke_target_unknown", {"program": target_program})

    if ctx.depth + 1 > MAX_INVOKE_DEPTH:
        raise ProgramError(ErrorKind.INVALID_INSTRUCTION, "invoke_depth_exceeded", {"depth": ctx.depth + 1})

    if forward_signers is None:
        signers = set(ctx.signers)
    else:
        missing = [s for s in forward_signers if s not in ctx.signers]
        if missing:
            raise ProgramError(ErrorKind.AUTHORITY_MISMATCH, "forwarded_signer_not_signed", {"signers": missing})
        signers = set(forward_signers)

    for cap in capabilities:
        if cap.program_id != ctx.program_id:
            raise ProgramError(
                ErrorKind.AUTHORITY_MISMATCH,
                "capability_not_owned_by_caller",
                {"capability_program": cap.program_id, "caller": ctx.program_id},
            )
        try:
            signers.add(cap.address)
        except ProgramError as e:
            raise ProgramError(
                ErrorKind.ADDRESS_DERIVATION_MISMATCH,
                "capability_not_derivable",
                {"program": cap.program_id, "bump": int(cap.bump), "cause": e.reason},
            ) from e

    child = replace(ctx, program_id=target_program, signers=frozenset(signers), depth=ctx.depth + 1)
    return fn(state, child, str(instruction).strip().upper(), dict(payload))


__all__ = ["Capability", "InvokeContext", "MAX_INVOKE_DEPTH", "ProgramFn", "invoke_signed"]
