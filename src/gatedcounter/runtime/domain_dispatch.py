# src/gatedcounter/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Dict, Mapping

from gatedcounter.programs.counter import apply_counter
from gatedcounter.programs.whitelist import apply_whitelist
from gatedcounter.runtime.errors import ErrorKind, ProgramError
from gatedcounter.runtime.invoke import InvokeContext, ProgramFn
from gatedcounter.runtime.state_invariants import counter_program_id, ensure_state, whitelist_program_id
from gatedcounter.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]


def program_table(state: Json) -> Mapping[str, ProgramFn]:
    """Program id -> entrypoint, using the ids recorded in state params."""
    return {
        counter_program_id(state): apply_counter,
        whitelist_program_id(state): apply_whitelist,
    }


def apply_tx(state: Json, env: Any, *, tx_id: str = "") -> Json:
    """Dispatch a TxEnvelope to the program it names.

    Signers in the envelope are taken as already authenticated; signature checks
    happen before this point (see GatedCounterExecutor.submit_tx).
    """

    ensure_state(state)

    env_norm: TxEnvelope = TxEnvelope.from_json(env) if not isinstance(env, TxEnvelope) else env

    if not env_norm.instruction:
        raise ProgramError(ErrorKind.INVALID_INSTRUCTION, "missing_instruction", {"program": env_norm.program})

    programs = program_table(state)
    fn = programs.get(env_norm.program)
    if fn is None:
        raise ProgramError(ErrorKind.UNKNOWN_PROGRAM, "program_not_registered", {"program": env_norm.program})

    ctx = InvokeContext(
        program_id=env_norm.program,
        signers=frozenset(env_norm.signers),
        programs=programs,
        depth=1,
        tx_id=tx_id,
    )

    try:
        return fn(state, ctx, env_norm.instruction, dict(env_norm.payload))
    except ProgramError:
        raise
    except (TypeError, ValueError, KeyError) as e:
        raise ProgramError(
            ErrorKind.INVALID_PAYLOAD,
            type(e).__name__,
            {"program": env_norm.program, "instruction": env_norm.instruction, "error": str(e)},
        ) from e


__all__ = ["apply_tx", "program_table"]
