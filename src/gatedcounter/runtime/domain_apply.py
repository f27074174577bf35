# src/gatedcounter/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying tx envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

import copy
from typing import Any, Dict

from gatedcounter.runtime.domain_dispatch import apply_tx
from gatedcounter.runtime.errors import ErrorKind, ProgramError
from gatedcounter.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]


def apply_tx_atomic(state: Json, env: Any, *, tx_id: str = "") -> Json:
    """Apply a tx with all-or-nothing semantics.

    On success:
      - state is updated as if apply_tx() ran directly.

    On ProgramError:
      - state remains unchanged, including every change made by nested
        cross-program calls before the failure.
    """

    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    # Apply on a deep copy to guarantee atomicity.
    snapshot = copy.deepcopy(state)

    meta = apply_tx(snapshot, env_norm, tx_id=tx_id)

    # Commit by replacing contents in-place so callers holding references
    # to `state` see the updated view.
    state.clear()
    state.update(snapshot)
    return meta


__all__ = ["ErrorKind", "ProgramError", "apply_tx", "apply_tx_atomic", "Json"]
