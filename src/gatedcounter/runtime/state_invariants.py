# src/gatedcounter/runtime/state_invariants.py
from __future__ import annotations

"""State invariants / normalization helpers.

Ledger state is a nested JSON-like dict mutated deterministically by the programs:

  records   address -> record envelope (program, kind, space, payer, data)
  accounts  identity -> bookkeeping (reclaimed_space)
  params    chain params (chain_id, program ids)

This module creates the core containers and fills in default program ids so the
programs can rely on them.
"""

from collections.abc import MutableMapping
from typing import Any, Dict

from gatedcounter.ledger.constants import COUNTER_PROGRAM_ID, WHITELIST_PROGRAM_ID

Json = Dict[str, Any]


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains core keys.

    Returns the (possibly mutated) dict.

    Raises:
        TypeError: if st is not a MutableMapping or a core container has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for key in ("records", "accounts", "params"):
        v = st.get(key)
        if v is None:
            st[key] = {}
        elif not isinstance(v, dict):
            raise TypeError(f"state[{key!r}] must be dict, got {type(v)}")

    params = st["params"]
    params.setdefault("counter_program_id", COUNTER_PROGRAM_ID)
    params.setdefault("whitelist_program_id", WHITELIST_PROGRAM_ID)

    return st  # type: ignore[return-value]


def counter_program_id(st: Json) -> str:
    return str(st.get("params", {}).get("counter_program_id") or COUNTER_PROGRAM_ID)


def whitelist_program_id(st: Json) -> str:
    return str(st.get("params", {}).get("whitelist_program_id") or WHITELIST_PROGRAM_ID)


__all__ = ["counter_program_id", "ensure_state", "whitelist_program_id"]
