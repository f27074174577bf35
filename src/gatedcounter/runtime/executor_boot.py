# src/gatedcounter/runtime/executor_boot.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from gatedcounter.ledger.constants import COUNTER_PROGRAM_ID, WHITELIST_PROGRAM_ID
from gatedcounter.runtime.executor import GatedCounterExecutor


@dataclass
class ExecutorBootConfig:
    db_path: str
    chain_id: str
    sigverify: bool
    counter_program_id: str
    whitelist_program_id: str


def boot_config_from_env() -> ExecutorBootConfig:
    db_path = os.environ.get("GATEDCOUNTER_DB_PATH", "./data/gatedcounter.db")
    chain_id = os.environ.get("GATEDCOUNTER_CHAIN_ID", "gatedcounter-dev")
    sigverify = (os.environ.get("GATEDCOUNTER_SIGVERIFY") or "1").strip().lower() not in {"0", "false", "no", "off"}
    counter_pid = os.environ.get("GATEDCOUNTER_COUNTER_PROGRAM_ID") or COUNTER_PROGRAM_ID
    whitelist_pid = os.environ.get("GATEDCOUNTER_WHITELIST_PROGRAM_ID") or WHITELIST_PROGRAM_ID

    return ExecutorBootConfig(
        db_path=db_path,
        chain_id=chain_id,
        sigverify=sigverify,
        counter_program_id=counter_pid,
        whitelist_program_id=whitelist_pid,
    )


def build_executor(cfg: Optional[ExecutorBootConfig] = None) -> GatedCounterExecutor:
    """
    Build a GatedCounterExecutor from an explicit boot config or, if omitted,
    from environment variables (see apply_chain_config_to_env).
    """
    c = cfg or boot_config_from_env()
    return GatedCounterExecutor(
        db_path=c.db_path,
        chain_id=c.chain_id,
        sigverify=c.sigverify,
        counter_program_id=c.counter_program_id,
        whitelist_program_id=c.whitelist_program_id,
    )
