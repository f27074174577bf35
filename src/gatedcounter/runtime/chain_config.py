# src/gatedcounter/runtime/chain_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from gatedcounter.crypto.address import is_valid_identity
from gatedcounter.ledger.constants import COUNTER_PROGRAM_ID, WHITELIST_PROGRAM_ID

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class ChainConfig:
    chain_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file for the ledger snapshot and receipts.
    db_path: str

    counter_program_id: str
    whitelist_program_id: str

    # Require Ed25519 signatures from every declared signer.
    sigverify: bool

    api_host: str
    api_port: int

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_chain_config(cfg: ChainConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.chain_id, str) or not cfg.chain_id.strip():
        raise ValueError("chain_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    for name, pid in (
        ("counter_program_id", cfg.counter_program_id),
        ("whitelist_program_id", cfg.whitelist_program_id),
    ):
        if not is_valid_identity(pid):
            raise ValueError(f"{name} must be a base58 32-byte identity; got: {pid!r}")

    if cfg.counter_program_id == cfg.whitelist_program_id:
        raise ValueError("counter_program_id and whitelist_program_id must differ")

    if mode == "prod" and not cfg.sigverify:
        raise ValueError("sigverify cannot be disabled in prod mode")


def default_chain_config() -> ChainConfig:
    return ChainConfig(
        chain_id="gatedcounter-dev",
        # Without an explicit config file the node runs with production-safe
        # settings (signatures required).
        mode="prod",
        db_path="./data/gatedcounter.db",
        counter_program_id=COUNTER_PROGRAM_ID,
        whitelist_program_id=WHITELIST_PROGRAM_ID,
        sigverify=True,
        api_host="0.0.0.0",
        api_port=8000,
        log_level="INFO",
    )


def chain_config_from_json(raw: Json) -> ChainConfig:
    if not isinstance(raw, dict):
        raise ValueError("chain config must be a JSON object")

    d = default_chain_config()

    cfg = ChainConfig(
        chain_id=_as_str(raw.get("chain_id"), d.chain_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        counter_program_id=_as_str(raw.get("counter_program_id"), d.counter_program_id),
        whitelist_program_id=_as_str(raw.get("whitelist_program_id"), d.whitelist_program_id),
        sigverify=_as_bool(raw.get("sigverify"), d.sigverify),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level),
    )

    validate_chain_config(cfg)
    return cfg


def read_chain_config_file(path: str) -> ChainConfig:
    p = Path(path)
    return chain_config_from_json(json.loads(p.read_text(encoding="utf-8")))


def load_chain_config(*, config_path: Optional[str] = None) -> ChainConfig:
    p = config_path or os.environ.get("GATEDCOUNTER_CHAIN_CONFIG_PATH")
    if p:
        return read_chain_config_file(p)

    cfg = default_chain_config()
    validate_chain_config(cfg)
    return cfg


def apply_chain_config_to_env(cfg: ChainConfig) -> None:
    validate_chain_config(cfg)
    os.environ["GATEDCOUNTER_CHAIN_ID"] = cfg.chain_id

    # Mode also drives the SQLite synchronous default.
    os.environ["GATEDCOUNTER_MODE"] = (cfg.mode or "prod").strip().lower()

    os.environ["GATEDCOUNTER_DB_PATH"] = cfg.db_path
    os.environ["GATEDCOUNTER_COUNTER_PROGRAM_ID"] = cfg.counter_program_id
    os.environ["GATEDCOUNTER_WHITELIST_PROGRAM_ID"] = cfg.whitelist_program_id
    os.environ["GATEDCOUNTER_SIGVERIFY"] = "1" if cfg.sigverify else "0"
    os.environ["GATEDCOUNTER_LOG_LEVEL"] = cfg.log_level
