from __future__ import annotations

import json
import os
from dataclasses import replace
from pathlib import Path

import pytest

from gatedcounter.ledger.constants import COUNTER_PROGRAM_ID, WHITELIST_PROGRAM_ID
from gatedcounter.runtime.chain_config import (
    apply_chain_config_to_env,
    default_chain_config,
    load_chain_config,
    read_chain_config_file,
    validate_chain_config,
)


def _write(tmp_path: Path, obj: dict) -> str:
    p = tmp_path / "chain.json"
    p.write_text(json.dumps(obj), encoding="utf-8")
    return str(p)


def test_defaults_are_production_safe(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GATEDCOUNTER_CHAIN_CONFIG_PATH", raising=False)
    cfg = load_chain_config()
    assert cfg.mode == "prod"
    assert cfg.sigverify is True
    assert cfg.counter_program_id == COUNTER_PROGRAM_ID
    assert cfg.whitelist_program_id == WHITELIST_PROGRAM_ID


def test_file_values_override_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path, {"chain_id": "c1", "mode": "DEV", "sigverify": "false", "api_port": "9001"})
    monkeypatch.setenv("GATEDCOUNTER_CHAIN_CONFIG_PATH", path)

    cfg = load_chain_config()
    assert cfg.chain_id == "c1"
    assert cfg.mode == "dev"
    assert cfg.sigverify is False
    assert cfg.api_port == 9001
    assert cfg.db_path == default_chain_config().db_path


@pytest.mark.parametrize(
    "overrides",
    [
        {"mode": "staging"},
        {"api_port": 70000},
        {"counter_program_id": "not-base58!"},
        {"whitelist_program_id": COUNTER_PROGRAM_ID},
        {"mode": "prod", "sigverify": False},
    ],
)
def test_invalid_config_fails_fast(overrides: dict) -> None:
    cfg = replace(default_chain_config(), **{"mode": "dev", **overrides})
    with pytest.raises(ValueError):
        validate_chain_config(cfg)


def test_non_object_file_is_rejected(tmp_path: Path) -> None:
    p = tmp_path / "chain.json"
    p.write_text("[1, 2, 3]", encoding="utf-8")
    with pytest.raises(ValueError):
        read_chain_config_file(str(p))


def test_apply_chain_config_to_env_exports_runtime_vars(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for k in (
        "GATEDCOUNTER_CHAIN_ID",
        "GATEDCOUNTER_MODE",
        "GATEDCOUNTER_DB_PATH",
        "GATEDCOUNTER_COUNTER_PROGRAM_ID",
        "GATEDCOUNTER_WHITELIST_PROGRAM_ID",
        "GATEDCOUNTER_SIGVERIFY",
        "GATEDCOUNTER_LOG_LEVEL",
    ):
        monkeypatch.setenv(k, "")

    cfg = replace(default_chain_config(), chain_id="exported", mode="testnet", db_path=str(tmp_path / "x.db"), sigverify=False)
    apply_chain_config_to_env(cfg)

    assert os.environ["GATEDCOUNTER_CHAIN_ID"] == "exported"
    assert os.environ["GATEDCOUNTER_MODE"] == "testnet"
    assert os.environ["GATEDCOUNTER_DB_PATH"] == str(tmp_path / "x.db")
    assert os.environ["GATEDCOUNTER_SIGVERIFY"] == "0"
