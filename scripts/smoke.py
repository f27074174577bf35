#!/usr/bin/env python3

"""Smoke run for the gated counter node.

It verifies, against a fresh SQLite db:
  - the FastAPI app boots and serves /v1/health
  - an owner can create a counter, link a whitelist and grant a wallet access
  - the granted wallet can increment; a stranger cannot
  - replaying the increment envelope is refused

Usage:
  python3 scripts/smoke.py
"""

from __future__ import annotations

import json
import os
import sys
import tempfile

from fastapi.testclient import TestClient

from gatedcounter.api.app import create_app
from gatedcounter.testing.sigtools import identity_for, sign_env_with_labels
from gatedcounter.tx import builders


def _submit(client: TestClient, env: dict, *, chain_id: str, labels: list[str]) -> tuple[dict, dict]:
    account = client.get(f"/v1/accounts/{env['signers'][0]}").json()["account"]
    env = builders.with_nonce(env, account["next_nonce"])
    signed = sign_env_with_labels(env, chain_id=chain_id, labels=labels)
    r = client.post("/v1/tx/submit", json=signed)
    return {"status": r.status_code, "body": r.json()}, signed


def main() -> int:
    chain_id = "smoke-chain"

    with tempfile.TemporaryDirectory(prefix="gatedcounter-smoke-") as td:
        cfg_path = os.path.join(td, "chain.json")
        with open(cfg_path, "w", encoding="utf-8") as f:
            json.dump({"chain_id": chain_id, "mode": "dev", "db_path": os.path.join(td, "gc.db")}, f)
        os.environ["GATEDCOUNTER_CHAIN_CONFIG_PATH"] = cfg_path

        owner, wl, wallet, stranger = (identity_for(x) for x in ("owner", "whitelist", "wallet", "stranger"))

        with TestClient(create_app(boot_runtime=True)) as client:
            health = client.get("/v1/health").json()
            print(json.dumps({"health": health}, sort_keys=True))

            steps = [
                (builders.create_counter(owner=owner), ["owner"], 200),
                (builders.link_whitelist(owner=owner, whitelist=wl), ["owner", "whitelist"], 200),
                (builders.grant_access(owner=owner, wallet=wallet, whitelist=wl), ["owner"], 200),
                (builders.increment_if_member(wallet=wallet, owner=owner, whitelist=wl), ["wallet"], 200),
                (builders.increment_if_member(wallet=stranger, owner=owner, whitelist=wl), ["stranger"], 400),
            ]
            accepted: list[dict] = []
            for env, labels, want in steps:
                out, signed = _submit(client, env, chain_id=chain_id, labels=labels)
                print(json.dumps({"instruction": env["instruction"], **out}, sort_keys=True))
                if out["status"] != want:
                    print(f"FAIL: {env['instruction']} expected {want}", file=sys.stderr)
                    return 1
                if want == 200:
                    accepted.append(signed)

            replay = client.post("/v1/tx/submit", json=accepted[-1])
            print(json.dumps({"replay": replay.status_code}, sort_keys=True))
            if replay.status_code != 409:
                print("FAIL: replayed increment was not refused", file=sys.stderr)
                return 1

            counter = client.get(f"/v1/counters/{owner}").json()["counter"]
            if counter["count"] != 1:
                print(f"FAIL: expected count 1, got {counter['count']}", file=sys.stderr)
                return 1

    print("OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
