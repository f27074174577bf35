from __future__ import annotations

import pytest

from gatedcounter.crypto.address import counter_address, membership_address
from gatedcounter.crypto.sig import canonical_tx_message, verify_ed25519_signature, verify_signers
from gatedcounter.ledger.constants import COUNTER_PROGRAM_ID, WHITELIST_PROGRAM_ID
from gatedcounter.testing.sigtools import deterministic_ed25519_keypair, identity_for
from gatedcounter.tx import builders

CHAIN_ID = "builders-test"


def _message(env: dict, chain_id: str = CHAIN_ID) -> bytes:
    return canonical_tx_message(
        chain_id=chain_id,
        program=env["program"],
        instruction=env["instruction"],
        signers=env["signers"],
        payload=env["payload"],
        nonce=env.get("nonce", 0),
    )


def test_deterministic_keys_are_stable() -> None:
    a1, _ = deterministic_ed25519_keypair(label="alice")
    a2, _ = deterministic_ed25519_keypair(label="alice")
    b, _ = deterministic_ed25519_keypair(label="bob")
    assert a1 == a2
    assert a1 != b


def test_create_counter_carries_canonical_derivation() -> None:
    owner = identity_for("owner")
    env = builders.create_counter(owner=owner)
    addr, bump = counter_address(owner, COUNTER_PROGRAM_ID)

    assert env["program"] == COUNTER_PROGRAM_ID
    assert env["signers"] == [owner]
    assert env["payload"] == {"owner": owner, "counter": addr, "bump": bump}


def test_membership_builders_derive_wallet_record() -> None:
    wl = identity_for("wl")
    wallet = identity_for("wallet")
    record, _ = membership_address(wl, wallet, WHITELIST_PROGRAM_ID)

    assert builders.add_member(whitelist=wl, wallet=wallet, controller=wl)["payload"]["wallet_record"] == record
    assert builders.check_member(whitelist=wl, wallet=wallet)["signers"] == []

    inc = builders.increment_if_member(wallet=wallet, owner=identity_for("owner"), whitelist=wl)
    assert inc["payload"]["wallet_record"] == record
    assert inc["signers"] == [wallet]

    no_hint = builders.increment_if_member(wallet=wallet, owner=identity_for("owner"))
    assert "wallet_record" not in no_hint["payload"]


def test_duplicate_signers_are_collapsed() -> None:
    c = identity_for("controller")
    env = builders.add_member(whitelist=identity_for("wl"), wallet=identity_for("w"), controller=c, payer=c)
    assert env["signers"] == [c]


def test_sign_envelope_signs_for_every_key() -> None:
    owner_id, owner_key = deterministic_ed25519_keypair(label="owner")
    wl_id, wl_key = deterministic_ed25519_keypair(label="wl")

    env = builders.sign_envelope(
        builders.link_whitelist(owner=owner_id, whitelist=wl_id),
        chain_id=CHAIN_ID,
        keys=[owner_key, wl_key],
    )
    msg = _message(env)
    assert set(env["sigs"]) == {owner_id, wl_id}
    assert verify_ed25519_signature(message=msg, sig=env["sigs"][wl_id], identity=wl_id)
    assert verify_signers(message=msg, signers=env["signers"], sigs=env["sigs"]) == (True, {})

    # Same signatures do not verify under another chain id.
    ok, details = verify_signers(message=_message(env, "elsewhere"), signers=env["signers"], sigs=env["sigs"])
    assert ok is False
    assert details["reason"] == "invalid_signature"


def test_sign_envelope_rejects_undeclared_key() -> None:
    owner = identity_for("owner")
    _, stranger_key = deterministic_ed25519_keypair(label="stranger")
    with pytest.raises(ValueError):
        builders.sign_envelope(builders.unlink_whitelist(owner=owner), chain_id=CHAIN_ID, keys=[stranger_key])


def test_partial_signatures_report_missing_signers() -> None:
    owner_id, owner_key = deterministic_ed25519_keypair(label="owner")
    wl_id = identity_for("wl")
    env = builders.sign_envelope(
        builders.link_whitelist(owner=owner_id, whitelist=wl_id), chain_id=CHAIN_ID, keys=[owner_key]
    )
    ok, details = verify_signers(message=_message(env), signers=env["signers"], sigs=env["sigs"])
    assert ok is False
    assert details == {"reason": "missing_signature", "signers": [wl_id]}


def test_nonce_is_part_of_the_signed_message() -> None:
    owner_id, owner_key = deterministic_ed25519_keypair(label="owner")
    env = builders.create_counter(owner=owner_id)
    assert env["nonce"] == 0

    signed = builders.sign_envelope(builders.with_nonce(env, 3), chain_id=CHAIN_ID, keys=[owner_key])
    assert signed["nonce"] == 3
    assert verify_signers(message=_message(signed), signers=signed["signers"], sigs=signed["sigs"]) == (True, {})

    # Bumping the nonce on a signed envelope drops the now-stale signatures.
    bumped = builders.with_nonce(signed, 4)
    assert bumped["sigs"] == {}
    forged = dict(bumped, sigs=signed["sigs"])
    ok, details = verify_signers(message=_message(forged), signers=forged["signers"], sigs=forged["sigs"])
    assert ok is False
    assert details["reason"] == "invalid_signature"
