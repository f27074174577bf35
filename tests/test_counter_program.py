from __future__ import annotations

import copy
from typing import Any, Dict

import pytest

import gatedcounter.programs.whitelist as whitelist_program
from gatedcounter.crypto.address import NULL_ADDRESS, counter_address
from gatedcounter.ledger.constants import COUNTER_PROGRAM_ID, U64_MAX
from gatedcounter.programs.counter import STATE_CREATED, STATE_LINKED, counter_state, get_counter
from gatedcounter.programs.whitelist import get_config, is_member, list_members
from gatedcounter.runtime.domain_apply import ErrorKind, ProgramError, apply_tx_atomic
from gatedcounter.testing.sigtools import identity_for
from gatedcounter.tx import builders

Json = Dict[str, Any]

OWNER = identity_for("owner-O")
WL = identity_for("whitelist-W")
A = identity_for("wallet-A")
B = identity_for("wallet-B")

COUNTER, _ = counter_address(OWNER, COUNTER_PROGRAM_ID)


def _expect(st: Json, env: Json, kind: ErrorKind) -> ProgramError:
    with pytest.raises(ProgramError) as e:
        apply_tx_atomic(st, env)
    assert e.value.kind == kind
    return e.value


def _created() -> Json:
    st: Json = {}
    apply_tx_atomic(st, builders.create_counter(owner=OWNER))
    return st


def _linked() -> Json:
    st = _created()
    apply_tx_atomic(st, builders.link_whitelist(owner=OWNER, whitelist=WL))
    return st


def _count(st: Json) -> int:
    c = get_counter(st, OWNER)
    assert c is not None
    return c.count


def test_create_counter_initial_fields() -> None:
    st = _created()
    c = get_counter(st, OWNER)
    assert c is not None
    assert c.owner == OWNER
    assert c.count == 0
    assert c.linked_whitelist == NULL_ADDRESS
    assert counter_state(c) == STATE_CREATED
    assert st["records"][COUNTER]["space"] == 88


def test_create_counter_twice_fails() -> None:
    st = _created()
    _expect(st, builders.create_counter(owner=OWNER), ErrorKind.ALREADY_INITIALIZED)


def test_create_counter_rejects_non_canonical_bump() -> None:
    st: Json = {}
    env = builders.create_counter(owner=OWNER)
    env["payload"]["bump"] = (env["payload"]["bump"] - 1) % 256
    env["payload"].pop("counter")
    _expect(st, env, ErrorKind.ADDRESS_DERIVATION_MISMATCH)
    assert get_counter(st, OWNER) is None


def test_create_counter_requires_owner_signature() -> None:
    st: Json = {}
    env = builders.create_counter(owner=OWNER)
    env["signers"] = [A]
    err = _expect(st, env, ErrorKind.AUTHORITY_MISMATCH)
    assert err.reason == "owner_must_sign"


def test_create_then_increment_fails_not_initialized() -> None:
    st = _created()
    _expect(st, builders.increment_if_member(wallet=A, owner=OWNER), ErrorKind.NOT_INITIALIZED)
    assert _count(st) == 0


def test_grant_before_link_fails_not_initialized() -> None:
    st = _created()
    _expect(st, builders.grant_access(owner=OWNER, wallet=A), ErrorKind.NOT_INITIALIZED)


def test_link_delegates_control_to_counter_capability() -> None:
    st = _linked()
    cfg = get_config(st, WL)
    assert cfg is not None
    assert cfg.controller == COUNTER
    assert cfg.controller != OWNER

    c = get_counter(st, OWNER)
    assert c.linked_whitelist == WL
    assert counter_state(c) == STATE_LINKED


def test_link_twice_fails_already_linked() -> None:
    st = _linked()
    other = identity_for("whitelist-W2")
    _expect(st, builders.link_whitelist(owner=OWNER, whitelist=other), ErrorKind.ALREADY_LINKED)
    assert get_config(st, other) is None


def test_owner_cannot_bypass_counter_after_delegation() -> None:
    st = _linked()
    env = builders.add_member(whitelist=WL, wallet=A, controller=OWNER)
    _expect(st, env, ErrorKind.AUTHORITY_MISMATCH)
    assert not is_member(st, WL, A)


def test_failed_link_leaves_no_whitelist_record(monkeypatch: pytest.MonkeyPatch) -> None:
    st = _created()
    before = copy.deepcopy(st)

    def _boom(state: Json, ctx: Any, payload: Json) -> Json:
        raise ProgramError(ErrorKind.AUTHORITY_MISMATCH, "delegation_refused")

    monkeypatch.setattr(whitelist_program, "_set_controller", _boom)

    _expect(st, builders.link_whitelist(owner=OWNER, whitelist=WL), ErrorKind.AUTHORITY_MISMATCH)
    assert get_config(st, WL) is None
    assert st == before


def test_link_requires_fresh_whitelist_signature() -> None:
    st = _created()
    env = builders.link_whitelist(owner=OWNER, whitelist=WL)
    env["signers"] = [OWNER]
    err = _expect(st, env, ErrorKind.AUTHORITY_MISMATCH)
    assert err.reason == "forwarded_signer_not_signed"
    assert get_config(st, WL) is None
    assert get_counter(st, OWNER).linked_whitelist == NULL_ADDRESS


def test_link_to_existing_whitelist_fails() -> None:
    # Another owner already created a whitelist at WL.
    st = _linked()
    other_owner = identity_for("owner-P")
    apply_tx_atomic(st, builders.create_counter(owner=other_owner))
    _expect(st, builders.link_whitelist(owner=other_owner, whitelist=WL), ErrorKind.ALREADY_INITIALIZED)
    assert get_config(st, WL).controller == COUNTER
    assert not get_counter(st, other_owner).is_linked


def test_end_to_end_grant_increment_retract() -> None:
    st = _linked()
    assert _count(st) == 0

    apply_tx_atomic(st, builders.grant_access(owner=OWNER, wallet=A, whitelist=WL))
    assert is_member(st, WL, A)
    assert get_config(st, WL).member_count == 1

    meta = apply_tx_atomic(st, builders.increment_if_member(wallet=A, owner=OWNER, whitelist=WL))
    assert meta["count"] == 1
    assert _count(st) == 1

    _expect(st, builders.increment_if_member(wallet=B, owner=OWNER, whitelist=WL), ErrorKind.NOT_A_MEMBER)
    assert _count(st) == 1

    apply_tx_atomic(st, builders.retract_access(owner=OWNER, wallet=A, whitelist=WL))
    assert not is_member(st, WL, A)
    assert get_config(st, WL).member_count == 0

    _expect(st, builders.increment_if_member(wallet=A, owner=OWNER, whitelist=WL), ErrorKind.NOT_A_MEMBER)
    assert _count(st) == 1


def test_grant_twice_fails_duplicate_member() -> None:
    st = _linked()
    apply_tx_atomic(st, builders.grant_access(owner=OWNER, wallet=A))
    _expect(st, builders.grant_access(owner=OWNER, wallet=A), ErrorKind.DUPLICATE_MEMBER)
    assert get_config(st, WL).member_count == 1


def test_retract_refund_defaults_to_owner() -> None:
    st = _linked()
    apply_tx_atomic(st, builders.grant_access(owner=OWNER, wallet=A))
    meta = apply_tx_atomic(st, builders.retract_access(owner=OWNER, wallet=A))
    assert meta["refund_receiver"] == OWNER
    assert st["accounts"][OWNER]["reclaimed_space"] == 8


def test_retract_of_never_granted_wallet_fails_not_a_member() -> None:
    st = _linked()
    apply_tx_atomic(st, builders.grant_access(owner=OWNER, wallet=A))
    before = copy.deepcopy(st)

    _expect(st, builders.retract_access(owner=OWNER, wallet=B), ErrorKind.NOT_A_MEMBER)
    assert st == before
    assert list_members(st, WL) == [A]
    assert get_config(st, WL).member_count == 1


def test_grant_requires_owner_signature() -> None:
    st = _linked()
    env = builders.grant_access(owner=OWNER, wallet=A)
    env["signers"] = [A]
    _expect(st, env, ErrorKind.AUTHORITY_MISMATCH)
    assert not is_member(st, WL, A)


def test_increment_requires_wallet_signature() -> None:
    st = _linked()
    apply_tx_atomic(st, builders.grant_access(owner=OWNER, wallet=A))
    env = builders.increment_if_member(wallet=A, owner=OWNER)
    env["signers"] = [B]
    err = _expect(st, env, ErrorKind.AUTHORITY_MISMATCH)
    assert err.reason == "wallet_must_sign"
    assert _count(st) == 0


def test_increment_rejects_forged_wallet_record() -> None:
    st = _linked()
    apply_tx_atomic(st, builders.grant_access(owner=OWNER, wallet=A))
    env = builders.increment_if_member(wallet=B, owner=OWNER)
    # B points at A's membership record.
    env["payload"]["wallet_record"] = builders.increment_if_member(wallet=A, owner=OWNER, whitelist=WL)["payload"][
        "wallet_record"
    ]
    _expect(st, env, ErrorKind.ADDRESS_DERIVATION_MISMATCH)
    assert _count(st) == 0


def test_increment_overflow_is_checked() -> None:
    st = _linked()
    apply_tx_atomic(st, builders.grant_access(owner=OWNER, wallet=A))
    st["records"][COUNTER]["data"]["count"] = U64_MAX

    _expect(st, builders.increment_if_member(wallet=A, owner=OWNER), ErrorKind.COUNTER_OVERFLOW)
    assert _count(st) == U64_MAX


def test_unlink_scenario_keeps_orphaned_whitelist() -> None:
    st = _linked()
    apply_tx_atomic(st, builders.grant_access(owner=OWNER, wallet=A))
    apply_tx_atomic(st, builders.increment_if_member(wallet=A, owner=OWNER))

    meta = apply_tx_atomic(st, builders.unlink_whitelist(owner=OWNER))
    assert meta["previous_whitelist"] == WL
    assert counter_state(get_counter(st, OWNER)) == STATE_CREATED

    _expect(st, builders.increment_if_member(wallet=A, owner=OWNER), ErrorKind.NOT_INITIALIZED)
    assert _count(st) == 1

    # The whitelist and its memberships survive, still controlled by the counter.
    cfg = get_config(st, WL)
    assert cfg is not None
    assert cfg.controller == COUNTER
    assert list_members(st, WL) == [A]


def test_unlink_when_not_linked_fails() -> None:
    st = _created()
    _expect(st, builders.unlink_whitelist(owner=OWNER), ErrorKind.NOT_INITIALIZED)


def test_relink_after_unlink_uses_new_whitelist() -> None:
    st = _linked()
    apply_tx_atomic(st, builders.unlink_whitelist(owner=OWNER))

    w2 = identity_for("whitelist-W2")
    apply_tx_atomic(st, builders.link_whitelist(owner=OWNER, whitelist=w2))
    assert get_counter(st, OWNER).linked_whitelist == w2
    assert get_config(st, w2).controller == COUNTER

    apply_tx_atomic(st, builders.grant_access(owner=OWNER, wallet=B))
    assert is_member(st, w2, B)
    assert not is_member(st, WL, B)


def test_counter_missing_fails_account_not_found() -> None:
    st: Json = {}
    _expect(st, builders.link_whitelist(owner=OWNER, whitelist=WL), ErrorKind.ACCOUNT_NOT_FOUND)
