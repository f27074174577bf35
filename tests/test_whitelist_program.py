from __future__ import annotations

import copy
from typing import Any, Dict

import pytest

from gatedcounter.ledger.constants import U64_MAX, WALLET_MEMBERSHIP_SPACE
from gatedcounter.ledger.state import LedgerView
from gatedcounter.programs.whitelist import get_config, is_member, list_members
from gatedcounter.runtime.domain_apply import ErrorKind, ProgramError, apply_tx_atomic
from gatedcounter.testing.sigtools import identity_for
from gatedcounter.tx import builders

Json = Dict[str, Any]

CONTROLLER = identity_for("controller")
WL = identity_for("whitelist")
ALICE = identity_for("alice")
BOB = identity_for("bob")
MALLORY = identity_for("mallory")


def _state_with_whitelist() -> Json:
    st: Json = {}
    apply_tx_atomic(st, builders.create_whitelist(creator=CONTROLLER, whitelist=WL))
    return st


def _expect(st: Json, env: Json, kind: ErrorKind) -> ProgramError:
    with pytest.raises(ProgramError) as e:
        apply_tx_atomic(st, env)
    assert e.value.kind == kind
    return e.value


def test_create_whitelist_sets_creator_as_controller() -> None:
    st = _state_with_whitelist()
    cfg = get_config(st, WL)
    assert cfg is not None
    assert cfg.controller == CONTROLLER
    assert cfg.member_count == 0


def test_create_whitelist_requires_both_signatures() -> None:
    st: Json = {}
    env = builders.create_whitelist(creator=CONTROLLER, whitelist=WL)
    env["signers"] = [CONTROLLER]
    err = _expect(st, env, ErrorKind.AUTHORITY_MISMATCH)
    assert err.reason == "whitelist_must_sign"
    assert get_config(st, WL) is None


def test_create_whitelist_twice_fails_already_initialized() -> None:
    st = _state_with_whitelist()
    _expect(st, builders.create_whitelist(creator=ALICE, whitelist=WL), ErrorKind.ALREADY_INITIALIZED)
    assert get_config(st, WL).controller == CONTROLLER


def test_add_member_twice_fails_duplicate_and_counts_once() -> None:
    st = _state_with_whitelist()
    apply_tx_atomic(st, builders.add_member(whitelist=WL, wallet=ALICE, controller=CONTROLLER))
    assert get_config(st, WL).member_count == 1

    _expect(st, builders.add_member(whitelist=WL, wallet=ALICE, controller=CONTROLLER), ErrorKind.DUPLICATE_MEMBER)
    assert get_config(st, WL).member_count == 1
    assert list_members(st, WL) == [ALICE]


def test_remove_without_add_fails_not_a_member() -> None:
    st = _state_with_whitelist()
    env = builders.remove_member(whitelist=WL, wallet=ALICE, controller=CONTROLLER, refund_receiver=CONTROLLER)
    _expect(st, env, ErrorKind.NOT_A_MEMBER)
    assert get_config(st, WL).member_count == 0


def test_add_member_overflow_is_checked() -> None:
    st = _state_with_whitelist()
    st["records"][WL]["data"]["member_count"] = U64_MAX
    before = copy.deepcopy(st)

    _expect(st, builders.add_member(whitelist=WL, wallet=ALICE, controller=CONTROLLER), ErrorKind.COUNTER_OVERFLOW)
    assert st == before
    assert not is_member(st, WL, ALICE)


def test_remove_member_underflow_is_checked() -> None:
    st = _state_with_whitelist()
    apply_tx_atomic(st, builders.add_member(whitelist=WL, wallet=ALICE, controller=CONTROLLER))
    st["records"][WL]["data"]["member_count"] = 0
    before = copy.deepcopy(st)

    env = builders.remove_member(whitelist=WL, wallet=ALICE, controller=CONTROLLER, refund_receiver=CONTROLLER)
    _expect(st, env, ErrorKind.COUNTER_UNDERFLOW)
    assert st == before
    assert is_member(st, WL, ALICE)


def test_remove_member_credits_refund_receiver() -> None:
    st = _state_with_whitelist()
    apply_tx_atomic(st, builders.add_member(whitelist=WL, wallet=ALICE, controller=CONTROLLER))
    apply_tx_atomic(st, builders.add_member(whitelist=WL, wallet=BOB, controller=CONTROLLER))

    meta = apply_tx_atomic(
        st, builders.remove_member(whitelist=WL, wallet=ALICE, controller=CONTROLLER, refund_receiver=BOB)
    )
    assert meta["reclaimed_space"] == WALLET_MEMBERSHIP_SPACE
    assert LedgerView.from_ledger(st).reclaimed_space(BOB) == WALLET_MEMBERSHIP_SPACE
    assert not is_member(st, WL, ALICE)
    assert is_member(st, WL, BOB)
    assert get_config(st, WL).member_count == 1


def test_membership_mutations_require_controller_signature() -> None:
    st = _state_with_whitelist()

    env = builders.add_member(whitelist=WL, wallet=ALICE, controller=MALLORY)
    err = _expect(st, env, ErrorKind.AUTHORITY_MISMATCH)
    assert err.reason == "controller_must_sign"

    apply_tx_atomic(st, builders.add_member(whitelist=WL, wallet=ALICE, controller=CONTROLLER))
    env2 = builders.remove_member(whitelist=WL, wallet=ALICE, controller=MALLORY, refund_receiver=MALLORY)
    _expect(st, env2, ErrorKind.AUTHORITY_MISMATCH)
    assert is_member(st, WL, ALICE)


def test_supplied_wallet_record_must_match_derivation() -> None:
    st = _state_with_whitelist()
    env = builders.add_member(whitelist=WL, wallet=ALICE, controller=CONTROLLER)
    env["payload"]["wallet_record"] = identity_for("somewhere-else")
    _expect(st, env, ErrorKind.ADDRESS_DERIVATION_MISMATCH)
    assert get_config(st, WL).member_count == 0


def test_check_member_has_no_side_effects() -> None:
    st = _state_with_whitelist()
    apply_tx_atomic(st, builders.add_member(whitelist=WL, wallet=ALICE, controller=CONTROLLER))
    before = copy.deepcopy(st)

    meta = apply_tx_atomic(st, builders.check_member(whitelist=WL, wallet=ALICE))
    assert meta["member"] is True
    assert st == before

    _expect(st, builders.check_member(whitelist=WL, wallet=BOB), ErrorKind.NOT_A_MEMBER)
    assert st == before


def test_check_member_on_missing_whitelist_fails_account_not_found() -> None:
    st: Json = {}
    _expect(st, builders.check_member(whitelist=WL, wallet=ALICE), ErrorKind.ACCOUNT_NOT_FOUND)


def test_set_controller_requires_current_controller() -> None:
    st = _state_with_whitelist()

    # Claiming to be the controller is not enough.
    env = builders.set_controller(whitelist=WL, current_controller=MALLORY, new_controller=MALLORY)
    err = _expect(st, env, ErrorKind.AUTHORITY_MISMATCH)
    assert err.reason == "current_controller_mismatch"

    # Naming the real controller without its signature fails too.
    env2 = builders.set_controller(whitelist=WL, current_controller=CONTROLLER, new_controller=MALLORY)
    env2["signers"] = [MALLORY]
    err2 = _expect(st, env2, ErrorKind.AUTHORITY_MISMATCH)
    assert err2.reason == "current_controller_must_sign"

    apply_tx_atomic(st, builders.set_controller(whitelist=WL, current_controller=CONTROLLER, new_controller=ALICE))
    assert get_config(st, WL).controller == ALICE

    # The old controller lost its authority.
    _expect(
        st,
        builders.add_member(whitelist=WL, wallet=BOB, controller=CONTROLLER),
        ErrorKind.AUTHORITY_MISMATCH,
    )
    apply_tx_atomic(st, builders.add_member(whitelist=WL, wallet=BOB, controller=ALICE))
    assert list_members(st, WL) == [BOB]


def test_list_members_is_sorted() -> None:
    st = _state_with_whitelist()
    wallets = [identity_for(f"w{i}") for i in range(5)]
    for w in wallets:
        apply_tx_atomic(st, builders.add_member(whitelist=WL, wallet=w, controller=CONTROLLER))
    assert list_members(st, WL) == sorted(wallets)
    assert get_config(st, WL).member_count == 5


def test_unknown_instruction_fails_closed() -> None:
    st = _state_with_whitelist()
    env = builders.check_member(whitelist=WL, wallet=ALICE)
    env["instruction"] = "DROP_ALL"
    _expect(st, env, ErrorKind.INVALID_INSTRUCTION)
