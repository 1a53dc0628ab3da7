from __future__ import annotations

import pytest

from conftest import fund
from tierstake.ledger.amounts import as_amount, checked_add, checked_sub
from tierstake.ledger.constants import CUSTODY_ACCOUNT_ID, MAX_UINT256, TOKEN
from tierstake.ledger.stakes import open_stake, remove_stake, sum_principal, total_staked
from tierstake.runtime.errors import ArithmeticFault, ValidationError
from tierstake.runtime.events import STAKED
from tierstake.runtime.staking_config import default_staking_config


def test_stake_creates_entry_and_moves_funds(engine, asset, clock) -> None:
    rec = engine.stake("alice", 1000 * TOKEN)

    assert rec.principal == 1000 * TOKEN
    assert rec.start_time == clock.now
    assert rec.last_reward_time == clock.now
    assert rec.pending_reward == 0
    assert rec.is_withdrawing is False

    assert engine.total_staked == 1000 * TOKEN
    assert asset.balance_of("alice") == 9000 * TOKEN
    assert asset.balance_of(CUSTODY_ACCOUNT_ID) == 1000 * TOKEN

    evs = engine.events()
    assert [e.kind for e in evs] == [STAKED]
    assert evs[0].seq == 1
    assert evs[0].account == "alice"
    assert evs[0].amounts == {"amount": 1000 * TOKEN}
    engine.check_invariants()


@pytest.mark.parametrize("amount", [100 * TOKEN - 1, 1_000_000 * TOKEN + 1, 0])
def test_stake_out_of_bounds_rejected(engine, amount: int) -> None:
    with pytest.raises(ValidationError) as ei:
        engine.stake("alice", amount)
    assert ei.value.code == "invalid_amount"
    assert ei.value.reason == "stake_amount_out_of_bounds"
    assert engine.total_staked == 0
    assert engine.events() == []


def test_stake_bounds_are_inclusive(engine, asset) -> None:
    fund(asset, "whale", 1_000_000 * TOKEN)
    engine.stake("alice", 100 * TOKEN)
    engine.stake("whale", 1_000_000 * TOKEN)
    assert engine.total_staked == 1_000_100 * TOKEN


def test_second_stake_for_same_account_rejected(engine) -> None:
    engine.stake("alice", 500 * TOKEN)
    with pytest.raises(ValidationError) as ei:
        engine.stake("alice", 500 * TOKEN)
    assert ei.value.code == "already_staked"
    assert engine.total_staked == 500 * TOKEN
    assert len(engine.events()) == 1


def test_non_integer_amounts_rejected(engine) -> None:
    for bad in (1.5, "1000", True, None):
        with pytest.raises(ValidationError) as ei:
            engine.stake("alice", bad)  # type: ignore[arg-type]
        assert ei.value.code == "invalid_amount"


def test_blank_caller_rejected(engine) -> None:
    with pytest.raises(ValidationError) as ei:
        engine.stake("  ", 500 * TOKEN)
    assert ei.value.code == "invalid_account"


def test_total_staked_tracks_every_entry(engine) -> None:
    engine.stake("alice", 300 * TOKEN)
    engine.stake("bob", 700 * TOKEN)
    state = engine.read_state()
    assert total_staked(state) == sum_principal(state) == 1000 * TOKEN
    assert engine.invariant_report() == []


def test_ledger_helpers_on_plain_state() -> None:
    cfg = default_staking_config()
    state: dict = {}
    open_stake(state, "alice", 200 * TOKEN, now=10, config=cfg)
    assert total_staked(state) == 200 * TOKEN

    snap = remove_stake(state, "alice")
    assert snap.principal == 200 * TOKEN
    assert total_staked(state) == 0
    assert state["staking"]["stakes"] == {}

    with pytest.raises(ValidationError) as ei:
        remove_stake(state, "alice")
    assert ei.value.code == "no_stake"


def test_checked_arithmetic() -> None:
    assert checked_add(MAX_UINT256 - 1, 1, what="x") == MAX_UINT256
    with pytest.raises(ArithmeticFault) as ei:
        checked_add(MAX_UINT256, 1, what="x")
    assert ei.value.code == "overflow"

    with pytest.raises(ArithmeticFault) as ei2:
        checked_sub(1, 2, what="x")
    assert ei2.value.code == "underflow"

    with pytest.raises(ValidationError):
        as_amount(MAX_UINT256 + 1)
    with pytest.raises(ValidationError):
        as_amount(-1)
