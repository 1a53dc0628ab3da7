from __future__ import annotations

import pytest

from tierstake.ledger.constants import SECONDS_PER_DAY, TOKEN
from tierstake.runtime.errors import AuthorizationError, SolvencyError, ValidationError
from tierstake.runtime.events import EMERGENCY_WITHDRAWN

DAY = SECONDS_PER_DAY


def test_emergency_exit_from_active_skips_lock(engine, asset, clock) -> None:
    engine.stake("alice", 1000 * TOKEN)
    clock.advance(DAY)

    payout = engine.emergency_withdraw("ops", "alice")
    assert payout.principal == 1000 * TOKEN
    assert payout.reward == 0
    assert engine.get_stake("alice") is None
    assert engine.total_staked == 0
    assert asset.balance_of("alice") == 10_000 * TOKEN

    ev = engine.events()[-1]
    assert ev.kind == EMERGENCY_WITHDRAWN
    assert ev.account == "alice"
    assert ev.actor == "ops"
    engine.check_invariants()


def test_emergency_exit_from_requested_pays_frozen_reward(engine, clock) -> None:
    engine.deposit_rewards("treasury", 500 * TOKEN)
    engine.stake("alice", 1000 * TOKEN)
    clock.advance(365 * DAY)
    engine.request_withdrawal("alice")
    clock.advance(DAY)

    payout = engine.emergency_withdraw("ops", "alice")
    assert payout.reward == 189 * TOKEN
    assert engine.reward_pool == 311 * TOKEN


def test_emergency_requires_role(engine) -> None:
    engine.stake("alice", 1000 * TOKEN)
    for caller in ("alice", "treasury", "admin"):
        with pytest.raises(AuthorizationError):
            engine.emergency_withdraw(caller, "alice")
    assert engine.get_stake("alice") is not None


def test_emergency_without_stake(engine) -> None:
    with pytest.raises(ValidationError) as ei:
        engine.emergency_withdraw("ops", "alice")
    assert ei.value.code == "no_stake"


def test_emergency_still_checks_solvency(engine, clock) -> None:
    engine.stake("alice", 1000 * TOKEN)
    clock.advance(365 * DAY)
    with pytest.raises(SolvencyError):
        engine.emergency_withdraw("ops", "alice")
    assert engine.get_stake("alice") is not None
