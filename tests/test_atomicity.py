from __future__ import annotations

import pytest

from conftest import fund, mk_engine
from tierstake.ledger.constants import SECONDS_PER_DAY, TOKEN
from tierstake.runtime.asset import AssetError, InMemoryAsset
from tierstake.runtime.errors import SolvencyError, ValidationError

DAY = SECONDS_PER_DAY


class _FlakyAsset(InMemoryAsset):
    """Asset whose outbound transfers fail once armed."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_out = False

    def transfer_out(self, to: str, amount: int) -> None:
        if self.fail_out:
            raise AssetError("transfer_rejected", "recipient_blocked", {"to": to})
        super().transfer_out(to, amount)


def _mk_flaky(clock):
    asset = _FlakyAsset()
    eng = mk_engine(asset, clock)
    fund(asset, "treasury", 1000 * TOKEN)
    fund(asset, "alice", 1000 * TOKEN)
    eng.deposit_rewards("treasury", 500 * TOKEN)
    eng.stake("alice", 1000 * TOKEN)
    return eng, asset


def test_failed_payout_on_withdraw_leaves_state_untouched(clock) -> None:
    eng, asset = _mk_flaky(clock)
    clock.advance(365 * DAY)
    eng.request_withdrawal("alice")
    clock.advance(7 * DAY)

    before = eng.read_state()
    n_events = len(eng.events())
    asset.fail_out = True

    with pytest.raises(SolvencyError) as ei:
        eng.withdraw("alice")
    assert ei.value.code == "insufficient_custody"
    assert ei.value.details["asset_code"] == "transfer_rejected"

    assert eng.read_state() == before
    assert len(eng.events()) == n_events
    eng.check_invariants()

    asset.fail_out = False
    payout = eng.withdraw("alice")
    assert payout.total == 1189 * TOKEN


def test_failed_payout_on_claim_leaves_state_untouched(clock) -> None:
    eng, asset = _mk_flaky(clock)
    clock.advance(365 * DAY)
    before = eng.read_state()
    asset.fail_out = True

    with pytest.raises(SolvencyError):
        eng.claim_rewards("alice")
    assert eng.read_state() == before
    assert eng.reward_pool == 500 * TOKEN


def test_failed_pull_creates_no_stake(engine, asset) -> None:
    asset.approve("alice", 10 * TOKEN)
    before = engine.read_state()

    with pytest.raises(ValidationError) as ei:
        engine.stake("alice", 100 * TOKEN)
    assert ei.value.code == "transfer_failed"
    assert ei.value.details["asset_code"] == "insufficient_allowance"

    assert engine.read_state() == before
    assert engine.get_stake("alice") is None
    assert engine.events() == []


def test_failed_deposit_leaves_pool_unchanged(engine, asset) -> None:
    with pytest.raises(ValidationError):
        engine.deposit_rewards("treasury", 20_000 * TOKEN)
    assert engine.reward_pool == 0
    assert engine.events() == []


def test_read_state_is_a_copy(engine) -> None:
    engine.stake("alice", 100 * TOKEN)
    snap = engine.read_state()
    snap["staking"]["total_staked"] = 0
    assert engine.total_staked == 100 * TOKEN


def test_failure_after_payout_moved_keeps_the_withdrawal(engine, asset, clock) -> None:
    engine.deposit_rewards("treasury", 500 * TOKEN)
    engine.stake("alice", 1000 * TOKEN)
    clock.advance(365 * DAY)
    engine.request_withdrawal("alice")
    clock.advance(7 * DAY)

    def explode(kind: str, frm: str, to: str, amount: int) -> None:
        raise RuntimeError("receiver callback crashed")

    asset.hooks.append(explode)
    with pytest.raises(RuntimeError):
        engine.withdraw("alice")
    asset.hooks.clear()

    # Funds left custody, so the ledger must not offer the stake again.
    assert asset.balance_of("alice") == 10_189 * TOKEN
    assert engine.get_stake("alice") is None
    assert engine.total_staked == 0
    assert engine.reward_pool == 311 * TOKEN
    assert engine.events()[-1].kind == "Withdrawn"
    assert engine.invariant_report() == []

    with pytest.raises(ValidationError) as ei:
        engine.withdraw("alice")
    assert ei.value.code == "no_stake"


def test_failure_after_claim_moved_does_not_pay_twice(engine, asset, clock) -> None:
    engine.deposit_rewards("treasury", 500 * TOKEN)
    engine.stake("alice", 1000 * TOKEN)
    clock.advance(365 * DAY)

    def explode(kind: str, frm: str, to: str, amount: int) -> None:
        raise RuntimeError("receiver callback crashed")

    asset.hooks.append(explode)
    with pytest.raises(RuntimeError):
        engine.claim_rewards("alice")
    asset.hooks.clear()

    assert asset.balance_of("alice") == 9000 * TOKEN + 189 * TOKEN
    assert engine.reward_pool == 311 * TOKEN
    with pytest.raises(ValidationError) as ei:
        engine.claim_rewards("alice")
    assert ei.value.code == "no_rewards"
    engine.check_invariants()
