from __future__ import annotations

import pytest

from tierstake.ledger.accrual import calculate_reward, compute_accrual, tier_rate, window_reward
from tierstake.ledger.constants import SECONDS_PER_DAY, SECONDS_PER_YEAR, TOKEN
from tierstake.ledger.stakes import StakeRecord
from tierstake.runtime.staking_config import default_staking_config

DAY = SECONDS_PER_DAY
T0 = 1_700_000_000


def _mk_stake(principal: int = 1000 * TOKEN, **kw) -> StakeRecord:
    fields = {"account": "alice", "principal": principal, "start_time": T0, "last_reward_time": T0}
    fields.update(kw)
    return StakeRecord(**fields)


@pytest.mark.parametrize(
    "days,rate",
    [
        (0, 109),
        (89, 109),
        (90, 129),
        (179, 129),
        (180, 149),
        (364, 149),
        (365, 189),
        (1000, 189),
    ],
)
def test_tier_rate_thresholds(days: int, rate: int) -> None:
    assert tier_rate(days * DAY, default_staking_config()) == rate


def test_tier_boundary_is_inclusive_to_the_second() -> None:
    cfg = default_staking_config()
    assert tier_rate(90 * DAY - 1, cfg) == 109
    assert tier_rate(90 * DAY, cfg) == 129
    assert tier_rate(180 * DAY - 1, cfg) == 129
    assert tier_rate(180 * DAY, cfg) == 149
    assert tier_rate(365 * DAY - 1, cfg) == 149
    assert tier_rate(365 * DAY, cfg) == 189


def test_full_year_at_top_tier_is_exact() -> None:
    cfg = default_staking_config()
    assert window_reward(1000 * TOKEN, 189, SECONDS_PER_YEAR, cfg) == 189 * TOKEN
    assert calculate_reward(_mk_stake(), T0 + 365 * DAY, cfg) == 189 * TOKEN


def test_rounding_always_floors() -> None:
    cfg = default_staking_config()
    assert window_reward(1, 109, 1, cfg) == 0
    p = 100 * TOKEN + 7
    elapsed = 31 * DAY + 13
    assert window_reward(p, 109, elapsed, cfg) == p * 109 * elapsed // SECONDS_PER_YEAR // 1000


def test_nothing_accrues_before_minimum_lock() -> None:
    cfg = default_staking_config()
    s = _mk_stake()

    just_before = compute_accrual(s, T0 + 30 * DAY - 1, cfg)
    assert just_before.matured is False
    assert just_before.accrued == 0

    at_lock = compute_accrual(s, T0 + 30 * DAY, cfg)
    assert at_lock.matured is True
    assert at_lock.rate_tenths == 109
    assert at_lock.accrued == 1000 * TOKEN * 109 * (30 * DAY) // SECONDS_PER_YEAR // 1000


def test_tier_uses_duration_since_start_not_since_last_claim() -> None:
    cfg = default_staking_config()
    # Claimed at day 200; the next window still earns the 180-day tier.
    s = _mk_stake(last_reward_time=T0 + 200 * DAY)
    acc = compute_accrual(s, T0 + 210 * DAY, cfg)
    assert acc.elapsed == 10 * DAY
    assert acc.rate_tenths == 149
    assert acc.accrued == 1000 * TOKEN * 149 * (10 * DAY) // SECONDS_PER_YEAR // 1000


def test_pending_reward_is_added_on_top() -> None:
    cfg = default_staking_config()
    s = _mk_stake(pending_reward=5)
    assert calculate_reward(s, T0 + 365 * DAY, cfg) == 189 * TOKEN + 5


def test_withdrawing_stake_is_frozen_at_request_time() -> None:
    cfg = default_staking_config()
    req = T0 + 100 * DAY
    s = _mk_stake(
        pending_reward=42 * TOKEN,
        last_reward_time=req,
        is_withdrawing=True,
        withdrawal_request_time=req,
    )
    later = compute_accrual(s, req + 400 * DAY, cfg)
    assert later.window_end == req
    assert later.elapsed == 0
    assert later.total == 42 * TOKEN
    # Tier is measured to the request, not to the later "now".
    assert later.rate_tenths == 129


def test_clock_behind_window_start_accrues_nothing() -> None:
    cfg = default_staking_config()
    s = _mk_stake(last_reward_time=T0 + 40 * DAY)
    acc = compute_accrual(s, T0 + 35 * DAY, cfg)
    assert acc.elapsed == 0
    assert acc.accrued == 0
