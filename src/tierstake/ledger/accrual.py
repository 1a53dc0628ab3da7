# src/tierstake/ledger/accrual.py
from __future__ import annotations

"""Reward accrual: pure functions over a StakeRecord snapshot.

Policy:
  - The accrual window ends at `now`, or at withdrawal_request_time once the
    stake is withdrawing (reward frozen at the request).
  - Lock maturity and tier selection both measure duration from start_time
    (deposit) to the window end. Below min_staking_period the window accrues
    nothing.
  - reward = principal * rate_tenths * elapsed // seconds_per_year // 1000,
    integer floor division only, so rounding always favours the pool.

Nothing here mutates state; callers apply the result explicitly.
"""

from dataclasses import dataclass
from typing import Tuple

from tierstake.ledger.constants import RATE_DENOMINATOR
from tierstake.ledger.stakes import StakeRecord
from tierstake.runtime.staking_config import StakingConfig


@dataclass(frozen=True, slots=True)
class Accrual:
    window_start: int
    window_end: int
    elapsed: int
    duration: int
    rate_tenths: int
    matured: bool
    accrued: int
    pending: int

    @property
    def total(self) -> int:
        return int(self.pending) + int(self.accrued)


def tier_rate(duration: int, config: StakingConfig) -> int:
    """Annual rate in tenths of a percent for a stake held `duration` seconds."""
    d = int(duration)
    for min_seconds, rate in config.rate_tiers:
        if d >= int(min_seconds):
            return int(rate)
    return int(config.base_rate_tenths)


def accrual_window(stake: StakeRecord, now: int) -> Tuple[int, int]:
    end = int(stake.withdrawal_request_time) if stake.is_withdrawing else int(now)
    start = int(stake.last_reward_time)
    return start, max(end, start)


def window_reward(principal: int, rate_tenths: int, elapsed: int, config: StakingConfig) -> int:
    if int(principal) <= 0 or int(elapsed) <= 0 or int(rate_tenths) <= 0:
        return 0
    return int(principal) * int(rate_tenths) * int(elapsed) // int(config.seconds_per_year) // RATE_DENOMINATOR


def compute_accrual(stake: StakeRecord, now: int, config: StakingConfig) -> Accrual:
    start, end = accrual_window(stake, now)
    elapsed = end - start
    duration = max(end - int(stake.start_time), 0)
    rate = tier_rate(duration, config)
    matured = duration >= int(config.min_staking_period)

    accrued = window_reward(stake.principal, rate, elapsed, config) if matured else 0

    return Accrual(
        window_start=start,
        window_end=end,
        elapsed=elapsed,
        duration=duration,
        rate_tenths=rate,
        matured=matured,
        accrued=accrued,
        pending=int(stake.pending_reward),
    )


def calculate_reward(stake: StakeRecord, now: int, config: StakingConfig) -> int:
    """Frozen pending_reward plus whatever the current window has accrued."""
    return compute_accrual(stake, now, config).total


__all__ = ["Accrual", "accrual_window", "calculate_reward", "compute_accrual", "tier_rate", "window_reward"]
