# src/tierstake/ledger/constants.py
from __future__ import annotations

"""Staking monetary and timing constants.

Anchors:
- Asset precision: 18 decimals (1 token = 1e18 units)
- Stake bounds: 100 .. 1,000,000 tokens
- Minimum lock: 30 days
- Withdrawal delay: 7 days
- Daily payout ceiling per account: 1,500,000 tokens
- Yield tiers (tenths of a percent): 10.9% / 12.9% / 14.9% / 18.9%
"""

# Asset precision (1 token = 1e18 units)
TOKEN_DECIMALS: int = 18
TOKEN: int = 10**TOKEN_DECIMALS

# Checked arithmetic ceiling for shared counters
MAX_UINT256: int = 2**256 - 1

SECONDS_PER_DAY: int = 24 * 60 * 60
SECONDS_PER_YEAR: int = 365 * SECONDS_PER_DAY

# Stake bounds
MIN_STAKE_AMOUNT: int = 100 * TOKEN
MAX_STAKE_AMOUNT: int = 1_000_000 * TOKEN

# Timing
MIN_STAKING_PERIOD: int = 30 * SECONDS_PER_DAY
WITHDRAWAL_DELAY: int = 7 * SECONDS_PER_DAY

# Per-account payout ceiling inside one UTC day; covers a max stake plus a
# full year at the top tier
DAILY_WITHDRAWAL_LIMIT: int = 1_500_000 * TOKEN

# Rates are tenths of a percent: 109 == 10.9% APR
RATE_DENOMINATOR: int = 1000
BASE_RATE_TENTHS: int = 109

# (min duration seconds, rate tenths), longest threshold first
RATE_TIERS = (
    (365 * SECONDS_PER_DAY, 189),
    (180 * SECONDS_PER_DAY, 149),
    (90 * SECONDS_PER_DAY, 129),
)

# Canonical custody holder id on the asset ledger
CUSTODY_ACCOUNT_ID: str = "STAKING_CUSTODY"
