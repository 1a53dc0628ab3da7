# src/tierstake/runtime/staking_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from tierstake.ledger.constants import (
    BASE_RATE_TENTHS,
    DAILY_WITHDRAWAL_LIMIT,
    MAX_STAKE_AMOUNT,
    MIN_STAKE_AMOUNT,
    MIN_STAKING_PERIOD,
    RATE_TIERS,
    SECONDS_PER_YEAR,
    WITHDRAWAL_DELAY,
)

Json = Dict[str, Any]

Tier = Tuple[int, int]


def _as_int(v: Any, default: int) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_tiers(v: Any, default: Tuple[Tier, ...]) -> Tuple[Tier, ...]:
    """Accept [[min_seconds, rate_tenths], ...] or [{"min_seconds":..,"rate_tenths":..}, ...]."""
    if not isinstance(v, list):
        return tuple(default)
    out = []
    for rec in v:
        if isinstance(rec, dict):
            out.append((int(rec["min_seconds"]), int(rec["rate_tenths"])))
        elif isinstance(rec, (list, tuple)) and len(rec) == 2:
            out.append((int(rec[0]), int(rec[1])))
        else:
            raise ValueError(f"rate tier must be a pair or object; got: {rec!r}")
    return tuple(out)


@dataclass(frozen=True)
class StakingConfig:
    """Deployment-fixed parameters; immutable once the engine is built."""

    min_stake_amount: int
    max_stake_amount: int
    min_staking_period: int
    withdrawal_delay: int
    daily_withdrawal_limit: int

    base_rate_tenths: int
    # (min duration seconds, rate tenths), longest threshold first
    rate_tiers: Tuple[Tier, ...]
    seconds_per_year: int

    def to_json(self) -> Json:
        return {
            "min_stake_amount": int(self.min_stake_amount),
            "max_stake_amount": int(self.max_stake_amount),
            "min_staking_period": int(self.min_staking_period),
            "withdrawal_delay": int(self.withdrawal_delay),
            "daily_withdrawal_limit": int(self.daily_withdrawal_limit),
            "base_rate_tenths": int(self.base_rate_tenths),
            "rate_tiers": [[int(s), int(r)] for s, r in self.rate_tiers],
            "seconds_per_year": int(self.seconds_per_year),
        }


def validate_staking_config(cfg: StakingConfig) -> None:
    """Fail-fast validation so a misconfigured deployment never starts."""

    if int(cfg.min_stake_amount) <= 0:
        raise ValueError(f"min_stake_amount must be > 0; got: {cfg.min_stake_amount}")

    if int(cfg.max_stake_amount) < int(cfg.min_stake_amount):
        raise ValueError(
            f"max_stake_amount must be >= min_stake_amount; got: {cfg.max_stake_amount} < {cfg.min_stake_amount}"
        )

    for name in ("min_staking_period", "withdrawal_delay"):
        if int(getattr(cfg, name)) < 0:
            raise ValueError(f"{name} must be >= 0; got: {getattr(cfg, name)}")

    if int(cfg.daily_withdrawal_limit) <= 0:
        raise ValueError(f"daily_withdrawal_limit must be > 0; got: {cfg.daily_withdrawal_limit}")

    if int(cfg.seconds_per_year) <= 0:
        raise ValueError(f"seconds_per_year must be > 0; got: {cfg.seconds_per_year}")

    if int(cfg.base_rate_tenths) < 0:
        raise ValueError(f"base_rate_tenths must be >= 0; got: {cfg.base_rate_tenths}")

    # Longest threshold first, and a longer lock never earns less.
    prev_seconds: Optional[int] = None
    prev_rate: Optional[int] = None
    for seconds, rate in cfg.rate_tiers:
        if int(seconds) <= 0:
            raise ValueError(f"rate tier threshold must be > 0; got: {seconds}")
        if prev_seconds is not None and int(seconds) >= prev_seconds:
            raise ValueError("rate_tiers must be sorted by strictly descending threshold")
        if prev_rate is not None and int(rate) > prev_rate:
            raise ValueError("rate_tiers rates must not increase as thresholds decrease")
        prev_seconds, prev_rate = int(seconds), int(rate)

    if prev_rate is not None and int(cfg.base_rate_tenths) > prev_rate:
        raise ValueError("base_rate_tenths must not exceed the lowest tier rate")


def default_staking_config() -> StakingConfig:
    return StakingConfig(
        min_stake_amount=MIN_STAKE_AMOUNT,
        max_stake_amount=MAX_STAKE_AMOUNT,
        min_staking_period=MIN_STAKING_PERIOD,
        withdrawal_delay=WITHDRAWAL_DELAY,
        daily_withdrawal_limit=DAILY_WITHDRAWAL_LIMIT,
        base_rate_tenths=BASE_RATE_TENTHS,
        rate_tiers=tuple(RATE_TIERS),
        seconds_per_year=SECONDS_PER_YEAR,
    )


def staking_config_from_json(raw: Json) -> StakingConfig:
    if not isinstance(raw, dict):
        raise ValueError("staking config must be a JSON object")

    d = default_staking_config()

    cfg = StakingConfig(
        min_stake_amount=_as_int(raw.get("min_stake_amount"), d.min_stake_amount),
        max_stake_amount=_as_int(raw.get("max_stake_amount"), d.max_stake_amount),
        min_staking_period=_as_int(raw.get("min_staking_period"), d.min_staking_period),
        withdrawal_delay=_as_int(raw.get("withdrawal_delay"), d.withdrawal_delay),
        daily_withdrawal_limit=_as_int(raw.get("daily_withdrawal_limit"), d.daily_withdrawal_limit),
        base_rate_tenths=_as_int(raw.get("base_rate_tenths"), d.base_rate_tenths),
        rate_tiers=_as_tiers(raw.get("rate_tiers"), d.rate_tiers),
        seconds_per_year=_as_int(raw.get("seconds_per_year"), d.seconds_per_year),
    )

    validate_staking_config(cfg)
    return cfg


def read_staking_config_file(path: str) -> StakingConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    return staking_config_from_json(raw)


def load_staking_config(*, config_path: Optional[str] = None) -> StakingConfig:
    p = config_path or os.environ.get("TIERSTAKE_CONFIG_PATH")
    if p:
        return read_staking_config_file(p)

    cfg = default_staking_config()
    validate_staking_config(cfg)
    return cfg
