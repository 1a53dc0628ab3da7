# src/tierstake/ledger/stakes.py
from __future__ import annotations

"""Stake ledger: per-account stake entries and the total_staked counter.

State shape (all values plain JSON so snapshots round-trip through json.dumps):

  state["staking"] = {
    "stakes": {
      "<account>": {
        "principal": int,
        "start_time": int,
        "last_reward_time": int,
        "pending_reward": int,
        "is_withdrawing": bool,
        "withdrawal_request_time": int,
      },
    },
    "daily": {"<account>": {"withdrawn": int, "day": int}},
    "total_staked": int,
    "reward_pool": int,
  }

The daily table is keyed by account and outlives the stake entry, otherwise a
second stake opened the same day would start from a fresh counter.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from tierstake.ledger.amounts import checked_add, checked_sub
from tierstake.ledger.constants import SECONDS_PER_DAY
from tierstake.runtime.errors import ValidationError
from tierstake.runtime.staking_config import StakingConfig

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


@dataclass(frozen=True, slots=True)
class StakeRecord:
    """Immutable snapshot of one account's stake, as handed to the accrual engine."""

    account: str
    principal: int
    start_time: int
    last_reward_time: int
    pending_reward: int = 0
    is_withdrawing: bool = False
    withdrawal_request_time: int = 0
    daily_withdrawn_amount: int = 0
    last_daily_reset: int = 0

    @classmethod
    def from_entry(cls, account: str, entry: Json, daily: Optional[Json] = None) -> "StakeRecord":
        d = _as_dict(daily)
        return cls(
            account=str(account),
            principal=_as_int(entry.get("principal")),
            start_time=_as_int(entry.get("start_time")),
            last_reward_time=_as_int(entry.get("last_reward_time")),
            pending_reward=_as_int(entry.get("pending_reward")),
            is_withdrawing=bool(entry.get("is_withdrawing", False)),
            withdrawal_request_time=_as_int(entry.get("withdrawal_request_time")),
            daily_withdrawn_amount=_as_int(d.get("withdrawn")),
            last_daily_reset=_as_int(d.get("day")),
        )

    def to_json(self) -> Json:
        return {
            "account": self.account,
            "principal": int(self.principal),
            "start_time": int(self.start_time),
            "last_reward_time": int(self.last_reward_time),
            "pending_reward": int(self.pending_reward),
            "is_withdrawing": bool(self.is_withdrawing),
            "withdrawal_request_time": int(self.withdrawal_request_time),
            "daily_withdrawn_amount": int(self.daily_withdrawn_amount),
            "last_daily_reset": int(self.last_daily_reset),
        }


def ensure_staking_root(state: Json) -> Json:
    root = state.get("staking")
    if not isinstance(root, dict):
        root = {}
        state["staking"] = root
    if not isinstance(root.get("stakes"), dict):
        root["stakes"] = {}
    if not isinstance(root.get("daily"), dict):
        root["daily"] = {}
    root.setdefault("total_staked", 0)
    root.setdefault("reward_pool", 0)
    return root


def total_staked(state: Json) -> int:
    return _as_int(ensure_staking_root(state).get("total_staked"))


def stake_entry(state: Json, account: str) -> Optional[Json]:
    """Mutable entry for `account`, or None once removed."""
    entry = ensure_staking_root(state)["stakes"].get(str(account))
    return entry if isinstance(entry, dict) else None


def get_stake(state: Json, account: str) -> Optional[StakeRecord]:
    root = ensure_staking_root(state)
    entry = stake_entry(state, account)
    if entry is None:
        return None
    return StakeRecord.from_entry(str(account), entry, root["daily"].get(str(account)))


def require_stake(state: Json, account: str) -> Json:
    entry = stake_entry(state, account)
    if entry is None:
        raise ValidationError("no_stake", "stake_not_found", {"account": str(account)})
    return entry


def open_stake(state: Json, account: str, amount: int, *, now: int, config: StakingConfig) -> StakeRecord:
    """Create a fresh entry and add its principal to total_staked.

    The caller has already pulled `amount` into custody.
    """
    acct = str(account)
    amt = int(amount)
    if amt < int(config.min_stake_amount) or amt > int(config.max_stake_amount):
        raise ValidationError(
            "invalid_amount",
            "stake_amount_out_of_bounds",
            {"amount": amt, "min": int(config.min_stake_amount), "max": int(config.max_stake_amount)},
        )

    root = ensure_staking_root(state)
    if stake_entry(state, acct) is not None:
        raise ValidationError("already_staked", "active_stake_exists", {"account": acct})

    new_total = checked_add(_as_int(root.get("total_staked")), amt, what="total_staked")

    root["stakes"][acct] = {
        "principal": amt,
        "start_time": int(now),
        "last_reward_time": int(now),
        "pending_reward": 0,
        "is_withdrawing": False,
        "withdrawal_request_time": 0,
    }
    root["total_staked"] = new_total
    return StakeRecord.from_entry(acct, root["stakes"][acct], root["daily"].get(acct))


def remove_stake(state: Json, account: str) -> StakeRecord:
    """Delete the entry and subtract its principal from total_staked.

    Every caller runs this before the outbound transfer.
    """
    acct = str(account)
    root = ensure_staking_root(state)
    entry = require_stake(state, acct)
    snap = StakeRecord.from_entry(acct, entry, root["daily"].get(acct))

    root["total_staked"] = checked_sub(_as_int(root.get("total_staked")), snap.principal, what="total_staked")
    del root["stakes"][acct]
    return snap


def day_index(ts: int) -> int:
    return int(ts) // SECONDS_PER_DAY


def daily_withdrawn(state: Json, account: str, *, now: int) -> int:
    """Amount already paid out to `account` in the UTC day containing `now`."""
    rec = _as_dict(ensure_staking_root(state)["daily"].get(str(account)))
    if _as_int(rec.get("day"), -1) != day_index(now):
        return 0
    return _as_int(rec.get("withdrawn"))


def record_daily_withdrawal(state: Json, account: str, amount: int, *, now: int) -> int:
    """Add `amount` to the account's counter, resetting it first on a new day."""
    daily = ensure_staking_root(state)["daily"]
    today = day_index(now)
    used = daily_withdrawn(state, account, now=now)
    total = checked_add(used, int(amount), what="daily_withdrawn")
    daily[str(account)] = {"withdrawn": total, "day": today}
    return total


def sum_principal(state: Json) -> int:
    return sum(_as_int(_as_dict(e).get("principal")) for e in ensure_staking_root(state)["stakes"].values())


__all__ = [
    "StakeRecord",
    "daily_withdrawn",
    "day_index",
    "ensure_staking_root",
    "get_stake",
    "open_stake",
    "record_daily_withdrawal",
    "remove_stake",
    "require_stake",
    "stake_entry",
    "sum_principal",
    "total_staked",
]
