from __future__ import annotations

"""Staking state invariants.

The engine keeps these true at every committed state:

  total_staked        total_staked == sum of active principals
  custody             custody balance >= total_staked + reward_pool
  pool                reward_pool >= 0
  frozen_reward       a withdrawing stake has last_reward_time == withdrawal_request_time
  daily_limit         no account's counter for a day exceeds the daily withdrawal limit

One active stake per account holds by construction (stakes is keyed by
account). check_invariants() is used by tests after every transition and is
cheap enough for an ops endpoint.
"""

from typing import Any, Dict, List

from tierstake.ledger.stakes import ensure_staking_root, sum_principal
from tierstake.runtime.errors import InvariantViolation

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def invariant_report(state: Json, *, custody_balance: int, daily_limit: int) -> List[Json]:
    """Return one record per violated invariant; empty when the state is sound."""
    root = ensure_staking_root(state)
    out: List[Json] = []

    total = _as_int(root.get("total_staked"))
    pool = _as_int(root.get("reward_pool"))
    principals = sum_principal(state)

    if total != principals:
        out.append({"invariant": "total_staked", "total_staked": total, "sum_principal": principals})

    if int(custody_balance) < total + pool:
        out.append({"invariant": "custody", "custody_balance": int(custody_balance), "liabilities": total + pool})

    if pool < 0:
        out.append({"invariant": "pool", "reward_pool": pool})

    for acct, entry in sorted(root["stakes"].items()):
        if not isinstance(entry, dict) or not entry.get("is_withdrawing"):
            continue
        if _as_int(entry.get("last_reward_time")) != _as_int(entry.get("withdrawal_request_time")):
            out.append({"invariant": "frozen_reward", "account": acct})

    for acct, rec in sorted(root["daily"].items()):
        used = _as_int(rec.get("withdrawn")) if isinstance(rec, dict) else 0
        if used > int(daily_limit):
            out.append({"invariant": "daily_limit", "account": acct, "withdrawn": used, "limit": int(daily_limit)})

    return out


def check_invariants(state: Json, *, custody_balance: int, daily_limit: int) -> None:
    violations = invariant_report(state, custody_balance=custody_balance, daily_limit=daily_limit)
    if violations:
        raise InvariantViolation("invariant_violated", "staking_state_unsound", {"violations": violations})


__all__ = ["check_invariants", "invariant_report"]
