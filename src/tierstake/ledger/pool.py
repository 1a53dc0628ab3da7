# src/tierstake/ledger/pool.py
from __future__ import annotations

from typing import Any, Dict

from tierstake.ledger.amounts import checked_add, checked_sub
from tierstake.ledger.stakes import ensure_staking_root
from tierstake.runtime.errors import SolvencyError

Json = Dict[str, Any]


def reward_pool(state: Json) -> int:
    try:
        return int(ensure_staking_root(state).get("reward_pool", 0))
    except Exception:
        return 0


def credit_pool(state: Json, amount: int) -> int:
    root = ensure_staking_root(state)
    root["reward_pool"] = checked_add(reward_pool(state), int(amount), what="reward_pool")
    return int(root["reward_pool"])


def require_pool(state: Json, amount: int) -> None:
    pool = reward_pool(state)
    if pool < int(amount):
        raise SolvencyError("insufficient_pool", "reward_pool_short", {"reward_pool": pool, "amount": int(amount)})


def debit_pool(state: Json, amount: int) -> int:
    """Debit the pool; never below zero."""
    require_pool(state, amount)
    root = ensure_staking_root(state)
    root["reward_pool"] = checked_sub(reward_pool(state), int(amount), what="reward_pool")
    return int(root["reward_pool"])


def require_custody(balance: int, *, outflow: int, must_cover: int) -> None:
    """Custody must still hold `must_cover` after paying `outflow`."""
    b = int(balance)
    if b < int(outflow) or b - int(outflow) < int(must_cover):
        raise SolvencyError(
            "insufficient_custody",
            "custody_would_not_cover_liabilities",
            {"balance": b, "outflow": int(outflow), "must_cover": int(must_cover)},
        )


__all__ = ["credit_pool", "debit_pool", "require_custody", "require_pool", "reward_pool"]
