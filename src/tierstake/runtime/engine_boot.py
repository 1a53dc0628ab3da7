# src/tierstake/runtime/engine_boot.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from tierstake.runtime.asset import InMemoryAsset
from tierstake.runtime.engine import StakingEngine
from tierstake.runtime.gates import AccessControl, Role
from tierstake.runtime.sqlite_store import SqliteStakingStore
from tierstake.runtime.staking_config import load_staking_config


def _csv(raw: Optional[str]) -> List[str]:
    return [s.strip() for s in (raw or "").split(",") if s.strip()]


@dataclass
class EngineBootConfig:
    db_path: Optional[str]
    config_path: Optional[str]
    role_grants: Dict[Role, List[str]] = field(default_factory=dict)


def boot_config_from_env() -> EngineBootConfig:
    """
    TIERSTAKE_DB_PATH              sqlite file for state + events (unset: memory only)
    TIERSTAKE_CONFIG_PATH          staking config JSON (unset: built-in defaults)
    TIERSTAKE_ADMINS               comma-separated ADMIN holders
    TIERSTAKE_EMERGENCY_OPERATORS  comma-separated EMERGENCY holders
    TIERSTAKE_REWARD_MANAGERS      comma-separated REWARD_MANAGER holders
    """
    return EngineBootConfig(
        db_path=(os.environ.get("TIERSTAKE_DB_PATH") or "").strip() or None,
        config_path=(os.environ.get("TIERSTAKE_CONFIG_PATH") or "").strip() or None,
        role_grants={
            Role.ADMIN: _csv(os.environ.get("TIERSTAKE_ADMINS")),
            Role.EMERGENCY: _csv(os.environ.get("TIERSTAKE_EMERGENCY_OPERATORS")),
            Role.REWARD_MANAGER: _csv(os.environ.get("TIERSTAKE_REWARD_MANAGERS")),
        },
    )


def build_engine(cfg: Optional[EngineBootConfig] = None) -> StakingEngine:
    """
    Build a StakingEngine backed by the bundled in-memory asset ledger.

    Deployments that front a real token pass their own AssetLedger to
    StakingEngine directly; this path serves the HTTP node and local runs.
    """
    c = cfg or boot_config_from_env()
    store = SqliteStakingStore.open(c.db_path) if c.db_path else None
    eng = StakingEngine(
        asset=InMemoryAsset(),
        config=load_staking_config(config_path=c.config_path),
        access=AccessControl(c.role_grants),
        store=store,
    )

    # A fresh in-memory asset starts with empty custody; persisted liabilities
    # would be unpayable and every payout would fail solvency.
    liabilities = eng.total_staked + eng.reward_pool
    custody = eng.asset.balance_of(eng.custody)
    if liabilities > 0 and custody < liabilities:
        raise RuntimeError(
            f"persisted staking state at {c.db_path} owes {liabilities} but the in-memory asset holds {custody} "
            "in custody. Refuse to start; back the engine with the real AssetLedger or start from an empty db."
        )
    return eng
