from __future__ import annotations

import json
from pathlib import Path

import pytest

from tierstake.ledger.constants import TOKEN
from tierstake.runtime.engine_boot import boot_config_from_env, build_engine
from tierstake.runtime.gates import Role


def test_boot_config_reads_role_lists(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TIERSTAKE_ADMINS", "root, ops-lead ,")
    monkeypatch.setenv("TIERSTAKE_REWARD_MANAGERS", "treasury")
    monkeypatch.delenv("TIERSTAKE_EMERGENCY_OPERATORS", raising=False)

    cfg = boot_config_from_env()
    assert cfg.db_path is None
    assert cfg.role_grants[Role.ADMIN] == ["root", "ops-lead"]
    assert cfg.role_grants[Role.EMERGENCY] == []

    eng = build_engine(cfg)
    assert eng.access.holders(Role.ADMIN) == ["ops-lead", "root"]
    assert eng.access.has_role(Role.REWARD_MANAGER, "treasury")


def test_build_engine_with_db_and_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_path = tmp_path / "staking.json"
    cfg_path.write_text(json.dumps({"min_stake_amount": 10 * TOKEN}), encoding="utf-8")
    monkeypatch.setenv("TIERSTAKE_CONFIG_PATH", str(cfg_path))
    monkeypatch.setenv("TIERSTAKE_DB_PATH", str(tmp_path / "node" / "stake.db"))
    monkeypatch.setenv("TIERSTAKE_ADMINS", "root")

    eng = build_engine()
    assert eng.config.min_stake_amount == 10 * TOKEN
    assert (tmp_path / "node" / "stake.db").exists()
    assert eng.set_paused("root", True) is True


def test_boot_refuses_persisted_liabilities_without_custody(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TIERSTAKE_DB_PATH", str(tmp_path / "stake.db"))
    monkeypatch.setenv("TIERSTAKE_REWARD_MANAGERS", "treasury")

    eng = build_engine()
    eng.asset.mint("treasury", 100 * TOKEN)
    eng.asset.approve("treasury", 100 * TOKEN)
    eng.deposit_rewards("treasury", 100 * TOKEN)

    # The restarted node gets an empty in-memory asset; the 100 TOKEN pool
    # recorded in the db would be backed by nothing.
    with pytest.raises(RuntimeError, match="Refuse to start"):
        build_engine()


def test_boot_accepts_an_empty_persisted_ledger(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TIERSTAKE_DB_PATH", str(tmp_path / "stake.db"))
    build_engine()
    eng = build_engine()
    assert eng.total_staked == 0
    assert eng.reward_pool == 0
