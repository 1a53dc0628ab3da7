from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "tierstake" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from tierstake.ledger.constants import TOKEN  # noqa: E402
from tierstake.runtime import metrics  # noqa: E402
from tierstake.runtime.asset import InMemoryAsset  # noqa: E402
from tierstake.runtime.engine import StakingEngine  # noqa: E402
from tierstake.runtime.gates import AccessControl, Role  # noqa: E402
from tierstake.runtime.staking_config import default_staking_config  # noqa: E402

# Fixed unix seconds at the start of a UTC day (deterministic day index).
GENESIS = 19_700 * 86_400


class FakeClock:
    def __init__(self, now: int = GENESIS) -> None:
        self.now = int(now)

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += int(seconds)
        return self.now


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TIERSTAKE_CONFIG_PATH", "TIERSTAKE_DB_PATH", "TIERSTAKE_METRICS_ENABLED"):
        monkeypatch.delenv(name, raising=False)
    metrics.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def asset() -> InMemoryAsset:
    return InMemoryAsset()


def mk_engine(asset: InMemoryAsset, clock: FakeClock, *, config=None, store=None) -> StakingEngine:
    access = AccessControl(
        {
            Role.ADMIN: ["admin"],
            Role.EMERGENCY: ["ops"],
            Role.REWARD_MANAGER: ["treasury"],
        }
    )
    return StakingEngine(
        asset=asset,
        config=config or default_staking_config(),
        access=access,
        clock=clock,
        store=store,
    )


def fund(asset: InMemoryAsset, account: str, amount: int) -> None:
    asset.mint(account, amount)
    asset.approve(account, asset.allowance(account) + amount)


@pytest.fixture
def engine(asset: InMemoryAsset, clock: FakeClock) -> StakingEngine:
    eng = mk_engine(asset, clock)
    fund(asset, "treasury", 10_000 * TOKEN)
    fund(asset, "alice", 10_000 * TOKEN)
    fund(asset, "bob", 10_000 * TOKEN)
    return eng
