from __future__ import annotations

import json
import logging

import pytest

from tierstake.ledger.constants import TOKEN
from tierstake.runtime import metrics
from tierstake.runtime.errors import ValidationError
from tierstake.runtime.structured_log import log_event


def test_engine_counts_commits_and_rejections(engine) -> None:
    engine.stake("alice", 100 * TOKEN)
    with pytest.raises(ValidationError):
        engine.stake("alice", 100 * TOKEN)

    snap = metrics.snapshot()
    assert snap["counters"]["stake_ok"] == 1
    assert snap["counters"]["op_rejected_already_staked"] == 1
    assert snap["gauges"]["total_staked"] == 100 * TOKEN


def test_prometheus_text_uses_integers(engine) -> None:
    engine.deposit_rewards("treasury", 7 * TOKEN)
    text = metrics.format_prometheus()
    assert f"tierstake_reward_pool {7 * TOKEN}\n" in text
    assert "tierstake_deposit_rewards_ok 1\n" in text


def test_engine_logs_structured_events(engine, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="tierstake.engine")
    engine.stake("alice", 100 * TOKEN)
    with pytest.raises(ValidationError):
        engine.claim_rewards("alice")

    records = [json.loads(r.getMessage()) for r in caplog.records if r.name == "tierstake.engine"]
    events = [r["event"] for r in records]
    assert events == ["staking_committed", "staking_rejected"]
    assert records[0]["op"] == "stake"
    assert records[0]["events"][0]["kind"] == "Staked"
    assert records[1]["code"] == "no_rewards"


def test_log_event_falls_back_on_unserializable(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("tierstake.test")
    caplog.set_level(logging.INFO, logger="tierstake.test")
    log_event(logger, "odd", thing=object())
    assert caplog.records[-1].getMessage().startswith("event=odd thing=")
