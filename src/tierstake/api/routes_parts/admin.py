from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from tierstake.api.routes_parts.common import _caller, _engine
from tierstake.api.schemas import EmergencyWithdrawRequest, PauseRequest, RewardsRequest

router = APIRouter()

Json = Dict[str, Any]


@router.post("/admin/emergency-withdraw")
def admin_emergency_withdraw(body: EmergencyWithdrawRequest, request: Request) -> Json:
    payout = _engine(request).emergency_withdraw(_caller(request), body.account)
    return {"ok": True, "payout": payout.to_json()}


@router.post("/admin/rewards/deposit")
def admin_rewards_deposit(body: RewardsRequest, request: Request) -> Json:
    pool = _engine(request).deposit_rewards(_caller(request), int(body.amount))
    return {"ok": True, "reward_pool": pool}


@router.post("/admin/rewards/withdraw")
def admin_rewards_withdraw(body: RewardsRequest, request: Request) -> Json:
    pool = _engine(request).withdraw_rewards(_caller(request), int(body.amount))
    return {"ok": True, "reward_pool": pool}


@router.post("/admin/pause")
def admin_pause(body: PauseRequest, request: Request) -> Json:
    eng = _engine(request)
    changed = eng.set_paused(_caller(request), body.paused)
    return {"ok": True, "paused": eng.pause.paused, "changed": changed}
