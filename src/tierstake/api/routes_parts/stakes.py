from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from tierstake.api.errors import ApiError
from tierstake.api.routes_parts.common import _caller, _engine
from tierstake.api.schemas import StakeRequest

router = APIRouter()

Json = Dict[str, Any]


@router.get("/stakes/{account}")
def stake_get(account: str, request: Request) -> Json:
    info = _engine(request).stake_info(account)
    if info is None:
        raise ApiError.not_found("no_stake", "stake_not_found", {"account": account})
    return {"ok": True, "stake": info}


@router.post("/stakes")
def stake_open(body: StakeRequest, request: Request) -> Json:
    rec = _engine(request).stake(_caller(request), int(body.amount))
    return {"ok": True, "stake": rec.to_json()}


@router.post("/stakes/request-withdrawal")
def stake_request_withdrawal(request: Request) -> Json:
    rec = _engine(request).request_withdrawal(_caller(request))
    return {"ok": True, "stake": rec.to_json()}


@router.post("/stakes/withdraw")
def stake_withdraw(request: Request) -> Json:
    payout = _engine(request).withdraw(_caller(request))
    return {"ok": True, "payout": payout.to_json()}


@router.post("/stakes/claim")
def stake_claim(request: Request) -> Json:
    reward = _engine(request).claim_rewards(_caller(request))
    return {"ok": True, "reward": int(reward)}
