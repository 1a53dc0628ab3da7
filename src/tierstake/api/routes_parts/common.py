from __future__ import annotations

from fastapi import Request

from tierstake.api.errors import ApiError
from tierstake.runtime.engine import StakingEngine

# Caller identity is asserted by the authenticating edge proxy in front of
# the node; the node itself never sees credentials.
CALLER_HEADER = "x-account"


def _engine(request: Request) -> StakingEngine:
    eng = getattr(request.app.state, "engine", None)
    if eng is None:
        raise ApiError.internal("not_ready", "engine not attached to app.state", {})
    return eng


def _caller(request: Request) -> str:
    caller = (request.headers.get(CALLER_HEADER) or "").strip()
    if not caller:
        raise ApiError.bad_request("missing_caller", f"{CALLER_HEADER} header is required", {})
    return caller
