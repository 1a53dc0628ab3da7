from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Query, Request

from tierstake.api.routes_parts.common import _engine

router = APIRouter()

Json = Dict[str, Any]


@router.get("/pool")
def pool_status(request: Request) -> Json:
    return {"ok": True, "pool": _engine(request).pool_status()}


@router.get("/events")
def events_list(request: Request, since: int = Query(0, ge=0), limit: int = Query(100, ge=1, le=1000)) -> Json:
    """Audit events after sequence number `since`, oldest first."""
    evs = _engine(request).events(since)[:limit]
    return {
        "ok": True,
        "events": [e.to_json() for e in evs],
        "next_since": evs[-1].seq if evs else since,
    }


@router.get("/invariants")
def invariants(request: Request) -> Json:
    violations = _engine(request).invariant_report()
    return {"ok": not violations, "violations": violations}
