from __future__ import annotations

import time
from typing import Any, Dict

from fastapi import APIRouter, Request

from tierstake import __version__

router = APIRouter()


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    # health must never crash
    eng = getattr(request.app.state, "engine", None)
    solvent = None
    if eng is not None and hasattr(eng, "invariant_report"):
        try:
            solvent = not eng.invariant_report()
        except Exception:
            solvent = False
    return {
        "ok": True,
        "service": "tierstake",
        "version": __version__,
        "ts_ms": int(time.time() * 1000),
        "engine_attached": eng is not None,
        "paused": eng.pause.paused if eng is not None else None,
        "solvent": solvent,
    }
