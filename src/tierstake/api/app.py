from __future__ import annotations

import os

from fastapi import FastAPI

from tierstake.api.errors import install_error_handlers
from tierstake.api.routes import public_router
from tierstake.api.security import RequestSizeLimitMiddleware
from tierstake.api.structured_logging import RequestLogMiddleware
from tierstake.runtime.engine_boot import build_engine as _build_engine


def build_engine():
    """Build the StakingEngine for the API runtime.

    Wrapper so tests can monkeypatch `tierstake.api.app.build_engine`.
    """
    return _build_engine()


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): build the engine from env and attach it as app.state.engine
      - False: no engine; tests attach their own
    """
    mode = os.environ.get("TIERSTAKE_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="tierstake", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="tierstake")

    app.state.engine = build_engine() if boot_runtime else None

    # Size limiter runs first (added last) to fail fast.
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)

    install_error_handlers(app)
    app.include_router(public_router)

    return app
