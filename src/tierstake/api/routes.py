from __future__ import annotations

from fastapi import APIRouter

from tierstake.api.routes_parts.admin import router as admin_router
from tierstake.api.routes_parts.health import router as health_router
from tierstake.api.routes_parts.metrics import router as metrics_router
from tierstake.api.routes_parts.pool import router as pool_router
from tierstake.api.routes_parts.stakes import router as stakes_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(stakes_router, prefix="/v1", tags=["stakes"])
public_router.include_router(pool_router, prefix="/v1", tags=["pool"])
public_router.include_router(admin_router, prefix="/v1", tags=["admin"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
