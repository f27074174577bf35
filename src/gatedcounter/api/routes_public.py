# src/gatedcounter/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from gatedcounter.api.routes_public_parts.accounts import router as accounts_router
from gatedcounter.api.routes_public_parts.counters import router as counters_router
from gatedcounter.api.routes_public_parts.health import router as health_router
from gatedcounter.api.routes_public_parts.tx import router as tx_router
from gatedcounter.api.routes_public_parts.whitelists import router as whitelists_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])
public_router.include_router(accounts_router, prefix="/v1", tags=["accounts"])
public_router.include_router(counters_router, prefix="/v1", tags=["counters"])
public_router.include_router(whitelists_router, prefix="/v1", tags=["whitelists"])
