"""
api/routes/v1/system_config.py -- Admin view and update of auth configuration.

Routes:
  GET /api/v1/system-config  -- effective config (client secret masked)
  PUT /api/v1/system-config  -- persist overrides; clears the OIDC discovery cache

Any change may point OAuth at a different issuer, so every successful PUT drops
the cached discovery/JWKS documents. The next request rebuilds its snapshot
from the store and rediscovers lazily.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.models import SystemConfigPatch, SystemConfigResponse
from auth.dependencies import get_config_store, require_admin
from auth.models import AuthUser
from auth.oidc import clear_discovery_cache
from auth.repositories import SystemConfigRepository

logger = logging.getLogger("photovault.api.system_config")

router = APIRouter()


@router.get("/system-config", response_model=SystemConfigResponse)
def get_system_config(
    admin: AuthUser = Depends(require_admin),
    store: SystemConfigRepository = Depends(get_config_store),
) -> SystemConfigResponse:
    return SystemConfigResponse.from_domain(store.get())


@router.put("/system-config", response_model=SystemConfigResponse)
def update_system_config(
    body: SystemConfigPatch,
    admin: AuthUser = Depends(require_admin),
    store: SystemConfigRepository = Depends(get_config_store),
) -> SystemConfigResponse:
    overrides = body.to_overrides()
    if not overrides:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )
    try:
        config = store.update(overrides)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_config", "message": str(exc)},
        ) from exc
    clear_discovery_cache()
    logger.info("Admin %s updated system config (keys=%s)", admin.id, sorted(overrides))
    return SystemConfigResponse.from_domain(config)
