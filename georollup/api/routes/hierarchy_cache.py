"""Hierarchy cache administration routes (admin only)."""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from georollup.api.deps import get_rollup_service, require_admin
from georollup.core.logging_config import audit_logger
from georollup.core.responses import success_response
from georollup.services.rollup import RollupService
from georollup.services.scope import CallerIdentity

router = APIRouter(prefix="/hierarchy-cache", tags=["Hierarchy Cache"])


class InvalidateRequest(BaseModel):
    """Invalidate one dataset, or everything when key is omitted."""

    key: str | None = None


@router.post("/invalidate")
async def invalidate_cache(
    admin: Annotated[CallerIdentity, Depends(require_admin)],
    service: Annotated[RollupService, Depends(get_rollup_service)],
    payload: InvalidateRequest | None = None,
):
    """Drop cached trees so the next request rebuilds from fresh rows."""
    key = payload.key if payload else None
    removed = service.invalidate(key)
    audit_logger.log_cache_invalidated(admin.user_id, key, removed)
    return success_response(
        data={"cleared": True, "key": key, "entries_removed": removed},
        message="Hierarchy cache invalidated",
    )


@router.get("/")
async def get_cache_stats(
    admin: Annotated[CallerIdentity, Depends(require_admin)],
    service: Annotated[RollupService, Depends(get_rollup_service)],
):
    """Entries currently held, with their age and size."""
    return success_response(data=service.cache.stats())
