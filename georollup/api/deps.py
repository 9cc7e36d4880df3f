"""API dependencies for authentication, scope and the rollup service."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from georollup.core.security import decode_access_token
from georollup.services.elections import ElectionCatalog
from georollup.services.hierarchy_cache import HierarchyCache
from georollup.services.rollup import RollupService
from georollup.services.row_sources import ElectionResultsRowSource, MobilisationRowSource
from georollup.services.scope import ADMIN_ROLE, AccessScope, CallerIdentity, derive_scope

security = HTTPBearer()


def _unauthorized(detail: str = "Invalid authentication credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_caller(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> CallerIdentity:
    """
    Dependency to get the authenticated caller.

    Validates the JWT and reads designation and assigned location from its
    claims; no user lookup is made.
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _unauthorized()

    if payload.get("sub") is None:
        raise _unauthorized()

    try:
        return CallerIdentity.model_validate(payload)
    except ValidationError:
        raise _unauthorized() from None


async def get_access_scope(
    caller: Annotated[CallerIdentity, Depends(get_current_caller)],
) -> AccessScope:
    """
    Dependency deriving the caller's dashboard scope.

    Raises ScopeDeniedError (403) for callers without a dashboard designation.
    """
    return derive_scope(caller)


def require_admin(
    caller: Annotated[CallerIdentity, Depends(get_current_caller)],
) -> CallerIdentity:
    """
    Dependency to require admin role.

    Raises HTTP 403 if caller is not an admin.
    """
    if caller.role != ADMIN_ROLE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return caller


def get_hierarchy_cache(request: Request) -> HierarchyCache:
    """The process-wide cache created in the app lifespan."""
    return request.app.state.hierarchy_cache


def get_rollup_service(
    cache: Annotated[HierarchyCache, Depends(get_hierarchy_cache)],
) -> RollupService:
    return RollupService(cache)


def get_mobilisation_source() -> MobilisationRowSource:
    return MobilisationRowSource()


def get_election_results_source(election_id: str) -> ElectionResultsRowSource:
    return ElectionResultsRowSource(election_id)


def get_election_catalog() -> ElectionCatalog:
    return ElectionCatalog()
