"""Dashboard API routes.

The voter mobilisation and election results dashboards expose the same
drill-down (national -> state -> LGA -> ward -> polling unit) over different
row sources, so both routers come from one factory.
"""

from collections.abc import Callable
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from georollup.api.deps import (
    get_access_scope,
    get_election_results_source,
    get_mobilisation_source,
    get_rollup_service,
)
from georollup.core.responses import success_response
from georollup.models.hierarchy import GeoLevel
from georollup.services.location_keys import resolve_path
from georollup.services.rollup import RollupService, RollupView
from georollup.services.row_sources import RowSource
from georollup.services.scope import AccessScope


def _view_response(view: RollupView) -> dict[str, Any]:
    return success_response(data=view.model_dump(mode="json"))


def build_dashboard_router(
    prefix: str,
    tags: list[str],
    source_dependency: Callable[..., RowSource],
) -> APIRouter:
    """Create the drill-down routes for one dashboard."""
    router = APIRouter(prefix=prefix, tags=tags)

    Service = Annotated[RollupService, Depends(get_rollup_service)]
    Scope = Annotated[AccessScope, Depends(get_access_scope)]
    Source = Annotated[RowSource, Depends(source_dependency)]

    # ============================================
    # CALLER
    # ============================================

    @router.get("/scope")
    async def get_scope(service: Service, scope: Scope):
        """Describe what the caller may see."""
        return success_response(data=service.describe_scope(scope))

    @router.get("/home")
    async def get_home(service: Service, scope: Scope, source: Source):
        """View at the caller's own assigned level."""
        return _view_response(await service.get_home_view(source, scope))

    # ============================================
    # STRUCTURED PATHS
    # ============================================

    @router.get("/national")
    async def get_national(service: Service, scope: Scope, source: Source):
        """All States with national totals."""
        view = await service.get_view(source, GeoLevel.NATIONAL, resolve_path([]), scope)
        return _view_response(view)

    @router.get("/states/{state}")
    async def get_state(state: str, service: Service, scope: Scope, source: Source):
        """LGAs of one State."""
        view = await service.get_view(source, GeoLevel.STATE, resolve_path([state]), scope)
        return _view_response(view)

    @router.get("/states/{state}/lgas/{lga}")
    async def get_lga(state: str, lga: str, service: Service, scope: Scope, source: Source):
        """Wards of one LGA."""
        view = await service.get_view(source, GeoLevel.LGA, resolve_path([state, lga]), scope)
        return _view_response(view)

    @router.get("/states/{state}/lgas/{lga}/wards/{ward}")
    async def get_ward(
        state: str,
        lga: str,
        ward: str,
        service: Service,
        scope: Scope,
        source: Source,
    ):
        """Polling units of one Ward."""
        path = resolve_path([state, lga, ward])
        view = await service.get_view(source, GeoLevel.WARD, path, scope)
        return _view_response(view)

    @router.get("/states/{state}/lgas/{lga}/wards/{ward}/polling-units/{pu}")
    async def get_polling_unit(
        state: str,
        lga: str,
        ward: str,
        pu: str,
        service: Service,
        scope: Scope,
        source: Source,
    ):
        """A single polling unit."""
        path = resolve_path([state, lga, ward, pu])
        view = await service.get_view(source, GeoLevel.POLLING_UNIT, path, scope)
        return _view_response(view)

    # ============================================
    # LEGACY FLAT IDENTIFIERS
    # ============================================

    @router.get("/state/{flat_id}")
    async def get_state_by_flat_id(flat_id: str, service: Service, scope: Scope, source: Source):
        return _view_response(await service.get_view_for_flat_id(source, GeoLevel.STATE, flat_id, scope))

    @router.get("/lga/{flat_id}")
    async def get_lga_by_flat_id(flat_id: str, service: Service, scope: Scope, source: Source):
        return _view_response(await service.get_view_for_flat_id(source, GeoLevel.LGA, flat_id, scope))

    @router.get("/ward/{flat_id}")
    async def get_ward_by_flat_id(flat_id: str, service: Service, scope: Scope, source: Source):
        return _view_response(await service.get_view_for_flat_id(source, GeoLevel.WARD, flat_id, scope))

    @router.get("/pu/{flat_id}")
    async def get_polling_unit_by_flat_id(flat_id: str, service: Service, scope: Scope, source: Source):
        return _view_response(
            await service.get_view_for_flat_id(source, GeoLevel.POLLING_UNIT, flat_id, scope)
        )

    return router


mobilisation_router = build_dashboard_router(
    "/mobilise-dashboard", ["Voter Mobilisation Dashboard"], get_mobilisation_source
)

election_results_router = build_dashboard_router(
    "/results-dashboard/elections/{election_id}",
    ["Election Results Dashboard"],
    get_election_results_source,
)
