"""Election catalog routes for the results dashboard."""

from typing import Annotated

from fastapi import APIRouter, Depends

from georollup.api.deps import get_access_scope, get_election_catalog
from georollup.core.responses import success_response
from georollup.services.elections import ElectionCatalog
from georollup.services.scope import AccessScope

router = APIRouter(prefix="/results-dashboard/elections", tags=["Election Results"])

Catalog = Annotated[ElectionCatalog, Depends(get_election_catalog)]


@router.get("")
async def list_active_elections(
    scope: Annotated[AccessScope, Depends(get_access_scope)],
    catalog: Catalog,
):
    """Active elections with total, result and setup submission counts."""
    elections = await catalog.list_active_elections()
    return success_response(data={"elections": [election.model_dump(mode="json") for election in elections]})


@router.get("/{election_id}/parties")
async def list_election_parties(
    election_id: str,
    scope: Annotated[AccessScope, Depends(get_access_scope)],
    catalog: Catalog,
):
    """Parties contesting the election, in display order."""
    parties = await catalog.list_parties(election_id)
    return success_response(
        data={"election_id": election_id, "parties": [party.model_dump() for party in parties]}
    )
