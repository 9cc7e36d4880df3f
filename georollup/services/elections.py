"""Election catalog: which elections have results dashboards, and their parties."""

from datetime import date, datetime

import asyncpg
from pydantic import BaseModel

from georollup.core.database import get_db_connection
from georollup.core.errors import DataSourceError
from georollup.core.logging_config import get_logger

logger = get_logger(__name__)

ACTIVE_ELECTIONS_QUERY = """
    SELECT
        e.election_id,
        e.election_name,
        e.election_type AS type,
        e.state,
        e.lga,
        e.election_date,
        e.status,
        COUNT(DISTINCT ms.submission_id) AS total_submissions,
        COUNT(DISTINCT ms.submission_id) FILTER (WHERE ms.submission_type = 'result_tracking') AS result_submissions,
        COUNT(DISTINCT ms.submission_id) FILTER (WHERE ms.submission_type = 'polling_unit_info') AS setup_submissions
    FROM elections e
    LEFT JOIN monitor_submissions ms ON ms.election_id = e.election_id
    WHERE e.status = 'active'
    GROUP BY e.id, e.election_id, e.election_name, e.election_type, e.state, e.lga, e.election_date, e.status
    ORDER BY e.election_date DESC, e.created_at DESC
"""

ELECTION_PARTIES_QUERY = """
    SELECT party_code, party_name, display_name, color, display_order
    FROM election_parties
    WHERE election_id = $1
    ORDER BY display_order ASC, party_code ASC
"""


class ElectionSummary(BaseModel):
    """An active election with its submission counts."""

    election_id: str
    election_name: str | None = None
    type: str | None = None
    state: str | None = None
    lga: str | None = None
    election_date: datetime | date | None = None
    status: str
    total_submissions: int = 0
    result_submissions: int = 0
    setup_submissions: int = 0


class ElectionParty(BaseModel):
    party_code: str
    party_name: str | None = None
    display_name: str | None = None
    color: str | None = None
    display_order: int | None = None


class ElectionCatalog:
    """Reads election metadata; not cached, both queries are small."""

    async def list_active_elections(self) -> list[ElectionSummary]:
        try:
            async with get_db_connection() as conn:
                records = await conn.fetch(ACTIVE_ELECTIONS_QUERY)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, RuntimeError) as e:
            logger.error(f"Active elections fetch failed: {e}")
            raise DataSourceError(f"Failed to fetch active elections: {e}") from e

        return [ElectionSummary.model_validate(dict(record)) for record in records]

    async def list_parties(self, election_id: str) -> list[ElectionParty]:
        """Parties contesting an election, in display order."""
        try:
            async with get_db_connection() as conn:
                records = await conn.fetch(ELECTION_PARTIES_QUERY, election_id)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, RuntimeError) as e:
            logger.error(f"Party fetch failed for election {election_id}: {e}")
            raise DataSourceError(f"Failed to fetch parties for election {election_id}: {e}") from e

        return [ElectionParty.model_validate(dict(record)) for record in records]
