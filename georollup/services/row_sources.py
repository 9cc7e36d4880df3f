"""Row sources: the narrow read interface onto the platform database.

Each source knows its cache key and how to fetch counts already grouped by
the database at every level it has. Grouping happens in SQL; nothing here
builds trees.
"""

from typing import Protocol

import asyncpg

from georollup.core.database import get_db_connection
from georollup.core.errors import DataSourceError
from georollup.core.logging_config import get_logger
from georollup.models.hierarchy import GroupedRow

logger = get_logger(__name__)

MOBILISATION_CACHE_KEY = "mobilisation"


class RowSource(Protocol):
    """Anything the rollup service can build a tree from."""

    cache_key: str

    async def fetch_rows(self) -> list[GroupedRow]: ...


def _to_grouped_row(record: asyncpg.Record, party_votes: dict[str, int] | None = None) -> GroupedRow:
    data = dict(record)
    return GroupedRow(
        state=data.get("state"),
        lga=data.get("lga"),
        ward=data.get("ward"),
        pu=data.get("polling_unit"),
        total_primary_count=int(data.get("total_count") or 0),
        verified_count=int(data.get("verified_count") or 0),
        unverified_count=int(data.get("unverified_count") or 0),
        party_votes={party: votes for party, votes in (party_votes or {}).items() if votes},
    )


# ============================================
# VOTER MOBILISATION
# ============================================

_MOBILISATION_COUNTS = """
    COUNT(*) AS total_count,
    COUNT(*) FILTER (WHERE "isVoter" = 'Yes') AS verified_count,
    COUNT(*) FILTER (WHERE "isVoter" = 'No' OR "isVoter" IS NULL) AS unverified_count
"""

MOBILISATION_QUERIES = (
    f"""
    SELECT "votingState" AS state, {_MOBILISATION_COUNTS}
    FROM users
    WHERE "votingState" IS NOT NULL AND "votingState" != ''
    GROUP BY "votingState"
    """,
    f"""
    SELECT "votingState" AS state, "votingLGA" AS lga, {_MOBILISATION_COUNTS}
    FROM users
    WHERE "votingState" IS NOT NULL AND "votingState" != ''
      AND "votingLGA" IS NOT NULL
    GROUP BY "votingState", "votingLGA"
    """,
    f"""
    SELECT "votingState" AS state, "votingLGA" AS lga, "votingWard" AS ward, {_MOBILISATION_COUNTS}
    FROM users
    WHERE "votingState" IS NOT NULL AND "votingState" != ''
      AND "votingLGA" IS NOT NULL AND "votingWard" IS NOT NULL
    GROUP BY "votingState", "votingLGA", "votingWard"
    """,
    f"""
    SELECT "votingState" AS state, "votingLGA" AS lga, "votingWard" AS ward,
           "votingPU" AS polling_unit, {_MOBILISATION_COUNTS}
    FROM users
    WHERE "votingState" IS NOT NULL AND "votingState" != ''
      AND "votingLGA" IS NOT NULL AND "votingWard" IS NOT NULL AND "votingPU" IS NOT NULL
    GROUP BY "votingState", "votingLGA", "votingWard", "votingPU"
    """,
)


class MobilisationRowSource:
    """
    Registered supporters grouped by voting location.

    total = supporters, verified = holds a PVC ("isVoter" = 'Yes'),
    unverified = everyone else.
    """

    cache_key = MOBILISATION_CACHE_KEY

    async def fetch_rows(self) -> list[GroupedRow]:
        rows: list[GroupedRow] = []
        try:
            async with get_db_connection() as conn:
                for query in MOBILISATION_QUERIES:
                    records = await conn.fetch(query)
                    rows.extend(_to_grouped_row(record) for record in records)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, RuntimeError) as e:
            logger.error(f"Mobilisation row fetch failed: {e}")
            raise DataSourceError(f"Failed to fetch mobilisation rows: {e}") from e

        logger.debug(f"Fetched {len(rows)} grouped mobilisation rows")
        return rows


# ============================================
# ELECTION RESULTS
# ============================================

# Setup and result submissions for one election ($1). Each polling unit code
# gets one name, the least non-empty "puName" reported for it, else the code.
_ELECTION_SUBMISSIONS = """
    WITH submissions AS (
        SELECT
            ms.scope_snapshot->>'state' AS state,
            ms.scope_snapshot->>'lga' AS lga,
            ms.scope_snapshot->>'ward' AS ward,
            CASE WHEN NULLIF(ms.polling_unit_code, '') IS NOT NULL THEN
                COALESCE(
                    MIN(NULLIF(ms.submission_data->>'puName', '')) OVER (
                        PARTITION BY ms.scope_snapshot->>'state', ms.scope_snapshot->>'lga',
                                     ms.scope_snapshot->>'ward', ms.polling_unit_code
                    ),
                    ms.polling_unit_code
                )
            END AS polling_unit,
            ms.submission_type,
            ms.submission_data
        FROM monitor_submissions ms
        WHERE ms.election_id = $1
          AND ms.submission_type IN ('polling_unit_info', 'result_tracking')
    )
"""

_ELECTION_COUNTS = """
    COUNT(*) AS total_count,
    COUNT(*) FILTER (WHERE s.submission_type = 'result_tracking') AS verified_count,
    COUNT(*) FILTER (WHERE s.submission_type = 'polling_unit_info') AS unverified_count
"""

_ELECTION_LEVEL_COLUMNS = ("state", "lga", "ward", "polling_unit")


def _level_columns(depth: int) -> tuple[str, str]:
    columns = _ELECTION_LEVEL_COLUMNS[:depth]
    selected = ", ".join(f"s.{column}" for column in columns)
    present = " AND ".join(f"s.{column} IS NOT NULL AND s.{column} != ''" for column in columns)
    return selected, present


def _election_counts_query(depth: int) -> str:
    selected, present = _level_columns(depth)
    return f"""
    {_ELECTION_SUBMISSIONS}
    SELECT {selected}, {_ELECTION_COUNTS}
    FROM submissions s
    WHERE {present}
    GROUP BY {selected}
    """


def _election_party_votes_query(depth: int) -> str:
    selected, present = _level_columns(depth)
    return f"""
    {_ELECTION_SUBMISSIONS}
    SELECT {selected}, vp->>'party' AS party,
           SUM(COALESCE((vp->>'votes')::numeric, 0))::bigint AS votes
    FROM submissions s
    CROSS JOIN LATERAL jsonb_array_elements(
        CASE WHEN jsonb_typeof(s.submission_data->'stats'->'votesPerParty') = 'array'
             THEN s.submission_data->'stats'->'votesPerParty'
             ELSE '[]'::jsonb
        END
    ) AS vp
    WHERE s.submission_type = 'result_tracking'
      AND {present}
      AND NULLIF(vp->>'party', '') IS NOT NULL
    GROUP BY {selected}, vp->>'party'
    """


# One query per level, inclusive: the ward query counts every submission in
# the ward, including those without a polling unit code.
ELECTION_RESULTS_QUERIES = tuple(_election_counts_query(depth) for depth in range(1, 5))
ELECTION_PARTY_VOTES_QUERIES = tuple(_election_party_votes_query(depth) for depth in range(1, 5))


def election_cache_key(election_id: str) -> str:
    return f"election:{election_id}"


def _location(data: dict, depth: int) -> tuple:
    return tuple(data.get(column) for column in _ELECTION_LEVEL_COLUMNS[:depth])


class ElectionResultsRowSource:
    """
    Monitor submissions for one election, grouped at every level.

    total = setup + result submissions, verified = result submissions,
    unverified = setup submissions. Result submissions also carry per-party
    votes ("stats.votesPerParty"), summed per location.
    """

    def __init__(self, election_id: str) -> None:
        self.election_id = election_id
        self.cache_key = election_cache_key(election_id)

    async def fetch_rows(self) -> list[GroupedRow]:
        rows: list[GroupedRow] = []
        try:
            async with get_db_connection() as conn:
                for depth, (counts_query, votes_query) in enumerate(
                    zip(ELECTION_RESULTS_QUERIES, ELECTION_PARTY_VOTES_QUERIES), start=1
                ):
                    count_records = await conn.fetch(counts_query, self.election_id)
                    vote_records = await conn.fetch(votes_query, self.election_id)
                    rows.extend(self._merge_level(depth, count_records, vote_records))
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, RuntimeError) as e:
            logger.error(f"Election results fetch failed for {self.election_id}: {e}")
            raise DataSourceError(f"Failed to fetch results for election {self.election_id}: {e}") from e

        logger.debug(f"Fetched {len(rows)} grouped submission rows for election {self.election_id}")
        return rows

    def _merge_level(self, depth: int, count_records, vote_records) -> list[GroupedRow]:
        votes_by_location: dict[tuple, dict[str, int]] = {}
        for record in vote_records:
            data = dict(record)
            party_votes = votes_by_location.setdefault(_location(data, depth), {})
            party_votes[data["party"]] = party_votes.get(data["party"], 0) + int(data.get("votes") or 0)

        rows = []
        for record in count_records:
            data = dict(record)
            rows.append(_to_grouped_row(record, votes_by_location.pop(_location(data, depth), None)))

        if votes_by_location:
            logger.warning(
                f"Election {self.election_id}: {len(votes_by_location)} locations at depth {depth} "
                f"have party votes but no submission counts"
            )
        return rows
