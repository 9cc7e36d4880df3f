"""
Unit tests for the grouped-row sources.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from georollup.core.errors import DataSourceError
from georollup.models.hierarchy import GeoLevel
from georollup.services import row_sources
from georollup.services.aggregation import build_tree, verify_tree
from georollup.services.row_sources import (
    ELECTION_PARTY_VOTES_QUERIES,
    ELECTION_RESULTS_QUERIES,
    MOBILISATION_QUERIES,
    ElectionResultsRowSource,
    MobilisationRowSource,
    election_cache_key,
)


def fake_connection(conn):
    @asynccontextmanager
    async def _get_db_connection():
        yield conn

    return _get_db_connection


class TestMobilisationRowSource:
    """Test MobilisationRowSource."""

    @pytest.mark.asyncio
    async def test_fetch_rows_runs_one_query_per_level(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(
            side_effect=[
                [{"state": "Lagos", "total_count": 15, "verified_count": 11, "unverified_count": 4}],
                [{"state": "Lagos", "lga": "Ikeja", "total_count": 15, "verified_count": 11, "unverified_count": 4}],
                [],
                [
                    {
                        "state": "Lagos",
                        "lga": "Ikeja",
                        "ward": "Ward A",
                        "polling_unit": "PU 1",
                        "total_count": 2,
                        "verified_count": None,
                        "unverified_count": 2,
                    }
                ],
            ]
        )

        with patch.object(row_sources, "get_db_connection", fake_connection(conn)):
            rows = await MobilisationRowSource().fetch_rows()

        assert conn.fetch.await_count == len(MOBILISATION_QUERIES)
        assert [row.level for row in rows] == [GeoLevel.STATE, GeoLevel.LGA, GeoLevel.POLLING_UNIT]
        assert rows[0].metrics.counters() == (15, 11, 4)
        assert rows[2].pu == "PU 1"
        assert rows[2].verified_count == 0

    @pytest.mark.asyncio
    async def test_fetch_failure_becomes_data_source_error(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(side_effect=OSError("connection reset"))

        with patch.object(row_sources, "get_db_connection", fake_connection(conn)):
            with pytest.raises(DataSourceError) as exc_info:
                await MobilisationRowSource().fetch_rows()

        assert exc_info.value.status_code == 503
        assert exc_info.value.to_dict()["errors"] == {"retryable": True}

    @pytest.mark.asyncio
    async def test_uninitialized_pool_becomes_data_source_error(self):
        with pytest.raises(DataSourceError):
            await MobilisationRowSource().fetch_rows()

    def test_cache_key(self):
        assert MobilisationRowSource().cache_key == "mobilisation"


def election_record(*names, total, verified, unverified):
    record = dict(zip(("state", "lga", "ward", "polling_unit"), names))
    record.update(total_count=total, verified_count=verified, unverified_count=unverified)
    return record


def vote_records(*names, **votes):
    location = dict(zip(("state", "lga", "ward", "polling_unit"), names))
    return [{**location, "party": party, "votes": count} for party, count in votes.items()]


# PU 001 has 5 submissions; 2 more in Ward 1 carry no polling unit code.
WARD_LOCATION = ("Abia", "Umuahia North", "Ward 1")
ELECTION_FETCHES = [
    [election_record("Abia", total=7, verified=4, unverified=3)],
    vote_records("Abia", APC=150, PDP=80),
    [election_record("Abia", "Umuahia North", total=7, verified=4, unverified=3)],
    vote_records("Abia", "Umuahia North", APC=150, PDP=80),
    [election_record(*WARD_LOCATION, total=7, verified=4, unverified=3)],
    vote_records(*WARD_LOCATION, APC=150, PDP=80),
    [election_record(*WARD_LOCATION, "Umuahia Central School", total=5, verified=3, unverified=2)],
    vote_records(*WARD_LOCATION, "Umuahia Central School", APC=120, PDP=80),
]


class TestElectionResultsRowSource:
    """Test ElectionResultsRowSource."""

    def test_cache_key_is_per_election(self):
        assert ElectionResultsRowSource("e-2027").cache_key == "election:e-2027"
        assert election_cache_key("e-1") != election_cache_key("e-2")

    @pytest.mark.asyncio
    async def test_fetch_rows_runs_counts_and_votes_per_level(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(side_effect=ELECTION_FETCHES)

        with patch.object(row_sources, "get_db_connection", fake_connection(conn)):
            rows = await ElectionResultsRowSource("e-2027").fetch_rows()

        assert conn.fetch.await_count == len(ELECTION_RESULTS_QUERIES) + len(ELECTION_PARTY_VOTES_QUERIES)
        assert all(call.args[1] == "e-2027" for call in conn.fetch.await_args_list)
        assert [row.level for row in rows] == [GeoLevel.STATE, GeoLevel.LGA, GeoLevel.WARD, GeoLevel.POLLING_UNIT]
        assert rows[0].metrics.counters() == (7, 4, 3)
        assert rows[2].party_votes == {"APC": 150, "PDP": 80}
        assert rows[3].pu == "Umuahia Central School"
        assert rows[3].party_votes == {"APC": 120, "PDP": 80}

    @pytest.mark.asyncio
    async def test_submissions_without_polling_unit_are_kept(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(side_effect=ELECTION_FETCHES)

        with patch.object(row_sources, "get_db_connection", fake_connection(conn)):
            rows = await ElectionResultsRowSource("e-2027").fetch_rows()
        tree = build_tree(rows)
        verify_tree(tree)

        ward = tree.find(["abia", "umuahia-north", "ward-1"])
        assert tree.root.metrics.counters() == (7, 4, 3)
        assert tree.root.metrics.party_votes == {"APC": 150, "PDP": 80}
        assert ward.children["umuahia-central-school"].display_name == "Umuahia Central School"
        assert ward.children["unassigned"].metrics.counters() == (2, 1, 1)
        assert ward.children["unassigned"].metrics.party_votes == {"APC": 30}

    @pytest.mark.asyncio
    async def test_votes_from_repeated_party_rows_are_summed(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(
            side_effect=[
                [election_record("Abia", total=2, verified=2, unverified=0)],
                vote_records("Abia", APC=10) + vote_records("Abia", APC=5, LP=None),
                [],
                [],
                [],
                [],
                [],
                [],
            ]
        )

        with patch.object(row_sources, "get_db_connection", fake_connection(conn)):
            rows = await ElectionResultsRowSource("e-2027").fetch_rows()

        assert rows[0].party_votes == {"APC": 15}

    def test_every_level_query_is_inclusive(self):
        columns = ("s.state", "s.lga", "s.ward", "s.polling_unit")
        for depth, query in enumerate(ELECTION_RESULTS_QUERIES, start=1):
            group_by = query.split("GROUP BY")[-1]
            for column in columns[:depth]:
                assert column in group_by
                assert f"{column} IS NOT NULL" in query
            for column in columns[depth:]:
                assert column not in group_by

    def test_polling_units_are_named_from_submissions(self):
        for query in ELECTION_RESULTS_QUERIES + ELECTION_PARTY_VOTES_QUERIES:
            assert "NULLIF(ms.submission_data->>'puName', '')" in query
            assert "ms.polling_unit_code" in query

    def test_party_votes_read_result_submissions_only(self):
        for query in ELECTION_PARTY_VOTES_QUERIES:
            assert "'votesPerParty'" in query
            assert "s.submission_type = 'result_tracking'" in query

    @pytest.mark.asyncio
    async def test_fetch_failure_becomes_data_source_error(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(side_effect=OSError("connection reset"))

        with patch.object(row_sources, "get_db_connection", fake_connection(conn)):
            with pytest.raises(DataSourceError):
                await ElectionResultsRowSource("e-2027").fetch_rows()
