"""
Unit tests for the election catalog.
"""

from contextlib import asynccontextmanager
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from georollup.core.errors import DataSourceError
from georollup.services import elections
from georollup.services.elections import ELECTION_PARTIES_QUERY, ElectionCatalog


def fake_connection(conn):
    @asynccontextmanager
    async def _get_db_connection():
        yield conn

    return _get_db_connection


class TestListActiveElections:
    """Test ElectionCatalog.list_active_elections."""

    @pytest.mark.asyncio
    async def test_returns_submission_counts(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(
            return_value=[
                {
                    "election_id": "e-2027",
                    "election_name": "Abia Governorship 2027",
                    "type": "governorship",
                    "state": "Abia",
                    "lga": None,
                    "election_date": date(2027, 3, 11),
                    "status": "active",
                    "total_submissions": 7,
                    "result_submissions": 4,
                    "setup_submissions": 3,
                }
            ]
        )

        with patch.object(elections, "get_db_connection", fake_connection(conn)):
            result = await ElectionCatalog().list_active_elections()

        assert len(result) == 1
        assert result[0].election_id == "e-2027"
        assert result[0].election_date == date(2027, 3, 11)
        assert (result[0].total_submissions, result[0].result_submissions, result[0].setup_submissions) == (7, 4, 3)

    @pytest.mark.asyncio
    async def test_election_without_submissions(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(
            return_value=[
                {
                    "election_id": "e-2028",
                    "election_name": None,
                    "type": None,
                    "state": None,
                    "lga": None,
                    "election_date": None,
                    "status": "active",
                    "total_submissions": 0,
                    "result_submissions": 0,
                    "setup_submissions": 0,
                }
            ]
        )

        with patch.object(elections, "get_db_connection", fake_connection(conn)):
            result = await ElectionCatalog().list_active_elections()

        assert result[0].total_submissions == 0

    @pytest.mark.asyncio
    async def test_database_error_becomes_data_source_error(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(side_effect=OSError("could not connect to server"))

        with patch.object(elections, "get_db_connection", fake_connection(conn)):
            with pytest.raises(DataSourceError) as exc_info:
                await ElectionCatalog().list_active_elections()

        assert exc_info.value.status_code == 503


class TestListParties:
    """Test ElectionCatalog.list_parties."""

    @pytest.mark.asyncio
    async def test_parties_in_display_order(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(
            return_value=[
                {"party_code": "APC", "party_name": "All Progressives Congress", "display_name": "APC",
                 "color": "#1F8A3A", "display_order": 1},
                {"party_code": "PDP", "party_name": "Peoples Democratic Party", "display_name": None,
                 "color": None, "display_order": 2},
            ]
        )

        with patch.object(elections, "get_db_connection", fake_connection(conn)):
            parties = await ElectionCatalog().list_parties("e-2027")

        assert conn.fetch.await_args.args == (ELECTION_PARTIES_QUERY, "e-2027")
        assert [party.party_code for party in parties] == ["APC", "PDP"]
        assert parties[1].color is None

    @pytest.mark.asyncio
    async def test_uninitialized_pool_becomes_data_source_error(self):
        with pytest.raises(DataSourceError):
            await ElectionCatalog().list_parties("e-2027")
