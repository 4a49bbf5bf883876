"""Tests for credstore.db.connection — checkout, isolation and unavailability."""

from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from credstore.db import connection
from credstore.db.connection import REPEATABLE_READ, get_connection
from credstore.errors import StoreUnavailableError


@pytest.fixture
def pool():
    pool = MagicMock()
    conn = pool.getconn.return_value
    conn.closed = 0
    with patch.object(connection, "get_pool", return_value=pool):
        yield pool


class TestGetConnection:
    def test_commits_and_returns(self, pool):
        with get_connection() as conn:
            pass
        conn.commit.assert_called_once()
        conn.set_session.assert_not_called()
        pool.putconn.assert_called_once_with(conn)

    def test_rolls_back_on_error(self, pool):
        with pytest.raises(ValueError):
            with get_connection() as conn:
                raise ValueError("boom")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        pool.putconn.assert_called_once_with(conn)

    def test_isolation_applies_to_one_checkout(self, pool):
        with get_connection(isolation=REPEATABLE_READ) as conn:
            pass
        assert [c.kwargs["isolation_level"] for c in conn.set_session.call_args_list] == [
            REPEATABLE_READ,
            "DEFAULT",
        ]

    def test_checkout_failure(self, pool):
        pool.getconn.side_effect = psycopg2.OperationalError("connection refused")
        with pytest.raises(StoreUnavailableError, match="Database not connected"):
            with get_connection():
                pass


class TestGetPool:
    def test_unreachable_server(self, clean_env):
        connection.close_pool()
        with patch(
            "psycopg2.pool.ThreadedConnectionPool",
            side_effect=psycopg2.OperationalError("could not connect"),
        ):
            with pytest.raises(StoreUnavailableError, match="CREDSTORE_DB_"):
                connection.get_pool()
