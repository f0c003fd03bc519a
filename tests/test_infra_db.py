"""Tests for database layer."""

import os
from unittest.mock import MagicMock, patch

import psycopg2.errors
import pytest


def _mock_conn():
    conn = MagicMock()
    cur = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cur
    return conn, cur


class TestGetConnPasswordFallback:
    """Tests for DB_PASSWORD fallback in get_conn() (no real DB needed)."""

    def test_db_password_fallback_dsn_without_password(self):
        from roomledger.infra.db import get_conn

        env = {"DATABASE_URL": "dbname=db user=u host=h port=5432", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("roomledger.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(
                "dbname=db user=u host=h port=5432",
                password="from-env",
            )

    def test_db_password_not_used_when_dsn_has_password(self):
        from roomledger.infra.db import get_conn

        env = {"DATABASE_URL": "dbname=db user=u password=from-dsn host=h", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("roomledger.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(
                "dbname=db user=u password=from-dsn host=h",
            )

    def test_db_password_fallback_url_without_password(self):
        from roomledger.infra.db import get_conn

        env = {"DATABASE_URL": "postgres://u@h/db", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("roomledger.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(
                "postgres://u@h/db",
                password="from-env",
            )

    def test_db_password_not_used_when_url_has_password(self):
        from roomledger.infra.db import get_conn

        env = {"DATABASE_URL": "postgres://u:p@h/db", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("roomledger.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("postgres://u:p@h/db")

    def test_raises_without_database_url(self):
        from roomledger.infra.db import get_conn

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL"):
                get_conn()


class TestTxnWithMockConnection:
    """txn() commit/rollback and budget handling, no real DB."""

    def test_commits_on_success(self):
        from roomledger.infra.db import txn

        conn, cur = _mock_conn()
        with txn(conn) as c:
            c.execute("SELECT 1")

        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        # caller-owned connection stays open
        conn.close.assert_not_called()

    def test_rollback_on_exception(self):
        from roomledger.infra.db import txn

        conn, cur = _mock_conn()
        with pytest.raises(ValueError):
            with txn(conn):
                raise ValueError("boom")

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_sets_transaction_local_budgets(self):
        from roomledger.infra.db import txn

        conn, cur = _mock_conn()
        with txn(conn, lock_timeout_ms=1500, total_timeout_ms=4000):
            pass

        calls = [c.args for c in cur.execute.call_args_list]
        assert ("SELECT set_config('lock_timeout', %s, true)", ("1500ms",)) in calls
        assert ("SELECT set_config('statement_timeout', %s, true)", ("4000ms",)) in calls

    def test_no_budgets_no_set_config(self):
        from roomledger.infra.db import txn

        conn, cur = _mock_conn()
        with txn(conn):
            pass

        cur.execute.assert_not_called()

    def test_lock_not_available_becomes_timeout(self):
        from roomledger.infra.db import TransactionTimeout, txn

        conn, cur = _mock_conn()
        with pytest.raises(TransactionTimeout) as exc_info:
            with txn(conn, lock_timeout_ms=100):
                raise psycopg2.errors.LockNotAvailable("lock timeout")

        assert exc_info.value.budget_ms == 100
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_query_canceled_becomes_timeout(self):
        from roomledger.infra.db import TransactionTimeout, txn

        conn, cur = _mock_conn()
        with pytest.raises(TransactionTimeout):
            with txn(conn, total_timeout_ms=100):
                raise psycopg2.errors.QueryCanceled("statement timeout")

        conn.rollback.assert_called_once()

    def test_elapsed_over_budget_rolls_back(self):
        from roomledger.infra.db import TransactionTimeout, txn

        conn, cur = _mock_conn()
        with patch("roomledger.infra.db.time.monotonic", side_effect=[0.0, 5.0]):
            with pytest.raises(TransactionTimeout):
                with txn(conn, total_timeout_ms=1000):
                    pass

        conn.commit.assert_not_called()
        conn.rollback.assert_called_once()

    def test_owned_connection_is_closed(self):
        from roomledger.infra.db import txn

        conn, cur = _mock_conn()
        with patch("roomledger.infra.db.get_conn", return_value=conn):
            with txn():
                pass

        conn.commit.assert_called_once()
        conn.close.assert_called_once()


# Skip integration tests if DATABASE_URL is not set
_skip_no_db = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping DB integration tests",
)


@_skip_no_db
class TestTxn:
    """Tests for txn() against a real database."""

    def test_commits_on_success(self):
        from roomledger.infra.db import get_conn, txn

        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("CREATE TEMP TABLE test_txn (id serial, val text)")
            conn.commit()

            with txn(conn) as cur:
                cur.execute("INSERT INTO test_txn (val) VALUES (%s)", ("test",))

            with conn.cursor() as cur:
                cur.execute("SELECT val FROM test_txn")
                row = cur.fetchone()
                assert row is not None
                assert row[0] == "test"
        finally:
            conn.close()

    def test_rollback_on_exception(self):
        from roomledger.infra.db import get_conn, txn

        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("CREATE TEMP TABLE test_rollback (id serial, val text)")
            conn.commit()

            with pytest.raises(ValueError):
                with txn(conn) as cur:
                    cur.execute("INSERT INTO test_rollback (val) VALUES (%s)", ("bad",))
                    raise ValueError("rollback test")

            with conn.cursor() as cur:
                cur.execute("SELECT count(*) FROM test_rollback")
                assert cur.fetchone()[0] == 0
        finally:
            conn.close()

    def test_statement_timeout_surfaces_as_transaction_timeout(self):
        from roomledger.infra.db import TransactionTimeout, txn

        with pytest.raises(TransactionTimeout):
            with txn(total_timeout_ms=50) as cur:
                cur.execute("SELECT pg_sleep(1)")
