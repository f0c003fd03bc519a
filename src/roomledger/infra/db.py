"""Database access layer using psycopg2.

Provides:
- get_conn(): Get a database connection from DATABASE_URL
- txn(): Context manager for short, safe, time-bounded transactions
"""

import os
import time
from contextlib import contextmanager
from typing import Iterator
from urllib.parse import urlparse

import psycopg2
import psycopg2.errors
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor


class TransactionTimeout(Exception):
    """Raised when a transaction exceeds its lock-wait or total-duration budget.

    Retryable: the transaction was rolled back and nothing was persisted.
    """

    def __init__(self, message: str, *, budget_ms: int | None = None) -> None:
        self.budget_ms = budget_ms
        super().__init__(message)


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        return bool(urlparse(dsn).password)
    return any(part.startswith("password=") for part in dsn.split())


def get_conn() -> PgConnection:
    """Get a new database connection from DATABASE_URL.

    If the DSN carries no password and DB_PASSWORD is set, the password is
    passed separately to psycopg2.

    Returns:
        psycopg2 connection object.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")
    db_password = os.environ.get("DB_PASSWORD")
    if db_password and not _dsn_has_password(dsn):
        return psycopg2.connect(dsn, password=db_password)
    return psycopg2.connect(dsn)


def _apply_budgets(
    cur: PgCursor, lock_timeout_ms: int | None, total_timeout_ms: int | None
) -> None:
    # set_config(..., true) is transaction-local, like SET LOCAL
    if lock_timeout_ms is not None:
        cur.execute(
            "SELECT set_config('lock_timeout', %s, true)", (f"{lock_timeout_ms}ms",)
        )
    if total_timeout_ms is not None:
        cur.execute(
            "SELECT set_config('statement_timeout', %s, true)",
            (f"{total_timeout_ms}ms",),
        )


@contextmanager
def txn(
    conn: PgConnection | None = None,
    *,
    lock_timeout_ms: int | None = None,
    total_timeout_ms: int | None = None,
) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction.

    If conn is None, creates a new connection that is closed on exit.
    Commits on successful exit, rolls back on exception.

    When budgets are given, lock waits longer than lock_timeout_ms and
    statements longer than total_timeout_ms are cancelled by Postgres, and
    the whole block is rejected before commit if it ran longer than
    total_timeout_ms. All three surface as TransactionTimeout.

    Args:
        conn: Optional existing connection. If None, creates new one.
        lock_timeout_ms: Maximum wait for any row/table lock.
        total_timeout_ms: Maximum duration of the whole transaction.

    Yields:
        Cursor for executing queries within the transaction.

    Example:
        with txn(lock_timeout_ms=15000, total_timeout_ms=45000) as cur:
            cur.execute("INSERT INTO t (x) VALUES (%s)", (1,))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    started = time.monotonic()
    try:
        with conn.cursor() as cur:
            _apply_budgets(cur, lock_timeout_ms, total_timeout_ms)
            yield cur
        elapsed_ms = (time.monotonic() - started) * 1000
        if total_timeout_ms is not None and elapsed_ms > total_timeout_ms:
            raise TransactionTimeout(
                f"Transaction exceeded {total_timeout_ms}ms budget",
                budget_ms=total_timeout_ms,
            )
        conn.commit()
    except psycopg2.errors.LockNotAvailable as exc:
        conn.rollback()
        raise TransactionTimeout(
            f"Lock wait exceeded {lock_timeout_ms}ms", budget_ms=lock_timeout_ms
        ) from exc
    except psycopg2.errors.QueryCanceled as exc:
        conn.rollback()
        raise TransactionTimeout(
            f"Statement exceeded {total_timeout_ms}ms", budget_ms=total_timeout_ms
        ) from exc
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()
