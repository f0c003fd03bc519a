"""Database URL resolution for Alembic.

Kept outside env.py so it can be tested without an alembic context.
DATABASE_URL may be a URL or a libpq key=value DSN; DB_PASSWORD fills in
a missing password in either form.
"""

from __future__ import annotations

import os

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL, make_url

DRIVER = "postgresql+psycopg2"


def _password_fallback(password: str | None) -> str | None:
    return password or os.environ.get("DB_PASSWORD") or None


def dsn_to_url(dsn: str) -> URL:
    """Convert a libpq key=value DSN to a SQLAlchemy URL.

    A host starting with "/" is a Unix socket directory and travels in the
    query string, since SQLAlchemy URLs only carry network hosts.
    """
    params = parse_dsn(dsn)
    host = params.get("host") or "localhost"
    port = params.get("port")
    query = {}
    if host.startswith("/"):
        query["host"] = host
        host, port = None, None

    return URL.create(
        DRIVER,
        username=params.get("user"),
        password=_password_fallback(params.get("password")),
        host=host,
        port=int(port) if port else (5432 if host else None),
        database=params.get("dbname"),
        query=query,
    )


def _normalize_url(raw: str) -> URL:
    url = make_url(raw)
    if url.drivername in ("postgres", "postgresql"):
        url = url.set(drivername=DRIVER)
    password = _password_fallback(url.password)
    if password != url.password:
        url = url.set(password=password)
    return url


def database_url() -> str:
    """SQLAlchemy URL string for the migration engine.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    raw = os.environ.get("DATABASE_URL")
    if not raw:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    url = _normalize_url(raw) if "://" in raw else dsn_to_url(raw)
    return url.render_as_string(hide_password=False)
