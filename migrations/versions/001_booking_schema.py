"""Booking schema (SQL-only).

Revision ID: 001_booking_schema
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


# revision identifiers, used by Alembic.
revision = "001_booking_schema"
down_revision = None
branch_labels = None
depends_on = None


def _read_sql() -> str:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / "001_booking_schema.sql"
    return sql_path.read_text(encoding="utf-8")


def upgrade() -> None:
    # Raw execution for the plpgsql function body ($$ ... $$).
    conn = op.get_bind()
    conn.exec_driver_sql(_read_sql())


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS reservation_history")
    op.execute("DROP FUNCTION IF EXISTS reservation_history_append_only()")
    op.execute("DROP TABLE IF EXISTS reservations")
    op.execute("DROP TABLE IF EXISTS resource_slots")
    op.execute("DROP TABLE IF EXISTS occupants")
    op.execute("DROP TABLE IF EXISTS resources")
    op.execute("DROP TABLE IF EXISTS id_counters")
