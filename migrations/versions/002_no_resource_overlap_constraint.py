"""Exclusion constraint: no overlapping active reservations per resource.

Second layer behind the FOR UPDATE serialization in admission. The range
ends at midnight of the check-out day, so a check-out day stays free for a
new check-in, exactly as the availability resolver decides.

Revision ID: 002_no_resource_overlap_constraint
Revises: 001_booking_schema
Create Date: 2026-10-17
"""
from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "002_no_resource_overlap_constraint"
down_revision = "001_booking_schema"
branch_labels = None
depends_on = None

_SQL_FILE = (
    Path(__file__).resolve().parent.parent / "sql" / "002_no_resource_overlap_constraint.sql"
)


def upgrade() -> None:
    op.execute(_SQL_FILE.read_text())


def downgrade() -> None:
    op.execute("ALTER TABLE reservations DROP CONSTRAINT IF EXISTS no_resource_overlap")
