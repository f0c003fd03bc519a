"""Slots repository - day-level occupancy markers.

A slot marks the check-in day of a reservation only; it does not span the
whole stay.
"""

from datetime import date
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor


def insert_slot(
    cur: PgCursor,
    *,
    resource_id: str,
    slot_date: date,
    price: Decimal,
    slot_type: str = "FULL_DAY",
) -> str:
    """Insert an unavailable slot for resource_id on slot_date; return its id."""
    cur.execute(
        """
        INSERT INTO resource_slots (resource_id, slot_date, slot_type, price, is_available)
        VALUES (%s, %s, %s, %s, false)
        RETURNING id
        """,
        (resource_id, slot_date, slot_type, price),
    )
    row = cur.fetchone()
    return str(row[0])


def release_slot(cur: PgCursor, slot_id: str) -> None:
    """Mark a slot available again (after checkout or cancellation)."""
    cur.execute(
        "UPDATE resource_slots SET is_available = true WHERE id = %s",
        (slot_id,),
    )
