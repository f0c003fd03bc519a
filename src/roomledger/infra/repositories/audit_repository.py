"""Audit repository - append-only reservation history.

Rows are only ever inserted; the table carries a trigger that rejects
UPDATE and DELETE.
"""

import json
from typing import Any

from psycopg2.extensions import cursor as PgCursor


def insert_history(
    cur: PgCursor,
    *,
    reservation_id: str,
    action: str,
    changes: list[dict[str, Any]] | None,
    actor_id: str | None,
    note: str | None,
) -> str:
    """Insert one history entry and return its id."""
    cur.execute(
        """
        INSERT INTO reservation_history (reservation_id, action, changes, actor_id, note)
        VALUES (%s, %s, %s::jsonb, %s, %s)
        RETURNING id
        """,
        (
            reservation_id,
            action,
            json.dumps(changes, default=str) if changes is not None else None,
            actor_id,
            note,
        ),
    )
    row = cur.fetchone()
    return str(row[0])


def list_history(cur: PgCursor, reservation_id: str, *, limit: int = 50) -> list[dict]:
    """History entries for a reservation, newest first."""
    cur.execute(
        """
        SELECT id, reservation_id, action, changes, actor_id, note, recorded_at
        FROM reservation_history
        WHERE reservation_id = %s
        ORDER BY recorded_at DESC, id DESC
        LIMIT %s
        """,
        (reservation_id, limit),
    )
    return [
        {
            "id": str(row[0]),
            "reservation_id": row[1],
            "action": row[2],
            "changes": row[3] or [],
            "actor_id": row[4],
            "note": row[5],
            "recorded_at": row[6],
        }
        for row in cur.fetchall()
    ]
