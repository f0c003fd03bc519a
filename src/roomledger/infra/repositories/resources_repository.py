"""Resources repository - read access to bookable inventory.

Uses raw SQL with psycopg2 (no ORM). Resource rows are owned by inventory
management; the booking engine only reads them (and row-locks them to
serialize admissions for the same room).
"""

from psycopg2.extensions import cursor as PgCursor

_COLUMNS = "id, label, resource_type, status, base_price, capacity"


def _row_to_resource(row: tuple) -> dict:
    return {
        "id": str(row[0]),
        "label": row[1],
        "resource_type": row[2],
        "status": row[3],
        "base_price": row[4],
        "capacity": row[5],
    }


def get_resource(cur: PgCursor, resource_id: str, *, lock: bool = False) -> dict | None:
    """Fetch a resource by id.

    Args:
        cur: Database cursor (within transaction).
        resource_id: Resource identifier.
        lock: If True, takes a FOR UPDATE row lock held until commit/rollback.
              Concurrent admissions for the same resource queue behind it.

    Returns:
        Resource dict or None if not found.
    """
    suffix = " FOR UPDATE" if lock else ""
    cur.execute(
        f"SELECT {_COLUMNS} FROM resources WHERE id = %s{suffix}",
        (resource_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_resource(row)


def list_resources(cur: PgCursor, *, resource_type: str | None = None) -> list[dict]:
    """List resources ordered by label, optionally filtered by type."""
    if resource_type:
        cur.execute(
            f"SELECT {_COLUMNS} FROM resources WHERE resource_type = %s ORDER BY label",
            (resource_type,),
        )
    else:
        cur.execute(f"SELECT {_COLUMNS} FROM resources ORDER BY label")
    return [_row_to_resource(row) for row in cur.fetchall()]
