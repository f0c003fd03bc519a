"""Occupants repository - guest records attached to reservations.

Uses raw SQL with psycopg2 (no ORM).

Every admission inserts a fresh occupant row; there is no lookup by phone
and no update of an existing guest, so a new booking never rewrites the
name shown on an older one.
"""

from psycopg2.extensions import cursor as PgCursor


def insert_occupant(
    cur: PgCursor,
    *,
    name: str,
    phone: str,
    id_proof: str | None = None,
    id_proof_type: str | None = None,
    address: str | None = None,
) -> str:
    """Insert an occupant and return its id.

    Args:
        cur:           Database cursor (must be inside a transaction).
        name:          Occupant full name.
        phone:         10-digit phone number.
        id_proof:      Identity document number.  Optional.
        id_proof_type: Identity document kind.  Optional.
        address:       Postal address.  Optional.

    Returns:
        UUID string of the new occupant.
    """
    cur.execute(
        """
        INSERT INTO occupants (name, phone, id_proof, id_proof_type, address)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING id
        """,
        (name, phone, id_proof, id_proof_type, address),
    )
    row = cur.fetchone()
    return str(row[0])


def get_occupant(cur: PgCursor, occupant_id: str) -> dict | None:
    cur.execute(
        """
        SELECT id, name, phone, id_proof, id_proof_type, address
        FROM occupants
        WHERE id = %s
        """,
        (occupant_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return {
        "id": str(row[0]),
        "name": row[1],
        "phone": row[2],
        "id_proof": row[3],
        "id_proof_type": row[4],
        "address": row[5],
    }
