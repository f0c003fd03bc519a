"""Reservations repository - persistence for reservation records.

Uses raw SQL with psycopg2 (no ORM).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Sequence

from psycopg2.extensions import cursor as PgCursor

_COLUMNS = """
    id, reference, group_reference, resource_id, occupant_id, slot_id,
    check_in, check_out, number_of_guests,
    subtotal, tax, discount, total_amount, paid_amount, balance_amount,
    tax_enabled, payment_status, status, source, created_at, updated_at
"""

# Columns that lifecycle operations may rewrite.
_UPDATABLE = frozenset(
    {
        "check_out",
        "subtotal",
        "tax",
        "discount",
        "total_amount",
        "paid_amount",
        "balance_amount",
        "payment_status",
        "status",
    }
)


def _row_to_reservation(row: tuple) -> dict:
    return {
        "id": row[0],
        "reference": row[1],
        "group_reference": row[2],
        "resource_id": str(row[3]),
        "occupant_id": str(row[4]),
        "slot_id": str(row[5]) if row[5] is not None else None,
        "check_in": row[6],
        "check_out": row[7],
        "number_of_guests": row[8],
        "subtotal": row[9],
        "tax": row[10],
        "discount": row[11],
        "total_amount": row[12],
        "paid_amount": row[13],
        "balance_amount": row[14],
        "tax_enabled": row[15],
        "payment_status": row[16],
        "status": row[17],
        "source": row[18],
        "created_at": row[19],
        "updated_at": row[20],
    }


def insert_reservation(
    cur: PgCursor,
    *,
    reservation_id: str,
    reference: str,
    group_reference: str | None,
    resource_id: str,
    occupant_id: str,
    slot_id: str | None,
    check_in: datetime,
    check_out: datetime,
    number_of_guests: int,
    subtotal: Decimal,
    tax: Decimal,
    discount: Decimal,
    total_amount: Decimal,
    paid_amount: Decimal,
    balance_amount: Decimal,
    tax_enabled: bool,
    payment_status: str,
    status: str,
    source: str,
) -> None:
    """Insert a reservation row.

    No ON CONFLICT clause: a duplicate id or reference, or an interval that
    violates the no-overlap exclusion constraint, raises and aborts the
    caller's transaction.
    """
    cur.execute(
        """
        INSERT INTO reservations (
            id, reference, group_reference, resource_id, occupant_id, slot_id,
            check_in, check_out, number_of_guests,
            subtotal, tax, discount, total_amount, paid_amount, balance_amount,
            tax_enabled, payment_status, status, source
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """,
        (
            reservation_id,
            reference,
            group_reference,
            resource_id,
            occupant_id,
            slot_id,
            check_in,
            check_out,
            number_of_guests,
            subtotal,
            tax,
            discount,
            total_amount,
            paid_amount,
            balance_amount,
            tax_enabled,
            payment_status,
            status,
            source,
        ),
    )


def get_reservation(
    cur: PgCursor, reservation_id: str, *, lock: bool = False
) -> dict | None:
    """Fetch a reservation by id, optionally locking it FOR UPDATE."""
    suffix = " FOR UPDATE" if lock else ""
    cur.execute(
        f"SELECT {_COLUMNS} FROM reservations WHERE id = %s{suffix}",
        (reservation_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_reservation(row)


def get_reservation_by_reference(cur: PgCursor, reference: str) -> dict | None:
    cur.execute(
        f"SELECT {_COLUMNS} FROM reservations WHERE reference = %s",
        (reference,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_reservation(row)


def find_overlapping(
    cur: PgCursor,
    *,
    check_in: datetime,
    check_out: datetime,
    statuses: Sequence[str],
    resource_id: str | None = None,
    exclude_reservation_id: str | None = None,
) -> list[dict]:
    """Reservations whose interval intersects [check_in, check_out).

    Half-open overlap: existing.check_in < check_out AND
    existing.check_out > check_in. Ordered by check-in.

    Args:
        cur: Database cursor.
        check_in: Requested check-in.
        check_out: Requested check-out.
        statuses: Reservation statuses to consider.
        resource_id: Restrict to one resource (None = all resources).
        exclude_reservation_id: Reservation to ignore (self, when editing).

    Returns:
        List of dicts with id, resource_id, check_in, check_out, status.
    """
    conditions = [
        "status = ANY(%s)",
        "check_in < %s",
        "check_out > %s",
    ]
    params: list[Any] = [list(statuses), check_out, check_in]

    if resource_id is not None:
        conditions.append("resource_id = %s")
        params.append(resource_id)

    if exclude_reservation_id is not None:
        conditions.append("id != %s")
        params.append(exclude_reservation_id)

    where = " AND ".join(conditions)
    cur.execute(
        f"""
        SELECT id, resource_id, check_in, check_out, status
        FROM reservations
        WHERE {where}
        ORDER BY check_in
        """,
        params,
    )
    return [
        {
            "id": row[0],
            "resource_id": str(row[1]),
            "check_in": row[2],
            "check_out": row[3],
            "status": row[4],
        }
        for row in cur.fetchall()
    ]


def update_reservation(cur: PgCursor, reservation_id: str, **fields: Any) -> None:
    """Update selected columns of a reservation and bump updated_at.

    Raises:
        ValueError: If a column is not updatable or no column is given.
    """
    if not fields:
        raise ValueError("No fields to update")
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValueError(f"Columns not updatable: {sorted(unknown)}")

    columns = sorted(fields)
    assignments = ", ".join(f"{col} = %s" for col in columns)
    params = [fields[col] for col in columns] + [reservation_id]
    cur.execute(
        f"UPDATE reservations SET {assignments}, updated_at = now() WHERE id = %s",
        params,
    )
