"""Read-side reservation queries for guests and staff."""

from __future__ import annotations

import re

from psycopg2.extensions import connection as PgConnection

from roomledger.domain.audit import get_history
from roomledger.domain.errors import ReservationNotFound, ValidationError
from roomledger.infra.db import txn
from roomledger.infra.repositories.occupants_repository import get_occupant
from roomledger.infra.repositories.reservations_repository import (
    get_reservation,
    get_reservation_by_reference,
)
from roomledger.infra.repositories.resources_repository import get_resource


def phone_matches(stored_phone: str | None, supplied: str) -> bool:
    """True if supplied is the full stored number or its last four digits."""
    stored = re.sub(r"\D", "", stored_phone or "")
    digits = re.sub(r"\D", "", supplied or "")
    if not stored or len(digits) not in (4, len(stored)):
        return False
    return stored.endswith(digits)


def _with_details(cur, reservation: dict) -> dict:
    occupant = get_occupant(cur, reservation["occupant_id"])
    resource = get_resource(cur, reservation["resource_id"])
    return {
        **reservation,
        "occupant_name": occupant["name"] if occupant else None,
        "occupant_phone": occupant["phone"] if occupant else None,
        "resource_label": resource["label"] if resource else None,
        "resource_type": resource["resource_type"] if resource else None,
    }


def find_by_reference(
    reference: str, phone: str, *, conn: PgConnection | None = None
) -> dict:
    """Guest self-service lookup.

    A phone that does not match is reported exactly like an unknown
    reference, so the endpoint cannot be used to discover which codes exist.

    Raises:
        ValidationError: Blank reference or phone.
        ReservationNotFound: Unknown reference or phone mismatch.
    """
    reference = (reference or "").strip().upper()
    if not reference or not (phone or "").strip():
        raise ValidationError("Reference and phone are required")

    with txn(conn) as cur:
        reservation = get_reservation_by_reference(cur, reference)
        if reservation is None:
            raise ReservationNotFound(reference)
        detailed = _with_details(cur, reservation)

    if not phone_matches(detailed["occupant_phone"], phone):
        raise ReservationNotFound(reference)
    return detailed


def get_reservation_details(
    reservation_id: str, *, conn: PgConnection | None = None
) -> dict:
    """Staff lookup by id, with occupant and resource labels."""
    with txn(conn) as cur:
        reservation = get_reservation(cur, reservation_id)
        if reservation is None:
            raise ReservationNotFound(reservation_id)
        return _with_details(cur, reservation)


def reservation_history(
    reservation_id: str, *, limit: int = 50, conn: PgConnection | None = None
) -> list[dict]:
    """Audit entries of a reservation, newest first.

    Raises:
        ReservationNotFound: Unknown reservation.
    """
    with txn(conn) as cur:
        if get_reservation(cur, reservation_id) is None:
            raise ReservationNotFound(reservation_id)
        return get_history(cur, reservation_id, limit=limit)
