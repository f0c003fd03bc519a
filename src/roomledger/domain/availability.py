"""Availability resolution for bookable resources.

Overlap formula:  (existing.check_in < new.check_out) AND (existing.check_out > new.check_in)

Turnover refinement: the calendar day of an existing check-out is free for
a new check-in. A candidate only blocks when its check-out, truncated to
midnight, is strictly after the requested check-in truncated to midnight.

Only active statuses occupy a resource: CONFIRMED, CHECKED_IN.
Occupancy is always recomputed from reservation rows; the resource status
column is consulted only for OUT_OF_SERVICE.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

from roomledger.infra.repositories.reservations_repository import find_overlapping
from roomledger.infra.repositories.resources_repository import get_resource, list_resources
from roomledger.infra.time import start_of_day

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("CONFIRMED", "CHECKED_IN")
OUT_OF_SERVICE = "OUT_OF_SERVICE"


@dataclass(frozen=True)
class ConflictResult:
    """Outcome of an availability check.

    reason is None when available, otherwise one of
    "not_found", "out_of_service", "date_conflict".
    """

    available: bool
    reason: str | None = None
    resource: dict | None = None
    conflicting_reservation: dict | None = None


def blocks_check_in(existing_check_out: datetime, requested_check_in: datetime) -> bool:
    """True if an overlapping reservation ending at existing_check_out
    still occupies the requested check-in day."""
    return start_of_day(existing_check_out) > start_of_day(requested_check_in)


def first_blocking(candidates: list[dict], requested_check_in: datetime) -> dict | None:
    """First overlap candidate that survives the turnover refinement."""
    for candidate in candidates:
        if blocks_check_in(candidate["check_out"], requested_check_in):
            return candidate
    return None


def check_conflict(
    cur: PgCursor,
    *,
    resource_id: str,
    check_in: datetime,
    check_out: datetime,
    exclude_reservation_id: str | None = None,
    resource: dict | None = None,
) -> ConflictResult:
    """Check whether a resource can take a reservation for [check_in, check_out).

    Read-only; safe to call speculatively outside an admission.

    Args:
        cur: Database cursor.
        resource_id: Resource identifier.
        check_in: Requested check-in.
        check_out: Requested check-out.
        exclude_reservation_id: Reservation to ignore (for stay edits).
        resource: Already-fetched (and possibly locked) resource row; looked
                  up when None.

    Returns:
        ConflictResult; when a date conflict exists, the first conflicting
        reservation ordered by check-in.
    """
    if resource is None:
        resource = get_resource(cur, resource_id)
    if resource is None:
        return ConflictResult(available=False, reason="not_found")

    if resource["status"] == OUT_OF_SERVICE:
        return ConflictResult(available=False, reason="out_of_service", resource=resource)

    candidates = find_overlapping(
        cur,
        check_in=check_in,
        check_out=check_out,
        statuses=ACTIVE_STATUSES,
        resource_id=resource_id,
        exclude_reservation_id=exclude_reservation_id,
    )
    conflicting = first_blocking(candidates, check_in)

    if conflicting is None:
        return ConflictResult(available=True, resource=resource)

    # log only non-PII fields
    logger.warning(
        "resource conflict detected",
        extra={
            "extra_fields": {
                "resource_id": resource_id,
                "requested_check_in": check_in.isoformat(),
                "requested_check_out": check_out.isoformat(),
                "conflicting_reservation_id": conflicting["id"],
                "existing_check_in": conflicting["check_in"].isoformat(),
                "existing_check_out": conflicting["check_out"].isoformat(),
            },
        },
    )
    return ConflictResult(
        available=False,
        reason="date_conflict",
        resource=resource,
        conflicting_reservation=conflicting,
    )


def list_availability(
    cur: PgCursor,
    *,
    check_in: datetime,
    check_out: datetime,
    resource_type: str | None = None,
) -> dict:
    """Derive the status of every resource for the requested interval.

    Returns:
        {
            "resources": [{...resource, "availability": "AVAILABLE" | "BOOKED"
                           | "OUT_OF_SERVICE", "check_out_at": datetime | None}],
            "booked_count": int,
            "available_count": int,
        }
        check_out_at is the latest blocking check-out for BOOKED resources.
    """
    candidates = find_overlapping(
        cur, check_in=check_in, check_out=check_out, statuses=ACTIVE_STATUSES
    )
    latest_check_out: dict[str, datetime] = {}
    for candidate in candidates:
        if not blocks_check_in(candidate["check_out"], check_in):
            continue
        rid = candidate["resource_id"]
        if rid not in latest_check_out or candidate["check_out"] > latest_check_out[rid]:
            latest_check_out[rid] = candidate["check_out"]

    listed = []
    for resource in list_resources(cur, resource_type=resource_type):
        if resource["status"] == OUT_OF_SERVICE:
            availability, until = OUT_OF_SERVICE, None
        elif resource["id"] in latest_check_out:
            availability, until = "BOOKED", latest_check_out[resource["id"]]
        else:
            availability, until = "AVAILABLE", None
        listed.append({**resource, "availability": availability, "check_out_at": until})

    return {
        "resources": listed,
        "booked_count": sum(1 for r in listed if r["availability"] == "BOOKED"),
        "available_count": sum(1 for r in listed if r["availability"] == "AVAILABLE"),
    }
