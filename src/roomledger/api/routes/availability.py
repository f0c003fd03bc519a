"""Room availability endpoint.

GET /rooms/available?checkIn=...&checkOut=...&resourceType=...
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from roomledger.api.schemas import ERROR_RESPONSES
from roomledger.domain.availability import list_availability
from roomledger.domain.errors import DateError
from roomledger.domain.pricing import normalize_interval
from roomledger.infra.db import txn

router = APIRouter(prefix="/rooms", tags=["rooms"], responses=ERROR_RESPONSES)


def _resource_to_dict(resource: dict) -> dict:
    return {
        "resourceId": resource["id"],
        "resourceLabel": resource["label"],
        "resourceType": resource["resource_type"],
        "basePrice": float(resource["base_price"]),
        "capacity": resource["capacity"],
        "availability": resource["availability"],
        "checkOutAt": resource["check_out_at"].isoformat()
        if resource["check_out_at"]
        else None,
    }


@router.get("/available")
def get_available_rooms(
    check_in: str = Query(..., alias="checkIn"),
    check_out: str = Query(..., alias="checkOut"),
    resource_type: str | None = Query(None, alias="resourceType"),
) -> dict:
    """List every room with its derived status for the requested interval.

    Read-only: nothing is locked, so a room listed as AVAILABLE can still
    be taken by a concurrent booking.
    """
    interval = normalize_interval(check_in, check_out)
    if interval.check_out <= interval.check_in:
        raise DateError("Check-out date must be after check-in date")

    with txn() as cur:
        listing = list_availability(
            cur,
            check_in=interval.check_in,
            check_out=interval.check_out,
            resource_type=resource_type,
        )

    return {
        "checkIn": interval.check_in.isoformat(),
        "checkOut": interval.check_out.isoformat(),
        "rooms": [_resource_to_dict(r) for r in listing["resources"]],
        "bookedCount": listing["booked_count"],
        "availableCount": listing["available_count"],
    }
