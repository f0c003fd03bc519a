"""Booking endpoints.

POST /bookings                              → staff booking (STAFF)
POST /public/bookings/batch                 → self-service booking (ONLINE)
GET  /public/bookings/by-reference          → guest lookup (reference + phone)
GET  /bookings/{id}                         → reservation details
GET  /bookings/{id}/history                 → audit trail, newest first
POST /bookings/{id}/actions/status          → lifecycle transition
POST /bookings/{id}/actions/check-out       → checkout with early settlement
POST /bookings/{id}/actions/payments        → record payment
POST /bookings/{id}/actions/correct-payment → overwrite paid amount
POST /bookings/{id}/actions/extend          → extend stay

Typed domain errors propagate to the handlers installed by the app factory.
"""

from __future__ import annotations

from fastapi import APIRouter, Header, Path, Query

from roomledger.api.schemas import (
    ERROR_RESPONSES,
    BookingRequest,
    BookingResponse,
    CheckoutRequest,
    ExtendStayRequest,
    HistoryEntry,
    PaymentCorrectionRequest,
    PaymentRequest,
    ReservationView,
    StatusChangeRequest,
)
from roomledger.domain import lifecycle, lookup
from roomledger.domain.admission import (
    AdmissionRequest,
    AdmissionResult,
    Source,
    admit_reservation,
)
from roomledger.infra.time import local_now
from roomledger.observability.logging import get_logger
from roomledger.observability.redaction import safe_log_context

logger = get_logger(__name__)

router = APIRouter(tags=["bookings"], responses=ERROR_RESPONSES)


def _to_admission_request(body: BookingRequest) -> AdmissionRequest:
    return AdmissionRequest(
        resource_ids=body.resource_ids,
        occupant_name=body.occupant_name,
        occupant_phone=body.occupant_phone,
        check_in=body.check_in,
        check_out=body.check_out,
        occupant_id_proof=body.occupant_id_proof,
        occupant_id_proof_type=body.occupant_id_proof_type,
        occupant_address=body.occupant_address,
        discount=body.discount,
        tax_enabled=body.tax_enabled,
        advance_amount=body.advance_amount,
        number_of_guests=body.number_of_guests,
    )


def _to_response(result: AdmissionResult) -> BookingResponse:
    count = len(result.reservations)
    if count == 1:
        message = "Booking confirmed"
    else:
        message = f"{count} rooms booked under reference {result.group_reference}"
    return BookingResponse(
        group_reference=result.group_reference,
        reservation_id=result.reservations[0]["id"],
        resources=result.resources,
        total_amount=result.total_amount,
        check_in=result.check_in,
        check_out=result.check_out,
        status=result.status,
        occupant_name=result.occupant_name,
        occupant_phone=result.occupant_phone,
        message=message,
    )


def _admit(body: BookingRequest, source: Source, actor_id: str | None) -> BookingResponse:
    logger.info(
        "booking request received",
        extra={
            "extra_fields": {
                "source": source.value,
                "resource_count": len(body.resource_ids),
                **safe_log_context(occupant_phone=body.occupant_phone),
            }
        },
    )
    result = admit_reservation(
        _to_admission_request(body), source=source, actor_id=actor_id
    )
    return _to_response(result)


@router.post("/bookings", status_code=201, response_model=BookingResponse)
def create_booking(
    body: BookingRequest,
    x_actor_id: str | None = Header(default=None),
) -> BookingResponse:
    """Front-desk booking of one or more rooms."""
    return _admit(body, Source.STAFF, x_actor_id)


@router.post("/public/bookings/batch", status_code=201, response_model=BookingResponse)
def create_public_booking(body: BookingRequest) -> BookingResponse:
    """Self-service booking of one or more rooms."""
    return _admit(body, Source.ONLINE, None)


@router.get("/public/bookings/by-reference", response_model=ReservationView)
def get_booking_by_reference(
    reference: str = Query(..., min_length=1),
    phone: str = Query(..., min_length=4),
) -> dict:
    """Guest lookup. phone is the full number or its last four digits."""
    return lookup.find_by_reference(reference, phone)


@router.get("/bookings/{reservation_id}", response_model=ReservationView)
def get_booking(reservation_id: str = Path(...)) -> dict:
    return lookup.get_reservation_details(reservation_id)


@router.get("/bookings/{reservation_id}/history", response_model=list[HistoryEntry])
def get_booking_history(
    reservation_id: str = Path(...),
    limit: int = Query(50, ge=1, le=500),
) -> list[dict]:
    return lookup.reservation_history(reservation_id, limit=limit)


@router.post("/bookings/{reservation_id}/actions/status", response_model=ReservationView)
def change_status(
    body: StatusChangeRequest,
    reservation_id: str = Path(...),
    x_actor_id: str | None = Header(default=None),
) -> dict:
    lifecycle.transition_status(
        reservation_id, body.status, actor_id=x_actor_id, note=body.note
    )
    return lookup.get_reservation_details(reservation_id)


@router.post("/bookings/{reservation_id}/actions/check-out", response_model=ReservationView)
def check_out(
    body: CheckoutRequest,
    reservation_id: str = Path(...),
    x_actor_id: str | None = Header(default=None),
) -> dict:
    """Check out; leaving before the booked check-out resettles the amounts."""
    actual = body.actual_check_out or local_now()
    lifecycle.check_out_early(reservation_id, actual, actor_id=x_actor_id)
    return lookup.get_reservation_details(reservation_id)


@router.post("/bookings/{reservation_id}/actions/payments", response_model=ReservationView)
def add_payment(
    body: PaymentRequest,
    reservation_id: str = Path(...),
    x_actor_id: str | None = Header(default=None),
) -> dict:
    lifecycle.record_payment(
        reservation_id, body.amount, actor_id=x_actor_id, note=body.note
    )
    return lookup.get_reservation_details(reservation_id)


@router.post(
    "/bookings/{reservation_id}/actions/correct-payment", response_model=ReservationView
)
def correct_payment(
    body: PaymentCorrectionRequest,
    reservation_id: str = Path(...),
    x_actor_id: str | None = Header(default=None),
) -> dict:
    lifecycle.correct_payment(
        reservation_id, body.paid_amount, actor_id=x_actor_id, note=body.note
    )
    return lookup.get_reservation_details(reservation_id)


@router.post("/bookings/{reservation_id}/actions/extend", response_model=ReservationView)
def extend(
    body: ExtendStayRequest,
    reservation_id: str = Path(...),
    x_actor_id: str | None = Header(default=None),
) -> dict:
    lifecycle.extend_stay(reservation_id, body.check_out, actor_id=x_actor_id)
    return lookup.get_reservation_details(reservation_id)
