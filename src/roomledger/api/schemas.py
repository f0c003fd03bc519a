"""Request and response bodies for the booking endpoints.

Inbound bodies reject unknown fields and use camelCase on the wire.
Date strings are kept as strings: interval parsing (date-only vs full
instant) belongs to the pricing module.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

PHONE_PATTERN = r"^[0-9]{10}$"

# Amounts are Decimal internally and JSON numbers on the wire.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class _CamelView(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BookingRequest(_CamelModel):
    """Body of POST /bookings and POST /public/bookings/batch."""

    resource_ids: list[str] = Field(..., min_length=1)
    occupant_name: str = Field(..., min_length=2, max_length=100)
    occupant_phone: str = Field(..., pattern=PHONE_PATTERN)
    occupant_id_proof: str | None = None
    occupant_id_proof_type: str | None = None
    occupant_address: str | None = None
    check_in: str
    check_out: str
    discount: Decimal = Field(Decimal("0"), ge=0)
    tax_enabled: bool = True
    advance_amount: Decimal = Field(Decimal("0"), ge=0)
    number_of_guests: int = Field(1, ge=1)

    @field_validator("occupant_name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if len(v.strip()) < 2:
            raise ValueError("occupantName must have at least 2 characters")
        return v.strip()

    @field_validator("resource_ids")
    @classmethod
    def resource_ids_not_blank(cls, v: list[str]) -> list[str]:
        if not any(rid.strip() for rid in v):
            raise ValueError("At least one room must be selected")
        return v


class BookedResource(_CamelView):
    resource_id: str
    resource_label: str
    resource_type: str


class BookingResponse(_CamelView):
    group_reference: str
    reservation_id: str
    resources: list[BookedResource]
    total_amount: Money
    check_in: datetime
    check_out: datetime
    status: str
    occupant_name: str
    occupant_phone: str
    message: str


class StatusChangeRequest(_CamelModel):
    status: Literal["CONFIRMED", "CHECKED_IN", "CHECKED_OUT", "CANCELLED"]
    note: str | None = None


class CheckoutRequest(_CamelModel):
    """Omit actualCheckOut to check out now."""

    actual_check_out: datetime | None = None


class PaymentRequest(_CamelModel):
    amount: Decimal = Field(..., gt=0)
    note: str | None = None


class PaymentCorrectionRequest(_CamelModel):
    paid_amount: Decimal = Field(..., ge=0)
    note: str | None = None


class ExtendStayRequest(_CamelModel):
    check_out: str


class ReservationView(_CamelView):
    id: str
    reference: str
    group_reference: str | None = None
    resource_id: str
    resource_label: str | None = None
    resource_type: str | None = None
    occupant_name: str | None = None
    check_in: datetime
    check_out: datetime
    number_of_guests: int
    subtotal: Money
    tax: Money
    discount: Money
    total_amount: Money
    paid_amount: Money
    balance_amount: Money
    tax_enabled: bool
    payment_status: str
    status: str
    source: str


class HistoryEntry(_CamelView):
    id: str
    action: str
    changes: list[dict]
    actor_id: str | None = None
    note: str | None = None
    recorded_at: datetime


class ErrorResponse(_CamelView):
    """Body of every non-2xx response."""

    error_code: str
    message: str


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation, availability or conflict error"},
    404: {"model": ErrorResponse, "description": "Unknown reservation"},
    500: {"model": ErrorResponse, "description": "Unexpected server error"},
    503: {"model": ErrorResponse, "description": "Transaction timed out, retry"},
}
