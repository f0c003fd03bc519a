"""Reservation lifecycle after admission.

Status machine:
    PENDING     -> CONFIRMED, CANCELLED
    CONFIRMED   -> CHECKED_IN, CANCELLED
    CHECKED_IN  -> CHECKED_OUT
    CHECKED_OUT, CANCELLED: terminal

Every mutation locks the reservation row, applies the change and appends
an audit entry in the same transaction.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import psycopg2.errors
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

from roomledger.domain.audit import AuditAction, diff_fields, record_change
from roomledger.domain.availability import OUT_OF_SERVICE, check_conflict
from roomledger.domain.errors import (
    DateConflict,
    DateError,
    InvalidStatusTransition,
    ReservationNotFound,
    ResourceNotFound,
    ResourceUnavailable,
    ValidationError,
)
from roomledger.domain.pricing import (
    balance_due,
    compute_early_settlement,
    compute_price,
    normalize_interval,
    parse_stay_bound,
    payment_status,
    to_money,
)
from roomledger.infra.db import txn
from roomledger.infra.policy import BookingPolicy, get_policy
from roomledger.infra.repositories.reservations_repository import (
    get_reservation,
    update_reservation,
)
from roomledger.infra.repositories.resources_repository import get_resource
from roomledger.infra.repositories.slots_repository import release_slot
from roomledger.infra.time import to_naive_local

PENDING = "PENDING"
CONFIRMED = "CONFIRMED"
CHECKED_IN = "CHECKED_IN"
CHECKED_OUT = "CHECKED_OUT"
CANCELLED = "CANCELLED"

VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({CHECKED_IN, CANCELLED}),
    CHECKED_IN: frozenset({CHECKED_OUT}),
    CHECKED_OUT: frozenset(),
    CANCELLED: frozenset(),
}


def can_transition(current: str, requested: str) -> bool:
    return requested in VALID_TRANSITIONS.get(current, frozenset())


def validate_transition(current: str, requested: str) -> None:
    if not can_transition(current, requested):
        raise InvalidStatusTransition(current, requested)


def allowed_next_statuses(current: str) -> list[str]:
    return sorted(VALID_TRANSITIONS.get(current, frozenset()))


def _locked(cur: PgCursor, reservation_id: str) -> dict:
    reservation = get_reservation(cur, reservation_id, lock=True)
    if reservation is None:
        raise ReservationNotFound(reservation_id)
    return reservation


def _claim_interval(cur: PgCursor, reservation: dict, check_out: datetime) -> dict:
    """Lock the resource and make sure nothing else holds [check_in, check_out).

    Returns the locked resource row.
    """
    resource_id = reservation["resource_id"]
    resource = get_resource(cur, resource_id, lock=True)
    outcome = check_conflict(
        cur,
        resource_id=resource_id,
        check_in=reservation["check_in"],
        check_out=check_out,
        exclude_reservation_id=reservation["id"],
        resource=resource,
    )
    if outcome.reason == "not_found":
        raise ResourceNotFound(resource_id)
    if outcome.reason == "date_conflict":
        raise DateConflict(
            resource_id,
            resource["label"],
            conflicting_reservation_id=outcome.conflicting_reservation["id"],
        )
    return resource



def _apply(
    cur: PgCursor,
    reservation: dict,
    updates: dict,
    *,
    action: AuditAction,
    actor_id: str | None,
    note: str | None,
) -> dict:
    changes = diff_fields(reservation, updates)
    if not changes:
        return reservation
    update_reservation(cur, reservation["id"], **{c.field: c.new_value for c in changes})
    record_change(
        cur,
        reservation_id=reservation["id"],
        action=action,
        changes=changes,
        actor_id=actor_id,
        note=note,
    )
    return {**reservation, **updates}


def _budgets(policy: BookingPolicy) -> dict:
    return {
        "lock_timeout_ms": policy.lock_wait_ms,
        "total_timeout_ms": policy.transaction_timeout_ms,
    }


def transition_status(
    reservation_id: str,
    new_status: str,
    *,
    actor_id: str | None = None,
    note: str | None = None,
    policy: BookingPolicy | None = None,
    conn: PgConnection | None = None,
) -> dict:
    """Move a reservation to new_status.

    Re-requesting the current status is a no-op. CHECKED_OUT and CANCELLED
    free the check-in day slot. Confirming a PENDING reservation makes it
    active, so its interval is resolved like a new admission first.

    Raises:
        ReservationNotFound: Unknown reservation.
        InvalidStatusTransition: Transition not allowed from current status.
        ResourceUnavailable: Confirming onto an out-of-service resource.
        DateConflict: Confirming over another active reservation.
    """
    policy = policy or get_policy()
    with txn(conn, **_budgets(policy)) as cur:
        reservation = _locked(cur, reservation_id)
        if reservation["status"] == new_status:
            return reservation
        validate_transition(reservation["status"], new_status)

        resource = None
        if new_status == CONFIRMED:
            resource = _claim_interval(cur, reservation, reservation["check_out"])
            if resource["status"] == OUT_OF_SERVICE:
                raise ResourceUnavailable(resource["id"], resource["label"])

        if new_status in (CHECKED_OUT, CANCELLED) and reservation["slot_id"]:
            release_slot(cur, reservation["slot_id"])

        action = AuditAction.CANCELLED if new_status == CANCELLED else AuditAction.STATUS_CHANGED
        try:
            return _apply(
                cur,
                reservation,
                {"status": new_status},
                action=action,
                actor_id=actor_id,
                note=note or f"Status changed to {new_status}",
            )
        except psycopg2.errors.ExclusionViolation as exc:
            label = resource["label"] if resource else None
            raise DateConflict(reservation["resource_id"], label) from exc


def check_out_early(
    reservation_id: str,
    actual_check_out: datetime,
    *,
    actor_id: str | None = None,
    policy: BookingPolicy | None = None,
    conn: PgConnection | None = None,
) -> dict:
    """Check a guest out, settling the stay if they leave before the booked check-out.

    Early departures are recharged with compute_early_settlement (half-day
    floor below the minimum stay, every started day otherwise). Departures
    at or after the booked check-out keep the booked amounts.

    Raises:
        ReservationNotFound: Unknown reservation.
        InvalidStatusTransition: Reservation is not CHECKED_IN.
        DateError: actual_check_out is before check-in.
    """
    policy = policy or get_policy()
    # stored intervals are naive local wall-clock time
    actual_check_out = to_naive_local(actual_check_out)
    with txn(conn, **_budgets(policy)) as cur:
        reservation = _locked(cur, reservation_id)
        validate_transition(reservation["status"], CHECKED_OUT)

        if actual_check_out < reservation["check_in"]:
            raise DateError("Check-out cannot be before check-in")

        updates: dict = {"status": CHECKED_OUT}
        note = "Checked out"
        if actual_check_out < reservation["check_out"]:
            resource = get_resource(cur, reservation["resource_id"])
            if resource is None:
                raise ResourceNotFound(reservation["resource_id"])
            settlement = compute_early_settlement(
                reservation["check_in"],
                actual_check_out,
                resource["base_price"],
                reservation["tax_enabled"],
                policy=policy,
            )
            paid = reservation["paid_amount"]
            updates.update(
                {
                    "check_out": actual_check_out,
                    "subtotal": settlement.subtotal,
                    "tax": settlement.tax,
                    "discount": Decimal("0"),
                    "total_amount": settlement.total_amount,
                    "balance_amount": balance_due(settlement.total_amount, paid),
                    "payment_status": payment_status(settlement.total_amount, paid),
                }
            )
            note = (
                "Early checkout, minimum stay charge"
                if settlement.minimum_applied
                else f"Early checkout, {settlement.days_charged} day(s) charged"
            )

        if reservation["slot_id"]:
            release_slot(cur, reservation["slot_id"])

        return _apply(
            cur,
            reservation,
            updates,
            action=AuditAction.STATUS_CHANGED,
            actor_id=actor_id,
            note=note,
        )


def record_payment(
    reservation_id: str,
    amount: Decimal | int | float,
    *,
    actor_id: str | None = None,
    note: str | None = None,
    policy: BookingPolicy | None = None,
    conn: PgConnection | None = None,
) -> dict:
    """Add a payment to a reservation and recompute balance and payment status.

    Raises:
        ValidationError: Non-positive amount or cancelled reservation.
        ReservationNotFound: Unknown reservation.
    """
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be positive")

    policy = policy or get_policy()
    with txn(conn, **_budgets(policy)) as cur:
        reservation = _locked(cur, reservation_id)
        if reservation["status"] == CANCELLED:
            raise ValidationError("Cannot record a payment on a cancelled reservation")

        paid = reservation["paid_amount"] + amount
        total = reservation["total_amount"]
        return _apply(
            cur,
            reservation,
            {
                "paid_amount": paid,
                "balance_amount": balance_due(total, paid),
                "payment_status": payment_status(total, paid),
            },
            action=AuditAction.PAYMENT_RECEIVED,
            actor_id=actor_id,
            note=note or f"Payment received: {amount}",
        )


def correct_payment(
    reservation_id: str,
    paid_amount: Decimal | int | float,
    *,
    actor_id: str | None = None,
    note: str | None = None,
    policy: BookingPolicy | None = None,
    conn: PgConnection | None = None,
) -> dict:
    """Overwrite the paid amount (e.g. a mistyped payment).

    Raises:
        ValidationError: Negative amount.
        ReservationNotFound: Unknown reservation.
    """
    paid = to_money(paid_amount)
    if paid < 0:
        raise ValidationError("Paid amount cannot be negative")

    policy = policy or get_policy()
    with txn(conn, **_budgets(policy)) as cur:
        reservation = _locked(cur, reservation_id)
        total = reservation["total_amount"]
        return _apply(
            cur,
            reservation,
            {
                "paid_amount": paid,
                "balance_amount": balance_due(total, paid),
                "payment_status": payment_status(total, paid),
            },
            action=AuditAction.PAYMENT_CORRECTED,
            actor_id=actor_id,
            note=note or "Payment corrected",
        )


def extend_stay(
    reservation_id: str,
    new_check_out: str | date | datetime,
    *,
    actor_id: str | None = None,
    policy: BookingPolicy | None = None,
    conn: PgConnection | None = None,
) -> dict:
    """Push back the check-out of an active reservation and reprice it.

    The extended interval is re-checked against other reservations on the
    same resource (excluding this one). The discount already granted is
    kept, subject to the usual cap.

    Raises:
        ReservationNotFound: Unknown reservation.
        InvalidStatusTransition: Reservation is not CONFIRMED or CHECKED_IN.
        DateError: New check-out is not after the current one.
        DateConflict: Another reservation occupies the extension.
    """
    policy = policy or get_policy()
    # fail on a malformed value before taking any lock
    parse_stay_bound(new_check_out, end_of_day=True)

    with txn(conn, **_budgets(policy)) as cur:
        reservation = _locked(cur, reservation_id)
        if reservation["status"] not in (CONFIRMED, CHECKED_IN):
            raise InvalidStatusTransition(reservation["status"], "EXTENDED")
        interval = normalize_interval(reservation["check_in"], new_check_out)
        check_out, billing_end = interval.check_out, interval.billing_check_out
        if check_out <= reservation["check_out"]:
            raise DateError("New check-out must be after the current check-out")

        resource = _claim_interval(cur, reservation, check_out)

        price = compute_price(
            resource["base_price"],
            reservation["check_in"],
            billing_end,
            reservation["discount"],
            tax_enabled=reservation["tax_enabled"],
            policy=policy,
        )
        paid = reservation["paid_amount"]
        try:
            return _apply(
                cur,
                reservation,
                {
                    "check_out": check_out,
                    "subtotal": price.subtotal,
                    "tax": price.tax,
                    "discount": price.discount_amount,
                    "total_amount": price.total_amount,
                    "balance_amount": balance_due(price.total_amount, paid),
                    "payment_status": payment_status(price.total_amount, paid),
                },
                action=AuditAction.EXTENDED,
                actor_id=actor_id,
                note=f"Stay extended to {check_out.isoformat()}",
            )
        except psycopg2.errors.ExclusionViolation as exc:
            raise DateConflict(reservation["resource_id"], resource["label"]) from exc
