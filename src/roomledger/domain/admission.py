"""Admission domain logic - transactional multi-resource booking.

Validates a reservation request, resolves availability for every requested
resource and commits the occupant, slots, reservations and audit entries in
a single transaction. Either every resource is booked or nothing is.

Per-request stages (terminal outcome only):
    RECEIVED -> VALIDATING -> RESOLVING -> ALLOCATING -> COMMITTED
with a REJECTED exit from each of the last three.

Concurrent admissions for the same resource are serialized by a FOR UPDATE
lock on the resource row, taken in sorted id order so two batches naming
the same rooms in different orders cannot deadlock. The no-overlap
exclusion constraint on reservations is the storage-level backstop.

Not idempotent: submitting the same payload twice books twice. Request
deduplication belongs to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

import psycopg2.errors
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

from roomledger.domain.audit import AuditAction, initial_fields, record_change
from roomledger.domain.availability import OUT_OF_SERVICE, check_conflict
from roomledger.domain.errors import (
    BookingError,
    DateConflict,
    ResourceNotFound,
    ResourceUnavailable,
    ValidationError,
)
from roomledger.domain.identifiers import generate_reference_code, next_sequential_id
from roomledger.domain.pricing import (
    PriceBreakdown,
    StayInterval,
    balance_due,
    compute_price,
    normalize_interval,
    payment_status,
    split_pro_rata,
    to_money,
    validate_interval,
)
from roomledger.infra.db import txn
from roomledger.infra.policy import BookingPolicy, get_policy
from roomledger.infra.repositories.occupants_repository import insert_occupant
from roomledger.infra.repositories.reservations_repository import insert_reservation
from roomledger.infra.repositories.resources_repository import get_resource
from roomledger.infra.repositories.slots_repository import insert_slot
from roomledger.observability.logging import get_logger
from roomledger.observability.redaction import mask_phone

logger = get_logger(__name__)

CONFIRMED = "CONFIRMED"


class Source(str, Enum):
    STAFF = "STAFF"
    ONLINE = "ONLINE"


class AdmissionStage(str, Enum):
    RECEIVED = "RECEIVED"
    VALIDATING = "VALIDATING"
    RESOLVING = "RESOLVING"
    ALLOCATING = "ALLOCATING"
    COMMITTED = "COMMITTED"


@dataclass(frozen=True)
class AdmissionRequest:
    """A validated booking request, as handed over by the HTTP boundary."""

    resource_ids: list[str]
    occupant_name: str
    occupant_phone: str
    check_in: str | date | datetime
    check_out: str | date | datetime
    occupant_id_proof: str | None = None
    occupant_id_proof_type: str | None = None
    occupant_address: str | None = None
    discount: Decimal = Decimal("0")
    tax_enabled: bool = True
    advance_amount: Decimal = Decimal("0")
    number_of_guests: int = 1


@dataclass(frozen=True)
class AdmissionResult:
    group_reference: str
    check_in: datetime
    check_out: datetime
    occupant_id: str
    occupant_name: str
    occupant_phone: str
    total_amount: Decimal
    status: str = CONFIRMED
    reservations: list[dict] = field(default_factory=list)

    @property
    def resources(self) -> list[dict]:
        return [
            {
                "resource_id": r["resource_id"],
                "resource_label": r["resource_label"],
                "resource_type": r["resource_type"],
            }
            for r in self.reservations
        ]


def dedupe_resource_ids(resource_ids: list[str]) -> list[str]:
    """Strip blanks and duplicates, keeping first-seen order."""
    return list(dict.fromkeys(rid.strip() for rid in resource_ids if rid and rid.strip()))


def member_reference(group_reference: str, position: int) -> str:
    """Reference of the position-th reservation (1-based) in a batch.

    The first reservation carries the group reference itself; the n-th
    (n >= 2) carries "<group>-<n>".
    """
    if position == 1:
        return group_reference
    return f"{group_reference}-{position}"


def _lock_resources(cur: PgCursor, resource_ids: list[str]) -> dict[str, dict | None]:
    return {rid: get_resource(cur, rid, lock=True) for rid in sorted(resource_ids)}


def _resolve(
    cur: PgCursor, resource_ids: list[str], interval: StayInterval
) -> list[dict]:
    """Lock and check every resource in request order; fail fast."""
    locked = _lock_resources(cur, resource_ids)
    resolved = []
    for rid in resource_ids:
        resource = locked[rid]
        if resource is None:
            raise ResourceNotFound(rid)
        if resource["status"] == OUT_OF_SERVICE:
            raise ResourceUnavailable(rid, resource["label"])

        outcome = check_conflict(
            cur,
            resource_id=rid,
            check_in=interval.check_in,
            check_out=interval.check_out,
            resource=resource,
        )
        if not outcome.available:
            conflicting = outcome.conflicting_reservation or {}
            raise DateConflict(
                rid,
                resource["label"],
                conflicting_reservation_id=conflicting.get("id"),
                existing_check_in=conflicting.get("check_in"),
                existing_check_out=conflicting.get("check_out"),
            )
        resolved.append(resource)
    return resolved


def _price_batch(
    resources: list[dict],
    interval: StayInterval,
    request: AdmissionRequest,
    policy: BookingPolicy,
) -> tuple[list[PriceBreakdown], list[Decimal]]:
    """Price every resource and split discount and advance across the batch.

    The discount is distributed pro-rata by base price; the advance
    pro-rata by each reservation's total.
    """
    discount_shares = split_pro_rata(
        request.discount, [to_money(r["base_price"]) for r in resources]
    )
    prices = [
        compute_price(
            r["base_price"],
            interval.check_in,
            interval.billing_check_out,
            share,
            tax_enabled=request.tax_enabled,
            policy=policy,
        )
        for r, share in zip(resources, discount_shares)
    ]
    advance_shares = split_pro_rata(
        request.advance_amount, [p.total_amount for p in prices]
    )
    return prices, advance_shares


def _allocate(
    cur: PgCursor,
    *,
    resources: list[dict],
    interval: StayInterval,
    request: AdmissionRequest,
    occupant_id: str,
    group_reference: str,
    source: Source,
    actor_id: str | None,
    policy: BookingPolicy,
) -> list[dict]:
    prices, advance_shares = _price_batch(resources, interval, request, policy)
    batch_size = len(resources)
    created = []

    for position, (resource, price, advance) in enumerate(
        zip(resources, prices, advance_shares), start=1
    ):
        slot_id = insert_slot(
            cur,
            resource_id=resource["id"],
            slot_date=interval.check_in.date(),
            price=resource["base_price"],
        )
        reservation_id = next_sequential_id(cur, policy=policy)
        reference = member_reference(group_reference, position)

        values = {
            "id": reservation_id,
            "reference": reference,
            "group_reference": group_reference,
            "resource_id": resource["id"],
            "occupant_id": occupant_id,
            "slot_id": slot_id,
            "check_in": interval.check_in,
            "check_out": interval.check_out,
            "number_of_guests": request.number_of_guests,
            "subtotal": price.subtotal,
            "tax": price.tax,
            "discount": price.discount_amount,
            "total_amount": price.total_amount,
            "paid_amount": advance,
            "balance_amount": balance_due(price.total_amount, advance),
            "tax_enabled": request.tax_enabled,
            "payment_status": payment_status(price.total_amount, advance),
            "status": CONFIRMED,
            "source": source.value,
        }

        try:
            insert_reservation(
                cur,
                reservation_id=reservation_id,
                **{k: v for k, v in values.items() if k != "id"},
            )
        except psycopg2.errors.ExclusionViolation as exc:
            raise DateConflict(resource["id"], resource["label"]) from exc

        record_change(
            cur,
            reservation_id=reservation_id,
            action=AuditAction.CREATED,
            changes=initial_fields(values),
            actor_id=actor_id,
            note=f"Batch booking ({position}/{batch_size}). Reference: {group_reference}.",
        )

        created.append(
            {
                **values,
                "days": price.days,
                "resource_label": resource["label"],
                "resource_type": resource["resource_type"],
            }
        )

    return created


def admit_reservation(
    request: AdmissionRequest,
    *,
    source: Source = Source.STAFF,
    actor_id: str | None = None,
    now: datetime | None = None,
    policy: BookingPolicy | None = None,
    conn: PgConnection | None = None,
) -> AdmissionResult:
    """Admit a single- or multi-resource reservation request.

    This function:
    1. Deduplicates the resource list (order preserved)
    2. Normalizes and validates the interval
    3. Inside one transaction (bounded by the policy lock/duration budgets):
       - Creates one occupant for the batch
       - Generates one group reference
       - Locks each resource, rejects missing/out-of-service ones and
         date conflicts, in request order
       - Per resource: slot, price, sequential id, reservation row and
         CREATED audit entry
    4. Commits; on any failure nothing is persisted

    Args:
        request: Booking request.
        source: STAFF (front desk) or ONLINE (self-service).
        actor_id: Staff member submitting the request, if known.
        now: Clock override for interval validation.
        policy: Policy override (defaults to get_policy()).
        conn: Optional existing connection.

    Returns:
        AdmissionResult with every created reservation and the batch total.

    Raises:
        ValidationError: Empty resource list.
        DateError: Invalid or policy-violating interval.
        ResourceNotFound: A resource id does not exist.
        ResourceUnavailable: A resource is out of service.
        DateConflict: A resource is already booked for the interval.
        TransactionTimeout: Lock-wait or duration budget exceeded (retryable).
    """
    policy = policy or get_policy()
    stage = AdmissionStage.RECEIVED

    try:
        stage = AdmissionStage.VALIDATING
        resource_ids = dedupe_resource_ids(request.resource_ids)
        if not resource_ids:
            raise ValidationError("At least one room must be selected")

        interval = normalize_interval(request.check_in, request.check_out)
        validate_interval(interval.check_in, interval.check_out, now, policy=policy)

        with txn(
            conn,
            lock_timeout_ms=policy.lock_wait_ms,
            total_timeout_ms=policy.transaction_timeout_ms,
        ) as cur:
            occupant_id = insert_occupant(
                cur,
                name=request.occupant_name,
                phone=request.occupant_phone,
                id_proof=request.occupant_id_proof,
                id_proof_type=request.occupant_id_proof_type,
                address=request.occupant_address,
            )
            group_reference = generate_reference_code(cur)

            stage = AdmissionStage.RESOLVING
            resources = _resolve(cur, resource_ids, interval)

            stage = AdmissionStage.ALLOCATING
            created = _allocate(
                cur,
                resources=resources,
                interval=interval,
                request=request,
                occupant_id=occupant_id,
                group_reference=group_reference,
                source=source,
                actor_id=actor_id,
                policy=policy,
            )
    except BookingError as exc:
        logger.warning(
            "admission rejected",
            extra={
                "extra_fields": {
                    "stage": stage.value,
                    "error_code": exc.code,
                    "resource_id": getattr(exc, "resource_id", None),
                    "resource_count": len(request.resource_ids),
                }
            },
        )
        raise

    total = sum((r["total_amount"] for r in created), Decimal("0"))
    logger.info(
        "admission committed",
        extra={
            "extra_fields": {
                "stage": AdmissionStage.COMMITTED.value,
                "group_reference": group_reference,
                "reservation_ids": [r["id"] for r in created],
                "source": source.value,
                "occupant_phone": mask_phone(request.occupant_phone),
                "total_amount": str(total),
            }
        },
    )

    return AdmissionResult(
        group_reference=group_reference,
        check_in=interval.check_in,
        check_out=interval.check_out,
        occupant_id=occupant_id,
        occupant_name=request.occupant_name,
        occupant_phone=request.occupant_phone,
        total_amount=total,
        reservations=created,
    )
