"""Reservation audit trail.

Every state transition of a reservation appends one history entry with a
field-level diff. Entries are never updated or deleted.

Audit is best-effort relative to the write it describes: the insert runs
inside a SAVEPOINT, and a storage failure is logged and rolled back to the
savepoint so the enclosing transaction (and the reservation it commits)
is unaffected.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping

import psycopg2
from psycopg2.extensions import cursor as PgCursor

from roomledger.infra.repositories.audit_repository import insert_history, list_history
from roomledger.observability.logging import get_logger

logger = get_logger(__name__)

_SAVEPOINT = "audit_entry"


class AuditAction(str, Enum):
    CREATED = "CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_CORRECTED = "PAYMENT_CORRECTED"
    EXTENDED = "EXTENDED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class FieldChange:
    field: str
    old_value: Any
    new_value: Any

    def as_dict(self) -> dict[str, Any]:
        return {"field": self.field, "old_value": self.old_value, "new_value": self.new_value}


def initial_fields(values: Mapping[str, Any]) -> list[FieldChange]:
    """One change per initialized field (old value None), in mapping order."""
    return [FieldChange(field, None, value) for field, value in values.items()]


def diff_fields(before: Mapping[str, Any], after: Mapping[str, Any]) -> list[FieldChange]:
    """Changes for every key of after whose value differs from before."""
    return [
        FieldChange(field, before.get(field), value)
        for field, value in after.items()
        if before.get(field) != value
    ]


def record_change(
    cur: PgCursor,
    *,
    reservation_id: str,
    action: AuditAction,
    changes: Iterable[FieldChange] | None = None,
    actor_id: str | None = None,
    note: str | None = None,
) -> str | None:
    """Append a history entry for a reservation.

    Args:
        cur: Cursor of the transaction performing the change.
        reservation_id: Reservation the entry refers to.
        action: What happened.
        changes: Field-level diff.
        actor_id: Staff member responsible, if known.
        note: Free-text note.

    Returns:
        The history entry id, or None if the write failed (failure is logged).
    """
    payload = [c.as_dict() for c in changes] if changes is not None else None

    cur.execute(f"SAVEPOINT {_SAVEPOINT}")
    try:
        entry_id = insert_history(
            cur,
            reservation_id=reservation_id,
            action=action.value,
            changes=payload,
            actor_id=actor_id,
            note=note,
        )
    except psycopg2.Error:
        logger.exception(
            "audit write failed",
            extra={
                "extra_fields": {
                    "reservation_id": reservation_id,
                    "action": action.value,
                }
            },
        )
        cur.execute(f"ROLLBACK TO SAVEPOINT {_SAVEPOINT}")
        return None

    cur.execute(f"RELEASE SAVEPOINT {_SAVEPOINT}")
    return entry_id


def get_history(cur: PgCursor, reservation_id: str, *, limit: int = 50) -> list[dict]:
    """History entries for a reservation, newest first."""
    return list_history(cur, reservation_id, limit=limit)
