"""Reservation identifiers.

Two independent schemes:

- Sequential id, e.g. RES0042: backed by an atomic counter row in
  id_counters, incremented with an UPSERT on the caller's cursor so it
  sees uncommitted rows of the same transaction and holds the counter row
  lock until commit. The first use of a prefix seeds the counter from the
  highest numeric suffix already present in reservations.
- Short reference code, e.g. K7MQ2XPA: customer-facing lookup key drawn
  from an alphabet without 0/O and 1/I/L, so it can be read out over the
  phone.
"""

from __future__ import annotations

import hashlib
import random
import secrets
import time
from typing import Callable

from psycopg2.extensions import cursor as PgCursor

from roomledger.infra.policy import DEFAULT_POLICY, BookingPolicy
from roomledger.observability.logging import get_logger

logger = get_logger(__name__)

REFERENCE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
REFERENCE_LENGTH = 8
MAX_REFERENCE_ATTEMPTS = 10

_system_random = secrets.SystemRandom()


def format_sequential_id(prefix: str, number: int, width: int) -> str:
    """Format as prefix + zero-padded number (wider numbers are not truncated)."""
    return f"{prefix}{number:0{width}d}"


def parse_sequential_suffix(identifier: str, prefix: str) -> int | None:
    """Numeric suffix of identifier, or None if it is not prefix + digits."""
    if not identifier.startswith(prefix):
        return None
    suffix = identifier[len(prefix):]
    if not suffix.isdigit():
        return None
    return int(suffix)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _scan_next_number(cur: PgCursor, prefix: str) -> int:
    """max(existing numeric suffix) + 1 over reservations with prefix."""
    cur.execute(
        "SELECT id FROM reservations WHERE id LIKE %s",
        (_escape_like(prefix) + "%",),
    )
    numbers = [
        n
        for n in (parse_sequential_suffix(row[0], prefix) for row in cur.fetchall())
        if n is not None
    ]
    return max(numbers) + 1 if numbers else 1


def _reservation_id_exists(cur: PgCursor, reservation_id: str) -> bool:
    cur.execute("SELECT 1 FROM reservations WHERE id = %s", (reservation_id,))
    return cur.fetchone() is not None


def next_sequential_id(
    cur: PgCursor,
    *,
    policy: BookingPolicy = DEFAULT_POLICY,
) -> str:
    """Allocate the next sequential reservation id.

    Steps:
    1. Increment the counter row for the prefix (row-locked until commit).
    2. If the prefix has no counter yet, seed it by scanning existing ids.
    3. Re-check the candidate against reservations; on collision take the
       next number once, without re-checking.

    Args:
        cur: Database cursor of the caller's transaction.
        policy: Supplies id_prefix and id_width.

    Returns:
        New identifier, e.g. "RES0042".
    """
    prefix = policy.id_prefix

    cur.execute(
        """
        UPDATE id_counters
        SET last_value = last_value + 1
        WHERE prefix = %s
        RETURNING last_value
        """,
        (prefix,),
    )
    row = cur.fetchone()

    if row is None:
        seed = _scan_next_number(cur, prefix)
        # Two first-users race on the insert; the loser increments instead.
        cur.execute(
            """
            INSERT INTO id_counters (prefix, last_value)
            VALUES (%s, %s)
            ON CONFLICT (prefix) DO UPDATE
            SET last_value = id_counters.last_value + 1
            RETURNING last_value
            """,
            (prefix, seed),
        )
        row = cur.fetchone()

    number = int(row[0])
    candidate = format_sequential_id(prefix, number, policy.id_width)

    if _reservation_id_exists(cur, candidate):
        number += 1
        logger.warning(
            "sequential id collision",
            extra={"extra_fields": {"prefix": prefix, "collided": candidate}},
        )
        cur.execute(
            "UPDATE id_counters SET last_value = GREATEST(last_value, %s) WHERE prefix = %s",
            (number, prefix),
        )
        candidate = format_sequential_id(prefix, number, policy.id_width)

    return candidate


def reference_in_use(cur: PgCursor, code: str) -> bool:
    cur.execute(
        """
        SELECT 1 FROM reservations
        WHERE reference = %s OR group_reference = %s
        LIMIT 1
        """,
        (code, code),
    )
    return cur.fetchone() is not None


def random_reference(rng: random.Random) -> str:
    return "".join(rng.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_LENGTH))


def fallback_reference(timestamp_ns: int, salt: str) -> str:
    """Deterministic code from a timestamp and salt, in the same alphabet."""
    digest = hashlib.sha256(f"{timestamp_ns}:{salt}".encode()).digest()
    size = len(REFERENCE_ALPHABET)
    return "".join(REFERENCE_ALPHABET[b % size] for b in digest[:REFERENCE_LENGTH])


def generate_reference_code(
    cur: PgCursor,
    *,
    rng: random.Random | None = None,
    clock_ns: Callable[[], int] = time.time_ns,
) -> str:
    """Generate a unique short reference code.

    Tries up to MAX_REFERENCE_ATTEMPTS random candidates; if all collide,
    returns a timestamp-derived code without further checks so the call
    always terminates.
    """
    rng = rng or _system_random
    for _ in range(MAX_REFERENCE_ATTEMPTS):
        candidate = random_reference(rng)
        if not reference_in_use(cur, candidate):
            return candidate

    code = fallback_reference(clock_ns(), secrets.token_hex(8))
    logger.warning(
        "reference code attempts exhausted, using fallback",
        extra={"extra_fields": {"attempts": MAX_REFERENCE_ATTEMPTS}},
    )
    return code
