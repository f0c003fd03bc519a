"""Booking policy settings.

Loads the admission/pricing policy constants from environment variables,
falling back to the house defaults when a variable is not set.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation


@dataclass(frozen=True)
class BookingPolicy:
    """Policy constants for admission and pricing.

    Attributes:
        minimum_stay_hours: Shortest bookable interval; also the early
                            settlement threshold.
        max_stay_days: Longest bookable interval in days. None disables it.
        tax_rate: Tax applied to the subtotal when tax is enabled.
        discount_cap_ratio: Maximum discount as a share of the base amount.
        lock_wait_ms: Maximum wait for a row lock during admission.
        transaction_timeout_ms: Maximum duration of one admission transaction.
        id_prefix: Prefix for sequential reservation ids.
        id_width: Zero-padding width of the numeric id suffix.
    """

    minimum_stay_hours: int = 12
    max_stay_days: int | None = None
    tax_rate: Decimal = Decimal("0.18")
    discount_cap_ratio: Decimal = Decimal("0.5")
    lock_wait_ms: int = 15000
    transaction_timeout_ms: int = 45000
    id_prefix: str = "RES"
    id_width: int = 4


DEFAULT_POLICY = BookingPolicy()


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def _env_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise RuntimeError(f"{name} must be a decimal number, got {raw!r}") from exc


def get_policy() -> BookingPolicy:
    """Load the booking policy.

    Priority:
    1. Environment variables (ROOMLEDGER_*)
    2. Built-in defaults

    Raises:
        RuntimeError: If a variable is set to a malformed value.
    """
    d = DEFAULT_POLICY
    return BookingPolicy(
        minimum_stay_hours=_env_int("ROOMLEDGER_MIN_STAY_HOURS", d.minimum_stay_hours),
        max_stay_days=_env_int("ROOMLEDGER_MAX_STAY_DAYS", d.max_stay_days),
        tax_rate=_env_decimal("ROOMLEDGER_TAX_RATE", d.tax_rate),
        discount_cap_ratio=_env_decimal(
            "ROOMLEDGER_DISCOUNT_CAP_RATIO", d.discount_cap_ratio
        ),
        lock_wait_ms=_env_int("ROOMLEDGER_LOCK_WAIT_MS", d.lock_wait_ms),
        transaction_timeout_ms=_env_int(
            "ROOMLEDGER_TXN_TIMEOUT_MS", d.transaction_timeout_ms
        ),
        id_prefix=os.environ.get("ROOMLEDGER_ID_PREFIX") or d.id_prefix,
        id_width=_env_int("ROOMLEDGER_ID_WIDTH", d.id_width),
    )
