"""Interval validation and stay pricing.

Pure functions, no I/O. All amounts are Decimal currency units; the only
rounding step is the tax line (half-up to whole units), so batch totals
never accumulate per-room rounding error.

Day counting uses ceiling division over the stay duration:
    days = max(1, ceil((check_out - check_in) / 24h))
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Sequence

from roomledger.domain.errors import DateError
from roomledger.infra.policy import DEFAULT_POLICY, BookingPolicy
from roomledger.infra.time import local_now, start_of_day, to_naive_local

DATE_ONLY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Early departures below the minimum stay still owe half a day.
HALF_DAY_RATIO = Decimal("0.5")

_DAY = timedelta(days=1)
_CENT = Decimal("0.01")
_UNIT = Decimal("1")
_ZERO = Decimal("0")


@dataclass(frozen=True)
class StayInterval:
    """Normalized stay bounds.

    check_out is the occupancy end used for validation and overlap checks.
    billing_check_out is the end used for day counting: for a date-only
    check-out it is midnight of that date instead of 23:59:59.999, so
    "2025-06-01" -> "2025-06-03" bills two days.
    """

    check_in: datetime
    check_out: datetime
    billing_check_out: datetime


@dataclass(frozen=True)
class PriceBreakdown:
    days: int
    base_amount: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    tax: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class SettlementBreakdown:
    hours: Decimal
    days_charged: int
    minimum_applied: bool
    subtotal: Decimal
    tax: Decimal
    total_amount: Decimal


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Coerce a numeric value to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def is_date_only(value: str) -> bool:
    return bool(DATE_ONLY_PATTERN.match(value.strip()))


def parse_stay_bound(value: str | date | datetime, *, end_of_day: bool) -> datetime:
    """Parse a check-in/check-out value into a naive datetime.

    Date-only input ("YYYY-MM-DD" or a date object) maps to 00:00:00.000 of
    that day, or 23:59:59.999 when end_of_day is True. Full instants are kept
    as-is (aware values are converted to local naive time).

    Raises:
        DateError: If the string is not a valid date or datetime.
    """
    if isinstance(value, datetime):
        return to_naive_local(value)
    if isinstance(value, date):
        day = datetime(value.year, value.month, value.day)
    else:
        text = value.strip()
        try:
            if is_date_only(text):
                day = datetime.strptime(text, "%Y-%m-%d")
            else:
                # fromisoformat() on older interpreters rejects a trailing Z
                if text.endswith("Z"):
                    text = text[:-1] + "+00:00"
                return to_naive_local(datetime.fromisoformat(text))
        except ValueError as exc:
            raise DateError(f"Invalid date: {value!r}") from exc

    if end_of_day:
        return day.replace(hour=23, minute=59, second=59, microsecond=999000)
    return day


def normalize_interval(
    check_in: str | date | datetime, check_out: str | date | datetime
) -> StayInterval:
    """Normalize raw request bounds into a StayInterval."""
    start = parse_stay_bound(check_in, end_of_day=False)
    end = parse_stay_bound(check_out, end_of_day=True)

    date_only_out = (isinstance(check_out, date) and not isinstance(check_out, datetime)) or (
        isinstance(check_out, str) and is_date_only(check_out)
    )
    billing_end = start_of_day(end) if date_only_out else end
    return StayInterval(check_in=start, check_out=end, billing_check_out=billing_end)


def validate_interval(
    check_in: datetime,
    check_out: datetime,
    now: datetime | None = None,
    *,
    policy: BookingPolicy = DEFAULT_POLICY,
) -> None:
    """Validate a stay interval against policy.

    Raises:
        DateError: If check-in is before today, check-out is not after
            check-in, the stay is shorter than the minimum stay, or (when
            configured) longer than the maximum stay.
    """
    if now is None:
        now = local_now()

    if check_in < start_of_day(now):
        raise DateError("Check-in date cannot be in the past")

    if check_out <= check_in:
        raise DateError("Check-out date must be after check-in date")

    if check_out - check_in < timedelta(hours=policy.minimum_stay_hours):
        raise DateError(f"Minimum stay is {policy.minimum_stay_hours} hours")

    if policy.max_stay_days is not None and stay_days(check_in, check_out) > policy.max_stay_days:
        raise DateError(f"Maximum stay is {policy.max_stay_days} days")


def stay_days(check_in: datetime, check_out: datetime) -> int:
    """Number of billable days: ceiling of the duration in days, at least 1."""
    delta = check_out - check_in
    return max(1, -((-delta) // _DAY))


def _tax(subtotal: Decimal, tax_enabled: bool, rate: Decimal) -> Decimal:
    if not tax_enabled:
        return _ZERO
    return (subtotal * rate).quantize(_UNIT, rounding=ROUND_HALF_UP)


def compute_price(
    base_price: Decimal | int | float,
    check_in: datetime,
    check_out: datetime,
    discount: Decimal | int | float = 0,
    *,
    tax_enabled: bool = True,
    policy: BookingPolicy = DEFAULT_POLICY,
) -> PriceBreakdown:
    """Price a stay for one resource.

    The discount is capped at discount_cap_ratio of the base amount.
    """
    days = stay_days(check_in, check_out)
    base_amount = to_money(base_price) * days
    requested = max(_ZERO, to_money(discount))
    discount_amount = min(requested, base_amount * policy.discount_cap_ratio)
    subtotal = base_amount - discount_amount
    tax = _tax(subtotal, tax_enabled, policy.tax_rate)

    return PriceBreakdown(
        days=days,
        base_amount=base_amount,
        discount_amount=discount_amount,
        subtotal=subtotal,
        tax=tax,
        total_amount=subtotal + tax,
    )


def compute_early_settlement(
    check_in: datetime,
    actual_check_out: datetime,
    base_price: Decimal | int | float,
    tax_enabled: bool = True,
    *,
    policy: BookingPolicy = DEFAULT_POLICY,
) -> SettlementBreakdown:
    """Amount owed by a guest leaving before the booked check-out.

    Below the minimum stay a flat half-day charge applies; otherwise every
    started day is charged.
    """
    price = to_money(base_price)
    elapsed = actual_check_out - check_in
    hours = Decimal(int(elapsed.total_seconds())) / 3600

    if elapsed < timedelta(hours=policy.minimum_stay_hours):
        days_charged = 0
        subtotal = price * HALF_DAY_RATIO
        minimum_applied = True
    else:
        days_charged = stay_days(check_in, actual_check_out)
        subtotal = price * days_charged
        minimum_applied = False

    tax = _tax(subtotal, tax_enabled, policy.tax_rate)
    return SettlementBreakdown(
        hours=hours,
        days_charged=days_charged,
        minimum_applied=minimum_applied,
        subtotal=subtotal,
        tax=tax,
        total_amount=subtotal + tax,
    )


def split_pro_rata(
    amount: Decimal | int | float, weights: Sequence[Decimal | int | float]
) -> list[Decimal]:
    """Distribute amount over weights, in cents, summing exactly to amount.

    Every share but the last is rounded down to the cent; the last share
    takes the remainder. Zero total weight splits evenly.
    """
    total = to_money(amount)
    if not weights:
        return []
    ws = [to_money(w) for w in weights]
    weight_sum = sum(ws, _ZERO)
    if weight_sum <= 0:
        ws = [_UNIT] * len(ws)
        weight_sum = Decimal(len(ws))

    shares = [
        (total * w / weight_sum).quantize(_CENT, rounding=ROUND_DOWN) for w in ws[:-1]
    ]
    shares.append(total - sum(shares, _ZERO))
    return shares


def payment_status(total_amount: Decimal, paid_amount: Decimal) -> str:
    if paid_amount >= total_amount:
        return "PAID"
    if paid_amount > 0:
        return "PARTIAL"
    return "PENDING"


def balance_due(total_amount: Decimal, paid_amount: Decimal) -> Decimal:
    return max(_ZERO, total_amount - paid_amount)
