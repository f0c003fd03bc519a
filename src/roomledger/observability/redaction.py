"""Occupant-data redaction for log payloads.

Occupant phone, name, identity proof and address never reach a log line
in clear. Known occupant fields get a field-specific mask; everything else
is reduced to its shape.
"""

import re
from typing import Any, Callable

_REDACTED = "[REDACTED]"

# 10+ digit runs, optionally with separators or a leading +
_PHONE_RUN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL = re.compile(r"[\w.%+-]+@[\w.-]+\.[a-zA-Z]{2,}")


def mask_phone(phone: str | None) -> str:
    """Keep only the last four digits of a phone number ("******1234")."""
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) < 4:
        return _REDACTED
    return "*" * (len(digits) - 4) + digits[-4:]


def mask_name(name: str | None) -> str:
    """Reduce a person's name to initials ("Asha Rao" -> "A. R.")."""
    parts = (name or "").split()
    if not parts:
        return _REDACTED
    return " ".join(f"{p[0].upper()}." for p in parts)


def redact_string(value: str) -> str:
    """Scrub phone numbers and e-mail addresses out of free text."""
    return _EMAIL.sub(_REDACTED, _PHONE_RUN.sub(_REDACTED, value))


def _hide(_value: Any) -> str:
    return _REDACTED


_OCCUPANT_MASKS: dict[str, Callable[[Any], str]] = {
    "occupant_phone": mask_phone,
    "phone": mask_phone,
    "occupant_name": mask_name,
    "name": mask_name,
    "occupant_id_proof": _hide,
    "id_proof": _hide,
    "occupant_address": _hide,
    "address": _hide,
}


def redact_value(value: Any) -> str:
    """Render a value for logging without exposing its content."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return f"dict(keys={sorted(value)})"
    if isinstance(value, (list, tuple, set)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build an extra_fields dict where every value is masked or redacted."""
    return {
        key: _OCCUPANT_MASKS.get(key, redact_value)(value)
        for key, value in kwargs.items()
    }
