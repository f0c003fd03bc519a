"""Request correlation ids.

One id per HTTP request, taken from the X-Correlation-ID header when the
caller sends a usable one, otherwise generated. Held in a context variable
so log lines emitted anywhere during the request carry it.
"""

import re
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

CORRELATION_ID_HEADER = "X-Correlation-ID"

_current: ContextVar[str] = ContextVar("roomledger_correlation_id", default="")

# Header values are echoed back and logged verbatim
_ACCEPTABLE = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def resolve_correlation_id(header_value: str | None) -> str:
    """Use the inbound header value if it is short and printable, else a new id."""
    if header_value and _ACCEPTABLE.fullmatch(header_value):
        return header_value
    return generate_correlation_id()


def get_correlation_id() -> str:
    return _current.get()


def set_correlation_id(cid: str) -> Token[str]:
    return _current.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    _current.reset(token)


@contextmanager
def correlation_scope(cid: str) -> Iterator[str]:
    """Bind cid as the current correlation id for the duration of the block."""
    token = set_correlation_id(cid)
    try:
        yield cid
    finally:
        reset_correlation_id(token)
