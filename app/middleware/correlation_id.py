"""
Request correlation ids.

Every request gets an id, taken from X-Correlation-ID when the caller sends a
usable one and generated otherwise. The id is echoed on the response, stored on
request.state and in a contextvar, so webhook turns, SystemEvents and log lines
(via CorrelationIdLogFilter) all carry the same value.
"""

import logging
import re
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

HEADER_CORRELATION_ID = "X-Correlation-ID"

# Meta does not send one; retries through proxies or replay scripts may
_VALID_INCOMING = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id(request: Request | None = None) -> str | None:
    """Correlation id of the current request (request.state first, then contextvar)."""
    if request is not None:
        cid = getattr(request.state, "correlation_id", None)
        if cid:
            return cid
    return _correlation_id_var.get()


def _incoming_or_new(header_value: str | None) -> str:
    value = (header_value or "").strip()
    if _VALID_INCOMING.match(value):
        return value
    return str(uuid.uuid4())


class CorrelationIdLogFilter(logging.Filter):
    """Adds record.correlation_id ("-" outside a request) for the log format."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = _correlation_id_var.get() or "-"
        return True


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        cid = _incoming_or_new(request.headers.get(HEADER_CORRELATION_ID))
        request.state.correlation_id = cid
        token = _correlation_id_var.set(cid)
        try:
            response = await call_next(request)
        finally:
            _correlation_id_var.reset(token)
        response.headers[HEADER_CORRELATION_ID] = cid
        return response
