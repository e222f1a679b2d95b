"""
Request tracing ids for logs and problem responses.

Headers:
- X-Correlation-ID: client session id, echoed back and kept across requests
- X-Request-ID: one id per request; becomes ``trace_id`` in error bodies

Incoming ids are only trusted when they look like ids (short, no spaces or
control characters); anything else is replaced so it never reaches the logs.
"""

import re
import uuid
import logging
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
REQUEST_HEADER = "X-Request-ID"

_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


@dataclass(frozen=True)
class TraceIds:
    correlation_id: str
    request_id: str


_trace_ctx: ContextVar[TraceIds | None] = ContextVar("trace_ids", default=None)


def generate_id() -> str:
    """Short random id suitable for log lines."""
    return uuid.uuid4().hex[:12]


def _accept_or_generate(value: str | None) -> str:
    if value and _SAFE_ID.match(value):
        return value
    return generate_id()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Binds trace ids to the request context and echoes them as headers.

    Problem responses for APIException and validation errors pass through
    here too, so their ``trace_id`` matches the X-Request-ID header.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        ids = TraceIds(
            correlation_id=_accept_or_generate(request.headers.get(CORRELATION_HEADER)),
            request_id=_accept_or_generate(request.headers.get(REQUEST_HEADER)),
        )
        token = _trace_ctx.set(ids)
        request.state.trace_ids = ids

        try:
            response = await call_next(request)
        finally:
            _trace_ctx.reset(token)

        response.headers[CORRELATION_HEADER] = ids.correlation_id
        response.headers[REQUEST_HEADER] = ids.request_id
        return response


def get_correlation_id() -> str:
    ids = _trace_ctx.get()
    return ids.correlation_id if ids else "unknown"


def get_request_id() -> str:
    ids = _trace_ctx.get()
    return ids.request_id if ids else "unknown"


class CorrelationLogFilter(logging.Filter):
    """Adds ``correlation_id`` and ``request_id`` to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        record.request_id = get_request_id()
        return True
