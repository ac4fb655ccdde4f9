import uuid
from contextvars import ContextVar
from typing import Callable

import structlog
from django.http import HttpRequest, HttpResponse

REQUEST_ID_HEADER = "X-Request-ID"

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

logger = structlog.get_logger(__name__)


def get_correlation_id() -> str:
    """Correlation ID of the request being served ("" outside a request)."""
    return correlation_id_var.get()


class CorrelationIdMiddleware:
    """Extracts or generates a correlation ID for each request.

    Reads ``X-Request-ID`` (or ``X-Correlation-Id``, used by the other
    storefront services).  If absent, generates a UUID4.  The ID lives in a
    ContextVar so structlog injects it into every log line and the inventory
    client forwards it on outbound calls; it is echoed back in the
    ``X-Request-ID`` response header.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        cid = (
            request.META.get("HTTP_X_REQUEST_ID")
            or request.META.get("HTTP_X_CORRELATION_ID")
            or str(uuid.uuid4())
        )
        token = correlation_id_var.set(cid)
        previous = structlog.contextvars.get_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=cid)

        logger.info(
            "request_started",
            method=request.method,
            path=request.get_full_path(),
        )
        try:
            response = self.get_response(request)
        finally:
            correlation_id_var.reset(token)
            structlog.contextvars.clear_contextvars()
            if previous:
                structlog.contextvars.bind_contextvars(**previous)

        logger.info(
            "request_finished",
            method=request.method,
            path=request.get_full_path(),
            status_code=response.status_code,
            correlation_id=cid,
        )

        response[REQUEST_ID_HEADER] = cid
        return response
