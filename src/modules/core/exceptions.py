"""DRF exception handler that wraps framework errors in the envelope.

Domain exceptions are translated by the views themselves; this handler only
covers what DRF raises before a view body runs (authentication, permission,
parse errors, throttling) and serializer validation errors.
"""

from __future__ import annotations

from typing import Any

import structlog
from rest_framework.views import exception_handler

from modules.core.responses import envelope

logger = structlog.get_logger(__name__)


def _first_message(detail: Any) -> str:
    if isinstance(detail, dict):
        if "detail" in detail:
            return str(detail["detail"])
        for field, value in detail.items():
            return f"{field}: {_first_message(value)}"
        return "Invalid request."
    if isinstance(detail, list):
        return _first_message(detail[0]) if detail else "Invalid request."
    return str(detail)


def envelope_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        return None

    errors = response.data
    logger.info(
        "api.request_rejected",
        status_code=response.status_code,
        error_type=exc.__class__.__name__,
    )
    response.data = envelope(
        False,
        response.status_code,
        _first_message(errors),
        data={"errors": errors} if isinstance(errors, (dict, list)) else None,
        count=0,
    )
    return response
