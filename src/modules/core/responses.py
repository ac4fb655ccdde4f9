"""Uniform response envelope.

Every endpoint answers with the same JSON shape so that callers (the web
client and the other storefront services) parse one format::

    {"ok": true, "statusCode": 201, "message": "...", "data": {...}, "count": 1}

``count`` is the number of records carried in ``data`` (0 on failures).
"""

from __future__ import annotations

from typing import Any, Optional

from rest_framework.response import Response


def envelope(
    ok: bool,
    status_code: int,
    message: str,
    data: Any = None,
    count: Optional[int] = None,
) -> dict:
    if count is None:
        if data is None:
            count = 0
        elif isinstance(data, list):
            count = len(data)
        else:
            count = 1
    return {
        "ok": ok,
        "statusCode": status_code,
        "message": message,
        "data": data,
        "count": count,
    }


def success(message: str, data: Any = None, status: int = 200) -> Response:
    return Response(envelope(True, status, message, data), status=status)


def failure(message: str, status: int, data: Any = None) -> Response:
    return Response(envelope(False, status, message, data, count=0), status=status)
