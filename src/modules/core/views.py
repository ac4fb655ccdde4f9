import time
from typing import Any, Dict

import structlog
from django.db import connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone

from modules.orders.exceptions import RemoteServiceUnavailable

logger = structlog.get_logger(__name__)


def _check_database() -> Dict[str, Any]:
    start = time.monotonic()
    conn = connections["default"]
    conn.ensure_connection()
    with conn.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    return {
        "status": "up",
        "response_time_ms": round((time.monotonic() - start) * 1000, 2),
    }


def liveness(request: HttpRequest) -> JsonResponse:
    """Local-only probe (database).  Polled by peers, never calls out."""
    try:
        database = _check_database()
    except Exception:
        logger.error("health_check_db_failure")
        return JsonResponse({"status": "down"}, status=503)
    return JsonResponse({"status": "up", "database": database})


def health_check(request: HttpRequest) -> JsonResponse:
    """Readiness probe: database plus reachability of the inventory service."""
    from modules.orders.inventory_client import InventoryClient

    services: Dict[str, Dict[str, Any]] = {}
    overall_healthy = True

    try:
        services["database"] = _check_database()
    except Exception:
        services["database"] = {"status": "down"}
        overall_healthy = False
        logger.error("health_check_db_failure")

    start = time.monotonic()
    try:
        with InventoryClient.from_settings() as client:
            client.ping()
        services["inventory"] = {
            "status": "up",
            "response_time_ms": round((time.monotonic() - start) * 1000, 2),
        }
    except RemoteServiceUnavailable:
        services["inventory"] = {"status": "down"}
        overall_healthy = False
        logger.error("health_check_inventory_failure")

    status_code = 200 if overall_healthy else 503

    logger.info(
        "health_check_completed", status="healthy" if overall_healthy else "unhealthy"
    )

    return JsonResponse(
        {
            "status": "healthy" if overall_healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=status_code,
    )
