"""Celery tasks for the orders module.

``release_pending_stock`` replays ``StockReleaseRequested`` outbox rows,
the stock releases that could not be applied while the order request was
being served.  It runs on the beat schedule (``CELERY_BEAT_SCHEDULE``).
"""

from __future__ import annotations

import structlog
from celery import shared_task
from django.conf import settings

from modules.core.models import OutboxEvent
from modules.orders.constants import INVENTORY_TOPIC, STOCK_RELEASE_REQUESTED
from modules.orders.exceptions import RemoteServiceUnavailable
from modules.orders.inventory_client import InventoryClient

logger = structlog.get_logger(__name__)


@shared_task(name="orders.release_pending_stock")
def release_pending_stock(batch_size: int = 100) -> dict:
    """Give queued units back to the inventory service.

    Returns counts of released and failed rows.  A failed row is retried on
    the next run until ``ORDER_RELEASE_MAX_RETRIES`` is reached.
    """
    pending = list(
        OutboxEvent.objects.replayable(
            INVENTORY_TOPIC, settings.ORDER_RELEASE_MAX_RETRIES
        ).filter(event_type=STOCK_RELEASE_REQUESTED)[:batch_size]
    )
    released = failed = 0
    if not pending:
        return {"released": 0, "failed": 0}

    with InventoryClient.from_settings() as client:
        for event in pending:
            item_id = event.payload.get("itemId")
            quantity = event.payload.get("quantity")
            log = logger.bind(
                event_id=str(event.id),
                item_id=item_id,
                quantity=quantity,
                attempt=event.retry_count + 1,
            )
            try:
                ok = client.increment(int(item_id), int(quantity))
            except RemoteServiceUnavailable as exc:
                event.mark_as_failed(str(exc))
                failed += 1
                log.warning("stock_release.retry_scheduled", error=str(exc))
                continue

            if ok:
                event.mark_as_published()
                released += 1
                log.info("stock_release.replayed")
            else:
                event.mark_as_failed("Inventory service rejected the release.")
                failed += 1
                log.error("stock_release.rejected")

    logger.info("stock_release.batch_finished", released=released, failed=failed)
    return {"released": released, "failed": failed}
