"""Base abstract models and the transactional outbox.

Provides:
- ``TimestampedModel``: created_at / updated_at bookkeeping only.
- ``BaseModel``: TimestampedModel with a UUIDv7 primary key.
- ``OutboxEvent``: rows written in the same transaction as the business
  change that produced them, replayed later by a worker.

The outbox carries two kinds of rows:
- ``topic="orders"``: domain events raised by the Order aggregate.
- ``topic="inventory"``: stock releases that could not be applied
  synchronously and must be replayed against the inventory service.
"""

from __future__ import annotations

from typing import Any, Dict

import uuid6
from django.db import models
from django.utils import timezone

# ---------------------------------------------------------------------------
# Abstract bases
# ---------------------------------------------------------------------------


class TimestampedModel(models.Model):
    """Abstract base with timestamp bookkeeping and the default integer PK."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs) -> None:
        """Ensure ``updated_at`` is refreshed even when ``update_fields`` is passed."""
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["updated_at"]
        super().save(*args, **kwargs)


class BaseModel(TimestampedModel):
    """Abstract base with a UUIDv7 PK (time-ordered, index friendly)."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid6.uuid7,
        editable=False,
    )

    class Meta:
        abstract = True


# ---------------------------------------------------------------------------
# Transactional Outbox
# ---------------------------------------------------------------------------


class EventStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PUBLISHED = "PUBLISHED", "Published"
    FAILED = "FAILED", "Failed"


class OutboxEventQuerySet(models.QuerySet):
    def replayable(self, topic: str, max_retries: int) -> OutboxEventQuerySet:
        """Rows of *topic* still waiting for delivery, oldest first."""
        return self.filter(
            topic=topic,
            status__in=[EventStatus.PENDING, EventStatus.FAILED],
            retry_count__lt=max_retries,
        ).order_by("created_at")


class OutboxEvent(BaseModel):
    """Transactional Outbox for reliable delivery.

    Workflow:
    1. Producer creates ``OutboxEvent`` inside ``transaction.atomic()``.
    2. Worker queries replayable rows ordered by ``created_at``.
    3. On success → ``mark_as_published()``.
    4. On failure → ``mark_as_failed(error)`` increments ``retry_count``.
    """

    event_type = models.CharField(max_length=100)
    payload = models.JSONField()
    aggregate_id = models.CharField(max_length=255)
    topic = models.CharField(max_length=100)
    status = models.CharField(
        max_length=20,
        choices=EventStatus.choices,
        default=EventStatus.PENDING,
    )
    processed_at = models.DateTimeField(null=True, blank=True, default=None)
    error_message = models.TextField(null=True, blank=True, default=None)  # noqa: DJ01
    retry_count = models.PositiveIntegerField(default=0)

    objects = OutboxEventQuerySet.as_manager()

    class Meta:
        db_table = "outbox_events"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["event_type"],
                name="outbox_event_type_idx",
            ),
            models.Index(
                fields=["aggregate_id"],
                name="outbox_aggregate_id_idx",
            ),
            models.Index(
                fields=["topic", "status", "created_at"],
                name="outbox_topic_status_idx",
            ),
        ]

    @classmethod
    def record(
        cls,
        *,
        topic: str,
        event_type: str,
        aggregate_id: Any,
        payload: Dict[str, Any],
    ) -> OutboxEvent:
        return cls.objects.create(
            topic=topic,
            event_type=event_type,
            aggregate_id=str(aggregate_id),
            payload=payload,
        )

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def mark_as_published(self) -> None:
        """Mark event as successfully delivered."""
        self.status = EventStatus.PUBLISHED
        self.processed_at = timezone.now()
        self.error_message = None
        self.save(
            update_fields=["status", "processed_at", "error_message", "updated_at"]
        )

    def mark_as_failed(self, error: str) -> None:
        """Mark event as failed and record the error."""
        self.status = EventStatus.FAILED
        self.error_message = error
        self.retry_count += 1
        self.save(
            update_fields=[
                "status",
                "error_message",
                "retry_count",
                "updated_at",
            ]
        )

    def __str__(self) -> str:
        return f"{self.event_type} [{self.status}] ({self.aggregate_id})"
