"""
Celery tasks for cancellation and refund notifications.

Tasks:
    send_cancellation_notification: Notify customer/owner about a cancellation event
    send_refund_notification: Notify the customer about a refund outcome

Both are queued by notify_cancellation() / notify_refund() after the
triggering transaction commits. Notifications carry idempotency keys, so
a retried task never notifies twice.

Usage:
    from notifications.tasks import send_cancellation_notification

    send_cancellation_notification.delay(str(cancellation.id), "approved")
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task
from django.db import DatabaseError

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    acks_late=True,
    autoretry_for=(DatabaseError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_cancellation_notification(self, cancellation_id: str, event: str) -> dict:
    """
    Create the notifications for one cancellation event.

    Args:
        cancellation_id: UUID string of the OrderCancellation
        event: CancellationEvent value

    Returns:
        Dict with the number of notifications created
    """
    # Import here to avoid circular imports
    from notifications.services import CancellationNotificationService

    created = CancellationNotificationService.send_cancellation_event(
        UUID(cancellation_id), event
    )
    logger.info(
        "Cancellation notifications sent",
        extra={
            "cancellation_id": cancellation_id,
            "event": event,
            "created_count": len(created),
        },
    )
    return {"cancellation_id": cancellation_id, "event": event, "created": len(created)}


@shared_task(
    bind=True,
    acks_late=True,
    autoretry_for=(DatabaseError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_refund_notification(self, refund_id: str, event: str) -> dict:
    """Create the customer notification for a completed or failed refund."""
    from notifications.services import CancellationNotificationService

    notification = CancellationNotificationService.send_refund_event(
        UUID(refund_id), event
    )
    return {
        "refund_id": refund_id,
        "event": event,
        "created": notification is not None,
    }
