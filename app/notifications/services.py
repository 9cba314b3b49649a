"""
Notification service layer.

Services:
    NotificationService: Notification creation and read status management
    CancellationNotificationService: Who hears about a cancellation or
        refund event, and what they are told

Cancellation and refund services never build notifications themselves.
They call notify_cancellation() / notify_refund(), which queue a Celery
task once the surrounding transaction commits, so a rolled back decision
never reaches anyone's inbox.

Usage:
    from notifications.services import notify_cancellation
    from notifications.models import CancellationEvent

    notify_cancellation(cancellation.id, CancellationEvent.APPROVED)

    result = NotificationService.mark_as_read(notification, user)
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.services import BaseService, ServiceResult
from notifications.models import (
    CancellationEvent,
    Notification,
    NotificationKind,
    RefundEvent,
)

if TYPE_CHECKING:
    from authentication.models import User
    from cancellations.models import OrderCancellation
    from payments.models import Refund

logger = logging.getLogger(__name__)


# (title, body) rendered with str.format(**data)
TEMPLATES: dict[str, tuple[str, str]] = {
    NotificationKind.CANCELLATION_REQUESTED_CUSTOMER: (
        "Cancellation requested",
        "{restaurant_name} has been asked to approve the cancellation of "
        "order {order_ref}.",
    ),
    NotificationKind.CANCELLATION_REQUESTED_OWNER: (
        "New cancellation request",
        "A customer asked to cancel order {order_ref}. Please respond "
        "{response_window}.",
    ),
    NotificationKind.CANCELLATION_INSTANT_COMPLETED: (
        "Order cancelled",
        "Your order {order_ref} from {restaurant_name} was cancelled. "
        "{refund_amount_display} will be refunded.",
    ),
    NotificationKind.CANCELLATION_APPROVED: (
        "Cancellation approved",
        "{restaurant_name} approved the cancellation of order {order_ref}. "
        "{refund_amount_display} will be refunded.",
    ),
    NotificationKind.CANCELLATION_AUTO_APPROVED: (
        "Cancellation approved",
        "The cancellation of order {order_ref} was approved automatically. "
        "{refund_amount_display} will be refunded.",
    ),
    NotificationKind.CANCELLATION_REJECTED: (
        "Cancellation declined",
        "The cancellation of order {order_ref} was declined: {rejection_reason}",
    ),
    NotificationKind.CANCELLATION_WITHDRAWN: (
        "Cancellation request withdrawn",
        "The customer withdrew the cancellation request for order {order_ref}.",
    ),
    NotificationKind.REFUND_COMPLETED: (
        "Refund completed",
        "{refund_amount_display} was refunded for order {order_ref}.",
    ),
    NotificationKind.REFUND_FAILED: (
        "Refund needs attention",
        "We could not refund {refund_amount_display} for order {order_ref}. "
        "Our support team will follow up.",
    ),
}

URGENT_KINDS = frozenset(
    {
        NotificationKind.CANCELLATION_REQUESTED_OWNER,
        NotificationKind.REFUND_FAILED,
    }
)

CUSTOMER_KINDS = {
    CancellationEvent.REQUESTED: NotificationKind.CANCELLATION_REQUESTED_CUSTOMER,
    CancellationEvent.INSTANT_COMPLETED: NotificationKind.CANCELLATION_INSTANT_COMPLETED,
    CancellationEvent.APPROVED: NotificationKind.CANCELLATION_APPROVED,
    CancellationEvent.AUTO_APPROVED: NotificationKind.CANCELLATION_AUTO_APPROVED,
    CancellationEvent.REJECTED: NotificationKind.CANCELLATION_REJECTED,
}

OWNER_KINDS = {
    CancellationEvent.REQUESTED: NotificationKind.CANCELLATION_REQUESTED_OWNER,
    CancellationEvent.WITHDRAWN: NotificationKind.CANCELLATION_WITHDRAWN,
}

REFUND_KINDS = {
    RefundEvent.COMPLETED: NotificationKind.REFUND_COMPLETED,
    RefundEvent.FAILED: NotificationKind.REFUND_FAILED,
}


def notify_cancellation(cancellation_id: uuid.UUID, event: str) -> None:
    """Queue the notifications for a cancellation event after commit."""
    # Import tasks here to avoid circular imports
    from notifications import tasks

    transaction.on_commit(
        lambda: tasks.send_cancellation_notification.delay(
            str(cancellation_id), str(event)
        ),
        robust=True,
    )


def notify_refund(refund_id: uuid.UUID, event: str) -> None:
    """Queue the notification for a refund event after commit."""
    from notifications import tasks

    transaction.on_commit(
        lambda: tasks.send_refund_notification.delay(str(refund_id), str(event)),
        robust=True,
    )


class NotificationService(BaseService):
    """
    Service for notification operations.

    Methods:
        create_notification: Render and store a notification
        get_unread_count: Badge count
        mark_as_read: Mark a single notification as read
        mark_all_as_read: Mark all user's unread notifications as read
    """

    @classmethod
    def create_notification(
        cls,
        recipient: User,
        kind: str,
        data: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> ServiceResult[Notification]:
        """
        Render the template for ``kind`` and store the notification.

        Error codes:
            DUPLICATE: A notification with this idempotency_key exists

        Raises:
            KeyError: If a template placeholder is missing from data
        """
        kind = NotificationKind(kind)
        data = data or {}

        if idempotency_key and Notification.objects.filter(
            idempotency_key=idempotency_key
        ).exists():
            cls.get_logger().info(
                f"Duplicate notification prevented: idempotency_key={idempotency_key}"
            )
            return ServiceResult.failure(
                f"Notification with idempotency_key already exists: {idempotency_key}",
                error_code="DUPLICATE",
            )

        title_template, body_template = TEMPLATES[kind]
        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    recipient=recipient,
                    kind=kind,
                    title=title_template.format(**data),
                    body=body_template.format(**data),
                    data=data,
                    is_urgent=kind in URGENT_KINDS,
                    idempotency_key=idempotency_key,
                )
        except IntegrityError:
            # Lost the race to a concurrent task with the same key
            return ServiceResult.failure(
                f"Notification with idempotency_key already exists: {idempotency_key}",
                error_code="DUPLICATE",
            )

        cls.get_logger().info(
            "Notification created",
            extra={
                "notification_id": notification.id,
                "recipient_id": str(recipient.id),
                "kind": kind.value,
            },
        )
        return ServiceResult.success(notification)

    @classmethod
    def get_unread_count(cls, user: User) -> int:
        return Notification.objects.filter(recipient=user, is_read=False).count()

    @classmethod
    def mark_as_read(
        cls,
        notification: Notification,
        user: User,
    ) -> ServiceResult[Notification]:
        """
        Mark a single notification as read. Marking it twice succeeds.

        Error codes:
            NOT_OWNER: User doesn't own the notification
        """
        if notification.recipient_id != user.id:
            cls.get_logger().warning(
                f"User {user.id} attempted to mark notification {notification.id} "
                f"owned by user {notification.recipient_id}"
            )
            return ServiceResult.failure(
                "Cannot mark notification you don't own",
                error_code="NOT_OWNER",
            )

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = timezone.now()
            notification.save(update_fields=["is_read", "read_at", "updated_at"])

        return ServiceResult.success(notification)

    @classmethod
    def mark_all_as_read(cls, user: User) -> ServiceResult[int]:
        count = Notification.objects.filter(recipient=user, is_read=False).update(
            is_read=True, read_at=timezone.now()
        )

        cls.get_logger().info(
            f"Marked {count} notifications as read for user {user.id}"
        )
        return ServiceResult.success(count)


class CancellationNotificationService(BaseService):
    """
    Turns cancellation and refund events into notifications.

    Each (event, recipient) pair is created at most once, so a task that
    runs twice does not notify twice.
    """

    @classmethod
    def send_cancellation_event(
        cls, cancellation_id: uuid.UUID, event: str
    ) -> list[Notification]:
        """
        Notify the customer and/or restaurant owner about a cancellation.

        Returns:
            The notifications created (empty if the cancellation is gone
            or every recipient was already notified)
        """
        from cancellations.models import OrderCancellation

        event = CancellationEvent(event)
        cancellation = (
            OrderCancellation.objects.select_related(
                "order__user", "order__restaurant__owner"
            )
            .filter(id=cancellation_id)
            .first()
        )
        if cancellation is None:
            cls.get_logger().warning(
                "Cancellation for notification not found",
                extra={"cancellation_id": str(cancellation_id), "event": event},
            )
            return []

        targets = []
        if event in CUSTOMER_KINDS:
            targets.append((cancellation.order.user, CUSTOMER_KINDS[event]))
        if event in OWNER_KINDS:
            targets.append((cancellation.order.restaurant.owner, OWNER_KINDS[event]))

        data = cls._cancellation_data(cancellation)
        created = []
        for recipient, kind in targets:
            result = NotificationService.create_notification(
                recipient,
                kind,
                data=data,
                idempotency_key=f"{kind.value}:{cancellation.id}:{recipient.id}",
            )
            if result.success:
                created.append(result.data)
        return created

    @classmethod
    def send_refund_event(cls, refund_id: uuid.UUID, event: str) -> Notification | None:
        """Notify the customer that their refund completed or failed for good."""
        from payments.models import Refund

        event = RefundEvent(event)
        refund = (
            Refund.objects.select_related("order__user", "order__restaurant")
            .filter(id=refund_id)
            .first()
        )
        if refund is None:
            cls.get_logger().warning(
                "Refund for notification not found",
                extra={"refund_id": str(refund_id), "event": event},
            )
            return None

        kind = REFUND_KINDS[event]
        result = NotificationService.create_notification(
            refund.order.user,
            kind,
            data=cls._refund_data(refund),
            idempotency_key=f"{kind.value}:{refund.id}",
        )
        return result.data if result.success else None

    @staticmethod
    def _cancellation_data(cancellation: OrderCancellation) -> dict[str, Any]:
        order = cancellation.order
        deadline_minutes = None
        if cancellation.approval_deadline is not None:
            remaining = cancellation.approval_deadline - cancellation.created_at
            deadline_minutes = max(round(remaining.total_seconds() / 60), 0)

        return {
            "cancellation_id": str(cancellation.id),
            "order_id": str(order.id),
            "order_ref": str(order.id)[:8],
            "restaurant_name": order.restaurant.name,
            "status": cancellation.status,
            "refund_amount": cancellation.refund_amount,
            "refund_amount_display": f"{cancellation.refund_amount:,}",
            "rejection_reason": cancellation.rejection_reason,
            "deadline_minutes": deadline_minutes,
            "response_window": (
                f"within {deadline_minutes} minutes"
                if deadline_minutes is not None
                else "as soon as possible"
            ),
        }

    @staticmethod
    def _refund_data(refund: Refund) -> dict[str, Any]:
        return {
            "refund_id": str(refund.id),
            "cancellation_id": str(refund.cancellation_id),
            "order_id": str(refund.order_id),
            "order_ref": str(refund.order_id)[:8],
            "restaurant_name": refund.order.restaurant.name,
            "status": refund.status,
            "refund_amount": refund.amount,
            "refund_amount_display": f"{refund.amount:,}",
            "error_code": refund.error_code,
        }
