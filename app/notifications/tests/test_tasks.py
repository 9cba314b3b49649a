"""
Tests for notification Celery tasks.

Tasks are called directly (synchronously); the broker is never involved.
"""

from cancellations.tests.factories import OrderCancellationFactory
from notifications.models import Notification, NotificationKind
from notifications.tasks import (
    send_cancellation_notification,
    send_refund_notification,
)
from payments.tests.factories import RefundFactory


class TestSendCancellationNotification:
    def test_creates_notifications(self, db):
        cancellation = OrderCancellationFactory(preparing=True)

        result = send_cancellation_notification(str(cancellation.id), "requested")

        assert result["created"] == 2
        assert Notification.objects.filter(
            kind=NotificationKind.CANCELLATION_REQUESTED_OWNER
        ).exists()

    def test_rerun_is_harmless(self, db):
        """Should not notify twice when the task is delivered again."""
        cancellation = OrderCancellationFactory(completed=True)
        send_cancellation_notification(str(cancellation.id), "instant_completed")

        result = send_cancellation_notification(str(cancellation.id), "instant_completed")

        assert result["created"] == 0
        assert Notification.objects.count() == 1


class TestSendRefundNotification:
    def test_creates_notification(self, db):
        refund = RefundFactory(completed=True)

        result = send_refund_notification(str(refund.id), "completed")

        assert result["created"] is True
        assert Notification.objects.get().recipient == refund.order.user
