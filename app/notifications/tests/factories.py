"""
Factory Boy factories for notification models.

Usage:
    from notifications.tests.factories import NotificationFactory

    notification = NotificationFactory(recipient=user)
"""

import factory
from factory.django import DjangoModelFactory

from authentication.tests.factories import UserFactory
from notifications.models import Notification, NotificationKind


class NotificationFactory(DjangoModelFactory):
    class Meta:
        model = Notification

    recipient = factory.SubFactory(UserFactory)
    kind = NotificationKind.CANCELLATION_APPROVED
    title = "Cancellation approved"
    body = factory.Faker("sentence")
    data = factory.LazyFunction(dict)
