"""
URL configuration for the notifications API.

Routes:
    /                 - List notifications (GET)
    /{id}/            - Notification detail (GET)
    /unread-count/    - Unread count (GET)
    /{id}/read/       - Mark single as read (POST)
    /read-all/        - Mark all as read (POST)
"""

from rest_framework.routers import SimpleRouter

from notifications.views import NotificationViewSet

router = SimpleRouter()
router.register(r"", NotificationViewSet, basename="notification")

app_name = "notifications"
urlpatterns = router.urls
