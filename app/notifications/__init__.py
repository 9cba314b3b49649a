"""
Notifications app.

In-app notifications telling customers and restaurant owners what happened
to a cancellation request or a refund.
"""
