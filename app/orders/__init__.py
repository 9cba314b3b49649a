"""
Orders application.

Order management is an external collaborator. This app keeps the part of it
the cancellation flow touches: the order's lifecycle status, amounts and
payment reference, plus the restaurant whose owner approves cancellations.

Usage:
    from orders.models import Order, OrderStatus
    from orders.services import OrderService
"""
