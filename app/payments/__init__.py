"""
Payments app for customer refunds.

This app handles:
- Refund records and their state machine
- Payment gateway clients (Stripe, offline settlement for cash)
- Refund processing, manual retry and the periodic retry sweep
- Distributed locks and optimistic version checks

Related apps:
    - cancellations: Creates refunds when a cancellation completes
    - orders: Payment method and gateway reference of the order

Usage:
    from payments.services import RefundService

    refund = RefundService.create_refund(cancellation)
    outcome = RefundService.process_refund(refund.id)
"""
