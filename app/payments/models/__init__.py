"""
Payment domain models.

This module contains the payment-related models:
- Refund: Gateway refund owed for a cancellation
"""

from payments.models.refund import Refund

__all__ = [
    "Refund",
]
