"""
Celery tasks for refund processing.

This module provides async tasks for:
- Processing a single refund off the request path
- Periodically retrying failed, stale-pending and stuck refunds

Usage:
    from payments.tasks import process_refund_task

    # Queue a refund for processing
    process_refund_task.delay(str(refund.id))

    # Retry everything that is due (typically via celery-beat)
    from payments.tasks import retry_failed_refunds
    retry_failed_refunds.delay()
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task

from core.exceptions import NotFoundError

logger = logging.getLogger(__name__)


# =============================================================================
# Refund Processing Tasks
# =============================================================================


@shared_task(bind=True, acks_late=True)
def process_refund_task(self, refund_id: str) -> dict:
    """
    Attempt the gateway refund for one refund.

    Gateway failures are recorded on the Refund and left for the retry
    sweep, so this task never retries itself.

    Args:
        refund_id: UUID of the Refund to process

    Returns:
        Dict with processing result status
    """
    # Import here to avoid circular imports
    from payments.services import RefundService

    if isinstance(refund_id, str):
        refund_id = UUID(refund_id)

    try:
        outcome = RefundService.process_refund(refund_id)
    except NotFoundError:
        logger.error(
            "Refund not found",
            extra={"refund_id": str(refund_id)},
        )
        return {"status": "not_found", "refund_id": str(refund_id)}

    return {
        "status": outcome.refund.status,
        "refund_id": str(refund_id),
        "success": outcome.success,
        "error_code": outcome.error_code,
        "is_retryable": outcome.is_retryable,
    }


@shared_task(bind=True, acks_late=True)
def retry_failed_refunds(self, limit: int = 50) -> dict:
    """
    Periodic task to retry refunds that are due.

    Schedule via celery-beat (REFUND_RETRY_INTERVAL_SECONDS).

    Returns:
        Dict with sweep counts
    """
    from payments.services import RefundService

    sweep = RefundService.retry_failed_refunds(limit=limit)
    return {
        "attempted": sweep.attempted,
        "succeeded": sweep.succeeded,
        "failed": sweep.failed,
        "released_stuck": sweep.released_stuck,
    }
