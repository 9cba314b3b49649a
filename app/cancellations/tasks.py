"""
Celery tasks for cancellations.

This module provides periodic tasks for:
- Auto-approving requests past their approval deadline
- Re-running recovery for cancellations with outstanding steps

Both are scheduled via celery-beat (see CELERY_BEAT_SCHEDULE).
"""

from __future__ import annotations

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, acks_late=True)
def process_auto_approvals(self, limit: int = 50) -> dict:
    """
    Approve pending cancellations whose approval deadline has passed.

    Returns:
        Dict with approved and failed counts
    """
    # Import here to avoid circular imports
    from cancellations.services import ApprovalService

    return ApprovalService.process_auto_approvals(limit=limit)


@shared_task(bind=True, acks_late=True)
def process_pending_recoveries(self, limit: int | None = None) -> dict:
    """
    Re-run recovery for completed cancellations with outstanding steps.

    Returns:
        Dict with processed and fully_complete counts
    """
    from cancellations.services import RecoveryOrchestrator

    return RecoveryOrchestrator.process_pending_recoveries(limit=limit)
