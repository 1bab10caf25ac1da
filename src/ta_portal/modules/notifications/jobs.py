"""
Notification Background Jobs

Drains the notification outbox on an interval. The job can also be run on
demand through ``/debug/jobs/notifications_flush_outbox/trigger``.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from ta_portal.core.config import settings
from ta_portal.core.scheduler import register_job
from ta_portal.modules.notifications.dispatcher import drain_outbox

logger = logging.getLogger(__name__)

JOB_ID_FLUSH_OUTBOX = "notifications_flush_outbox"


async def flush_outbox() -> dict[str, Any]:
    """
    Deliver one batch of queued notifications.

    Returns:
        Dict with job execution summary including:
        - executed_at: When the job ran
        - processed: Events taken off the outbox
        - failed_recipients: Recipients whose email could not be sent
        - total_errors: Events that could not be processed at all
    """
    executed_at = datetime.now(UTC)
    results = await drain_outbox(settings.notification_batch_size)

    summary = {
        "executed_at": executed_at.isoformat(),
        "processed": len(results),
        "failed_recipients": sum(len(r.get("failed", [])) for r in results),
        "total_errors": sum(1 for r in results if r.get("status") == "error"),
    }
    if results:
        logger.info(
            f"Notification outbox flushed. Processed: {summary['processed']}, "
            f"Failed recipients: {summary['failed_recipients']}, Errors: {summary['total_errors']}"
        )
    return summary


def register_notification_jobs() -> None:
    """Register notification jobs with the scheduler. Called from the app lifespan."""
    register_job(
        JOB_ID_FLUSH_OUTBOX,
        flush_outbox,
        IntervalTrigger(seconds=settings.notification_flush_seconds),
    )
    logger.info(
        f"Registered notification jobs: {JOB_ID_FLUSH_OUTBOX} "
        f"(every {settings.notification_flush_seconds}s)"
    )
