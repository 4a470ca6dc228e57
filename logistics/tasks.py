"""
LOGISTICS App - Celery Tasks

Periodic driver auto-assignment for deliveries nobody has accepted.
"""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task(name='logistics.tasks.auto_assign_overdue_deliveries')
def auto_assign_overdue_deliveries():
    """
    Assign deliveries pending for more than 24 hours.

    Runs hourly. Deliveries with no available driver are flagged urgent and
    escalated to admins.
    """
    from logistics.services.assignment import auto_assign_overdue_deliveries as run

    try:
        summary = run()
        logger.info(
            f"[ASSIGN TASK] {summary['assigned']} assigned, "
            f"{summary['escalated']} escalated, {summary['failed']} failed"
        )
        return summary
    except Exception as e:
        logger.error(f"[ASSIGN TASK] Auto-assignment run failed: {e}")
        return {}
