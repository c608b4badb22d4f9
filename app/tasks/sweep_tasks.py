# ===== app/tasks/sweep_tasks.py =====
import logging

from sqlalchemy.exc import SQLAlchemyError

from app.config.celery_config import celery_app
from app.services.appointment.sweep_service import run_sweep

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def sweep_appointments(self):
    """
    Expire unconfirmed bookings and auto-complete past appointments.

    Scheduled by beat every SWEEP_INTERVAL_MINUTES. Per-appointment failures
    are reported in the result; only database-level failures are retried.
    """
    try:
        report = run_sweep()
    except SQLAlchemyError as exc:
        logger.error(f"Appointment sweep failed: {exc}", exc_info=True)

        # Retry with exponential backoff: 30s, 60s, 120s
        raise self.retry(
            exc=exc,
            countdown=30 * (2 ** self.request.retries)
        )

    if report.errors:
        logger.warning(f"Appointment sweep finished with {len(report.errors)} failed rows")

    return {"status": "success", **report.to_dict()}
