"""
Celery worker entry point
Runs the appointment sweep and any other background tasks
"""
import logging
from celery.signals import worker_ready, worker_shutdown

from app.config.celery_config import celery_app
from app.config.settings import get_settings
from app.utils.my_logging import setup_logging

settings = get_settings()

# Setup logging first
setup_logging(verbose=settings.DEBUG)
logger = logging.getLogger(__name__)


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    """Handle worker startup"""
    logger.info("Celery worker ready")
    logger.info(f"Registered tasks: {sorted(t for t in celery_app.tasks.keys() if t.startswith('app.'))}")
    logger.info(f"Appointment sweep runs every {settings.SWEEP_INTERVAL_MINUTES} minutes")


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    """Handle worker shutdown"""
    logger.info("Celery worker shutting down")


if __name__ == "__main__":
    # Run worker with an embedded beat scheduler
    celery_app.start([
        'worker',
        '--beat',
        '--loglevel=info',
        '--concurrency=2',
        '--max-tasks-per-child=1000'
    ])
