# app/config/celery_config.py
"""Celery configuration: broker, serialization and the beat schedule"""
from celery import Celery
from datetime import timedelta

from app.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure the Celery application"""
    app = Celery(
        "booking_engine",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=["app.tasks.sweep_tasks"],
    )

    app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        # A sweep that overruns its interval must not pile up behind itself
        task_time_limit=settings.SWEEP_INTERVAL_MINUTES * 60,
    )

    app.conf.beat_schedule = {
        "sweep-appointments": {
            "task": "app.tasks.sweep_tasks.sweep_appointments",
            "schedule": timedelta(minutes=settings.SWEEP_INTERVAL_MINUTES),
            "options": {"expires": settings.SWEEP_INTERVAL_MINUTES * 60},
        },
    }

    return app


celery_app = create_celery_app()
