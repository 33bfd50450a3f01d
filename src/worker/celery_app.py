"""Celery application used for scheduled engine work."""
from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from src.core.config import settings
from src.core.logging import setup_logging


celery_app = Celery(
    "subscription_engine",
    broker=settings.broker_url,
    include=["src.worker.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    broker_connection_retry_on_startup=True,
)

if settings.scheduler.enabled:
    celery_app.conf.beat_schedule = {
        "daily-renewal-scan": {
            "task": "payment_cycles.renewal_scan",
            "schedule": crontab(
                hour=settings.scheduler.renewal_scan_hour,
                minute=settings.scheduler.renewal_scan_minute,
            ),
        },
    }


@celery_setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    # replaces Celery's own root logger configuration
    setup_logging()
