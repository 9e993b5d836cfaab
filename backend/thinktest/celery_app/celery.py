"""
Celery application configuration.

Redis broker, JSON serialization, UTC timezone and the beat schedule for
GitHub cache maintenance.
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import after_setup_logger, after_setup_task_logger

from thinktest.core.config import get_settings


@after_setup_logger.connect
@after_setup_task_logger.connect
def setup_celery_logging(logger, *args, **kwargs):
    """Configure Celery worker logging via signal."""
    from thinktest.core.logging_config import setup_logging
    setup_logging()


REDIS_URL = get_settings().redis_url

app = Celery(
    "thinktest",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=["thinktest.celery_app.tasks"],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    timezone="UTC",
    enable_utc=True,

    worker_prefetch_multiplier=1,
    worker_hijack_root_logger=False,

    task_acks_late=True,
    task_reject_on_worker_lost=True,

    result_expires=86400,  # 24h

    task_default_queue="default",

    beat_schedule={
        "prune-github-cache-every-15-minutes": {
            "task": "prune_github_cache",
            "schedule": crontab(minute="*/15"),
        },
    },
)
