"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend, and the beat
schedule for the daily stock reset.
"""

from celery import Celery
from celery.schedules import crontab

from app.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'restaurant_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['app.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Result settings
    result_expires=3600,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    broker_connection_retry_on_startup=True,

    # Opening stock is restored once a day, before service starts
    beat_schedule={
        'reset-daily-stock': {
            'task': 'app.tasks.reset_daily_stock',
            'schedule': crontab(hour=settings.daily_reset_hour, minute=0),
        },
    },
)


if __name__ == '__main__':
    celery_app.start()
