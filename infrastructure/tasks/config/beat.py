"""Celery beat schedule configuration.

The daily lifecycle run is the only periodic job; its time comes from
``settings.lifecycle.schedule_hour`` / ``schedule_minute`` (UTC).
"""
from __future__ import annotations

from celery.schedules import crontab

from core.config import settings

CELERY_BEAT_SCHEDULE = {
    "storage-lifecycle-daily": {
        "task": "lifecycle.run",
        "schedule": crontab(
            hour=settings.lifecycle.schedule_hour,
            minute=settings.lifecycle.schedule_minute,
        ),
        "options": {"queue": "lifecycle"},
    },
}
