"""
Celery configuration for the messaging backend.

Background work here is periodic housekeeping scheduled by
django-celery-beat (see CELERY_BEAT_SCHEDULE in settings):

    chat.tasks.sweep_stale_presence  - flip timed-out presence rows offline

Tasks are auto-discovered from all installed Django apps.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
