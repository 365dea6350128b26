"""
Celery tasks for chat app.

This module defines periodic tasks for:
- Presence sweeping (users whose heartbeats stopped without a disconnect)

Related files:
    - services.py: PresenceService
    - config/settings.py: CELERY_BEAT_SCHEDULE

Usage:
    from chat.tasks import sweep_stale_presence

    sweep_stale_presence.delay()
"""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def sweep_stale_presence(self) -> int:
    """
    Mark users offline whose last heartbeat is older than the timeout.

    Reads already treat such users as offline; the sweep keeps the stored
    flag in line so queries on is_online stay accurate.

    Returns:
        Number of users marked offline
    """
    from chat.services import PresenceService

    swept = PresenceService.sweep_stale()
    logger.debug(f"Presence sweep marked {swept} users offline")
    return swept
