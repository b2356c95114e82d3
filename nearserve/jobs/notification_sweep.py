"""
Expired-notification sweep.

Reads already hide notifications past expires_at; this job deletes them.
"""
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from nearserve.jobs.scheduler import SchedulerManager
from nearserve.lib.db import SessionLocal
from nearserve.lib.logging import get_logger
from nearserve.services.notification_service import NotificationService

logger = get_logger(__name__)

JOB_ID = "notification_sweep"


def purge_expired_notifications(
    session_factory: Callable[[], Session] = SessionLocal,
    now: Optional[datetime] = None,
) -> int:
    """Delete expired notifications. Returns the number removed."""
    now = now or datetime.now(timezone.utc)
    with session_factory() as session:
        removed = NotificationService(session).purge_expired(now)

    if removed:
        logger.info("Purged expired notifications", extra={"removed": removed})
    return removed


def register_notification_sweep(scheduler: SchedulerManager, interval_minutes: int) -> None:
    scheduler.add_interval_job(
        purge_expired_notifications,
        job_id=JOB_ID,
        minutes=interval_minutes,
    )
