"""
Notification service: persistent in-app notifications addressed to one user.

Lifecycle events (booking created, status changed, review received) go
through NotificationDispatcher, which never lets a notification failure
reach the operation that triggered it.
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Union
from uuid import UUID

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.orm import Session

from nearserve.api.middleware.error_handler import (
    BadRequestException,
    ForbiddenException,
    NotFoundException,
)
from nearserve.lib.db import SessionLocal
from nearserve.lib.logging import get_logger
from nearserve.lib.pagination import PageRequest
from nearserve.models.notifications import (
    Notification,
    NotificationPriority,
    NotificationType,
    RelatedRef,
)
from nearserve.models.users import User


logger = get_logger(__name__)


def _coerce_type(value: Union[str, NotificationType]) -> NotificationType:
    try:
        return NotificationType(value)
    except ValueError:
        raise BadRequestException(
            f"Unknown notification type '{value}'",
            details={"allowed": [t.value for t in NotificationType]},
        )


class NotificationService:
    """
    CRUD over a user's notifications.

    Every read excludes notifications whose expires_at has passed; the
    sweep job deletes them later.
    """

    def __init__(self, session: Session):
        self.session = session

    def _not_expired(self, now: Optional[datetime] = None):
        now = now or datetime.now(timezone.utc)
        return or_(Notification.expires_at.is_(None), Notification.expires_at > now)

    def create(
        self,
        user_id: UUID,
        type: Union[str, NotificationType],
        title: str,
        message: str,
        related: Optional[RelatedRef] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        action_url: Optional[str] = None,
        image_url: Optional[str] = None,
        data: Optional[dict] = None,
        expires_at: Optional[datetime] = None,
    ) -> Notification:
        """
        Persist one notification.

        Raises:
            BadRequestException: Unknown type or missing title/message
            NotFoundException: Recipient does not exist
        """
        notification_type = _coerce_type(type)
        if not title or not message:
            raise BadRequestException("title and message are required")
        if self.session.get(User, user_id) is None:
            raise NotFoundException("User", str(user_id))

        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            priority=priority,
            action_url=action_url,
            image_url=image_url,
            data=data,
            expires_at=expires_at,
        )
        notification.related = related

        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)

        logger.info(
            "Notification created",
            extra={
                "notification_id": str(notification.id),
                "user_id": str(user_id),
                "type": notification_type.value,
            },
        )
        return notification

    def list_for_user(
        self,
        user_id: UUID,
        page: PageRequest,
        unread_only: bool = False,
    ) -> dict:
        """Newest first, with total and unread counts for the same user."""
        conditions = [Notification.user_id == user_id, self._not_expired()]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))

        total = self.session.scalar(
            select(func.count()).select_from(Notification).where(*conditions)
        )
        notifications = self.session.scalars(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc())
            .offset(page.offset)
            .limit(page.limit)
        ).all()

        meta = page.meta(total)
        return {
            "notifications": notifications,
            "total_notifications": total,
            "unread_count": self.unread_count(user_id),
            "page": meta["page"],
            "total_pages": meta["pages"],
        }

    def unread_count(self, user_id: UUID) -> int:
        return self.session.scalar(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
                self._not_expired(),
            )
        )

    def _get_owned(self, notification_id: UUID, user_id: UUID) -> Notification:
        notification = self.session.get(Notification, notification_id)
        if notification is None:
            raise NotFoundException("Notification", str(notification_id))
        if notification.user_id != user_id:
            raise ForbiddenException("Not authorized to access this notification")
        return notification

    def mark_read(self, notification_id: UUID, user_id: UUID) -> Notification:
        notification = self._get_owned(notification_id, user_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            self.session.commit()
        return notification

    def mark_all_read(self, user_id: UUID) -> int:
        """Mark the caller's unread notifications read. Returns how many changed."""
        result = self.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=datetime.now(timezone.utc))
        )
        self.session.commit()
        return result.rowcount

    def delete(self, notification_id: UUID, user_id: UUID) -> None:
        notification = self._get_owned(notification_id, user_id)
        self.session.delete(notification)
        self.session.commit()

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete every notification whose expires_at lies before now."""
        now = now or datetime.now(timezone.utc)
        result = self.session.execute(
            delete(Notification).where(
                Notification.expires_at.is_not(None),
                Notification.expires_at <= now,
            )
        )
        self.session.commit()
        return result.rowcount


@dataclass
class DispatchOutcome:
    """Result of one best-effort dispatch."""
    user_id: UUID
    type: str
    delivered: bool
    notification_id: Optional[UUID] = None
    error: Optional[str] = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationDispatcher:
    """
    Fire-and-forget notification creation.

    Uses its own session so a failed insert can never roll back the
    caller's committed work. Call dispatch() only after the primary
    write has been committed.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        history_size: int = 200,
    ):
        self.session_factory = session_factory
        self.outcomes: deque[DispatchOutcome] = deque(maxlen=history_size)

    def dispatch(
        self,
        user_id: UUID,
        type: NotificationType,
        title: str,
        message: str,
        related: Optional[RelatedRef] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        **extra,
    ) -> None:
        try:
            with self.session_factory() as session:
                notification = NotificationService(session).create(
                    user_id=user_id,
                    type=type,
                    title=title,
                    message=message,
                    related=related,
                    priority=priority,
                    **extra,
                )
        except Exception as e:
            logger.error(
                f"Notification dispatch failed: {e}",
                extra={"user_id": str(user_id), "type": getattr(type, "value", type)},
                exc_info=True,
            )
            self.outcomes.append(
                DispatchOutcome(user_id=user_id, type=getattr(type, "value", str(type)), delivered=False, error=str(e))
            )
            return

        self.outcomes.append(
            DispatchOutcome(
                user_id=user_id,
                type=notification.type.value,
                delivered=True,
                notification_id=notification.id,
            )
        )

    def clear(self) -> None:
        self.outcomes.clear()
