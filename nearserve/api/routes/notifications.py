"""
Notification routes.

Reads and read-state changes are for the authenticated recipient.
POST /notifications is a server-to-server endpoint guarded by X-System-Key.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from nearserve.api.dependencies import get_current_user, get_db, require_system_key
from nearserve.api.routes.reviews import MessageResponse
from nearserve.lib.pagination import PageRequest
from nearserve.models.notifications import (
    NotificationPriority,
    NotificationType,
    RelatedKind,
    RelatedRef,
)
from nearserve.models.users import User
from nearserve.services.notification_service import NotificationService


# Pydantic schemas
class RelatedRefModel(BaseModel):
    kind: RelatedKind
    id: UUID

    model_config = {"from_attributes": True}


class NotificationResponse(BaseModel):
    id: UUID
    user_id: UUID
    type: NotificationType
    title: str
    message: str
    related: Optional[RelatedRefModel] = None
    priority: NotificationPriority
    is_read: bool
    read_at: Optional[datetime] = None
    action_url: Optional[str] = None
    image_url: Optional[str] = None
    data: Optional[dict] = None
    expires_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    data: List[NotificationResponse]
    total_notifications: int
    unread_count: int
    page: int
    total_pages: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    message: str
    updated_count: int


class CreateNotificationRequest(BaseModel):
    """System-originated notification. `type` is checked against the closed set."""
    user_id: UUID
    type: str
    title: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=500)
    related: Optional[RelatedRefModel] = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    action_url: Optional[str] = None
    image_url: Optional[str] = None
    data: Optional[dict] = None
    expires_at: Optional[datetime] = None


# Router
router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    current_user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service),
) -> NotificationListResponse:
    """Caller's unexpired notifications, newest first."""
    result = notification_service.list_for_user(
        current_user.id, PageRequest(page, limit), unread_only
    )
    return NotificationListResponse(
        data=[NotificationResponse.model_validate(n) for n in result["notifications"]],
        total_notifications=result["total_notifications"],
        unread_count=result["unread_count"],
        page=result["page"],
        total_pages=result["total_pages"],
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count(
    current_user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=notification_service.unread_count(current_user.id))


@router.put("/read-all", response_model=MarkAllReadResponse)
def mark_all_read(
    current_user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service),
) -> MarkAllReadResponse:
    updated = notification_service.mark_all_read(current_user.id)
    return MarkAllReadResponse(message="All notifications marked as read", updated_count=updated)


@router.put("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    notification = notification_service.mark_read(notification_id, current_user.id)
    return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}", response_model=MessageResponse)
def delete_notification(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service),
) -> MessageResponse:
    notification_service.delete(notification_id, current_user.id)
    return MessageResponse(message="Notification deleted successfully")


@router.post(
    "",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_system_key)],
)
def create_notification(
    request: CreateNotificationRequest,
    notification_service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    """
    Create a notification on behalf of the system.

    Raises:
        400: Unknown type
        403: Missing or wrong X-System-Key, or endpoint disabled
        404: Recipient not found
    """
    related = RelatedRef(request.related.kind, request.related.id) if request.related else None
    notification = notification_service.create(
        user_id=request.user_id,
        type=request.type,
        title=request.title,
        message=request.message,
        related=related,
        priority=request.priority,
        action_url=request.action_url,
        image_url=request.image_url,
        data=request.data,
        expires_at=request.expires_at,
    )
    return NotificationResponse.model_validate(notification)
