"""
Review routes.

Public listing of a service's reviews lives under /services/{id}/reviews.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from nearserve.api.dependencies import get_current_user, get_db, get_dispatcher
from nearserve.lib.pagination import PageRequest, PaginationMeta
from nearserve.models.users import User
from nearserve.services.notification_service import NotificationDispatcher
from nearserve.services.review_service import ReviewService


# Pydantic schemas
class ReviewAuthor(BaseModel):
    id: UUID
    name: str
    avatar: Optional[str] = None

    model_config = {"from_attributes": True}


class ReviewResponse(BaseModel):
    id: UUID
    booking_id: UUID
    service_id: UUID
    provider_id: UUID
    user_id: UUID
    rating: int
    comment: str
    images: List[str] = []
    helpful: int = 0
    is_verified: bool
    is_edited: bool
    created_at: datetime
    author: Optional[ReviewAuthor] = None

    model_config = {"from_attributes": True}


class CreateReviewRequest(BaseModel):
    booking_id: UUID
    service_id: UUID
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=1000)
    images: List[str] = Field(default_factory=list)


class ReviewListResponse(BaseModel):
    data: List[ReviewResponse]
    pagination: PaginationMeta


class MessageResponse(BaseModel):
    message: str


# Router
router = APIRouter(prefix="/reviews", tags=["reviews"])


def get_review_service(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ReviewService:
    return ReviewService(db, dispatcher)


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
def create_review(
    request: CreateReviewRequest,
    current_user: User = Depends(get_current_user),
    review_service: ReviewService = Depends(get_review_service),
) -> ReviewResponse:
    """
    Review a completed booking.

    Raises:
        400: Rating outside 1-5, booking not completed, or service mismatch
        403: Booking belongs to someone else
        404: Booking or service not found
        409: Booking already reviewed
    """
    review = review_service.create(
        user=current_user,
        booking_id=request.booking_id,
        service_id=request.service_id,
        rating=request.rating,
        comment=request.comment,
        images=request.images,
    )
    return ReviewResponse.model_validate(review)


@router.get("/my-reviews", response_model=ReviewListResponse)
def my_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    review_service: ReviewService = Depends(get_review_service),
) -> ReviewListResponse:
    reviews, meta = review_service.list_for_user(current_user, PageRequest(page, limit))
    return ReviewListResponse(
        data=[ReviewResponse.model_validate(r) for r in reviews],
        pagination=PaginationMeta(**meta),
    )


@router.delete("/{review_id}", response_model=MessageResponse)
def delete_review(
    review_id: UUID,
    current_user: User = Depends(get_current_user),
    review_service: ReviewService = Depends(get_review_service),
) -> MessageResponse:
    review_service.delete(review_id, current_user)
    return MessageResponse(message="Review deleted successfully")
