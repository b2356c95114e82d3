"""
Booking routes.

Customers create, list and cancel their bookings; providers list the
bookings made with them and move them through the status workflow.
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from nearserve.api.dependencies import get_current_user, get_db, get_dispatcher
from nearserve.lib.pagination import PageRequest, PaginationMeta
from nearserve.models.bookings import BookingStatus, PaymentStatus
from nearserve.models.services import PriceType, ServiceCategory
from nearserve.models.users import User
from nearserve.services.booking_service import BookingService
from nearserve.services.notification_service import NotificationDispatcher


# Pydantic schemas
class BookingAddress(BaseModel):
    street: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    zip_code: Optional[str] = None
    landmark: Optional[str] = None


class BookingContact(BaseModel):
    phone: str = Field(..., min_length=1)
    alternate_phone: Optional[str] = None


class BookingServiceSummary(BaseModel):
    id: UUID
    title: str
    category: ServiceCategory
    price: float
    price_type: PriceType

    model_config = {"from_attributes": True}


class BookingCustomerSummary(BaseModel):
    id: UUID
    name: str
    email: str

    model_config = {"from_attributes": True}


class BookingProviderSummary(BaseModel):
    id: UUID
    business_name: Optional[str] = None
    contact_info: dict = {}

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: UUID
    service_id: UUID
    user_id: UUID
    provider_id: UUID
    scheduled_date: datetime
    scheduled_time: Optional[str] = None
    status: BookingStatus
    price: float
    payment_status: PaymentStatus
    customer_notes: Optional[str] = None
    provider_notes: Optional[str] = None
    address: dict
    contact: dict
    cancellation_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    service: Optional[BookingServiceSummary] = None
    customer: Optional[BookingCustomerSummary] = None
    provider: Optional[BookingProviderSummary] = None

    model_config = {"from_attributes": True}


class CreateBookingRequest(BaseModel):
    """Only service_id is required; everything else gets a placeholder."""
    service_id: UUID
    scheduled_date: Optional[datetime] = None
    scheduled_time: Optional[str] = Field(None, max_length=20)
    address: Optional[BookingAddress] = None
    contact: Optional[BookingContact] = None
    customer_notes: Optional[str] = Field(None, max_length=500)


class UpdateStatusRequest(BaseModel):
    status: str = Field(..., description="pending, confirmed, in-progress, completed, cancelled or rejected")
    provider_notes: Optional[str] = Field(None, max_length=500)


class BookingListResponse(BaseModel):
    data: List[BookingResponse]
    pagination: PaginationMeta


class ProviderBookingListResponse(BookingListResponse):
    stats: Dict[str, int]


# Router
router = APIRouter(prefix="/bookings", tags=["bookings"])

SortField = Literal["created_at", "scheduled_date", "price", "status"]


def get_booking_service(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingService:
    return BookingService(db, dispatcher)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: CreateBookingRequest,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Book a service.

    Raises:
        400: Service inactive or unavailable
        404: Service not found
    """
    booking = booking_service.create(
        user=current_user,
        service_id=request.service_id,
        scheduled_date=request.scheduled_date,
        scheduled_time=request.scheduled_time,
        address=request.address.model_dump() if request.address else None,
        contact=request.contact.model_dump() if request.contact else None,
        customer_notes=request.customer_notes,
    )
    return BookingResponse.model_validate(booking)


@router.get("", response_model=BookingListResponse)
def list_my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: SortField = Query("created_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    bookings, meta = booking_service.list_for_customer(
        current_user, PageRequest(page, limit), status_filter, sort_by, sort_order
    )
    return BookingListResponse(
        data=[BookingResponse.model_validate(b) for b in bookings],
        pagination=PaginationMeta(**meta),
    )


@router.get("/provider/bookings", response_model=ProviderBookingListResponse)
def list_provider_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: SortField = Query("scheduled_date"),
    sort_order: Literal["asc", "desc"] = Query("asc"),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> ProviderBookingListResponse:
    """Bookings made with the caller's provider profile, with per-status counts."""
    bookings, meta, stats = booking_service.list_for_provider(
        current_user, PageRequest(page, limit), status_filter, sort_by, sort_order
    )
    return ProviderBookingListResponse(
        data=[BookingResponse.model_validate(b) for b in bookings],
        pagination=PaginationMeta(**meta),
        stats=stats,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return BookingResponse.model_validate(booking_service.get(booking_id, current_user))


@router.put("/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(
    booking_id: UUID,
    request: UpdateStatusRequest,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Provider moves a booking to a new status.

    Raises:
        400: Unknown status, booking already completed/cancelled, or illegal transition
        403: Caller is not the booking's provider
        404: Booking not found
    """
    booking = booking_service.update_status(
        booking_id, current_user, request.status, request.provider_notes
    )
    return BookingResponse.model_validate(booking)


@router.delete("/{booking_id}", response_model=BookingResponse)
def cancel_booking(
    booking_id: UUID,
    reason: Optional[str] = Query(None, max_length=500),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Customer cancels their own booking."""
    booking = booking_service.cancel(booking_id, current_user, reason)
    return BookingResponse.model_validate(booking)
