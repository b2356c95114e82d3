"""
Provider routes: business profile and availability overlay.

Availability reads (including the bookable-at check) are public; every
availability write requires the provider's owning user.
"""
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from nearserve.api.dependencies import get_current_user, get_db
from nearserve.api.routes.reviews import MessageResponse
from nearserve.api.routes.services import Coordinates, ServiceResponse
from nearserve.models.availability import DATE_PATTERN, TIME_PATTERN, Weekday
from nearserve.models.providers import Provider
from nearserve.models.services import ServiceCategory
from nearserve.models.users import User
from nearserve.services.availability_service import AvailabilityService
from nearserve.services.provider_service import ProviderService


# Pydantic schemas
class ContactInfo(BaseModel):
    phone: Optional[str] = None
    alternate_phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None


class ProviderAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class ProviderProfileRequest(BaseModel):
    business_name: Optional[str] = Field(None, max_length=100)
    bio: Optional[str] = Field(None, max_length=500)
    profile_image: Optional[str] = None
    cover_image: Optional[str] = None
    contact_info: Optional[ContactInfo] = None
    address: Optional[ProviderAddress] = None
    categories: Optional[List[ServiceCategory]] = None
    experience_years: Optional[int] = Field(None, ge=0, le=50)
    experience_description: Optional[str] = Field(None, max_length=500)
    certifications: Optional[List[dict]] = None


class ProviderResponse(BaseModel):
    id: UUID
    user_id: UUID
    business_name: Optional[str] = None
    bio: Optional[str] = None
    profile_image: Optional[str] = None
    cover_image: Optional[str] = None
    contact_info: dict
    address: dict
    categories: List[ServiceCategory] = []
    experience_years: Optional[int] = None
    experience_description: Optional[str] = None
    certifications: List[dict] = []
    rating_average: float
    rating_count: int
    total_bookings: int
    completed_bookings: int
    cancelled_bookings: int
    is_available: bool
    is_verified: bool
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class SlotWindow(BaseModel):
    start: str = Field(..., pattern=TIME_PATTERN)
    end: str = Field(..., pattern=TIME_PATTERN)


class SlotResponse(BaseModel):
    id: UUID
    start: str
    end: str

    model_config = {"from_attributes": True}


class HolidayResponse(BaseModel):
    id: UUID
    date: str
    reason: str

    model_config = {"from_attributes": True}


class BreakResponse(BaseModel):
    id: UUID
    date: str
    start: str
    end: str
    reason: Optional[str] = None

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    provider_id: UUID
    is_available: bool
    weekly_availability: Dict[str, List[SlotResponse]]
    holidays: List[HolidayResponse]
    breaks: List[BreakResponse]


class ReplaceAvailabilityRequest(BaseModel):
    """Both fields optional; only supplied ones are applied."""
    weekly_availability: Optional[Dict[Weekday, List[SlotWindow]]] = None
    is_available: Optional[bool] = None


class AddSlotRequest(SlotWindow):
    day: Weekday


class AddHolidayRequest(BaseModel):
    date: str = Field(..., pattern=DATE_PATTERN)
    reason: str = Field(..., min_length=1, max_length=200)


class AddBreakRequest(SlotWindow):
    date: str = Field(..., pattern=DATE_PATTERN)
    reason: Optional[str] = Field(None, max_length=200)


class BookabilityResponse(BaseModel):
    provider_id: UUID
    at: datetime
    bookable: bool
    reason: Optional[str] = None


# Router
router = APIRouter(prefix="/providers", tags=["providers"])


def get_provider_service(db: Session = Depends(get_db)) -> ProviderService:
    return ProviderService(db)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def _availability_response(provider: Provider) -> AvailabilityResponse:
    return AvailabilityResponse(
        provider_id=provider.id,
        is_available=provider.is_available,
        weekly_availability={
            day: [SlotResponse.model_validate(slot) for slot in slots]
            for day, slots in AvailabilityService.weekly_map(provider).items()
        },
        holidays=[HolidayResponse.model_validate(h) for h in provider.holidays],
        breaks=[BreakResponse.model_validate(b) for b in provider.breaks],
    )


# Profile

@router.post("", response_model=ProviderResponse, status_code=status.HTTP_201_CREATED)
def create_provider(
    request: ProviderProfileRequest,
    current_user: User = Depends(get_current_user),
    provider_service: ProviderService = Depends(get_provider_service),
) -> ProviderResponse:
    """
    Create the caller's provider profile.

    Raises:
        400: contact_info.phone or address.city missing
        409: Profile already exists
    """
    provider = provider_service.create(
        current_user, request.model_dump(mode="json", exclude_none=True)
    )
    return ProviderResponse.model_validate(provider)


@router.get("/me", response_model=ProviderResponse)
@router.get("/profile", response_model=ProviderResponse)
def get_my_provider(
    current_user: User = Depends(get_current_user),
    provider_service: ProviderService = Depends(get_provider_service),
) -> ProviderResponse:
    return ProviderResponse.model_validate(provider_service.get_by_user(current_user.id))


@router.put("/profile", response_model=ProviderResponse)
def update_my_provider(
    request: ProviderProfileRequest,
    current_user: User = Depends(get_current_user),
    provider_service: ProviderService = Depends(get_provider_service),
) -> ProviderResponse:
    provider = provider_service.update(
        current_user, request.model_dump(mode="json", exclude_unset=True)
    )
    return ProviderResponse.model_validate(provider)


@router.get("/services", response_model=List[ServiceResponse])
def list_my_services(
    current_user: User = Depends(get_current_user),
    provider_service: ProviderService = Depends(get_provider_service),
) -> List[ServiceResponse]:
    return [ServiceResponse.model_validate(s) for s in provider_service.list_services(current_user)]


# Availability

@router.get("/{provider_id}/availability", response_model=AvailabilityResponse)
def get_availability(
    provider_id: UUID,
    availability: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    return _availability_response(availability.get(provider_id))


@router.get("/{provider_id}/availability/check", response_model=BookabilityResponse)
def check_availability(
    provider_id: UUID,
    at: datetime = Query(..., description="Provider wall-clock time, ISO 8601"),
    availability: AvailabilityService = Depends(get_availability_service),
) -> BookabilityResponse:
    """Whether the provider can be booked at `at`, and why not when they can't."""
    result = availability.is_bookable(provider_id, at)
    return BookabilityResponse(
        provider_id=provider_id,
        at=at,
        bookable=result.bookable,
        reason=result.reason,
    )


@router.put("/{provider_id}/availability", response_model=AvailabilityResponse)
def replace_availability(
    provider_id: UUID,
    request: ReplaceAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    availability: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    weekly = None
    if request.weekly_availability is not None:
        weekly = {
            day: [(w.start, w.end) for w in windows]
            for day, windows in request.weekly_availability.items()
        }
    provider = availability.replace(
        provider_id, current_user, weekly=weekly, is_available=request.is_available
    )
    return _availability_response(provider)


@router.post(
    "/{provider_id}/availability/slot",
    response_model=SlotResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_slot(
    provider_id: UUID,
    request: AddSlotRequest,
    current_user: User = Depends(get_current_user),
    availability: AvailabilityService = Depends(get_availability_service),
) -> SlotResponse:
    slot = availability.add_slot(provider_id, current_user, request.day, request.start, request.end)
    return SlotResponse.model_validate(slot)


@router.delete("/{provider_id}/availability/slot/{slot_id}", response_model=MessageResponse)
def delete_slot(
    provider_id: UUID,
    slot_id: UUID,
    day: Weekday = Query(..., description="Weekday the slot belongs to"),
    current_user: User = Depends(get_current_user),
    availability: AvailabilityService = Depends(get_availability_service),
) -> MessageResponse:
    availability.delete_slot(provider_id, current_user, day, slot_id)
    return MessageResponse(message="Slot deleted successfully")


@router.post(
    "/{provider_id}/availability/holiday",
    response_model=HolidayResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_holiday(
    provider_id: UUID,
    request: AddHolidayRequest,
    current_user: User = Depends(get_current_user),
    availability: AvailabilityService = Depends(get_availability_service),
) -> HolidayResponse:
    """409 when a holiday already exists on that date."""
    holiday = availability.add_holiday(provider_id, current_user, request.date, request.reason)
    return HolidayResponse.model_validate(holiday)


@router.delete("/{provider_id}/availability/holiday/{holiday_id}", response_model=MessageResponse)
def delete_holiday(
    provider_id: UUID,
    holiday_id: UUID,
    current_user: User = Depends(get_current_user),
    availability: AvailabilityService = Depends(get_availability_service),
) -> MessageResponse:
    availability.delete_holiday(provider_id, current_user, holiday_id)
    return MessageResponse(message="Holiday deleted successfully")


@router.post(
    "/{provider_id}/availability/break",
    response_model=BreakResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_break(
    provider_id: UUID,
    request: AddBreakRequest,
    current_user: User = Depends(get_current_user),
    availability: AvailabilityService = Depends(get_availability_service),
) -> BreakResponse:
    brk = availability.add_break(
        provider_id, current_user, request.date, request.start, request.end, request.reason
    )
    return BreakResponse.model_validate(brk)


@router.delete("/{provider_id}/availability/break/{break_id}", response_model=MessageResponse)
def delete_break(
    provider_id: UUID,
    break_id: UUID,
    current_user: User = Depends(get_current_user),
    availability: AvailabilityService = Depends(get_availability_service),
) -> MessageResponse:
    availability.delete_break(provider_id, current_user, break_id)
    return MessageResponse(message="Break deleted successfully")
