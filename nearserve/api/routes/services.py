"""
Services API routes.
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from nearserve.api.dependencies import get_current_user, get_db
from nearserve.api.routes.reviews import MessageResponse, ReviewResponse
from nearserve.lib.pagination import PageRequest, PaginationMeta
from nearserve.models.services import PriceType, ServiceCategory
from nearserve.models.users import User
from nearserve.services.catalog_service import CatalogService, ServiceFilters
from nearserve.services.review_service import ReviewService


# Pydantic schemas
class Coordinates(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class ServiceLocation(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class ProviderSummary(BaseModel):
    id: UUID
    business_name: Optional[str] = None
    contact_info: dict = {}
    rating_average: float
    rating_count: int
    is_verified: bool

    model_config = {"from_attributes": True}


class ServiceResponse(BaseModel):
    """Service listing as returned to clients."""
    id: UUID
    provider_id: UUID
    title: str
    description: str
    category: ServiceCategory
    price: float
    price_type: PriceType
    location: dict
    city: str
    service_area: int
    images: List[str] = []
    business_image: Optional[str] = None
    rating_average: float
    rating_count: int
    is_available: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
    provider: Optional[ProviderSummary] = None

    model_config = {"from_attributes": True}


class CreateServiceRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    category: Optional[ServiceCategory] = None
    price: Optional[float] = Field(None, ge=0)
    price_type: Optional[PriceType] = None
    location: Optional[ServiceLocation] = None
    images: List[str] = Field(default_factory=list)
    business_image: Optional[str] = None
    service_area: Optional[int] = Field(None, ge=1, le=100)


class UpdateServiceRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    category: Optional[ServiceCategory] = None
    price: Optional[float] = Field(None, ge=0)
    price_type: Optional[PriceType] = None
    location: Optional[ServiceLocation] = None
    images: Optional[List[str]] = None
    business_image: Optional[str] = None
    service_area: Optional[int] = Field(None, ge=1, le=100)
    is_available: Optional[bool] = None
    is_active: Optional[bool] = None


class ServiceListResponse(BaseModel):
    data: List[ServiceResponse]
    pagination: PaginationMeta


class ServiceSearchResponse(BaseModel):
    count: int
    data: List[ServiceResponse]


class ServiceReviewsResponse(BaseModel):
    data: List[ReviewResponse]
    pagination: PaginationMeta
    rating_distribution: Dict[int, int]
    average_rating: float


# Router
router = APIRouter(prefix="/services", tags=["services"])


def get_catalog_service(db: Session = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


def _to_response(service) -> ServiceResponse:
    return ServiceResponse.model_validate(service)


@router.get("", response_model=ServiceListResponse)
def list_services(
    category: Optional[ServiceCategory] = Query(None, description="Filter by category"),
    city: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    availability: Optional[bool] = Query(None, description="Filter on the service's available flag"),
    search: Optional[str] = Query(None, description="Case-insensitive match on title or description"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("created_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    catalog: CatalogService = Depends(get_catalog_service),
) -> ServiceListResponse:
    """
    List active services.

    Query parameters:
    - category, city, min_price, max_price, min_rating, availability, search
    - page, limit, sort_by (created_at, price, rating_average, title), sort_order
    """
    filters = ServiceFilters(
        category=category,
        city=city,
        min_price=min_price,
        max_price=max_price,
        min_rating=min_rating,
        availability=availability,
        search=search,
    )
    services, meta = catalog.browse(filters, PageRequest(page, limit), sort_by, sort_order)
    return ServiceListResponse(
        data=[_to_response(s) for s in services],
        pagination=PaginationMeta(**meta),
    )


@router.get("/search", response_model=ServiceSearchResponse)
def search_services(
    q: Optional[str] = Query(None, description="Free text"),
    category: Optional[ServiceCategory] = Query(None),
    city: Optional[str] = Query(None),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius: float = Query(10, gt=0, le=100, description="Radius in km around lat/lng"),
    catalog: CatalogService = Depends(get_catalog_service),
) -> ServiceSearchResponse:
    """Top 20 bookable services by rating. At least one criterion is required."""
    services = catalog.search(q=q, category=category, city=city, lat=lat, lng=lng, radius_km=radius)
    return ServiceSearchResponse(count=len(services), data=[_to_response(s) for s in services])


@router.get("/{service_id}", response_model=ServiceResponse)
def get_service(
    service_id: UUID,
    catalog: CatalogService = Depends(get_catalog_service),
) -> ServiceResponse:
    return _to_response(catalog.get(service_id))


@router.get("/{service_id}/reviews", response_model=ServiceReviewsResponse)
def list_service_reviews(
    service_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
) -> ServiceReviewsResponse:
    """Newest reviews first, with the 5..1 star distribution."""
    result = ReviewService(db).list_for_service(service_id, PageRequest(page, limit))
    return ServiceReviewsResponse(
        data=[ReviewResponse.model_validate(r) for r in result["reviews"]],
        pagination=PaginationMeta(**result["pagination"]),
        rating_distribution=result["rating_distribution"],
        average_rating=result["average_rating"],
    )


@router.post("", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
def create_service(
    request: CreateServiceRequest,
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
) -> ServiceResponse:
    """
    Create a service under the caller's provider profile.

    Raises:
        400: Missing title, description, category, price or location.city
        403: No active provider profile
    """
    service = catalog.create(current_user, request.model_dump(mode="json", exclude_none=True))
    return _to_response(service)


@router.put("/{service_id}", response_model=ServiceResponse)
def update_service(
    service_id: UUID,
    request: UpdateServiceRequest,
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
) -> ServiceResponse:
    changes = request.model_dump(mode="json", exclude_unset=True)
    service = catalog.update(service_id, current_user, changes)
    return _to_response(service)


@router.delete("/{service_id}", response_model=MessageResponse)
def delete_service(
    service_id: UUID,
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
) -> MessageResponse:
    catalog.delete(service_id, current_user)
    return MessageResponse(message="Service deleted successfully")
