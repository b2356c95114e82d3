"""
Service catalog: provider-owned listings with filtered browse and search.
"""
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from nearserve.api.middleware.error_handler import (
    BadRequestException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from nearserve.lib.logging import get_logger
from nearserve.lib.pagination import PageRequest
from nearserve.models.providers import Provider
from nearserve.models.services import Service, ServiceCategory, PriceType
from nearserve.models.users import User
from nearserve.services.provider_service import ProviderService
from nearserve.services.review_service import recompute_provider_rating


logger = get_logger(__name__)

KM_PER_DEGREE = 111.0
SEARCH_LIMIT = 20

SORTABLE_FIELDS = {
    "created_at": Service.created_at,
    "price": Service.price,
    "rating": Service.rating_average,
    "rating_average": Service.rating_average,
    "title": Service.title,
}

UPDATABLE_FIELDS = frozenset({
    "title",
    "description",
    "category",
    "price",
    "price_type",
    "location",
    "images",
    "business_image",
    "service_area",
    "is_available",
    "is_active",
})

NULLABLE_FIELDS = frozenset({"business_image"})


@dataclass
class ServiceFilters:
    """Browse filters; None means "don't filter"."""
    category: Optional[ServiceCategory] = None
    city: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_rating: Optional[float] = None
    availability: Optional[bool] = None
    search: Optional[str] = None


def bounding_box(lat: float, lng: float, radius_km: float) -> Tuple[float, float, float, float]:
    """(min_lat, max_lat, min_lng, max_lng) around a point; 1 degree ~ 111 km."""
    lat_range = radius_km / KM_PER_DEGREE
    cos_lat = math.cos(math.radians(lat))
    lng_range = radius_km / (KM_PER_DEGREE * cos_lat) if cos_lat > 1e-9 else 180.0
    return lat - lat_range, lat + lat_range, lng - lng_range, lng + lng_range


def _text_match(term: str):
    return or_(
        Service.title.icontains(term, autoescape=True),
        Service.description.icontains(term, autoescape=True),
    )


class CatalogService:
    """Browse, search and manage service listings."""

    def __init__(self, session: Session):
        self.session = session
        self.providers = ProviderService(session)

    def get(self, service_id: UUID) -> Service:
        service = self.session.get(Service, service_id)
        if service is None:
            raise NotFoundException("Service", str(service_id))
        return service

    def browse(
        self,
        filters: ServiceFilters,
        page: PageRequest,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Tuple[List[Service], dict]:
        """Active services matching `filters`, one page at a time."""
        conditions = [Service.is_active.is_(True)]
        if filters.category is not None:
            conditions.append(Service.category == filters.category)
        if filters.city:
            conditions.append(func.lower(Service.city) == filters.city.lower())
        if filters.min_price is not None:
            conditions.append(Service.price >= filters.min_price)
        if filters.max_price is not None:
            conditions.append(Service.price <= filters.max_price)
        if filters.min_rating is not None:
            conditions.append(Service.rating_average >= filters.min_rating)
        if filters.availability is not None:
            conditions.append(Service.is_available.is_(filters.availability))
        if filters.search:
            conditions.append(_text_match(filters.search))

        column = SORTABLE_FIELDS.get(sort_by)
        if column is None:
            raise BadRequestException(
                f"Cannot sort by '{sort_by}'",
                details={"allowed": sorted(SORTABLE_FIELDS)},
            )
        order = column.asc() if sort_order == "asc" else column.desc()

        total = self.session.scalar(
            select(func.count()).select_from(Service).where(*conditions)
        )
        services = self.session.scalars(
            select(Service)
            .where(*conditions)
            .order_by(order, Service.id)
            .offset(page.offset)
            .limit(page.limit)
        ).all()
        return list(services), page.meta(total)

    def search(
        self,
        q: Optional[str] = None,
        category: Optional[ServiceCategory] = None,
        city: Optional[str] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        radius_km: float = 10.0,
    ) -> List[Service]:
        """
        Free-text / category / city / proximity search over bookable services.

        Raises:
            BadRequestException: No criterion given (lat and lng count only together)
        """
        has_point = lat is not None and lng is not None
        if not (q or category or city or has_point):
            raise BadRequestException(
                "Please provide search query, category, city, or coordinates"
            )

        conditions = [Service.is_active.is_(True), Service.is_available.is_(True)]
        if q:
            conditions.append(_text_match(q))
        if category is not None:
            conditions.append(Service.category == category)
        if city:
            conditions.append(func.lower(Service.city) == city.lower())
        if has_point:
            min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_km)
            latitude = Service.location[("coordinates", "latitude")].as_float()
            longitude = Service.location[("coordinates", "longitude")].as_float()
            conditions.extend([
                latitude >= min_lat,
                latitude <= max_lat,
                longitude >= min_lng,
                longitude <= max_lng,
            ])

        return list(
            self.session.scalars(
                select(Service)
                .where(*conditions)
                .order_by(Service.rating_average.desc(), Service.created_at.desc())
                .limit(SEARCH_LIMIT)
            ).all()
        )

    def _active_provider(self, user: User) -> Provider:
        provider = self.providers.find_by_user(user.id)
        if provider is None:
            raise ForbiddenException(
                "Only providers can manage services. Please create a provider profile first."
            )
        return provider

    def create(self, user: User, data: dict) -> Service:
        """
        List a new service under the caller's provider profile.

        Raises:
            ForbiddenException: No provider profile, or it is inactive/suspended
            ValidationException: Missing title, description, category, price or location.city
        """
        provider = self._active_provider(user)
        if not provider.is_active or provider.is_suspended:
            raise ForbiddenException("Your provider account is not active or is suspended.")

        errors = {}
        for field in ("title", "description", "category", "price"):
            if data.get(field) in (None, ""):
                errors[field] = f"{field} is required"
        location = data.get("location") or {}
        if not location.get("city"):
            errors["location.city"] = "Location with city is required"
        if errors:
            raise ValidationException("Service validation failed", errors=errors)

        service = Service(
            provider_id=provider.id,
            title=data["title"],
            description=data["description"],
            category=ServiceCategory(data["category"]),
            price=data["price"],
            price_type=PriceType(data.get("price_type") or PriceType.HOURLY),
            location=location,
            city=location["city"],
            images=data.get("images") or [],
            business_image=data.get("business_image"),
            service_area=data.get("service_area") or 10,
        )
        self.session.add(service)
        self.session.commit()
        self.session.refresh(service)

        logger.info(
            "Service created",
            extra={"service_id": str(service.id), "provider_id": str(provider.id)},
        )
        return service

    def _get_owned(self, service_id: UUID, user: User) -> Service:
        service = self.get(service_id)
        provider = self._active_provider(user)
        if service.provider_id != provider.id:
            raise ForbiddenException("You can only manage your own services")
        return service

    def update(self, service_id: UUID, user: User, data: dict) -> Service:
        """Owner-only partial update; keys outside UPDATABLE_FIELDS are ignored."""
        service = self._get_owned(service_id, user)
        changes = {
            key: value for key, value in data.items()
            if key in UPDATABLE_FIELDS and (value is not None or key in NULLABLE_FIELDS)
        }

        if "location" in changes:
            location = changes["location"] or {}
            if not location.get("city"):
                raise ValidationException(
                    "Service validation failed",
                    errors={"location.city": "Location with city is required"},
                )
            service.city = location["city"]

        for key, value in changes.items():
            setattr(service, key, value)

        self.session.commit()
        self.session.refresh(service)
        return service

    def delete(self, service_id: UUID, user: User) -> None:
        """
        Delete one of the caller's services.

        Its bookings and reviews go with it through the foreign keys, so the
        provider rating is recomputed from the reviews that remain.
        """
        service = self._get_owned(service_id, user)
        provider_id = service.provider_id
        self.session.delete(service)
        self.session.commit()
        logger.info("Service deleted", extra={"service_id": str(service_id)})

        try:
            recompute_provider_rating(self.session, provider_id)
        except Exception as e:
            self.session.rollback()
            logger.error(
                f"Rating recompute failed: {e}",
                extra={"provider_id": str(provider_id)},
                exc_info=True,
            )
