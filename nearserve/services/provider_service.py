"""
Provider profile service: the business profile attached to a provider user.
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nearserve.api.middleware.error_handler import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from nearserve.lib.logging import get_logger
from nearserve.models.providers import Provider
from nearserve.models.services import Service
from nearserve.models.users import User, UserRole


logger = get_logger(__name__)

# Fields a provider may change on their own profile. Ratings, counters,
# verification and suspension are maintained elsewhere.
UPDATABLE_FIELDS = frozenset({
    "business_name",
    "bio",
    "profile_image",
    "cover_image",
    "contact_info",
    "address",
    "categories",
    "experience_years",
    "experience_description",
    "certifications",
})

COUNTER_FIELDS = frozenset({"total_bookings", "completed_bookings", "cancelled_bookings"})


def increment_counter(session: Session, provider_id: UUID, counter: str) -> None:
    """Atomic `counter = counter + 1` on one provider row. Caller commits."""
    if counter not in COUNTER_FIELDS:
        raise ValueError(f"Unknown provider counter: {counter}")
    column = getattr(Provider, counter)
    session.execute(
        update(Provider)
        .where(Provider.id == provider_id)
        .values({column: column + 1})
        .execution_options(synchronize_session=False)
    )


class ProviderService:
    """Create, read and update provider profiles."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, provider_id: UUID) -> Provider:
        provider = self.session.get(Provider, provider_id)
        if provider is None:
            raise NotFoundException("Provider", str(provider_id))
        return provider

    def find_by_user(self, user_id: UUID) -> Optional[Provider]:
        return self.session.execute(
            select(Provider).where(Provider.user_id == user_id)
        ).unique().scalar_one_or_none()

    def get_by_user(self, user_id: UUID) -> Provider:
        provider = self.find_by_user(user_id)
        if provider is None:
            raise NotFoundException("Provider profile")
        return provider

    def get_owned(self, provider_id: UUID, user: User) -> Provider:
        """Provider by id, only when `user` owns it (404 then 403)."""
        provider = self.get(provider_id)
        if provider.user_id != user.id:
            raise ForbiddenException("Not authorized to manage this provider")
        return provider

    def create(self, user: User, data: dict) -> Provider:
        """
        Create the caller's provider profile and switch them to the provider role.

        Raises:
            ConflictException: Caller already has a profile
            ValidationException: contact_info.phone or address.city missing
        """
        if self.find_by_user(user.id) is not None:
            raise ConflictException("Provider profile already exists")

        errors = {}
        if not (data.get("contact_info") or {}).get("phone"):
            errors["contact_info.phone"] = "Phone number is required"
        if not (data.get("address") or {}).get("city"):
            errors["address.city"] = "City is required"
        if errors:
            raise ValidationException("Provider profile validation failed", errors=errors)

        provider = Provider(
            user_id=user.id,
            **{key: value for key, value in data.items() if key in UPDATABLE_FIELDS and value is not None},
        )
        self.session.add(provider)
        if user.role != UserRole.PROVIDER:
            user.role = UserRole.PROVIDER

        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictException("Provider profile already exists")
        self.session.refresh(provider)

        logger.info(
            "Provider profile created",
            extra={"provider_id": str(provider.id), "user_id": str(user.id)},
        )
        return provider

    def update(self, user: User, data: dict) -> Provider:
        """Partial update restricted to UPDATABLE_FIELDS; other keys are ignored."""
        provider = self.get_by_user(user.id)
        changes = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS}

        if "contact_info" in changes and not (changes["contact_info"] or {}).get("phone"):
            raise ValidationException(
                "Provider profile validation failed",
                errors={"contact_info.phone": "Phone number is required"},
            )
        if "address" in changes and not (changes["address"] or {}).get("city"):
            raise ValidationException(
                "Provider profile validation failed",
                errors={"address.city": "City is required"},
            )

        for key, value in changes.items():
            setattr(provider, key, value)

        self.session.commit()
        self.session.refresh(provider)
        return provider

    def list_services(self, user: User) -> List[Service]:
        provider = self.get_by_user(user.id)
        return list(
            self.session.scalars(
                select(Service)
                .where(Service.provider_id == provider.id)
                .order_by(Service.created_at.desc())
            ).all()
        )
