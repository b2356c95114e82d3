"""
Shared fixtures.

Tests run against an in-memory SQLite database; the environment below
must be in place before anything under nearserve is imported.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-secret-key"
os.environ["SYSTEM_API_KEY"] = "test-system-key"
os.environ["NOTIFICATION_SWEEP_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import datetime, timezone  # noqa: E402
from typing import Optional  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import nearserve.models  # noqa: E402,F401
from nearserve.api.app import app  # noqa: E402
from nearserve.api.dependencies import get_dispatcher  # noqa: E402
from nearserve.lib.db import SessionLocal, drop_db, engine, init_db  # noqa: E402
from nearserve.lib.jwt import create_access_token  # noqa: E402
from nearserve.lib.security import hash_password  # noqa: E402
from nearserve.models.bookings import Booking, BookingStatus  # noqa: E402
from nearserve.models.providers import Provider  # noqa: E402
from nearserve.models.services import Service, ServiceCategory  # noqa: E402
from nearserve.models.users import User, UserRole  # noqa: E402
from nearserve.services.notification_service import NotificationDispatcher  # noqa: E402


@pytest.fixture(autouse=True)
def setup_database():
    """Fresh schema for every test."""
    init_db()
    yield
    drop_db()


@pytest.fixture
def db_session(setup_database):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def foreign_keys(setup_database):
    """Have SQLite enforce foreign keys and their ON DELETE actions."""
    with engine.connect() as connection:
        connection.exec_driver_sql("PRAGMA foreign_keys=ON")
    yield
    with engine.connect() as connection:
        connection.exec_driver_sql("PRAGMA foreign_keys=OFF")


@pytest.fixture
def commit_after_lookup(db_session, monkeypatch):
    """
    Let another session commit `row` right after db_session next selects
    from `table`, so the application-level duplicate check passes and the
    database constraint has to decide.
    """
    def arm(table, row):
        real_execute = db_session.execute

        def execute(statement, *args, **kwargs):
            froms = getattr(statement, "get_final_froms", list)()
            if not any(from_ is table for from_ in froms):
                return real_execute(statement, *args, **kwargs)
            result = real_execute(statement, *args, **kwargs).freeze()
            monkeypatch.setattr(db_session, "execute", real_execute)
            with SessionLocal() as other:
                other.add(row)
                other.commit()
            return result()

        monkeypatch.setattr(db_session, "execute", execute)
    return arm


@pytest.fixture
def client():
    app.state.dispatcher.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def dispatcher():
    return app.state.dispatcher


@pytest.fixture
def failing_dispatcher(client):
    """Dispatcher whose every notification insert blows up."""
    broken = NotificationDispatcher(session_factory=MagicMock(side_effect=RuntimeError("notification store down")))
    app.dependency_overrides[get_dispatcher] = lambda: broken
    return broken


@pytest.fixture
def auth_headers():
    def build(user: User) -> dict:
        token = create_access_token(user_id=str(user.id), email=user.email)
        return {"Authorization": f"Bearer {token}"}
    return build


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def create(
        email: Optional[str] = None,
        name: str = "Test User",
        password: str = "secret123",
        role: UserRole = UserRole.CUSTOMER,
        phone: Optional[str] = None,
    ) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            name=name,
            password_hash=hash_password(password),
            role=role,
            phone=phone,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return create


@pytest.fixture
def make_provider(db_session, make_user):
    def create(user: Optional[User] = None, city: str = "Pune", **fields) -> Provider:
        user = user or make_user(name="Provider User", role=UserRole.PROVIDER)
        provider = Provider(
            user_id=user.id,
            business_name=fields.pop("business_name", "Fix-It Works"),
            contact_info=fields.pop("contact_info", {"phone": "9000000000"}),
            address=fields.pop("address", {"city": city, "state": "MH"}),
            **fields,
        )
        db_session.add(provider)
        db_session.commit()
        db_session.refresh(provider)
        return provider
    return create


@pytest.fixture
def make_service(db_session):
    def create(
        provider: Provider,
        title: str = "Leak repair",
        price: float = 500,
        city: str = "Pune",
        category: ServiceCategory = ServiceCategory.PLUMBER,
        **fields,
    ) -> Service:
        location = fields.pop("location", {"city": city, "state": "MH", "zip_code": "411001"})
        service = Service(
            provider_id=provider.id,
            title=title,
            description=fields.pop("description", f"{title} by a local professional"),
            category=category,
            price=price,
            location=location,
            city=location["city"],
            **fields,
        )
        db_session.add(service)
        db_session.commit()
        db_session.refresh(service)
        return service
    return create


@pytest.fixture
def make_booking(db_session):
    def create(customer: User, service: Service, status: BookingStatus = BookingStatus.PENDING) -> Booking:
        booking = Booking(
            service_id=service.id,
            user_id=customer.id,
            provider_id=service.provider_id,
            scheduled_date=datetime.now(timezone.utc),
            scheduled_time="10:00 AM",
            price=service.price,
            address={"city": service.city},
            contact={"phone": "To be confirmed"},
            status=status,
        )
        db_session.add(booking)
        db_session.commit()
        db_session.refresh(booking)
        return booking
    return create


@pytest.fixture
def customer(make_user):
    return make_user(email="customer@example.com", name="Asha Customer", phone="9111111111")


@pytest.fixture
def provider(make_provider):
    return make_provider()


@pytest.fixture
def provider_user(db_session, provider):
    return db_session.get(User, provider.user_id)


@pytest.fixture
def service(make_service, provider):
    return make_service(provider)
