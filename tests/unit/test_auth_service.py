"""
Tests for AuthService and Authenticator.
"""
from datetime import timedelta
from uuid import uuid4

import pytest

from nearserve.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    UnauthorizedException,
)
from nearserve.lib.jwt import create_access_token, verify_token
from nearserve.models.users import User, UserRole
from nearserve.services.auth_service import AuthService, Authenticator
from nearserve.services.identity_provider import IdentityProfile


@pytest.fixture
def auth(db_session):
    return AuthService(db_session)


@pytest.mark.unit
def test_register_creates_customer(auth):
    result = auth.register("Asha@Example.com", "secret123", "Asha")

    user = result["user"]
    assert user.email == "asha@example.com"
    assert user.role == UserRole.CUSTOMER
    assert user.password_hash != "secret123"
    assert verify_token(result["token"])["sub"] == str(user.id)


@pytest.mark.unit
def test_register_short_password(auth):
    with pytest.raises(BadRequestException) as exc_info:
        auth.register("asha@example.com", "12345", "Asha")

    assert exc_info.value.message == "Password must be at least 6 characters"


@pytest.mark.unit
def test_register_password_over_bcrypt_limit(auth, db_session):
    # 70 characters but 140 bytes
    with pytest.raises(BadRequestException) as exc_info:
        auth.register("asha@example.com", "\u00e9" * 70, "Asha")

    assert exc_info.value.message == "Password must be at most 72 bytes"
    assert db_session.query(User).count() == 0


@pytest.mark.unit
def test_register_duplicate_email(auth):
    auth.register("asha@example.com", "secret123", "Asha")

    with pytest.raises(ConflictException) as exc_info:
        auth.register("ASHA@example.com", "secret456", "Asha Again")

    assert exc_info.value.message == "User already exists with this email"


@pytest.mark.unit
def test_login_wrong_password(auth):
    auth.register("asha@example.com", "secret123", "Asha")

    with pytest.raises(UnauthorizedException) as exc_info:
        auth.login("asha@example.com", "nope-nope")

    assert exc_info.value.message == "Invalid email or password"


@pytest.mark.unit
def test_identity_login_creates_user(auth):
    profile = IdentityProfile(subject="g-1", email="ravi@example.com", name="Ravi", picture="https://a/p.png")

    user = auth.login_with_identity(profile)["user"]

    assert user.google_id == "g-1"
    assert user.password_hash is None
    assert user.avatar == "https://a/p.png"


@pytest.mark.unit
def test_identity_login_links_existing_account(auth):
    registered = auth.register("ravi@example.com", "secret123", "Ravi")["user"]

    user = auth.login_with_identity(IdentityProfile(subject="g-2", email="ravi@example.com"))["user"]

    assert user.id == registered.id
    assert user.google_id == "g-2"


@pytest.mark.unit
def test_identity_account_cannot_password_login(auth):
    auth.login_with_identity(IdentityProfile(subject="g-3", email="meera@example.com"))

    with pytest.raises(UnauthorizedException):
        auth.login("meera@example.com", "anything")


@pytest.mark.unit
@pytest.mark.parametrize(
    "header,message",
    [
        (None, "No token provided, authorization denied"),
        ("Token abc", "Invalid token format. Use: Bearer <token>"),
        ("Bearer    ", "Token is empty"),
        ("Bearer garbage", "Invalid token, authorization denied"),
    ],
)
def test_authenticator_rejections(db_session, header, message):
    with pytest.raises(UnauthorizedException) as exc_info:
        Authenticator().authenticate(db_session, header)

    assert exc_info.value.message == message


@pytest.mark.unit
def test_authenticator_expired_token(db_session, customer):
    token = create_access_token(str(customer.id), customer.email, expires_delta=timedelta(seconds=-5))

    with pytest.raises(UnauthorizedException) as exc_info:
        Authenticator().authenticate(db_session, f"Bearer {token}")

    assert exc_info.value.message == "Token has expired, please login again"


@pytest.mark.unit
def test_authenticator_unknown_user(db_session):
    token = create_access_token(str(uuid4()), "ghost@example.com")

    with pytest.raises(UnauthorizedException) as exc_info:
        Authenticator().authenticate(db_session, f"Bearer {token}")

    assert exc_info.value.message == "User not found, authorization denied"


@pytest.mark.unit
def test_authenticator_resolves_user(db_session, customer):
    token = create_access_token(str(customer.id), customer.email)

    assert Authenticator().authenticate(db_session, f"Bearer {token}").id == customer.id
