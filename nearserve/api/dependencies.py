"""
API dependencies for FastAPI dependency injection.

Collaborators built once at startup (Authenticator, identity provider,
notification dispatcher) live on app.state; tests swap them through
app.dependency_overrides.
"""
import hmac
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from nearserve.api.middleware.error_handler import ForbiddenException
from nearserve.lib.db import get_db as get_db_session
from nearserve.lib.settings import settings
from nearserve.models.users import User
from nearserve.services.auth_service import Authenticator
from nearserve.services.identity_provider import GoogleIdentityProvider
from nearserve.services.notification_service import NotificationDispatcher


# Re-export get_db for convenience
get_db = get_db_session


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def get_identity_provider(request: Request) -> GoogleIdentityProvider:
    return request.app.state.identity_provider


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    authenticator: Authenticator = Depends(get_authenticator),
) -> User:
    """
    Dependency to get current authenticated user from the bearer token.

    Raises:
        UnauthorizedException: 401 with a reason-specific message
    """
    return authenticator.authenticate(db, authorization)


def require_system_key(x_system_key: Optional[str] = Header(None)) -> None:
    """
    Guard for server-to-server endpoints.

    Disabled entirely (403) while no system_api_key is configured.
    """
    expected = settings.system_api_key
    if not expected:
        raise ForbiddenException("System endpoint is disabled")
    if not x_system_key or not hmac.compare_digest(x_system_key, expected):
        raise ForbiddenException("Invalid system key")
