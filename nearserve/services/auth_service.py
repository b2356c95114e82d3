"""Authentication service.

Handles the account flows and bearer resolution:
1. Register / login with email and password
2. Sign in through the identity provider (find-or-create by google_id, then email)
3. Resolve an Authorization header to a User (Authenticator)
"""
from typing import Optional
from uuid import UUID

import jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nearserve.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    UnauthorizedException,
)
from nearserve.lib.jwt import create_access_token, verify_token
from nearserve.lib.logging import get_logger
from nearserve.lib.security import hash_password, verify_password
from nearserve.models.users import User, UserRole
from nearserve.services.identity_provider import IdentityProfile


logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6
# bcrypt only accepts 72 bytes of input
MAX_PASSWORD_BYTES = 72


class AuthService:
    """Account creation, password login and identity-provider login.

    Every successful flow returns {"token": str, "user": User}.
    """

    def __init__(self, session: Session):
        """Initialize auth service with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def _find_by_email(self, email: str) -> Optional[User]:
        return self.session.execute(
            select(User).where(User.email == email.lower())
        ).scalar_one_or_none()

    def _issue(self, user: User) -> dict:
        token = create_access_token(user_id=str(user.id), email=user.email)
        return {"token": token, "user": user}

    def register(self, email: str, password: str, name: str) -> dict:
        """Create a customer account with a bcrypt-hashed password.

        Raises:
            BadRequestException: Password shorter than 6 characters, longer than
                72 bytes, or blank name
            ConflictException: Email already registered
        """
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise BadRequestException(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise BadRequestException(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
            )
        if not name or not name.strip():
            raise BadRequestException("Name is required")

        email = email.lower()
        if self._find_by_email(email):
            raise ConflictException("User already exists with this email")

        user = User(
            email=email,
            name=name.strip(),
            password_hash=hash_password(password),
            role=UserRole.CUSTOMER,
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictException("User already exists with this email")
        self.session.refresh(user)

        logger.info("User registered", extra={"user_id": str(user.id)})
        return self._issue(user)

    def login(self, email: str, password: str) -> dict:
        """Password login.

        Accounts created through the identity provider have no password
        and can only sign in that way.

        Raises:
            UnauthorizedException: Unknown email or wrong password
        """
        user = self._find_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            raise UnauthorizedException("Invalid email or password")

        logger.info("User logged in", extra={"user_id": str(user.id)})
        return self._issue(user)

    def login_with_identity(self, profile: IdentityProfile) -> dict:
        """Find-or-create the user behind an identity-provider profile.

        Lookup order is google_id, then email (linking the google_id onto an
        existing password account). New users start as customers.
        """
        user = self.session.execute(
            select(User).where(User.google_id == profile.subject)
        ).scalar_one_or_none()

        if user is None:
            user = self._find_by_email(profile.email)
            if user is not None:
                user.google_id = profile.subject
                logger.info("Linked identity provider to existing user", extra={"user_id": str(user.id)})

        if user is None:
            user = User(
                email=profile.email.lower(),
                name=profile.name or profile.email.split("@")[0],
                google_id=profile.subject,
                avatar=profile.picture,
                role=UserRole.CUSTOMER,
            )
            self.session.add(user)
            logger.info("Created user from identity provider profile")
        elif not user.avatar and profile.picture:
            user.avatar = profile.picture

        self.session.commit()
        self.session.refresh(user)
        return self._issue(user)

    def set_role(self, user: User, role: UserRole) -> User:
        if user.role != role:
            user.role = role
            self.session.commit()
            self.session.refresh(user)
        return user


class Authenticator:
    """Resolves an `Authorization: Bearer <token>` header to a User.

    Each failure mode has its own 401 message so clients can tell an
    expired session from a malformed header.
    """

    scheme = "Bearer"

    def extract_token(self, authorization: Optional[str]) -> str:
        if not authorization:
            raise UnauthorizedException("No token provided, authorization denied")

        prefix = f"{self.scheme} "
        if not authorization.startswith(prefix):
            raise UnauthorizedException("Invalid token format. Use: Bearer <token>")

        token = authorization[len(prefix):].strip()
        if not token:
            raise UnauthorizedException("Token is empty")
        return token

    def authenticate(self, session: Session, authorization: Optional[str]) -> User:
        token = self.extract_token(authorization)

        try:
            payload = verify_token(token)
        except jwt.ExpiredSignatureError:
            raise UnauthorizedException("Token has expired, please login again")
        except jwt.InvalidTokenError:
            raise UnauthorizedException("Invalid token, authorization denied")

        subject = payload.get("sub")
        try:
            user_id = UUID(str(subject))
        except ValueError:
            raise UnauthorizedException("Invalid token, authorization denied")

        user = session.get(User, user_id)
        if user is None:
            raise UnauthorizedException("User not found, authorization denied")
        return user
