"""Authentication routes.

- POST /auth/register: Create an account with email and password
- POST /auth/login: Exchange email and password for a JWT
- GET /auth/google: Google consent-screen URL
- POST /auth/google/callback: Exchange the Google authorization code for a JWT
"""
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from nearserve.api.dependencies import get_db, get_identity_provider
from nearserve.api.routes.users import UserResponse
from nearserve.services.auth_service import AuthService
from nearserve.services.identity_provider import GoogleIdentityProvider


router = APIRouter(prefix="/auth", tags=["Authentication"])


# Request/Response Models
class RegisterRequest(BaseModel):
    """Register payload."""
    email: EmailStr = Field(..., examples=["user@example.com"])
    password: str = Field(..., description="At least 6 characters")
    name: str = Field(..., max_length=255)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class GoogleCallbackRequest(BaseModel):
    code: Optional[str] = Field(None, description="Authorization code from the Google redirect")


class AuthResponse(BaseModel):
    """JWT plus the signed-in user."""
    token: str = Field(..., description="JWT access token")
    user: UserResponse


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    """Get AuthService instance with database session."""
    return AuthService(db)


def _auth_response(result: dict) -> AuthResponse:
    return AuthResponse(token=result["token"], user=UserResponse.model_validate(result["user"]))


# Routes
@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
)
def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Create a customer account and sign it in.

    Raises:
        400: Password shorter than 6 characters or invalid email
        409: Email already registered
    """
    result = auth_service.register(request.email, request.password, request.name)
    return _auth_response(result)


@router.post("/login", response_model=AuthResponse, summary="Login")
def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Password login. 401 "Invalid email or password" on any mismatch."""
    result = auth_service.login(request.email, request.password)
    return _auth_response(result)


@router.get("/google", response_model=AuthorizationUrlResponse, summary="Google sign-in URL")
def google_authorization_url(
    state: Optional[str] = None,
    identity_provider: GoogleIdentityProvider = Depends(get_identity_provider),
):
    return AuthorizationUrlResponse(authorization_url=identity_provider.authorization_url(state))


@router.post("/google/callback", response_model=AuthResponse, summary="Google sign-in callback")
def google_callback(
    request: GoogleCallbackRequest,
    auth_service: AuthService = Depends(get_auth_service),
    identity_provider: GoogleIdentityProvider = Depends(get_identity_provider),
):
    """Exchange the authorization code, then find or create the user.

    Raises:
        400: Missing code, or the Google profile has no email
        502: Google rejected the code or could not be reached
    """
    profile = identity_provider.exchange_code(request.code or "")
    result = auth_service.login_with_identity(profile)
    return _auth_response(result)
