"""
User routes: the caller's own profile and role selection.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from nearserve.api.dependencies import get_current_user, get_db
from nearserve.models.users import User, UserRole
from nearserve.services.auth_service import AuthService


# Pydantic schemas
class UserResponse(BaseModel):
    """Public view of a user. Never includes the password hash."""
    id: UUID
    email: str
    name: str
    role: UserRole
    phone: Optional[str] = None
    avatar: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SetRoleRequest(BaseModel):
    role: UserRole


# Router
router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.put("/set-role", response_model=UserResponse)
def set_role(
    request: SetRoleRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Choose customer or provider. Any other value is rejected with 400."""
    user = AuthService(db).set_role(current_user, request.role)
    return UserResponse.model_validate(user)
