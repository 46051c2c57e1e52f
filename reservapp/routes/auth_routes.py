from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from reservapp.core.permissions import permissions_for
from reservapp.core.security import Claim
from reservapp.database import get_db
from reservapp.dependencies import get_current_claim, get_current_user
from reservapp.models.user import User
from reservapp.schemas.auth_schemas import (
    LoginRequest,
    ProfileResponse,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from reservapp.schemas.common import ApiResponse, ok
from reservapp.services.auth_service import AuthService

router = APIRouter()


@router.post(
    "/register",
    response_model=ApiResponse[TokenResponse],
    status_code=status.HTTP_201_CREATED,
)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    """Create a USER account and return an access token"""
    service = AuthService(db)
    token, user = service.register(data)
    return ok(
        "User registered successfully",
        TokenResponse(access_token=token, user=UserResponse.model_validate(user)),
    )


@router.post("/login", response_model=ApiResponse[TokenResponse])
def login(data: LoginRequest, db: Session = Depends(get_db)):
    """Exchange e-mail and password for an access token"""
    service = AuthService(db)
    token, user = service.login(data.email, data.password)
    return ok(
        "Login successful",
        TokenResponse(access_token=token, user=UserResponse.model_validate(user)),
    )


@router.get("/profile", response_model=ApiResponse[ProfileResponse])
def profile(
    claim: Claim = Depends(get_current_claim),
    user: User = Depends(get_current_user),
):
    """
    Current user's profile.

    Permissions are derived from the role in the token, which is what every
    authorization check uses.
    """
    return ok(
        "Profile retrieved successfully",
        ProfileResponse(
            user=UserResponse.model_validate(user),
            permissions=sorted(permissions_for(claim.role)),
        ),
    )
