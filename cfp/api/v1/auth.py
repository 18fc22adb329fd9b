"""Authentication routes"""

from fastapi import APIRouter, Depends, status, Request, Query
from sqlalchemy.orm import Session

from cfp.core.database import get_db
from cfp.config import settings
from cfp.core.security import create_access_token
from cfp.schemas.user import (
    UserLogin,
    UserRegister,
    ProfileUpdate,
    TokenResponse,
    UserResponse,
    InvitationAccept,
)
from cfp.services.user_service import user_service
from cfp.services.invitation_service import invitation_service
from cfp.services.rate_limiter import rate_limiter
from cfp.services.audit_service import audit_service
from cfp.api.deps import get_current_user, client_ip
from cfp.models.user import User
from cfp.core.exceptions import RateLimitExceededError

router = APIRouter()


def _strict_limit(request: Request, scope: str) -> None:
    ip = client_ip(request)
    if not rate_limiter.allow(f"{scope}:min:{ip}", settings.AUTH_STRICT_RATE_LIMIT_PER_MINUTE, 60):
        raise RateLimitExceededError("Too many requests. Please wait a minute.")
    if not rate_limiter.allow(f"{scope}:hour:{ip}", settings.AUTH_STRICT_RATE_LIMIT_PER_HOUR, 3600):
        raise RateLimitExceededError("Too many requests. Please try again later.")


def _token_response(user: User) -> TokenResponse:
    access_token = create_access_token({"sub": str(user.id), "role": user.role})
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse(**user.to_dict())
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    data: UserRegister,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Self-registration - creates a USER account and logs it in

    Args:
        data: Email, password and optional name
        db: Database session

    Returns:
        JWT token and user info
    """
    _strict_limit(request, "register")
    user = user_service.register_user(db, data.email, data.password, data.name)
    return _token_response(user)


@router.post("/login", response_model=TokenResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: UserLogin,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Login endpoint - authenticate user and return JWT token

    Args:
        credentials: Email and password
        db: Database session

    Returns:
        JWT token and user info
    """
    ip = client_ip(request)
    per_min_key = f"login:min:{ip}:{credentials.email}"
    per_hour_key = f"login:hour:{ip}:{credentials.email}"
    if not rate_limiter.allow(per_min_key, settings.LOGIN_RATE_LIMIT_PER_MINUTE, 60):
        raise RateLimitExceededError("Too many login attempts. Please wait a minute.")
    if not rate_limiter.allow(per_hour_key, settings.LOGIN_RATE_LIMIT_PER_HOUR, 3600):
        raise RateLimitExceededError("Too many login attempts. Please try again later.")

    user = user_service.authenticate_user(db, credentials.email, credentials.password)
    return _token_response(user)


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information"""
    return UserResponse(**current_user.to_dict())


@router.patch("/me", response_model=UserResponse)
def update_current_user(
    data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update own name, phone or bio"""
    user = user_service.update_profile(db, current_user, data.name, data.phone, data.bio)
    return UserResponse(**user.to_dict())


@router.get("/invite")
def check_invitation(
    token: str = Query(..., min_length=1, max_length=128),
    db: Session = Depends(get_db)
):
    """
    Validate an invitation token before showing the signup form

    Returns:
        Invitee email and role
    """
    invitation = invitation_service.validate_token(db, token)
    return {
        "valid": True,
        "email": invitation.email,
        "role": invitation.role,
        "expires_at": invitation.expires_at.isoformat(),
    }


@router.post("/invite", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def accept_invitation(
    data: InvitationAccept,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Accept an invitation, create the account and log it in

    Args:
        data: Token, password and optional name
        db: Database session

    Returns:
        JWT token and user info
    """
    _strict_limit(request, "invite")
    user = invitation_service.accept(db, data.token, data.password, data.name)
    audit_service.safe_log_event(
        db,
        user_id=user.id,
        action="invitation.accepted",
        entity_type="user",
        entity_id=user.id,
        ip_address=client_ip(request),
        metadata={"role": user.role},
    )
    return _token_response(user)
