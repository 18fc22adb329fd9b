"""API dependencies - authentication and authorization"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Callable, Optional

from cfp.core.database import get_db
from cfp.core.security import decode_access_token
from cfp.core.exceptions import AuthenticationError, AuthorizationError
from cfp.models.user import User
from cfp.services.user_service import user_service

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from JWT token

    Args:
        credentials: HTTP Bearer credentials
        db: Database session

    Returns:
        Current user

    Raises:
        AuthenticationError: If token is missing, invalid or user not found
    """
    if not credentials:
        raise AuthenticationError("Authentication required")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    user = user_service.get_user_by_id(db, int(user_id))
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is disabled")

    return user


def require_roles(*roles: str) -> Callable:
    """Dependency factory: the current user must hold one of `roles`"""

    async def _check(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise AuthorizationError(f"{' or '.join(r.title() for r in roles)} access required")
        return current_user

    return _check


get_current_admin_user = require_roles("ADMIN")
get_current_organizer = require_roles("ADMIN", "ORGANIZER")
get_current_reviewer = require_roles("ADMIN", "ORGANIZER", "REVIEWER")


async def get_optional_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """
    Get current user if authenticated, None otherwise

    Args:
        credentials: Optional HTTP Bearer credentials
        db: Database session

    Returns:
        Current user or None
    """
    if not credentials:
        return None

    payload = decode_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        return None

    user = user_service.get_user_by_id(db, int(payload["sub"]))
    return user if user and user.is_active else None


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"
