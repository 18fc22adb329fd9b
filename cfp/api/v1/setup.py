"""First-run setup routes"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from cfp.api.deps import client_ip
from cfp.config import settings
from cfp.core.database import get_db
from cfp.core.exceptions import RateLimitExceededError
from cfp.schemas.user import SetupRequest, SetupStatusResponse, UserResponse
from cfp.services.audit_service import audit_service
from cfp.services.rate_limiter import rate_limiter
from cfp.services.setup_service import setup_service

router = APIRouter()


@router.get("/status", response_model=SetupStatusResponse)
def setup_status(db: Session = Depends(get_db)):
    return SetupStatusResponse(setup_complete=setup_service.is_setup_complete(db))


@router.post("/complete", status_code=status.HTTP_201_CREATED)
def complete_setup(
    data: SetupRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Create the first administrator

    Only works while no admin exists. When SETUP_TOKEN is configured the
    request must carry it.
    """
    ip = client_ip(request)
    if not rate_limiter.allow(f"setup:min:{ip}", settings.AUTH_STRICT_RATE_LIMIT_PER_MINUTE, 60):
        raise RateLimitExceededError("Too many setup attempts. Please wait a minute.")

    admin = setup_service.complete_setup(
        db,
        email=data.email,
        password=data.password,
        name=data.name,
        site_name=data.site_name,
        site_description=data.site_description,
        site_website=data.site_website,
        setup_token=data.setup_token,
    )
    audit_service.safe_log_event(
        db,
        user_id=admin.id,
        action="setup.completed",
        entity_type="user",
        entity_id=admin.id,
        ip_address=ip,
    )
    return {
        "success": True,
        "message": "Setup complete",
        "user": UserResponse(**admin.to_dict()),
    }
