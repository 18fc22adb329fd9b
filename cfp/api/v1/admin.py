"""Admin routes - users, invitations, activity log and federation queue"""

from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.orm import Session
from typing import List, Optional

from cfp.core.database import get_db
from cfp.schemas.user import (
    UserResponse,
    RoleUpdate,
    UserStatusUpdate,
    InvitationCreate,
    InvitationResponse,
)
from cfp.schemas.audit import ActivityLogResponse
from cfp.services.user_service import user_service
from cfp.services.invitation_service import invitation_service
from cfp.services.audit_service import audit_service
from cfp.services.federation_service import federation_service
from cfp.api.deps import get_current_admin_user, client_ip
from cfp.models.user import User
from cfp.core.exceptions import ResourceNotFoundError

router = APIRouter()


@router.get("/users", response_model=List[UserResponse])
def list_users(
    role: Optional[str] = None,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """List users, optionally filtered by role"""
    return [UserResponse(**u.to_dict()) for u in user_service.get_all_users(db, role)]


@router.get("/users/invitations", response_model=List[InvitationResponse])
def list_invitations(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Pending (not yet accepted) invitations"""
    return [InvitationResponse.model_validate(inv) for inv in invitation_service.list_pending(db)]


@router.post("/users/invitations", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
def create_invitation(
    data: InvitationCreate,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Invite someone by email with a preassigned role

    Args:
        data: Email and role
        current_user: Current admin user
        db: Database session

    Returns:
        The invitation (the token itself only travels by email)
    """
    invitation = invitation_service.create_invitation(db, data.email, data.role, current_user)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="invitation.created",
        entity_type="invitation",
        entity_id=invitation.id,
        ip_address=client_ip(request),
        metadata={"email": invitation.email, "role": invitation.role},
    )
    return InvitationResponse.model_validate(invitation)


@router.delete("/users/invitations/{invitation_id}")
def revoke_invitation(
    invitation_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    invitation_service.revoke(db, invitation_id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="invitation.revoked",
        entity_type="invitation",
        entity_id=invitation_id,
        ip_address=client_ip(request),
    )
    return {"success": True, "message": "Invitation revoked"}


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    user = user_service.get_user_by_id(db, user_id)
    if not user:
        raise ResourceNotFoundError("User")
    return UserResponse(**user.to_dict())


@router.patch("/users/{user_id}/role", response_model=UserResponse)
def change_user_role(
    user_id: int,
    data: RoleUpdate,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Change a user's role

    The last remaining administrator cannot be demoted.
    """
    before = user_service.get_user_by_id(db, user_id)
    old_role = before.role if before else None
    user = user_service.change_role(db, user_id, data.role, changed_by=current_user.id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="user.role_changed",
        entity_type="user",
        entity_id=user.id,
        ip_address=client_ip(request),
        metadata={"old_role": old_role, "new_role": user.role},
    )
    return UserResponse(**user.to_dict())


@router.patch("/users/{user_id}/status", response_model=UserResponse)
def change_user_status(
    user_id: int,
    data: UserStatusUpdate,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    user = user_service.set_active(db, user_id, data.is_active, acting_user_id=current_user.id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="user.activated" if data.is_active else "user.deactivated",
        entity_type="user",
        entity_id=user.id,
        ip_address=client_ip(request),
    )
    return UserResponse(**user.to_dict())


@router.delete("/users/{user_id}", status_code=status.HTTP_200_OK)
def delete_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Delete a user (admin only)

    Admins cannot delete themselves or the last administrator.
    """
    user_service.delete_user(db, user_id, acting_user_id=current_user.id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="user.deleted",
        entity_type="user",
        entity_id=user_id,
        ip_address=client_ip(request),
    )
    return {"success": True, "message": "User deleted"}


@router.get("/activity", response_model=List[ActivityLogResponse])
def get_activity(
    limit: int = 100,
    action: Optional[str] = None,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """List recent activity log entries."""
    entries = audit_service.list_events(db, action=action, limit=max(1, min(limit, 500)))
    return [ActivityLogResponse(**entry.to_dict()) for entry in entries]


@router.get("/federation/webhooks")
def list_webhook_queue(
    status_filter: Optional[str] = None,
    limit: int = 100,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """Failed federation webhooks and their retry state"""
    entries = federation_service.list_queue(db, status=status_filter, limit=max(1, min(limit, 500)))
    return {
        "webhooks": [entry.to_dict() for entry in entries],
        "stats": federation_service.get_queue_stats(db),
    }


@router.post("/federation/webhooks/process")
def process_webhook_queue(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """Retry every queued webhook that is due now"""
    return {"success": True, **federation_service.retry_pending_webhooks(db)}


@router.post("/federation/webhooks/{queue_id}/retry")
def retry_dead_letter(
    queue_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    entry = federation_service.retry_dead_letter(db, queue_id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="federation.webhook_retried",
        entity_type="webhook",
        entity_id=entry.webhook_id,
        ip_address=client_ip(request),
    )
    return {"success": True, "webhook": entry.to_dict()}


@router.delete("/federation/webhooks/{queue_id}")
def delete_queued_webhook(
    queue_id: int,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    federation_service.delete_queued(db, queue_id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="federation.webhook_deleted",
        entity_type="webhook",
        entity_id=queue_id,
        ip_address=client_ip(request),
    )
    return {"success": True, "message": "Webhook removed from queue"}
