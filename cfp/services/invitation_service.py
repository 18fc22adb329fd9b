"""Invitations: admins invite a person by email with a preassigned role"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from cfp.config import settings
from cfp.core.database import serializable
from cfp.core.encryption import encrypt_string
from cfp.core.exceptions import BusinessLogicError, ResourceAlreadyExistsError, ResourceNotFoundError
from cfp.core.security import generate_token, get_password_hash
from cfp.models.user import User, UserInvitation
from cfp.services.email_service import email_service

logger = logging.getLogger(__name__)


def _expired(invitation: UserInvitation) -> bool:
    return invitation.expires_at.replace(tzinfo=None) < datetime.utcnow()


class InvitationService:

    @staticmethod
    def create_invitation(db: Session, email: str, role: str, invited_by: User) -> UserInvitation:
        """
        Create an invitation and email its link

        Args:
            db: Database session
            email: Invitee email (normalized)
            role: Role the account will get on acceptance
            invited_by: Acting admin

        Returns:
            The invitation
        """
        if db.query(User.id).filter(User.email == email).first():
            raise ResourceAlreadyExistsError("User", details={"email": email})

        pending = db.query(UserInvitation).filter(
            UserInvitation.email == email,
            UserInvitation.accepted_at.is_(None),
            UserInvitation.expires_at > datetime.utcnow(),
        ).first()
        if pending:
            raise ResourceAlreadyExistsError("Invitation", details={"email": email})

        invitation = UserInvitation(
            email=email,
            role=role,
            token=generate_token(32),
            invited_by_id=invited_by.id,
            expires_at=datetime.utcnow() + timedelta(days=settings.INVITATION_EXPIRE_DAYS),
        )
        db.add(invitation)
        db.commit()
        db.refresh(invitation)

        link = f"{settings.PUBLIC_URL.rstrip('/')}/auth/invite?token={invitation.token}"
        email_service.send(
            db,
            to=email,
            subject=f"You have been invited to {settings.APP_NAME}",
            body=(
                f"You have been invited to join {settings.APP_NAME} as {role}.\n\n"
                f"Accept the invitation: {link}\n\n"
                f"This link expires in {settings.INVITATION_EXPIRE_DAYS} days."
            ),
            template="invitation",
        )
        logger.info(f"Invitation created for {email} ({role}) by {invited_by.email}")
        return invitation

    @staticmethod
    def list_pending(db: Session) -> List[UserInvitation]:
        return db.query(UserInvitation).filter(
            UserInvitation.accepted_at.is_(None)
        ).order_by(UserInvitation.created_at.desc(), UserInvitation.id.desc()).all()

    @staticmethod
    def revoke(db: Session, invitation_id: int) -> None:
        invitation = db.query(UserInvitation).filter(UserInvitation.id == invitation_id).first()
        if not invitation:
            raise ResourceNotFoundError("Invitation")
        if invitation.accepted_at is not None:
            raise BusinessLogicError("Invitation has already been used")
        db.delete(invitation)
        db.commit()

    @staticmethod
    def _check_usable(db: Session, invitation: Optional[UserInvitation]) -> UserInvitation:
        if invitation is None:
            raise ResourceNotFoundError("Invitation")
        if invitation.accepted_at is not None:
            raise BusinessLogicError("Invitation has already been used")
        if _expired(invitation):
            raise BusinessLogicError("Invitation has expired")
        if db.query(User.id).filter(User.email == invitation.email).first():
            raise BusinessLogicError("An account with this email already exists")
        return invitation

    @staticmethod
    def validate_token(db: Session, token: str) -> UserInvitation:
        """Look up a usable invitation by token (404 unknown, 400 used/expired/taken)"""
        invitation = db.query(UserInvitation).filter(UserInvitation.token == token).first()
        return InvitationService._check_usable(db, invitation)

    @staticmethod
    def accept(db: Session, token: str, password: str, name: Optional[str] = None) -> User:
        """
        Accept an invitation and create the account

        Runs SERIALIZABLE so the same token cannot create two accounts.
        """
        password_hash = get_password_hash(password)

        with serializable(db):
            invitation = db.query(UserInvitation).filter(UserInvitation.token == token).first()
            invitation = InvitationService._check_usable(db, invitation)

            user = User(
                email=invitation.email,
                password_hash=password_hash,
                name=encrypt_string(name) if name else None,
                role=invitation.role,
            )
            db.add(user)
            invitation.accepted_at = datetime.utcnow()

        db.refresh(user)
        logger.info(f"Invitation accepted by {user.email} ({user.role})")
        return user


invitation_service = InvitationService()
