"""User service - handles user management and authentication"""

from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime, timedelta
from cfp.models.user import User, USER_ROLES
from cfp.core.security import get_password_hash, verify_password
from cfp.core.encryption import encrypt_string
from cfp.core.exceptions import (
    InvalidCredentialsError,
    AccountLockedError,
    BusinessLogicError,
    DuplicateEmailError,
    LastAdminError,
    ResourceNotFoundError,
)
from cfp.plugins import hooks
import logging

logger = logging.getLogger(__name__)


class UserService:
    """Service for user management"""

    LOCKOUT_DURATION_MINUTES = 15
    MAX_FAILED_ATTEMPTS = 5

    @staticmethod
    def register_user(db: Session, email: str, password: str, name: Optional[str] = None) -> User:
        """
        Create a self-registered user with role USER

        Args:
            db: Database session
            email: Normalized email address
            password: Plain text password
            name: Optional display name (stored encrypted)

        Returns:
            Created user
        """
        if db.query(User).filter(User.email == email).first():
            raise DuplicateEmailError(email)

        user = User(
            email=email,
            password_hash=get_password_hash(password),
            name=encrypt_string(name) if name else None,
            role="USER",
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info(f"Registered user: {user.email}")
        hooks.dispatch("user.registered", {"user_id": user.id, "email": user.email, "role": user.role})
        return user

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> User:
        """
        Authenticate user with account lockout protection

        Args:
            db: Database session
            email: Email address
            password: Password

        Returns:
            Authenticated user
        """
        user = db.query(User).filter(User.email == email).first()

        # service accounts and invited-but-unset users have no password
        if not user or not user.password_hash or not user.is_active:
            raise InvalidCredentialsError()

        if user.locked_until and user.locked_until.replace(tzinfo=None) > datetime.utcnow():
            raise AccountLockedError(user.locked_until.isoformat())

        if not verify_password(password, user.password_hash):
            user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

            if user.failed_login_attempts >= UserService.MAX_FAILED_ATTEMPTS:
                user.locked_until = datetime.utcnow() + timedelta(
                    minutes=UserService.LOCKOUT_DURATION_MINUTES
                )
                db.commit()
                logger.warning(f"Account locked for user: {email}")
                raise AccountLockedError(user.locked_until.isoformat())

            db.commit()
            raise InvalidCredentialsError()

        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login = datetime.utcnow()
        db.commit()

        logger.info(f"User authenticated: {email}")
        return user

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.query(User).filter(User.email == email.strip().lower()).first()

    @staticmethod
    def get_all_users(db: Session, role: Optional[str] = None) -> List[User]:
        """Get all users, optionally filtered by role"""
        query = db.query(User)
        if role:
            query = query.filter(User.role == role)
        return query.order_by(User.created_at.desc(), User.id.desc()).all()

    @staticmethod
    def count_admins(db: Session) -> int:
        return db.query(User).filter(User.role == "ADMIN").count()

    @staticmethod
    def _get_or_404(db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise ResourceNotFoundError("User")
        return user

    @staticmethod
    def update_profile(
        db: Session,
        user: User,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        bio: Optional[str] = None,
    ) -> User:
        """Update own profile; name and phone are stored encrypted"""
        changed = []
        if name is not None:
            user.name = encrypt_string(name) if name else None
            changed.append("name")
        if phone is not None:
            user.phone = encrypt_string(phone) if phone else None
            changed.append("phone")
        if bio is not None:
            user.bio = bio
            changed.append("bio")

        if changed:
            db.commit()
            db.refresh(user)
            hooks.dispatch("user.profileUpdated", {"user_id": user.id, "changed_fields": changed})
        return user

    @staticmethod
    def change_role(db: Session, user_id: int, new_role: str, changed_by: Optional[int] = None) -> User:
        """
        Change a user's role

        Args:
            db: Database session
            user_id: Target user
            new_role: One of USER_ROLES
            changed_by: Acting admin id

        Returns:
            Updated user
        """
        if new_role not in USER_ROLES:
            raise BusinessLogicError(f"Invalid role: {new_role}")

        user = UserService._get_or_404(db, user_id)
        old_role = user.role
        if old_role == new_role:
            return user

        if old_role == "ADMIN" and UserService.count_admins(db) <= 1:
            raise LastAdminError("Cannot demote the last administrator. Promote another user to admin first.")

        user.role = new_role
        db.commit()
        db.refresh(user)

        logger.info(f"Role changed for {user.email}: {old_role} -> {new_role}")
        hooks.dispatch("user.roleChanged", {
            "user_id": user.id,
            "old_role": old_role,
            "new_role": new_role,
            "changed_by": changed_by,
        })
        return user

    @staticmethod
    def set_active(db: Session, user_id: int, is_active: bool, acting_user_id: Optional[int] = None) -> User:
        """Activate or deactivate an account"""
        user = UserService._get_or_404(db, user_id)
        if not is_active:
            if user.id == acting_user_id:
                raise BusinessLogicError("You cannot deactivate your own account")
            active_admins = db.query(User).filter(User.role == "ADMIN", User.is_active.is_(True)).count()
            if user.role == "ADMIN" and user.is_active and active_admins <= 1:
                raise LastAdminError("Cannot deactivate the last administrator")

        user.is_active = is_active
        db.commit()
        db.refresh(user)
        logger.info(f"User {user.email} {'activated' if is_active else 'deactivated'}")
        return user

    @staticmethod
    def delete_user(db: Session, user_id: int, acting_user_id: Optional[int] = None) -> bool:
        """
        Delete user

        Args:
            db: Database session
            user_id: User ID
            acting_user_id: Admin performing the deletion

        Returns:
            True if deleted
        """
        user = UserService._get_or_404(db, user_id)

        if user.id == acting_user_id:
            raise BusinessLogicError("You cannot delete your own account")
        if user.role == "ADMIN" and UserService.count_admins(db) <= 1:
            raise LastAdminError("Cannot delete the last administrator")

        email = user.email
        db.delete(user)
        db.commit()

        logger.info(f"Deleted user: {email}")
        return True


# Singleton instance
user_service = UserService()
