"""User and invitation models"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Index, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from cfp.core.database import Base
from cfp.core.encryption import decrypt_string

USER_ROLES = ("ADMIN", "ORGANIZER", "REVIEWER", "SPEAKER", "USER")


class User(Base):
    """User model for authentication and authorization"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=True)
    # name and phone hold enc:v1 values
    name = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    role = Column(String(20), default="USER", nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_service_account = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    last_login = Column(DateTime(timezone=True))
    failed_login_attempts = Column(Integer, default=0)
    locked_until = Column(DateTime(timezone=True))

    # Relationships
    submissions = relationship("Submission", back_populates="speaker", cascade="all, delete-orphan")
    reviews = relationship("Review", back_populates="reviewer", cascade="all, delete-orphan")
    review_memberships = relationship("ReviewTeamMember", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_users_role', 'role'),
        CheckConstraint(
            "role IN ('ADMIN', 'ORGANIZER', 'REVIEWER', 'SPEAKER', 'USER')",
            name='chk_user_role'
        ),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"

    @property
    def display_name(self):
        return decrypt_string(self.name) if self.name else None

    def to_dict(self):
        """Convert to dictionary, PII decrypted, never the password hash"""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.display_name,
            "phone": decrypt_string(self.phone) if self.phone else None,
            "bio": self.bio,
            "role": self.role,
            "is_active": self.is_active,
            "is_service_account": self.is_service_account,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_login": self.last_login.isoformat() if self.last_login else None
        }


class UserInvitation(Base):
    """Pending invitation to join the platform with a given role"""

    __tablename__ = "user_invitations"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="USER")
    token = Column(String(128), unique=True, nullable=False, index=True)
    invited_by_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    inviter = relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "invited_by_id": self.invited_by_id,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "accepted_at": self.accepted_at.isoformat() if self.accepted_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
