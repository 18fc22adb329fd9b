"""User, setup and invitation schemas"""

import re
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UserRole(str, Enum):
    """User role enumeration"""
    ADMIN = "ADMIN"
    ORGANIZER = "ORGANIZER"
    REVIEWER = "REVIEWER"
    SPEAKER = "SPEAKER"
    USER = "USER"


def _normalize_email(value: str) -> str:
    value = (value or "").strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


def _check_password_strength(value: str) -> str:
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", value):
        raise ValueError("Password must contain at least one number")
    return value


class UserLogin(BaseModel):
    """User login schema"""
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class UserRegister(BaseModel):
    """Self-registration schema"""
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    name: Optional[str] = Field(None, max_length=200)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _normalize_email(v)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _check_password_strength(v)


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile"""
    name: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=50)
    bio: Optional[str] = Field(None, max_length=5000)


class RoleUpdate(BaseModel):
    role: UserRole

    class Config:
        use_enum_values = True


class UserStatusUpdate(BaseModel):
    is_active: bool


class UserResponse(BaseModel):
    """User response schema (PII decrypted, never the password hash)"""
    id: int
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    role: str
    is_active: bool
    is_service_account: bool = False
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """JWT token response"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class SetupStatusResponse(BaseModel):
    setup_complete: bool


class SetupRequest(BaseModel):
    """First admin account plus basic site settings"""
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=200)
    site_name: str = Field("CFP System", min_length=1, max_length=200)
    site_description: Optional[str] = Field(None, max_length=2000)
    site_website: Optional[str] = Field(None, max_length=500)
    setup_token: Optional[str] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _normalize_email(v)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _check_password_strength(v)


class InvitationCreate(BaseModel):
    email: str = Field(..., max_length=255)
    role: UserRole = UserRole.USER.value

    class Config:
        use_enum_values = True

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _normalize_email(v)


class InvitationAccept(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)
    password: str = Field(..., min_length=8, max_length=128)
    name: Optional[str] = Field(None, max_length=200)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _check_password_strength(v)


class InvitationResponse(BaseModel):
    id: int
    email: str
    role: str
    invited_by_id: int
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
