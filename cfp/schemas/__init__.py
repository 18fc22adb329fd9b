"""Pydantic schemas for API validation"""

from cfp.schemas.user import (
    UserRole,
    UserLogin,
    UserRegister,
    ProfileUpdate,
    RoleUpdate,
    UserStatusUpdate,
    UserResponse,
    TokenResponse,
    SetupStatusResponse,
    SetupRequest,
    InvitationCreate,
    InvitationAccept,
    InvitationResponse,
)
from cfp.schemas.event import EventCreate, EventUpdate, TrackCreate, FormatCreate, ReviewTeamAdd
from cfp.schemas.submission import (
    SubmissionCreate,
    SubmissionUpdate,
    SubmissionStatusUpdate,
    SubmissionResponse,
    ReviewCreate,
    ReviewUpdate,
    ReviewResponse,
)
from cfp.schemas.plugin import (
    PluginConfigUpdate,
    GalleryInstallRequest,
    PluginActionRequest,
    PluginResponse,
    PluginLogPage,
)
from cfp.schemas.response import APIResponse, ErrorResponse, HealthResponse
from cfp.schemas.audit import ActivityLogResponse

__all__ = [
    "UserRole", "UserLogin", "UserRegister", "ProfileUpdate", "RoleUpdate", "UserStatusUpdate",
    "UserResponse", "TokenResponse", "SetupStatusResponse", "SetupRequest",
    "InvitationCreate", "InvitationAccept", "InvitationResponse",
    "EventCreate", "EventUpdate", "TrackCreate", "FormatCreate", "ReviewTeamAdd",
    "SubmissionCreate", "SubmissionUpdate", "SubmissionStatusUpdate", "SubmissionResponse",
    "ReviewCreate", "ReviewUpdate", "ReviewResponse",
    "PluginConfigUpdate", "GalleryInstallRequest", "PluginActionRequest", "PluginResponse", "PluginLogPage",
    "ActivityLogResponse",
    "APIResponse", "ErrorResponse", "HealthResponse",
]
