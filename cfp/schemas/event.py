"""Event, track, format and review team schemas"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional
from datetime import datetime
from enum import Enum


class EventStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class ReviewTeamRole(str, Enum):
    LEAD = "LEAD"
    REVIEWER = "REVIEWER"


class EventCreate(BaseModel):
    """Event creation schema"""
    name: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(..., min_length=2, max_length=200, pattern=r'^[a-z0-9][a-z0-9-]*[a-z0-9]$')
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=300)
    website_url: Optional[str] = Field(None, max_length=500)
    status: EventStatus = EventStatus.DRAFT.value
    cfp_opens_at: Optional[datetime] = None
    cfp_closes_at: Optional[datetime] = None
    min_reviews_per_talk: int = Field(2, ge=1, le=20)
    is_federated: bool = False
    federated_event_id: Optional[str] = Field(None, max_length=128)
    webhook_secret: Optional[str] = Field(None, max_length=500)

    class Config:
        use_enum_values = True

    @model_validator(mode='after')
    def check_window(self):
        if self.cfp_opens_at and self.cfp_closes_at and self.cfp_closes_at <= self.cfp_opens_at:
            raise ValueError('cfp_closes_at must be after cfp_opens_at')
        return self


class EventUpdate(BaseModel):
    """Partial event update; only fields that are set are applied"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=300)
    website_url: Optional[str] = Field(None, max_length=500)
    status: Optional[EventStatus] = None
    cfp_opens_at: Optional[datetime] = None
    cfp_closes_at: Optional[datetime] = None
    min_reviews_per_talk: Optional[int] = Field(None, ge=1, le=20)
    is_federated: Optional[bool] = None
    federated_event_id: Optional[str] = Field(None, max_length=128)
    webhook_secret: Optional[str] = Field(None, max_length=500)

    class Config:
        use_enum_values = True


class TrackCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    color: Optional[str] = Field(None, max_length=20)


class FormatCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    duration_min: int = Field(30, gt=0, le=1440)


class ReviewTeamAdd(BaseModel):
    user_id: int
    role: ReviewTeamRole = ReviewTeamRole.REVIEWER.value

    class Config:
        use_enum_values = True
