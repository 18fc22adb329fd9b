"""Submission and review schemas"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum


class SubmissionStatus(str, Enum):
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WAITLISTED = "WAITLISTED"
    WITHDRAWN = "WITHDRAWN"


class Recommendation(str, Enum):
    STRONG_ACCEPT = "STRONG_ACCEPT"
    ACCEPT = "ACCEPT"
    NEUTRAL = "NEUTRAL"
    REJECT = "REJECT"
    STRONG_REJECT = "STRONG_REJECT"


class SubmissionCreate(BaseModel):
    """Create submission schema"""
    event_id: int
    title: str = Field(..., min_length=1, max_length=300)
    abstract: str = Field(..., min_length=1, max_length=10000)
    outline: Optional[str] = Field(None, max_length=20000)
    target_audience: Optional[str] = Field(None, max_length=200)
    level: Optional[str] = Field(None, max_length=50)
    track_id: Optional[int] = None
    format_id: Optional[int] = None

    @field_validator('title', 'abstract')
    @classmethod
    def strip_text(cls, v):
        """Strip NUL bytes and surrounding whitespace"""
        v = v.replace('\x00', '').strip()
        if not v:
            raise ValueError('Field cannot be blank')
        return v


class SubmissionUpdate(BaseModel):
    """Speaker edits; only fields that are set are applied"""
    title: Optional[str] = Field(None, min_length=1, max_length=300)
    abstract: Optional[str] = Field(None, min_length=1, max_length=10000)
    outline: Optional[str] = Field(None, max_length=20000)
    target_audience: Optional[str] = Field(None, max_length=200)
    level: Optional[str] = Field(None, max_length=50)
    track_id: Optional[int] = None
    format_id: Optional[int] = None


class SubmissionStatusUpdate(BaseModel):
    status: SubmissionStatus

    class Config:
        use_enum_values = True


class SubmissionResponse(BaseModel):
    """Submission response schema"""
    id: int
    event_id: int
    speaker_id: int
    track_id: Optional[int] = None
    format_id: Optional[int] = None
    title: str
    abstract: str
    outline: Optional[str] = None
    target_audience: Optional[str] = None
    level: Optional[str] = None
    status: str
    status_updated_at: Optional[datetime] = None
    is_federated: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReviewCreate(BaseModel):
    """Review scores are 1-5"""
    content_score: Optional[int] = Field(None, ge=1, le=5)
    presentation_score: Optional[int] = Field(None, ge=1, le=5)
    relevance_score: Optional[int] = Field(None, ge=1, le=5)
    overall_score: Optional[int] = Field(None, ge=1, le=5)
    private_notes: Optional[str] = Field(None, max_length=10000)
    public_notes: Optional[str] = Field(None, max_length=10000)
    recommendation: Optional[Recommendation] = None

    class Config:
        use_enum_values = True


class ReviewUpdate(ReviewCreate):
    pass


class ReviewResponse(BaseModel):
    id: int
    submission_id: int
    reviewer_id: int
    content_score: Optional[int] = None
    presentation_score: Optional[int] = None
    relevance_score: Optional[int] = None
    overall_score: Optional[int] = None
    private_notes: Optional[str] = None
    public_notes: Optional[str] = None
    recommendation: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
