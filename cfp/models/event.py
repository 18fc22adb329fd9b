"""Event, track, format and review team models"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from cfp.core.database import Base


def _naive(dt: Optional[datetime]) -> Optional[datetime]:
    return dt.replace(tzinfo=None) if dt and dt.tzinfo else dt


class Event(Base):
    """A conference or meetup running a call for papers"""

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    location = Column(String(300), nullable=True)
    website_url = Column(String(500), nullable=True)
    status = Column(String(20), default="DRAFT", nullable=False)
    cfp_opens_at = Column(DateTime(timezone=True), nullable=True)
    cfp_closes_at = Column(DateTime(timezone=True), nullable=True)
    min_reviews_per_talk = Column(Integer, default=2, nullable=False)

    # Federation with the external directory
    is_federated = Column(Boolean, default=False, nullable=False)
    federated_event_id = Column(String(128), nullable=True, index=True)
    webhook_secret = Column(Text, nullable=True)  # enc:v1 value

    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    tracks = relationship("EventTrack", back_populates="event", cascade="all, delete-orphan")
    formats = relationship("EventFormat", back_populates="event", cascade="all, delete-orphan")
    submissions = relationship("Submission", back_populates="event", cascade="all, delete-orphan")
    review_team = relationship("ReviewTeamMember", back_populates="event", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_events_status', 'status'),
        CheckConstraint("status IN ('DRAFT', 'PUBLISHED')", name='chk_event_status'),
        CheckConstraint('min_reviews_per_talk >= 1', name='chk_min_reviews'),
    )

    @property
    def is_published(self) -> bool:
        return self.status == "PUBLISHED"

    def is_cfp_open(self, now: Optional[datetime] = None) -> bool:
        """Published and inside the CFP window. Missing bounds are open-ended."""
        if not self.is_published:
            return False
        now = now or datetime.utcnow()
        opens_at = _naive(self.cfp_opens_at)
        closes_at = _naive(self.cfp_closes_at)
        if opens_at and now < opens_at:
            return False
        if closes_at and now > closes_at:
            return False
        return True

    def __repr__(self):
        return f"<Event(id={self.id}, slug='{self.slug}', status='{self.status}')>"

    def to_dict(self):
        """Convert to dictionary (webhook secret never included)"""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "location": self.location,
            "website_url": self.website_url,
            "status": self.status,
            "cfp_opens_at": self.cfp_opens_at.isoformat() if self.cfp_opens_at else None,
            "cfp_closes_at": self.cfp_closes_at.isoformat() if self.cfp_closes_at else None,
            "cfp_open": self.is_cfp_open(),
            "min_reviews_per_talk": self.min_reviews_per_talk,
            "is_federated": self.is_federated,
            "federated_event_id": self.federated_event_id,
            "tracks": [track.to_dict() for track in self.tracks],
            "formats": [fmt.to_dict() for fmt in self.formats],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class EventTrack(Base):
    __tablename__ = "event_tracks"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(20), nullable=True)

    event = relationship("Event", back_populates="tracks")

    __table_args__ = (
        UniqueConstraint('event_id', 'name', name='uq_event_tracks_event_name'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
        }


class EventFormat(Base):
    __tablename__ = "event_formats"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    duration_min = Column(Integer, nullable=False, default=30)

    event = relationship("Event", back_populates="formats")

    __table_args__ = (
        UniqueConstraint('event_id', 'name', name='uq_event_formats_event_name'),
        CheckConstraint('duration_min > 0', name='chk_duration_min'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "name": self.name,
            "duration_min": self.duration_min,
        }


class ReviewTeamMember(Base):
    """Reviewer assigned to an event"""

    __tablename__ = "review_team_members"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), default="REVIEWER", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event", back_populates="review_team")
    user = relationship("User", back_populates="review_memberships")

    __table_args__ = (
        UniqueConstraint('event_id', 'user_id', name='uq_review_team_event_user'),
        CheckConstraint("role IN ('LEAD', 'REVIEWER')", name='chk_review_team_role'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "role": self.role,
        }
