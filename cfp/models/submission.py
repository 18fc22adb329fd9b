"""Talk submission model"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, Index, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from cfp.core.database import Base

SUBMISSION_STATUSES = ("PENDING", "UNDER_REVIEW", "ACCEPTED", "REJECTED", "WAITLISTED", "WITHDRAWN")


class Submission(Base):
    """Submission model - a talk proposed to an event"""

    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    speaker_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    track_id = Column(Integer, ForeignKey("event_tracks.id", ondelete="SET NULL"), nullable=True)
    format_id = Column(Integer, ForeignKey("event_formats.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(300), nullable=False)
    abstract = Column(Text, nullable=False)
    outline = Column(Text, nullable=True)
    target_audience = Column(String(200), nullable=True)
    level = Column(String(50), nullable=True)
    status = Column(String(20), default="PENDING", nullable=False)
    status_updated_at = Column(DateTime(timezone=True), nullable=True)
    is_federated = Column(Boolean, default=False, nullable=False)
    federated_speaker_id = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    event = relationship("Event", back_populates="submissions")
    speaker = relationship("User", back_populates="submissions")
    track = relationship("EventTrack")
    format = relationship("EventFormat")
    reviews = relationship("Review", back_populates="submission", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_submissions_event', 'event_id'),
        Index('idx_submissions_speaker', 'speaker_id'),
        Index('idx_submissions_status', 'status'),
        Index('idx_submissions_created_at', 'created_at'),
        CheckConstraint(
            "status IN ('PENDING', 'UNDER_REVIEW', 'ACCEPTED', 'REJECTED', 'WAITLISTED', 'WITHDRAWN')",
            name='chk_submission_status'
        ),
    )

    def __repr__(self):
        return f"<Submission(id={self.id}, event_id={self.event_id}, status='{self.status}')>"

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "event_id": self.event_id,
            "speaker_id": self.speaker_id,
            "track_id": self.track_id,
            "format_id": self.format_id,
            "title": self.title,
            "abstract": self.abstract,
            "outline": self.outline,
            "target_audience": self.target_audience,
            "level": self.level,
            "status": self.status,
            "status_updated_at": self.status_updated_at.isoformat() if self.status_updated_at else None,
            "is_federated": self.is_federated,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }
