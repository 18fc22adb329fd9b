"""Review model"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from cfp.core.database import Base

RECOMMENDATIONS = ("STRONG_ACCEPT", "ACCEPT", "NEUTRAL", "REJECT", "STRONG_REJECT")


class Review(Base):
    """Reviewer's scores for one submission"""

    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False)
    reviewer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content_score = Column(Integer, nullable=True)
    presentation_score = Column(Integer, nullable=True)
    relevance_score = Column(Integer, nullable=True)
    overall_score = Column(Integer, nullable=True)
    private_notes = Column(Text, nullable=True)
    public_notes = Column(Text, nullable=True)
    recommendation = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    submission = relationship("Submission", back_populates="reviews")
    reviewer = relationship("User", back_populates="reviews")

    __table_args__ = (
        UniqueConstraint('submission_id', 'reviewer_id', name='uq_reviews_submission_reviewer'),
        Index('idx_reviews_submission', 'submission_id'),
        CheckConstraint('overall_score IS NULL OR (overall_score >= 1 AND overall_score <= 5)', name='chk_overall_score'),
        CheckConstraint(
            "recommendation IS NULL OR recommendation IN "
            "('STRONG_ACCEPT', 'ACCEPT', 'NEUTRAL', 'REJECT', 'STRONG_REJECT')",
            name='chk_recommendation'
        ),
    )

    def __repr__(self):
        return f"<Review(id={self.id}, submission_id={self.submission_id}, reviewer_id={self.reviewer_id})>"

    def to_dict(self):
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "reviewer_id": self.reviewer_id,
            "content_score": self.content_score,
            "presentation_score": self.presentation_score,
            "relevance_score": self.relevance_score,
            "overall_score": self.overall_score,
            "private_notes": self.private_notes,
            "public_notes": self.public_notes,
            "recommendation": self.recommendation,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
