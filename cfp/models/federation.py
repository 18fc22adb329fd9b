"""Federation webhook dead-letter queue"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.sql import func
from cfp.core.database import Base


class WebhookQueue(Base):
    """Outgoing webhook that failed delivery and awaits retry"""

    __tablename__ = "webhook_queue"

    id = Column(Integer, primary_key=True, index=True)
    webhook_id = Column(String(64), unique=True, nullable=False)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    webhook_type = Column(String(64), nullable=False)
    payload = Column(Text, nullable=False)
    webhook_url = Column(String(1000), nullable=False)
    attempt = Column(Integer, default=1, nullable=False)
    last_error = Column(Text, nullable=True)
    last_attempt_at = Column(DateTime(timezone=True), server_default=func.now())
    next_retry_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), default="pending_retry", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_webhook_queue_status_next", "status", "next_retry_at"),
        CheckConstraint(
            "status IN ('pending_retry', 'success', 'dead_letter')",
            name='chk_webhook_queue_status'
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "webhook_id": self.webhook_id,
            "event_id": self.event_id,
            "webhook_type": self.webhook_type,
            "webhook_url": self.webhook_url,
            "attempt": self.attempt,
            "last_error": self.last_error,
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            "next_retry_at": self.next_retry_at.isoformat() if self.next_retry_at else None,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
