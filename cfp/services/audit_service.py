"""Activity log for sensitive admin and plugin actions."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from cfp.models.audit import ActivityLog

logger = logging.getLogger(__name__)


class AuditService:
    """Persist immutable activity entries."""

    @staticmethod
    def log_event(
        db: Session,
        *,
        user_id: Optional[int],
        action: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        ip_address: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ActivityLog:
        entry = ActivityLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            ip_address=ip_address,
            metadata_json=json.dumps(metadata or {}, ensure_ascii=False, default=str),
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def safe_log_event(db: Session, **kwargs: Any) -> Optional[ActivityLog]:
        """Like log_event, but a failed write never breaks the action being logged."""
        try:
            return AuditService.log_event(db, **kwargs)
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to write activity log {kwargs.get('action')}: {e}")
            return None

    @staticmethod
    def list_events(db: Session, action: Optional[str] = None, limit: int = 100) -> List[ActivityLog]:
        query = db.query(ActivityLog)
        if action:
            query = query.filter(ActivityLog.action == action)
        return query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).all()


audit_service = AuditService()
