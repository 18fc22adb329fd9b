"""Activity log response schemas."""

from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel


class ActivityLogResponse(BaseModel):
    id: int
    user_id: Optional[int]
    user_email: Optional[str] = None
    action: str
    entity_type: Optional[str]
    entity_id: Optional[str]
    ip_address: Optional[str]
    metadata: Dict[str, Any] = {}
    created_at: Optional[datetime]
