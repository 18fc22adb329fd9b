"""Event access for plugins."""

from typing import List, Optional

from cfp.models.event import Event
from cfp.plugins.capabilities.base import Capability


class EventCapability(Capability):

    def get(self, event_id: int) -> Optional[dict]:
        self._require("events:read")
        with self._session() as db:
            event = db.query(Event).filter(Event.id == event_id).first()
            return event.to_dict() if event else None

    def get_by_slug(self, slug: str) -> Optional[dict]:
        self._require("events:read")
        with self._session() as db:
            event = db.query(Event).filter(Event.slug == slug).first()
            return event.to_dict() if event else None

    def list(self, status: Optional[str] = None, cfp_open: Optional[bool] = None) -> List[dict]:
        self._require("events:read")
        with self._session() as db:
            query = db.query(Event)
            if status:
                query = query.filter(Event.status == status)
            events = query.order_by(Event.created_at.desc(), Event.id.desc()).all()
            if cfp_open is not None:
                events = [e for e in events if e.is_cfp_open() == cfp_open]
            return [e.to_dict() for e in events]
