"""Event service - events, tracks, formats and review teams"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cfp.core.encryption import encrypt_string
from cfp.core.exceptions import BusinessLogicError, ResourceAlreadyExistsError, ResourceNotFoundError
from cfp.models.event import Event, EventFormat, EventTrack, ReviewTeamMember
from cfp.models.user import User
from cfp.plugins import hooks

logger = logging.getLogger(__name__)

REVIEW_TEAM_ELIGIBLE_ROLES = ("REVIEWER", "ORGANIZER", "ADMIN")


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        value = (value - value.utcoffset()).replace(tzinfo=None)
    return value


class EventService:
    """Service for event management"""

    @staticmethod
    def get_event(db: Session, event_id: int) -> Event:
        event = db.query(Event).filter(Event.id == event_id).first()
        if not event:
            raise ResourceNotFoundError("Event")
        return event

    @staticmethod
    def get_event_by_slug(db: Session, slug: str) -> Event:
        event = db.query(Event).filter(Event.slug == slug).first()
        if not event:
            raise ResourceNotFoundError("Event")
        return event

    @staticmethod
    def list_events(db: Session, published_only: bool = True) -> List[Event]:
        query = db.query(Event)
        if published_only:
            query = query.filter(Event.status == "PUBLISHED")
        return query.order_by(Event.cfp_closes_at.is_(None), Event.cfp_closes_at.asc(), Event.id.asc()).all()

    @staticmethod
    def create_event(db: Session, data: Dict[str, Any], created_by: User) -> Event:
        """
        Create an event

        Args:
            db: Database session
            data: Validated EventCreate fields
            created_by: Acting organizer or admin

        Returns:
            Created event
        """
        if db.query(Event.id).filter(Event.slug == data["slug"]).first():
            raise ResourceAlreadyExistsError("Event", details={"slug": data["slug"]})

        values = dict(data)
        secret = values.pop("webhook_secret", None)
        values["cfp_opens_at"] = _naive_utc(values.get("cfp_opens_at"))
        values["cfp_closes_at"] = _naive_utc(values.get("cfp_closes_at"))
        event = Event(**values, created_by_id=created_by.id)
        if secret:
            event.webhook_secret = encrypt_string(secret)

        db.add(event)
        db.commit()
        db.refresh(event)
        logger.info(f"Created event {event.slug} by {created_by.email}")

        if event.is_published:
            hooks.dispatch("event.published", {"event_id": event.id, "slug": event.slug})
        if event.is_cfp_open():
            hooks.dispatch("event.cfpOpened", {"event_id": event.id, "slug": event.slug})
        return event

    @staticmethod
    def update_event(db: Session, event_id: int, changes: Dict[str, Any]) -> Event:
        """
        Apply a partial update and fire lifecycle hooks

        event.updated always fires; event.published fires on DRAFT -> PUBLISHED;
        event.cfpOpened / event.cfpClosed fire when the update flips whether the
        CFP is open.
        """
        event = EventService.get_event(db, event_id)
        was_published = event.is_published
        was_open = event.is_cfp_open()

        for key, value in changes.items():
            if key == "webhook_secret":
                event.webhook_secret = encrypt_string(value) if value else None
            elif key in ("cfp_opens_at", "cfp_closes_at"):
                setattr(event, key, _naive_utc(value))
            else:
                setattr(event, key, value)

        opens_at, closes_at = _naive_utc(event.cfp_opens_at), _naive_utc(event.cfp_closes_at)
        if opens_at and closes_at and closes_at <= opens_at:
            db.rollback()
            raise BusinessLogicError("cfp_closes_at must be after cfp_opens_at")

        db.commit()
        db.refresh(event)

        payload = {"event_id": event.id, "slug": event.slug, "changed_fields": sorted(changes)}
        hooks.dispatch("event.updated", payload)
        if event.is_published and not was_published:
            hooks.dispatch("event.published", {"event_id": event.id, "slug": event.slug})
        is_open = event.is_cfp_open()
        if is_open and not was_open:
            hooks.dispatch("event.cfpOpened", {"event_id": event.id, "slug": event.slug})
        elif was_open and not is_open:
            hooks.dispatch("event.cfpClosed", {"event_id": event.id, "slug": event.slug})
        return event

    @staticmethod
    def delete_event(db: Session, event_id: int) -> None:
        event = EventService.get_event(db, event_id)
        db.delete(event)
        db.commit()
        logger.info(f"Deleted event {event_id}")

    # Tracks and formats

    @staticmethod
    def add_track(db: Session, event_id: int, name: str, description: Optional[str] = None,
                  color: Optional[str] = None) -> EventTrack:
        EventService.get_event(db, event_id)
        if db.query(EventTrack.id).filter(EventTrack.event_id == event_id, EventTrack.name == name).first():
            raise ResourceAlreadyExistsError("Track", details={"name": name})
        track = EventTrack(event_id=event_id, name=name, description=description, color=color)
        db.add(track)
        db.commit()
        db.refresh(track)
        return track

    @staticmethod
    def delete_track(db: Session, event_id: int, track_id: int) -> None:
        track = db.query(EventTrack).filter(EventTrack.id == track_id, EventTrack.event_id == event_id).first()
        if not track:
            raise ResourceNotFoundError("Track")
        db.delete(track)
        db.commit()

    @staticmethod
    def add_format(db: Session, event_id: int, name: str, duration_min: int) -> EventFormat:
        EventService.get_event(db, event_id)
        if db.query(EventFormat.id).filter(EventFormat.event_id == event_id, EventFormat.name == name).first():
            raise ResourceAlreadyExistsError("Format", details={"name": name})
        fmt = EventFormat(event_id=event_id, name=name, duration_min=duration_min)
        db.add(fmt)
        db.commit()
        db.refresh(fmt)
        return fmt

    @staticmethod
    def delete_format(db: Session, event_id: int, format_id: int) -> None:
        fmt = db.query(EventFormat).filter(EventFormat.id == format_id, EventFormat.event_id == event_id).first()
        if not fmt:
            raise ResourceNotFoundError("Format")
        db.delete(fmt)
        db.commit()

    # Review team

    @staticmethod
    def list_review_team(db: Session, event_id: int) -> List[ReviewTeamMember]:
        EventService.get_event(db, event_id)
        return db.query(ReviewTeamMember).filter(ReviewTeamMember.event_id == event_id).all()

    @staticmethod
    def add_reviewer(db: Session, event_id: int, user_id: int, role: str = "REVIEWER") -> ReviewTeamMember:
        EventService.get_event(db, event_id)
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise ResourceNotFoundError("User")
        if user.role not in REVIEW_TEAM_ELIGIBLE_ROLES:
            raise BusinessLogicError("Only reviewers, organizers and admins can join a review team")

        member = ReviewTeamMember(event_id=event_id, user_id=user_id, role=role)
        db.add(member)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ResourceAlreadyExistsError("Review team member")
        db.refresh(member)
        return member

    @staticmethod
    def remove_reviewer(db: Session, event_id: int, user_id: int) -> None:
        member = db.query(ReviewTeamMember).filter(
            ReviewTeamMember.event_id == event_id,
            ReviewTeamMember.user_id == user_id,
        ).first()
        if not member:
            raise ResourceNotFoundError("Review team member")
        db.delete(member)
        db.commit()

    @staticmethod
    def is_on_review_team(db: Session, event_id: int, user_id: int) -> bool:
        return db.query(ReviewTeamMember.id).filter(
            ReviewTeamMember.event_id == event_id,
            ReviewTeamMember.user_id == user_id,
        ).first() is not None


event_service = EventService()
