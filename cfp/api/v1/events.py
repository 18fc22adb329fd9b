"""Event routes - events, tracks, formats, review team"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session
from typing import List, Optional

from cfp.api.deps import client_ip, get_current_organizer, get_current_user, get_optional_current_user
from cfp.core.database import get_db
from cfp.core.exceptions import AuthorizationError, ResourceNotFoundError
from cfp.models.user import User
from cfp.schemas.event import EventCreate, EventUpdate, FormatCreate, ReviewTeamAdd, TrackCreate
from cfp.schemas.submission import SubmissionResponse
from cfp.services.audit_service import audit_service
from cfp.services.event_service import event_service
from cfp.services.submission_service import submission_service

router = APIRouter()

STAFF_ROLES = ("ADMIN", "ORGANIZER")


def _is_staff(user: Optional[User]) -> bool:
    return user is not None and user.role in STAFF_ROLES


@router.get("")
def list_events(
    include_drafts: bool = False,
    current_user: Optional[User] = Depends(get_optional_current_user),
    db: Session = Depends(get_db)
):
    """Published events; organizers may ask for drafts too"""
    published_only = not (include_drafts and _is_staff(current_user))
    return [event.to_dict() for event in event_service.list_events(db, published_only=published_only)]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_event(
    data: EventCreate,
    request: Request,
    current_user: User = Depends(get_current_organizer),
    db: Session = Depends(get_db)
):
    event = event_service.create_event(db, data.model_dump(), current_user)
    audit_service.safe_log_event(
        db,
        user_id=current_user.id,
        action="event.created",
        entity_type="event",
        entity_id=event.id,
        ip_address=client_ip(request),
        metadata={"slug": event.slug},
    )
    return event.to_dict()


@router.get("/{event_id}")
def get_event(
    event_id: int,
    current_user: Optional[User] = Depends(get_optional_current_user),
    db: Session = Depends(get_db)
):
    event = event_service.get_event(db, event_id)
    if not event.is_published and not _is_staff(current_user):
        raise ResourceNotFoundError("Event")
    return event.to_dict()


@router.patch("/{event_id}")
def update_event(
    event_id: int,
    data: EventUpdate,
    request: Request,
    current_user: User = Depends(get_current_organizer),
    db: Session = Depends(get_db)
):
    """
    Partial update

    Publishing and opening or closing the CFP window notify plugins.
    """
    changes = data.model_dump(exclude_unset=True)
    event = event_service.update_event(db, event_id, changes)
    audit_service.safe_log_event(
        db,
        user_id=current_user.id,
        action="event.updated",
        entity_type="event",
        entity_id=event.id,
        ip_address=client_ip(request),
        metadata={"fields": sorted(k for k in changes if k != "webhook_secret")},
    )
    return event.to_dict()


@router.delete("/{event_id}")
def delete_event(
    event_id: int,
    request: Request,
    current_user: User = Depends(get_current_organizer),
    db: Session = Depends(get_db)
):
    event_service.delete_event(db, event_id)
    audit_service.safe_log_event(
        db,
        user_id=current_user.id,
        action="event.deleted",
        entity_type="event",
        entity_id=event_id,
        ip_address=client_ip(request),
    )
    return {"success": True, "message": "Event deleted"}


@router.post("/{event_id}/tracks", status_code=status.HTTP_201_CREATED)
def add_track(
    event_id: int,
    data: TrackCreate,
    current_user: User = Depends(get_current_organizer),
    db: Session = Depends(get_db)
):
    return event_service.add_track(db, event_id, data.name, data.description, data.color).to_dict()


@router.delete("/{event_id}/tracks/{track_id}")
def delete_track(
    event_id: int,
    track_id: int,
    current_user: User = Depends(get_current_organizer),
    db: Session = Depends(get_db)
):
    event_service.delete_track(db, event_id, track_id)
    return {"success": True, "message": "Track deleted"}


@router.post("/{event_id}/formats", status_code=status.HTTP_201_CREATED)
def add_format(
    event_id: int,
    data: FormatCreate,
    current_user: User = Depends(get_current_organizer),
    db: Session = Depends(get_db)
):
    return event_service.add_format(db, event_id, data.name, data.duration_min).to_dict()


@router.delete("/{event_id}/formats/{format_id}")
def delete_format(
    event_id: int,
    format_id: int,
    current_user: User = Depends(get_current_organizer),
    db: Session = Depends(get_db)
):
    event_service.delete_format(db, event_id, format_id)
    return {"success": True, "message": "Format deleted"}


@router.get("/{event_id}/review-team")
def list_review_team(
    event_id: int,
    current_user: User = Depends(get_current_organizer),
    db: Session = Depends(get_db)
):
    return [member.to_dict() for member in event_service.list_review_team(db, event_id)]


@router.post("/{event_id}/review-team", status_code=status.HTTP_201_CREATED)
def add_review_team_member(
    event_id: int,
    data: ReviewTeamAdd,
    current_user: User = Depends(get_current_organizer),
    db: Session = Depends(get_db)
):
    return event_service.add_reviewer(db, event_id, data.user_id, data.role).to_dict()


@router.delete("/{event_id}/review-team/{user_id}")
def remove_review_team_member(
    event_id: int,
    user_id: int,
    current_user: User = Depends(get_current_organizer),
    db: Session = Depends(get_db)
):
    event_service.remove_reviewer(db, event_id, user_id)
    return {"success": True, "message": "Reviewer removed"}


@router.get("/{event_id}/submissions", response_model=List[SubmissionResponse])
def list_event_submissions(
    event_id: int,
    status_filter: Optional[str] = None,
    track_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Submissions for an event (organizers and the event's review team)"""
    event_service.get_event(db, event_id)
    if not _is_staff(current_user) and not event_service.is_on_review_team(db, event_id, current_user.id):
        raise AuthorizationError("You do not have access to this event's submissions")
    submissions = submission_service.list_for_event(db, event_id, status=status_filter, track_id=track_id)
    return [SubmissionResponse.model_validate(s) for s in submissions]
