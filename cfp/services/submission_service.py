"""Submission service - talk proposals from speakers"""

from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from datetime import datetime

from cfp.models.event import Event, EventFormat, EventTrack
from cfp.models.submission import Submission, SUBMISSION_STATUSES
from cfp.models.user import User
from cfp.core.exceptions import (
    AuthorizationError,
    BusinessLogicError,
    CFPClosedError,
    ResourceNotFoundError,
)
from cfp.plugins import hooks
from cfp.services.event_service import event_service
from cfp.services.federation_service import federation_service
import logging

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = ("PENDING", "UNDER_REVIEW")
STAFF_ROLES = ("ADMIN", "ORGANIZER")


class SubmissionService:
    """Service for handling submissions"""

    @staticmethod
    def _validate_track_and_format(
        db: Session,
        event_id: int,
        track_id: Optional[int],
        format_id: Optional[int],
    ) -> None:
        if track_id is not None:
            track = db.query(EventTrack.id).filter(
                EventTrack.id == track_id, EventTrack.event_id == event_id
            ).first()
            if not track:
                raise BusinessLogicError("Invalid track for this event")
        if format_id is not None:
            fmt = db.query(EventFormat.id).filter(
                EventFormat.id == format_id, EventFormat.event_id == event_id
            ).first()
            if not fmt:
                raise BusinessLogicError("Invalid format for this event")

    @staticmethod
    def create_submission(db: Session, speaker: User, data: Dict[str, Any]) -> Submission:
        """
        Submit a talk to an event

        Args:
            db: Database session
            speaker: Submitting user (a USER becomes a SPEAKER)
            data: Validated SubmissionCreate fields

        Returns:
            Created submission
        """
        event = db.query(Event).filter(Event.id == data["event_id"]).first()
        if not event:
            raise ResourceNotFoundError("Event")
        if not event.is_cfp_open():
            raise CFPClosedError()

        SubmissionService._validate_track_and_format(db, event.id, data.get("track_id"), data.get("format_id"))

        submission = Submission(
            event_id=event.id,
            speaker_id=speaker.id,
            track_id=data.get("track_id"),
            format_id=data.get("format_id"),
            title=data["title"],
            abstract=data["abstract"],
            outline=data.get("outline"),
            target_audience=data.get("target_audience"),
            level=data.get("level"),
            status="PENDING",
            is_federated=event.is_federated,
        )
        if speaker.role == "USER":
            speaker.role = "SPEAKER"

        db.add(submission)
        db.commit()
        db.refresh(submission)

        logger.info(f"Submission {submission.id} created by {speaker.email} for event {event.slug}")
        hooks.dispatch("submission.created", {
            "submission_id": submission.id,
            "event_id": event.id,
            "speaker_id": speaker.id,
            "title": submission.title,
        })
        if event.is_federated:
            federation_service.submission_created(submission)
        return submission

    @staticmethod
    def get_submission(db: Session, submission_id: int) -> Submission:
        submission = db.query(Submission).filter(Submission.id == submission_id).first()
        if not submission:
            raise ResourceNotFoundError("Submission")
        return submission

    @staticmethod
    def get_for_user(db: Session, submission_id: int, user: User) -> Submission:
        """Speakers see their own submissions; staff and review team see all"""
        submission = SubmissionService.get_submission(db, submission_id)
        if submission.speaker_id == user.id or user.role in STAFF_ROLES:
            return submission
        if user.role == "REVIEWER" and event_service.is_on_review_team(db, submission.event_id, user.id):
            return submission
        raise AuthorizationError("You do not have access to this submission")

    @staticmethod
    def list_for_speaker(db: Session, speaker_id: int) -> List[Submission]:
        return db.query(Submission).filter(
            Submission.speaker_id == speaker_id
        ).order_by(Submission.created_at.desc(), Submission.id.desc()).all()

    @staticmethod
    def list_for_event(
        db: Session,
        event_id: int,
        status: Optional[str] = None,
        track_id: Optional[int] = None,
    ) -> List[Submission]:
        query = db.query(Submission).filter(Submission.event_id == event_id)
        if status:
            query = query.filter(Submission.status == status)
        if track_id is not None:
            query = query.filter(Submission.track_id == track_id)
        return query.order_by(Submission.created_at.desc(), Submission.id.desc()).all()

    @staticmethod
    def _own(db: Session, submission_id: int, user: User) -> Submission:
        submission = SubmissionService.get_submission(db, submission_id)
        if submission.speaker_id != user.id:
            raise AuthorizationError("You can only modify your own submissions")
        return submission

    @staticmethod
    def update_submission(db: Session, submission_id: int, user: User, changes: Dict[str, Any]) -> Submission:
        """Speaker edit, allowed while PENDING or UNDER_REVIEW"""
        submission = SubmissionService._own(db, submission_id, user)
        if submission.status not in EDITABLE_STATUSES:
            raise BusinessLogicError(f"Submissions in status {submission.status} can no longer be edited")

        SubmissionService._validate_track_and_format(
            db, submission.event_id, changes.get("track_id"), changes.get("format_id")
        )
        for key, value in changes.items():
            setattr(submission, key, value)
        db.commit()
        db.refresh(submission)

        hooks.dispatch("submission.updated", {
            "submission_id": submission.id,
            "event_id": submission.event_id,
            "changed_fields": sorted(changes),
        })
        federation_service.submission_updated(submission)
        return submission

    @staticmethod
    def _set_status(db: Session, submission: Submission, new_status: str, changed_by: Optional[int]) -> Submission:
        old_status = submission.status
        submission.status = new_status
        submission.status_updated_at = datetime.utcnow()
        db.commit()
        db.refresh(submission)

        logger.info(f"Submission {submission.id} status {old_status} -> {new_status}")
        hooks.dispatch("submission.statusChanged", {
            "submission_id": submission.id,
            "event_id": submission.event_id,
            "old_status": old_status,
            "new_status": new_status,
            "changed_by": changed_by,
        })
        federation_service.submission_status_updated(submission, new_status)
        return submission

    @staticmethod
    def withdraw(db: Session, submission_id: int, user: User) -> Submission:
        submission = SubmissionService._own(db, submission_id, user)
        if submission.status == "WITHDRAWN":
            raise BusinessLogicError("Submission is already withdrawn")
        if submission.status not in EDITABLE_STATUSES + ("WAITLISTED",):
            raise BusinessLogicError(f"Submissions in status {submission.status} cannot be withdrawn")
        return SubmissionService._set_status(db, submission, "WITHDRAWN", user.id)

    @staticmethod
    def change_status(db: Session, submission_id: int, new_status: str, changed_by: User) -> Submission:
        """Organizer decision on a submission"""
        if new_status not in SUBMISSION_STATUSES:
            raise BusinessLogicError(f"Invalid status: {new_status}")
        submission = SubmissionService.get_submission(db, submission_id)
        if submission.status == new_status:
            return submission
        return SubmissionService._set_status(db, submission, new_status, changed_by.id)

    @staticmethod
    def delete_submission(db: Session, submission_id: int, user: User) -> None:
        submission = SubmissionService.get_submission(db, submission_id)
        if submission.speaker_id != user.id and user.role not in STAFF_ROLES:
            raise AuthorizationError("You can only delete your own submissions")

        payload = {"submission_id": submission.id, "event_id": submission.event_id, "deleted_by": user.id}
        db.delete(submission)
        db.commit()
        logger.info(f"Submission {payload['submission_id']} deleted by user {user.id}")
        hooks.dispatch("submission.deleted", payload)


submission_service = SubmissionService()
