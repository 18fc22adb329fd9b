"""Submission access for plugins."""

from datetime import datetime
from typing import List, Optional

from cfp.core.exceptions import ValidationError
from cfp.models.submission import Submission, SUBMISSION_STATUSES
from cfp.plugins.capabilities.base import Capability


class SubmissionCapability(Capability):

    def get(self, submission_id: int) -> Optional[dict]:
        self._require("submissions:read")
        with self._session() as db:
            submission = db.query(Submission).filter(Submission.id == submission_id).first()
            return submission.to_dict() if submission else None

    def list(
        self,
        event_id: Optional[int] = None,
        speaker_id: Optional[int] = None,
        status: Optional[str] = None,
        track_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        """Newest first."""
        self._require("submissions:read")
        with self._session() as db:
            query = db.query(Submission)
            if event_id is not None:
                query = query.filter(Submission.event_id == event_id)
            if speaker_id is not None:
                query = query.filter(Submission.speaker_id == speaker_id)
            if status:
                query = query.filter(Submission.status == status)
            if track_id is not None:
                query = query.filter(Submission.track_id == track_id)
            query = query.order_by(Submission.created_at.desc(), Submission.id.desc())
            if limit:
                query = query.limit(limit)
            return [s.to_dict() for s in query.all()]

    def update_status(self, submission_id: int, status: str) -> Optional[dict]:
        self._require("submissions:manage")
        if status not in SUBMISSION_STATUSES:
            raise ValidationError(f"Invalid submission status: {status}")
        with self._session() as db:
            submission = db.query(Submission).filter(Submission.id == submission_id).first()
            if submission is None:
                return None
            submission.status = status
            submission.status_updated_at = datetime.utcnow()
            db.commit()
            db.refresh(submission)
            self._ctx.logger.info(
                "Updated submission status", {"submission_id": submission_id, "status": status}
            )
            return submission.to_dict()
