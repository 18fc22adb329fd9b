"""Submission routes"""

from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.orm import Session
from typing import List

from cfp.core.database import get_db
from cfp.schemas.submission import (
    SubmissionCreate,
    SubmissionUpdate,
    SubmissionStatusUpdate,
    SubmissionResponse,
    ReviewCreate,
    ReviewResponse,
)
from cfp.services.submission_service import submission_service
from cfp.services.review_service import review_service
from cfp.services.audit_service import audit_service
from cfp.api.deps import get_current_user, get_current_organizer, get_current_reviewer, client_ip
from cfp.models.user import User

router = APIRouter()


@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
def create_submission(
    data: SubmissionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Submit a talk

    Args:
        data: Event, title, abstract and optional track/format
        current_user: Submitting user
        db: Database session

    Returns:
        Created submission
    """
    submission = submission_service.create_submission(db, current_user, data.model_dump())
    return SubmissionResponse.model_validate(submission)


@router.get("", response_model=List[SubmissionResponse])
def list_my_submissions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Current user's submissions, newest first"""
    return [SubmissionResponse.model_validate(s) for s in submission_service.list_for_speaker(db, current_user.id)]


@router.get("/{submission_id}", response_model=SubmissionResponse)
def get_submission(
    submission_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return SubmissionResponse.model_validate(submission_service.get_for_user(db, submission_id, current_user))


@router.patch("/{submission_id}", response_model=SubmissionResponse)
def update_submission(
    submission_id: int,
    data: SubmissionUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    submission = submission_service.update_submission(
        db, submission_id, current_user, data.model_dump(exclude_unset=True)
    )
    return SubmissionResponse.model_validate(submission)


@router.post("/{submission_id}/withdraw", response_model=SubmissionResponse)
def withdraw_submission(
    submission_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return SubmissionResponse.model_validate(submission_service.withdraw(db, submission_id, current_user))


@router.patch("/{submission_id}/status", response_model=SubmissionResponse)
def change_submission_status(
    submission_id: int,
    data: SubmissionStatusUpdate,
    request: Request,
    current_user: User = Depends(get_current_organizer),
    db: Session = Depends(get_db)
):
    """Organizer decision (accept, reject, waitlist...)"""
    submission = submission_service.change_status(db, submission_id, data.status, current_user)
    audit_service.safe_log_event(
        db,
        user_id=current_user.id,
        action="submission.status_changed",
        entity_type="submission",
        entity_id=submission.id,
        ip_address=client_ip(request),
        metadata={"status": submission.status},
    )
    return SubmissionResponse.model_validate(submission)


@router.delete("/{submission_id}")
def delete_submission(
    submission_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    submission_service.delete_submission(db, submission_id, current_user)
    return {"success": True, "message": "Submission deleted"}


@router.get("/{submission_id}/reviews", response_model=List[ReviewResponse])
def list_reviews(
    submission_id: int,
    current_user: User = Depends(get_current_reviewer),
    db: Session = Depends(get_db)
):
    return [ReviewResponse.model_validate(r) for r in review_service.list_reviews(db, submission_id, current_user)]


@router.post("/{submission_id}/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
def create_review(
    submission_id: int,
    data: ReviewCreate,
    current_user: User = Depends(get_current_reviewer),
    db: Session = Depends(get_db)
):
    """One review per reviewer per submission"""
    review = review_service.create_review(db, submission_id, current_user, data.model_dump())
    return ReviewResponse.model_validate(review)
