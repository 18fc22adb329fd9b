"""Review service - reviewer scores on submissions"""

import logging
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cfp.core.exceptions import AuthorizationError, ResourceAlreadyExistsError, ResourceNotFoundError
from cfp.models.review import Review
from cfp.models.submission import Submission
from cfp.models.user import User
from cfp.plugins import hooks
from cfp.services.event_service import event_service

logger = logging.getLogger(__name__)


class ReviewService:

    @staticmethod
    def _check_reviewer(db: Session, submission: Submission, user: User) -> None:
        if user.role in ("ADMIN", "ORGANIZER"):
            return
        if not event_service.is_on_review_team(db, submission.event_id, user.id):
            raise AuthorizationError("You are not on the review team for this event")

    @staticmethod
    def _submission(db: Session, submission_id: int) -> Submission:
        submission = db.query(Submission).filter(Submission.id == submission_id).first()
        if not submission:
            raise ResourceNotFoundError("Submission")
        return submission

    @staticmethod
    def list_reviews(db: Session, submission_id: int, user: User) -> List[Review]:
        submission = ReviewService._submission(db, submission_id)
        ReviewService._check_reviewer(db, submission, user)
        return db.query(Review).filter(Review.submission_id == submission_id).order_by(Review.id.asc()).all()

    @staticmethod
    def create_review(db: Session, submission_id: int, reviewer: User, data: Dict[str, Any]) -> Review:
        """
        Create the reviewer's review of a submission

        The first review moves a PENDING submission to UNDER_REVIEW. When the
        review count reaches the event's min_reviews_per_talk,
        review.allCompleted is dispatched.

        Args:
            db: Database session
            submission_id: Submission being reviewed
            reviewer: Acting reviewer
            data: Validated ReviewCreate fields

        Returns:
            Created review
        """
        submission = ReviewService._submission(db, submission_id)
        ReviewService._check_reviewer(db, submission, reviewer)

        review = Review(submission_id=submission.id, reviewer_id=reviewer.id, **data)
        db.add(review)
        moved_to_review = submission.status == "PENDING"
        if moved_to_review:
            submission.status = "UNDER_REVIEW"
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ResourceAlreadyExistsError("Review", details={"submission_id": submission_id})
        db.refresh(review)

        logger.info(f"Review {review.id} submitted for submission {submission.id} by {reviewer.email}")
        hooks.dispatch("review.submitted", {
            "review_id": review.id,
            "submission_id": submission.id,
            "reviewer_id": reviewer.id,
            "recommendation": review.recommendation,
            "overall_score": review.overall_score,
        })
        if moved_to_review:
            hooks.dispatch("submission.statusChanged", {
                "submission_id": submission.id,
                "event_id": submission.event_id,
                "old_status": "PENDING",
                "new_status": "UNDER_REVIEW",
                "changed_by": reviewer.id,
            })

        review_count = db.query(Review).filter(Review.submission_id == submission.id).count()
        # fires on the review that reaches the threshold, not on later ones
        if review_count == submission.event.min_reviews_per_talk:
            hooks.dispatch("review.allCompleted", {
                "submission_id": submission.id,
                "event_id": submission.event_id,
                "review_count": review_count,
            })
        return review

    @staticmethod
    def _own_review(db: Session, review_id: int, user: User) -> Review:
        review = db.query(Review).filter(Review.id == review_id).first()
        if not review:
            raise ResourceNotFoundError("Review")
        if review.reviewer_id != user.id and user.role != "ADMIN":
            raise AuthorizationError("You can only modify your own reviews")
        return review

    @staticmethod
    def update_review(db: Session, review_id: int, user: User, changes: Dict[str, Any]) -> Review:
        review = ReviewService._own_review(db, review_id, user)
        for key, value in changes.items():
            setattr(review, key, value)
        db.commit()
        db.refresh(review)
        hooks.dispatch("review.updated", {
            "review_id": review.id,
            "submission_id": review.submission_id,
            "reviewer_id": review.reviewer_id,
            "changed_fields": sorted(changes),
        })
        return review

    @staticmethod
    def delete_review(db: Session, review_id: int, user: User) -> None:
        review = ReviewService._own_review(db, review_id, user)
        db.delete(review)
        db.commit()


review_service = ReviewService()
