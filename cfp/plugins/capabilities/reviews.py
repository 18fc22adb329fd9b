"""Review access for plugins."""

from typing import Any, Dict, List, Optional

from cfp.core.exceptions import ResourceAlreadyExistsError, ResourceNotFoundError, ValidationError
from cfp.models.review import Review, RECOMMENDATIONS
from cfp.models.submission import Submission
from cfp.plugins.capabilities.base import Capability

SCORE_FIELDS = ("content_score", "presentation_score", "relevance_score", "overall_score")
TEXT_FIELDS = ("private_notes", "public_notes", "recommendation")


def _clean_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(fields) - set(SCORE_FIELDS) - set(TEXT_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown review fields: {', '.join(sorted(unknown))}")
    for name in SCORE_FIELDS:
        value = fields.get(name)
        if value is not None and (not isinstance(value, int) or not 1 <= value <= 5):
            raise ValidationError(f"{name} must be an integer between 1 and 5")
    recommendation = fields.get("recommendation")
    if recommendation is not None and recommendation not in RECOMMENDATIONS:
        raise ValidationError(f"Invalid recommendation: {recommendation}")
    return fields


class ReviewCapability(Capability):

    def get(self, review_id: int) -> Optional[dict]:
        self._require("reviews:read")
        with self._session() as db:
            review = db.query(Review).filter(Review.id == review_id).first()
            return review.to_dict() if review else None

    def list(self, submission_id: Optional[int] = None, reviewer_id: Optional[int] = None) -> List[dict]:
        self._require("reviews:read")
        with self._session() as db:
            query = db.query(Review)
            if submission_id is not None:
                query = query.filter(Review.submission_id == submission_id)
            if reviewer_id is not None:
                query = query.filter(Review.reviewer_id == reviewer_id)
            return [r.to_dict() for r in query.order_by(Review.created_at.desc(), Review.id.desc()).all()]

    def get_by_submission(self, submission_id: int) -> List[dict]:
        return self.list(submission_id=submission_id)

    def create(self, submission_id: int, reviewer_id: int, **fields) -> dict:
        self._require("reviews:write")
        _clean_fields(fields)
        with self._session() as db:
            if not db.query(Submission.id).filter(Submission.id == submission_id).first():
                raise ResourceNotFoundError("Submission")
            existing = (
                db.query(Review)
                .filter(Review.submission_id == submission_id, Review.reviewer_id == reviewer_id)
                .first()
            )
            if existing:
                raise ResourceAlreadyExistsError("Review")
            review = Review(submission_id=submission_id, reviewer_id=reviewer_id, **fields)
            db.add(review)
            db.commit()
            db.refresh(review)
            return review.to_dict()

    def update(self, review_id: int, **fields) -> Optional[dict]:
        self._require("reviews:write")
        _clean_fields(fields)
        with self._session() as db:
            review = db.query(Review).filter(Review.id == review_id).first()
            if review is None:
                return None
            for key, value in fields.items():
                setattr(review, key, value)
            db.commit()
            db.refresh(review)
            return review.to_dict()

    def delete(self, review_id: int) -> bool:
        self._require("reviews:write")
        with self._session() as db:
            review = db.query(Review).filter(Review.id == review_id).first()
            if review is None:
                return False
            db.delete(review)
            db.commit()
            return True
