"""Review routes"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cfp.api.deps import get_current_reviewer
from cfp.core.database import get_db
from cfp.models.user import User
from cfp.schemas.submission import ReviewResponse, ReviewUpdate
from cfp.services.review_service import review_service

router = APIRouter()


@router.patch("/{review_id}", response_model=ReviewResponse)
def update_review(
    review_id: int,
    data: ReviewUpdate,
    current_user: User = Depends(get_current_reviewer),
    db: Session = Depends(get_db)
):
    review = review_service.update_review(db, review_id, current_user, data.model_dump(exclude_unset=True))
    return ReviewResponse.model_validate(review)


@router.delete("/{review_id}")
def delete_review(
    review_id: int,
    current_user: User = Depends(get_current_reviewer),
    db: Session = Depends(get_db)
):
    review_service.delete_review(db, review_id, current_user)
    return {"success": True, "message": "Review deleted"}
