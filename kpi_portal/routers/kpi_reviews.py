from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kpi_portal.core.schemas import ApiResponse
from kpi_portal.database import get_db
from kpi_portal.models.kpi_review import ReviewStatus
from kpi_portal.schemas.review import (
    ConfirmationSubmission,
    ItemRatingRow,
    ManagerReviewSubmission,
    ResolveRejectionRequest,
    ReviewResponse,
    ReviewSummaryResponse,
    SelfRatingSubmission,
)
from kpi_portal.services.review_service import ReviewService

router = APIRouter(
    prefix="/kpi-review",
    tags=["KPI Reviews"]
)

def _review(review) -> ApiResponse[ReviewResponse]:
    return ApiResponse[ReviewResponse].ok(
        ReviewResponse.model_validate(review),
        metadata={"review_status": review.review_status},
    )

# --- Reads ---

@router.get("/kpi/{kpi_id}", response_model=ApiResponse[Optional[ReviewResponse]])
def get_review_by_kpi(kpi_id: int, db: Session = Depends(get_db)):
    """The KPI's review, or null data with status "none" when it has not started."""
    review = ReviewService(db).get_review_by_kpi(kpi_id)
    if review is None:
        return ApiResponse[Optional[ReviewResponse]].ok(None, metadata={"review_status": ReviewStatus.NONE.value})
    return _review(review)

@router.get("/{review_id}", response_model=ApiResponse[ReviewResponse])
def get_review(review_id: int, db: Session = Depends(get_db)):
    return _review(ReviewService(db).get_review(review_id))

@router.get("/{review_id}/item-ratings", response_model=ApiResponse[List[ItemRatingRow]])
def list_item_ratings(review_id: int, db: Session = Depends(get_db)):
    rows = ReviewService(db).list_item_ratings(review_id)
    return ApiResponse[List[ItemRatingRow]].ok([ItemRatingRow.model_validate(r) for r in rows])

@router.get("/{review_id}/summary", response_model=ApiResponse[ReviewSummaryResponse])
def get_review_summary(review_id: int, db: Session = Depends(get_db)):
    return ApiResponse[ReviewSummaryResponse].ok(ReviewService(db).summarize(review_id))

# --- Transitions ---

@router.post("/{kpi_id}/self-rating", response_model=ApiResponse[ReviewResponse])
def submit_self_rating(kpi_id: int, payload: SelfRatingSubmission, db: Session = Depends(get_db)):
    return _review(ReviewService(db).submit_self_rating(kpi_id, payload))

@router.post("/{review_id}/manager-review", response_model=ApiResponse[ReviewResponse])
def submit_manager_review(review_id: int, payload: ManagerReviewSubmission, db: Session = Depends(get_db)):
    return _review(ReviewService(db).submit_manager_review(review_id, payload))

@router.post("/{review_id}/confirm", response_model=ApiResponse[ReviewResponse])
def confirm_review(review_id: int, payload: ConfirmationSubmission, db: Session = Depends(get_db)):
    """Employee approves or rejects the manager's assessment."""
    return _review(ReviewService(db).confirm(review_id, payload))

@router.post("/{review_id}/resolve-rejection", response_model=ApiResponse[ReviewResponse])
def resolve_rejection(review_id: int, payload: ResolveRejectionRequest, db: Session = Depends(get_db)):
    return _review(ReviewService(db).resolve_rejection(review_id, payload))
