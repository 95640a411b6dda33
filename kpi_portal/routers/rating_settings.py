from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kpi_portal.core.schemas import ApiResponse
from kpi_portal.database import get_db
from kpi_portal.schemas.kpi import DepartmentFeaturesResponse, RatingOptionResponse
from kpi_portal.services.review_service import ReviewService

router = APIRouter(tags=["Rating Settings"])

@router.get("/rating-options", response_model=ApiResponse[List[RatingOptionResponse]])
def list_rating_options(
    period: Optional[Literal["quarterly", "yearly", "qualitative"]] = None,
    db: Session = Depends(get_db),
):
    options = ReviewService(db).rating_options(period)
    return ApiResponse[List[RatingOptionResponse]].ok(
        [RatingOptionResponse.model_validate(o) for o in options]
    )

@router.get("/department-features/kpi/{kpi_id}", response_model=ApiResponse[DepartmentFeaturesResponse])
def get_department_features(kpi_id: int, db: Session = Depends(get_db)):
    """Calculation policy flags for the KPI's department; defaults when none are configured."""
    return ApiResponse[DepartmentFeaturesResponse].ok(ReviewService(db).features_for_kpi(kpi_id))
