from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Union

from kpi_portal.services.item_rating_parser import ParsedItemRatings
from kpi_portal.services.rating_aggregator import RatingSummary

# --- Inputs ---
class ItemRatingInput(BaseModel):
    item_id: int
    rating: float = Field(default=0.0, ge=0)
    comment: str = ""

class ManagerItemRatingInput(ItemRatingInput):
    actual_value: Optional[str] = None
    current_performance_status: Optional[str] = None

    @field_validator("actual_value", mode="before")
    @classmethod
    def actual_as_text(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)

class QualitativeRatingInput(BaseModel):
    item_id: int
    rating: Union[float, str, None] = None
    comment: str = ""

class AccomplishmentInput(BaseModel):
    title: str = ""
    description: Optional[str] = None
    employee_rating: Optional[float] = None
    employee_comment: Optional[str] = None

class AccomplishmentManagerInput(BaseModel):
    item_order: int
    manager_rating: Optional[float] = None
    manager_comment: Optional[str] = None

class SelfRatingSubmission(BaseModel):
    items: List[ItemRatingInput] = []
    accomplishments: List[AccomplishmentInput] = []
    employee_signature: Optional[str] = None
    review_date: Optional[date] = None
    major_accomplishments: Optional[str] = None
    disappointments: Optional[str] = None
    improvement_needed: Optional[str] = None
    future_plan: Optional[str] = None

class ManagerReviewSubmission(BaseModel):
    items: List[ManagerItemRatingInput] = []
    qualitative_ratings: List[QualitativeRatingInput] = []
    accomplishments: List[AccomplishmentManagerInput] = []
    overall_manager_comment: Optional[str] = None
    manager_signature: Optional[str] = None
    major_accomplishments_manager_comment: Optional[str] = None
    disappointments_manager_comment: Optional[str] = None
    improvement_needed_manager_comment: Optional[str] = None

class ConfirmationSubmission(BaseModel):
    confirmation_status: Literal["approved", "rejected"]
    rejection_note: Optional[str] = None
    signature: Optional[str] = None
    # Physical meeting declaration (approve only)
    meeting_confirmed: Optional[bool] = None
    meeting_location: Optional[str] = None
    meeting_date: Optional[date] = None
    meeting_time: Optional[str] = None
    no_meeting_acknowledged: bool = False

class ResolveRejectionRequest(BaseModel):
    note: Optional[str] = None
    resolved_by: Optional[str] = None

# --- Responses ---
class AccomplishmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    review_id: int
    title: str
    description: Optional[str] = None
    employee_rating: Optional[float] = None
    employee_comment: Optional[str] = None
    manager_rating: Optional[float] = None
    manager_comment: Optional[str] = None
    item_order: int

class ItemRatingRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kpi_item_id: int
    rater_role: str
    rating_type: str
    rating: Optional[str] = None
    comment: Optional[str] = None
    actual_value: Optional[str] = None
    target_value: Optional[str] = None
    goal_weight: Optional[str] = None
    percentage_value_obtained: Optional[float] = None

class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kpi_id: int
    employee_id: int
    manager_id: Optional[int] = None
    review_status: str
    review_period: Optional[str] = None
    review_quarter: Optional[str] = None
    review_year: Optional[int] = None

    employee_rating: Optional[float] = None
    employee_final_rating: Optional[float] = None
    employee_rating_percentage: Optional[float] = None
    manager_rating: Optional[float] = None
    manager_final_rating: Optional[float] = None
    manager_final_rating_percentage: Optional[float] = None

    employee_comment: Optional[str] = None
    manager_comment: Optional[str] = None
    overall_manager_comment: Optional[str] = None

    major_accomplishments: Optional[str] = None
    disappointments: Optional[str] = None
    improvement_needed: Optional[str] = None
    future_plan: Optional[str] = None
    major_accomplishments_manager_comment: Optional[str] = None
    disappointments_manager_comment: Optional[str] = None
    improvement_needed_manager_comment: Optional[str] = None

    employee_signature: Optional[str] = None
    employee_self_rating_date: Optional[date] = None
    employee_self_rating_signed_at: Optional[datetime] = None
    manager_review_signed_at: Optional[datetime] = None

    confirmation_status: Optional[str] = None
    confirmation_signed_at: Optional[datetime] = None
    meeting_confirmed: Optional[bool] = None
    meeting_location: Optional[str] = None
    meeting_date: Optional[date] = None
    meeting_time: Optional[str] = None
    no_meeting_acknowledged: bool = False

    employee_rejection_note: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_resolved_status: Optional[str] = None
    rejection_resolved_note: Optional[str] = None
    rejection_resolved_by: Optional[str] = None
    rejection_resolved_at: Optional[datetime] = None

    item_ratings: Dict[str, Dict[int, Dict[str, Any]]] = {}
    accomplishments: List[AccomplishmentResponse] = []

class ReviewSummaryResponse(BaseModel):
    review_id: Optional[int] = None
    kpi_id: int
    review_status: str
    max_rating: float
    employee: RatingSummary
    manager: RatingSummary
    ratings: ParsedItemRatings
