from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import List, Literal, Optional

from kpi_portal.services.rating_aggregator import normalize_goal_weight

class KPIItemCreate(BaseModel):
    title: str
    description: Optional[str] = None
    target_value: Optional[str] = None
    measure_unit: Optional[str] = None
    measure_criteria: Optional[str] = None
    expected_completion_date: Optional[str] = None
    goal_weight: Optional[str] = None
    is_qualitative: bool = False
    exclude_from_calculation: bool = False

    @field_validator("goal_weight", mode="before")
    @classmethod
    def canonical_goal_weight(cls, value):
        return normalize_goal_weight(value)

class KPICreate(BaseModel):
    employee_id: int
    manager_id: Optional[int] = None
    department_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    target_value: Optional[str] = None
    measure_unit: Optional[str] = None
    period: Literal["quarterly", "yearly"] = "quarterly"
    quarter: Optional[str] = None
    year: Optional[int] = None
    manager_signature: Optional[str] = None
    items: List[KPIItemCreate] = []

class KPIItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kpi_id: int
    title: str
    description: Optional[str] = None
    target_value: Optional[str] = None
    measure_unit: Optional[str] = None
    measure_criteria: Optional[str] = None
    expected_completion_date: Optional[str] = None
    goal_weight: Optional[str] = None
    is_qualitative: bool = False
    exclude_from_calculation: bool = False
    item_order: int = 1
    actual_value: Optional[str] = None
    current_performance_status: Optional[str] = None

class KPIResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    manager_id: Optional[int] = None
    department_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    target_value: Optional[str] = None
    measure_unit: Optional[str] = None
    period: str
    quarter: Optional[str] = None
    year: Optional[int] = None
    status: str
    manager_signed_at: Optional[datetime] = None
    employee_signature: Optional[str] = None
    employee_signed_at: Optional[datetime] = None
    items: List[KPIItemResponse] = []

class KPIAcknowledgeRequest(BaseModel):
    signature: Optional[str] = None

class RatingOptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    rating_type: str
    rating_value: float
    label: str
    description: Optional[str] = None

class DepartmentFeaturesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    department_id: Optional[int] = None
    use_goal_weight_yearly: bool = False
    use_goal_weight_quarterly: bool = False
    use_actual_values_yearly: bool = False
    use_actual_values_quarterly: bool = False
    use_normal_calculation: bool = True
    enable_employee_self_rating_quarterly: bool = True
    enable_employee_self_rating_yearly: bool = True
    is_default: bool = Field(default=False)
