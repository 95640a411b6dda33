from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kpi_portal.core.schemas import ApiResponse
from kpi_portal.database import get_db
from kpi_portal.schemas.kpi import KPIAcknowledgeRequest, KPICreate, KPIResponse
from kpi_portal.services.review_service import ReviewService

router = APIRouter(
    prefix="/kpis",
    tags=["KPIs"]
)

@router.post("", response_model=ApiResponse[KPIResponse])
def create_kpi(payload: KPICreate, db: Session = Depends(get_db)):
    """Manager sets a KPI for an employee. Goal weights are stored as "NN%"."""
    kpi = ReviewService(db).create_kpi(payload)
    return ApiResponse[KPIResponse].ok(KPIResponse.model_validate(kpi))

@router.get("/{kpi_id}", response_model=ApiResponse[KPIResponse])
def get_kpi(kpi_id: int, db: Session = Depends(get_db)):
    kpi = ReviewService(db).get_kpi(kpi_id)
    return ApiResponse[KPIResponse].ok(KPIResponse.model_validate(kpi))

@router.post("/{kpi_id}/acknowledge", response_model=ApiResponse[KPIResponse])
def acknowledge_kpi(kpi_id: int, payload: KPIAcknowledgeRequest, db: Session = Depends(get_db)):
    kpi = ReviewService(db).acknowledge(kpi_id, payload.signature)
    return ApiResponse[KPIResponse].ok(KPIResponse.model_validate(kpi))
