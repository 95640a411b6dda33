from sqlalchemy import Column, Integer, String, Text, Float, Date, DateTime, Boolean, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from kpi_portal.database import Base

class ReviewStatus(str, enum.Enum):
    NONE = "none"  # no review row exists yet
    PENDING = "pending"
    EMPLOYEE_SUBMITTED = "employee_submitted"
    MANAGER_SUBMITTED = "manager_submitted"
    AWAITING_EMPLOYEE_CONFIRMATION = "awaiting_employee_confirmation"
    COMPLETED = "completed"
    REJECTED = "rejected"

class ConfirmationStatus(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"

class RejectionResolution(str, enum.Enum):
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"

class KPIReview(Base):
    __tablename__ = "kpi_reviews"

    id = Column(Integer, primary_key=True, index=True)
    kpi_id = Column(Integer, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    employee_id = Column(Integer, index=True, nullable=False)
    manager_id = Column(Integer, index=True, nullable=True)

    review_status = Column(String, default=ReviewStatus.PENDING.value, nullable=False, index=True)
    review_period = Column(String, nullable=True)
    review_quarter = Column(String, nullable=True)
    review_year = Column(Integer, nullable=True)

    # Scalar summaries
    employee_rating = Column(Float, nullable=True)
    employee_final_rating = Column(Float, nullable=True)
    employee_rating_percentage = Column(Float, nullable=True)
    manager_rating = Column(Float, nullable=True)
    manager_final_rating = Column(Float, nullable=True)
    manager_final_rating_percentage = Column(Float, nullable=True)

    # Legacy rows may carry a JSON blob here; new writes store plain text only
    employee_comment = Column(Text, nullable=True)
    manager_comment = Column(Text, nullable=True)
    overall_manager_comment = Column(Text, nullable=True)

    # Reflection
    major_accomplishments = Column(Text, nullable=True)
    disappointments = Column(Text, nullable=True)
    improvement_needed = Column(Text, nullable=True)
    future_plan = Column(Text, nullable=True)
    major_accomplishments_manager_comment = Column(Text, nullable=True)
    disappointments_manager_comment = Column(Text, nullable=True)
    improvement_needed_manager_comment = Column(Text, nullable=True)

    # Signatures
    employee_signature = Column(Text, nullable=True)
    employee_self_rating_date = Column(Date, nullable=True)
    employee_self_rating_signed_at = Column(DateTime(timezone=True), nullable=True)
    manager_signature = Column(Text, nullable=True)
    manager_review_signed_at = Column(DateTime(timezone=True), nullable=True)

    # Employee confirmation
    confirmation_status = Column(String, nullable=True)
    confirmation_signature = Column(Text, nullable=True)
    confirmation_signed_at = Column(DateTime(timezone=True), nullable=True)
    meeting_confirmed = Column(Boolean, nullable=True)
    meeting_location = Column(String, nullable=True)
    meeting_date = Column(Date, nullable=True)
    meeting_time = Column(String, nullable=True)
    no_meeting_acknowledged = Column(Boolean, default=False, nullable=False)

    # Rejection
    employee_rejection_note = Column(Text, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_resolved_status = Column(String, nullable=True)
    rejection_resolved_note = Column(Text, nullable=True)
    rejection_resolved_by = Column(String, nullable=True)
    rejection_resolved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    kpi = relationship("KPI", back_populates="review")
    ratings = relationship("KPIItemRating", back_populates="review", cascade="all, delete-orphan")
    accomplishments = relationship(
        "Accomplishment",
        back_populates="review",
        order_by="Accomplishment.item_order",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<KPIReview {self.id} kpi={self.kpi_id} ({self.review_status})>"

    @property
    def item_ratings(self) -> dict:
        """Structured rating store keyed by rater role, then item id."""
        result = {"employee": {}, "manager": {}}
        for row in self.ratings:
            result.setdefault(row.rater_role, {})[row.kpi_item_id] = {
                "id": row.id,
                "rating": row.rating,
                "comment": row.comment or "",
                "type": row.rating_type,
            }
        return result
