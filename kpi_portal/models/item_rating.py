from sqlalchemy import Column, Integer, String, Text, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from kpi_portal.database import Base

class RaterRole(str, enum.Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"

class RatingKind(str, enum.Enum):
    QUANTITATIVE = "quantitative"
    QUALITATIVE = "qualitative"

class KPIItemRating(Base):
    __tablename__ = "kpi_item_ratings"
    __table_args__ = (
        UniqueConstraint("review_id", "kpi_item_id", "rater_role", name="uq_item_rating_per_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    review_id = Column(Integer, ForeignKey("kpi_reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    # 0 is the implicit item of a legacy KPI without items
    kpi_item_id = Column(Integer, nullable=False, index=True)
    rater_role = Column(String, nullable=False, index=True)
    rating_type = Column(String, default=RatingKind.QUANTITATIVE.value, nullable=False)

    # Numeric ratings are stored as text too so qualitative tiers fit the same column
    rating = Column(String, nullable=True)
    comment = Column(Text, nullable=True)

    actual_value = Column(String, nullable=True)
    target_value = Column(String, nullable=True)
    goal_weight = Column(String, nullable=True)
    percentage_value_obtained = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    review = relationship("KPIReview", back_populates="ratings")
