from sqlalchemy import Column, Integer, String, Text, Float, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from kpi_portal.database import Base

class Accomplishment(Base):
    __tablename__ = "kpi_review_accomplishments"

    id = Column(Integer, primary_key=True, index=True)
    review_id = Column(Integer, ForeignKey("kpi_reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    employee_rating = Column(Float, nullable=True)
    employee_comment = Column(Text, nullable=True)
    manager_rating = Column(Float, nullable=True)
    manager_comment = Column(Text, nullable=True)
    item_order = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    review = relationship("KPIReview", back_populates="accomplishments")
