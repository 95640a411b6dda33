from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from kpi_portal.database import Base

class KPIPeriod(str, enum.Enum):
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

class KPIStatus(str, enum.Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    COMPLETED = "completed"
    OVERDUE = "overdue"

class KPI(Base):
    __tablename__ = "kpis"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, index=True, nullable=False)
    manager_id = Column(Integer, index=True, nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    # Legacy single-item KPIs keep their objective on the KPI itself
    target_value = Column(String, nullable=True)
    measure_unit = Column(String, nullable=True)

    period = Column(String, default=KPIPeriod.QUARTERLY.value, nullable=False)
    quarter = Column(String, nullable=True)  # "Q1".."Q4"
    year = Column(Integer, nullable=True)
    status = Column(String, default=KPIStatus.PENDING.value, nullable=False, index=True)
    meeting_date = Column(DateTime(timezone=True), nullable=True)

    manager_signature = Column(Text, nullable=True)
    manager_signed_at = Column(DateTime(timezone=True), nullable=True)
    employee_signature = Column(Text, nullable=True)
    employee_signed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    items = relationship("KPIItem", back_populates="kpi", order_by="KPIItem.item_order", cascade="all, delete-orphan")
    review = relationship("KPIReview", back_populates="kpi", uselist=False)

    def __repr__(self):
        return f"<KPI {self.id}: {self.title} ({self.status})>"


class KPIItem(Base):
    __tablename__ = "kpi_items"

    id = Column(Integer, primary_key=True, index=True)
    kpi_id = Column(Integer, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    target_value = Column(String, nullable=True)
    measure_unit = Column(String, nullable=True)
    measure_criteria = Column(String, nullable=True)
    expected_completion_date = Column(String, nullable=True)
    goal_weight = Column(String, nullable=True)  # canonical "NN%"
    is_qualitative = Column(Boolean, default=False, nullable=False)
    exclude_from_calculation = Column(Boolean, default=False, nullable=False)
    item_order = Column(Integer, default=1, nullable=False)

    # Recorded by the manager during review; everything else is frozen after acknowledgement
    actual_value = Column(String, nullable=True)
    current_performance_status = Column(String, nullable=True)

    kpi = relationship("KPI", back_populates="items")
