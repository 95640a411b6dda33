"""
Department model and its KPI calculation feature flags.
The flags select the rating policy and whether self-rating runs per period.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from kpi_portal.database import Base


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=True, index=True)
    name = Column(String, nullable=False, index=True)
    code = Column(String, nullable=True, index=True)  # Short code like "ENG", "HR", "FIN"

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    features = relationship("DepartmentFeatures", back_populates="department", uselist=False, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Department {self.code}: {self.name}>"


class DepartmentFeatures(Base):
    __tablename__ = "department_features"

    id = Column(Integer, primary_key=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    use_goal_weight_yearly = Column(Boolean, default=False, nullable=False)
    use_goal_weight_quarterly = Column(Boolean, default=False, nullable=False)
    use_actual_values_yearly = Column(Boolean, default=False, nullable=False)
    use_actual_values_quarterly = Column(Boolean, default=False, nullable=False)
    use_normal_calculation = Column(Boolean, default=True, nullable=False)
    enable_employee_self_rating_quarterly = Column(Boolean, default=True, nullable=False)
    enable_employee_self_rating_yearly = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    department = relationship("Department", back_populates="features")
