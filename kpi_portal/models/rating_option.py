from sqlalchemy import Column, Integer, String, Float, Text
import enum
from kpi_portal.database import Base

class RatingType(str, enum.Enum):
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    QUALITATIVE = "qualitative"

class RatingOption(Base):
    __tablename__ = "rating_options"

    id = Column(Integer, primary_key=True, index=True)
    rating_type = Column(String, nullable=False, index=True)
    rating_value = Column(Float, nullable=False)
    label = Column(String, nullable=False)
    description = Column(Text, nullable=True)
