# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    department, kpi, kpi_review, item_rating, accomplishment, rating_option
)

# Explicit class exports for cleaner imports
from .department import Department, DepartmentFeatures
from .kpi import KPI, KPIItem, KPIPeriod, KPIStatus
from .kpi_review import KPIReview, ReviewStatus, ConfirmationStatus, RejectionResolution
from .item_rating import KPIItemRating, RaterRole, RatingKind
from .accomplishment import Accomplishment
from .rating_option import RatingOption, RatingType

__all__ = [
    "Department",
    "DepartmentFeatures",
    "KPI",
    "KPIItem",
    "KPIPeriod",
    "KPIStatus",
    "KPIReview",
    "ReviewStatus",
    "ConfirmationStatus",
    "RejectionResolution",
    "KPIItemRating",
    "RaterRole",
    "RatingKind",
    "Accomplishment",
    "RatingOption",
    "RatingType",
]
