"""
Accomplishments recorded by the employee during self-rating.

Each record is rated on the same scale as KPI items and takes part in the
rating aggregation. ``item_order`` is kept as a dense 1..N sequence.
"""
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict

from kpi_portal.core.config import settings
from kpi_portal.core.exceptions import ReviewValidationError


class AccomplishmentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, validate_assignment=True)

    id: Optional[int] = None
    review_id: int = 0
    title: str = ""
    description: Optional[str] = None
    employee_rating: Optional[float] = None
    employee_comment: Optional[str] = None
    manager_rating: Optional[float] = None
    manager_comment: Optional[str] = None
    item_order: int = 1

    def rating_for(self, role: str) -> Optional[float]:
        if role == "manager":
            # Managers may leave an accomplishment unrated and keep the employee's score
            return self.manager_rating if self.manager_rating is not None else self.employee_rating
        return self.employee_rating


class AccomplishmentSet:
    """Ordered list of accomplishments with a minimum size enforced at submission."""

    def __init__(self, records: Optional[Iterable] = None, minimum: Optional[int] = None):
        self.minimum = settings.min_accomplishments if minimum is None else minimum
        self._records: List[AccomplishmentRecord] = [
            r if isinstance(r, AccomplishmentRecord) else AccomplishmentRecord.model_validate(r)
            for r in (records or [])
        ]
        self._records.sort(key=lambda r: r.item_order)
        self._renumber()

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def __getitem__(self, index: int) -> AccomplishmentRecord:
        return self._records[index]

    @property
    def records(self) -> List[AccomplishmentRecord]:
        return list(self._records)

    def _renumber(self) -> None:
        for position, record in enumerate(self._records, start=1):
            record.item_order = position

    def add(self, **fields) -> AccomplishmentRecord:
        """Append a blank record (optionally pre-filled) at the end."""
        fields.setdefault("review_id", self._records[0].review_id if self._records else 0)
        record = AccomplishmentRecord(**fields)
        record.item_order = len(self._records) + 1
        self._records.append(record)
        return record

    def remove(self, index: int) -> bool:
        """
        Remove the record at ``index`` and renumber the rest.

        Returns False, leaving the list untouched, when the removal would drop
        the list below the minimum or the index is out of range.
        """
        if len(self._records) <= self.minimum:
            return False
        if index < 0 or index >= len(self._records):
            return False
        del self._records[index]
        self._renumber()
        return True

    def update(self, index: int, **fields) -> AccomplishmentRecord:
        record = self._records[index]
        for name, value in fields.items():
            if name in ("item_order", "id"):
                continue
            setattr(record, name, value)
        return record

    def rated(self, role: str = "employee") -> List[float]:
        """Ratings of the records that carry a positive rating for ``role``."""
        ratings = []
        for record in self._records:
            value = record.rating_for(role)
            if value is not None and value > 0:
                ratings.append(value)
        return ratings

    def validate(self) -> Optional[ReviewValidationError]:
        """First problem blocking an employee submission, or None."""
        if len(self._records) < self.minimum:
            return ReviewValidationError(
                f"Please add at least {self.minimum} accomplishments before submitting",
                field="accomplishments",
                details={"count": len(self._records), "minimum": self.minimum},
            )
        for record in self._records:
            if not record.title.strip():
                return ReviewValidationError(
                    f"Accomplishment {record.item_order} needs a title",
                    field="accomplishments",
                    details={"item_order": record.item_order},
                )
            if not record.employee_rating or record.employee_rating <= 0:
                return ReviewValidationError(
                    f"Accomplishment {record.item_order} needs a rating",
                    field="accomplishments",
                    details={"item_order": record.item_order},
                )
        return None

    def to_payload(self) -> List[dict]:
        return [r.model_dump(exclude={"id"}) for r in self._records]
