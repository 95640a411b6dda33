"""
Rating catalog: admissible rating values, labels and percentage helpers.

Quantitative options are fetched per KPI period (quarterly/yearly) and define
the universe of scores an item or accomplishment may take; the largest one is
the ``max_rating`` every percentage is computed against.
"""
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from kpi_portal.models.rating_option import RatingType

# Order matters: quantize() keeps the earlier candidate on a tie
ALLOWED_RATINGS = (1.00, 1.25, 1.50)

EXCEEDS = "Exceeds Expectation"
MEETS = "Meets Expectation"
BELOW = "Below Expectation"
NOT_RATED = "Not Rated"
CUSTOM = "Custom"

QUANTITATIVE_TYPES = (RatingType.QUARTERLY.value, RatingType.YEARLY.value)
QUALITATIVE_TYPE = RatingType.QUALITATIVE.value


class RatingChoice(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rating_type: str
    rating_value: float
    label: str
    description: Optional[str] = None


def _defaults() -> List[RatingChoice]:
    choices = []
    for period in QUANTITATIVE_TYPES:
        choices.extend([
            RatingChoice(rating_type=period, rating_value=1.00, label=BELOW),
            RatingChoice(rating_type=period, rating_value=1.25, label=MEETS),
            RatingChoice(rating_type=period, rating_value=1.50, label=EXCEEDS),
        ])
    choices.extend([
        RatingChoice(rating_type=QUALITATIVE_TYPE, rating_value=1.50, label="Exceeds"),
        RatingChoice(rating_type=QUALITATIVE_TYPE, rating_value=1.25, label="Meets"),
        RatingChoice(rating_type=QUALITATIVE_TYPE, rating_value=1.00, label="Needs Improvement"),
    ])
    return choices


DEFAULT_OPTIONS: List[RatingChoice] = _defaults()


class RatingCatalog:
    """Read-only view over the rating options of a company."""

    def __init__(self, options: Optional[Iterable] = None, fallback: bool = True):
        parsed = [o if isinstance(o, RatingChoice) else RatingChoice.model_validate(o) for o in (options or [])]
        if fallback and not any(o.rating_type in QUANTITATIVE_TYPES for o in parsed):
            # Same fallback the review screens use when the store has nothing configured
            parsed = [o for o in parsed if o.rating_type == QUALITATIVE_TYPE] + [
                o for o in DEFAULT_OPTIONS if o.rating_type in QUANTITATIVE_TYPES
            ]
        self._options = parsed

    @property
    def options(self) -> List[RatingChoice]:
        return list(self._options)

    def quantitative(self, period: str = "quarterly") -> List[RatingChoice]:
        """Quantitative options for ``period``, ordered by value."""
        return sorted(
            (o for o in self._options if o.rating_type == period),
            key=lambda o: o.rating_value,
        )

    def qualitative(self) -> List[RatingChoice]:
        return [o for o in self._options if o.rating_type == QUALITATIVE_TYPE]

    def values(self, period: str = "quarterly") -> List[float]:
        return [o.rating_value for o in self.quantitative(period)]

    def max_rating(self, period: str = "quarterly") -> float:
        values = self.values(period)
        return max(values) if values else 0.0

    def label_for(self, value: float, period: str = "quarterly") -> str:
        for option in self.quantitative(period):
            if abs(option.rating_value - value) < 1e-9:
                return option.label
        return item_rating_label(value)

    def is_admissible(self, value: float, period: str = "quarterly") -> bool:
        return any(abs(v - value) < 1e-9 for v in self.values(period))


def quantize(value: float, allowed: Sequence[float] = ALLOWED_RATINGS) -> float:
    """Snap ``value`` to the nearest allowed rating; ties keep the first-declared one."""
    nearest = allowed[0]
    for candidate in allowed[1:]:
        if abs(candidate - value) < abs(nearest - value):
            nearest = candidate
    return nearest


def rating_label(value: float) -> str:
    """Label for an averaged rating, by the closest tier below it."""
    if value >= 1.4:
        return EXCEEDS
    if value >= 1.15:
        return MEETS
    if value > 0:
        return BELOW
    return NOT_RATED


def item_rating_label(value: float) -> str:
    """Exact-match legend used next to a single item's rating."""
    if value == 1.0:
        return BELOW
    if value == 1.25:
        return MEETS
    if value == 1.5:
        return EXCEEDS
    if value == 0:
        return NOT_RATED
    return CUSTOM


def rating_percentage(value: float, max_rating: float) -> float:
    if max_rating <= 0:
        return 0.0
    return value / max_rating * 100
