"""
Rating aggregation.

Turns per-item ratings and accomplishment ratings into two outputs:

* the average rating, on the item scale (1.00 - 1.50)
* the final percentage (0 - 100), computed under one of the calculation
  policies a department can select:

  - normal:       total score / total possible score * 100
  - goal_weight:  sum of (rating / max * 100) * goal weight, accomplishments
                  sharing whatever weight the items leave unassigned
  - actual_value: sum of (actual / target * 100) * goal weight

The policy is an input here; ``resolve_policy`` maps department features to
a policy for a KPI period and is called by the services, not by ``aggregate``.
"""
import enum
import math
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from kpi_portal.core.exceptions import ReviewValidationError
from kpi_portal.services.accomplishments import AccomplishmentSet
from kpi_portal.services.rating_catalog import quantize, rating_label

LEGACY_ITEM_ID = 0


class CalculationPolicy(str, enum.Enum):
    NORMAL = "normal"
    GOAL_WEIGHT = "goal_weight"
    ACTUAL_VALUE = "actual_value"


class ItemScore(BaseModel):
    item_id: int
    title: str = ""
    rating: float = 0.0
    weight: float = 0.0  # fraction of 1
    is_qualitative: bool = False
    exclude_from_calculation: bool = False
    actual_value: Optional[float] = None
    target_value: Optional[float] = None

    @property
    def included(self) -> bool:
        return not self.is_qualitative and not self.exclude_from_calculation


class ItemContribution(BaseModel):
    item_id: int
    rating: float
    weight: float
    contribution: float


class RatingSummary(BaseModel):
    policy: CalculationPolicy
    average_rating: float
    final_rating: float
    final_rating_label: str
    percentage: float
    max_rating: float
    total_score: float = 0.0
    total_possible: float = 0.0
    completion: int = 0
    rated_accomplishments: int = 0
    contributions: List[ItemContribution] = []


def _attr(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(str(value).strip().replace("%", ""))
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def goal_weight_fraction(value: Any) -> float:
    """
    Goal weight as a fraction of 1.

    "40%", "40" and 40 all mean 40%; a bare number of at most 1 ("0.4") is
    already a fraction. Anything unparseable counts as 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    text = str(value).strip()
    number = _to_float(text)
    if number is None or number <= 0:
        return 0.0
    if text.endswith("%") or number > 1:
        return number / 100
    return number


def normalize_goal_weight(value: Any) -> Optional[str]:
    """
    Canonical stored form of a goal weight, e.g. "40%"; None when empty.

    Raises ValueError for text that is not a number and for negative weights.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    number = None if isinstance(value, bool) else _to_float(value)
    if number is None:
        raise ValueError(f"Goal weight {value!r} is not a number")
    if number < 0:
        raise ValueError(f"Goal weight {value!r} cannot be negative")
    fraction = goal_weight_fraction(value)
    return f"{round(fraction * 100, 4):g}%"


def build_item_scores(items: Sequence[Any], ratings: Mapping[int, float]) -> List[ItemScore]:
    """
    Join KPI items with one role's ratings.

    A KPI without items is a single implicit item keyed 0.
    """
    if not items:
        return [ItemScore(item_id=LEGACY_ITEM_ID, rating=ratings.get(LEGACY_ITEM_ID, 0.0) or 0.0)]
    scores = []
    for item in items:
        item_id = _attr(item, "id")
        scores.append(ItemScore(
            item_id=item_id,
            title=_attr(item, "title") or "",
            rating=ratings.get(item_id, 0.0) or 0.0,
            weight=goal_weight_fraction(_attr(item, "goal_weight")),
            is_qualitative=bool(_attr(item, "is_qualitative", False)),
            exclude_from_calculation=bool(_attr(item, "exclude_from_calculation", False)),
            actual_value=_to_float(_attr(item, "actual_value")),
            target_value=_to_float(_attr(item, "target_value")),
        ))
    return scores


def _included(items: Iterable[ItemScore]) -> List[ItemScore]:
    return [item for item in items if item.included]


def _rated(values: Iterable[float]) -> List[float]:
    return [v for v in values if v is not None and v > 0]


def average_rating(items: Iterable[ItemScore], accomplishment_ratings: Iterable[float] = ()) -> float:
    ratings = _rated(item.rating for item in _included(items)) + _rated(accomplishment_ratings)
    if not ratings:
        return 0.0
    return sum(ratings) / len(ratings)


def normal_percentage(items: Iterable[ItemScore], accomplishment_ratings: Iterable[float], max_rating: float) -> Dict[str, float]:
    included = _included(items)
    accomplishments = _rated(accomplishment_ratings)
    total_score = sum(item.rating for item in included) + sum(accomplishments)
    total_possible = (len(included) + len(accomplishments)) * max_rating
    percentage = total_score / total_possible * 100 if total_possible > 0 else 0.0
    return {"percentage": percentage, "total_score": total_score, "total_possible": total_possible}


def goal_weight_percentage(items: Iterable[ItemScore], accomplishment_ratings: Iterable[float], max_rating: float) -> Dict[str, Any]:
    included = _included(items)
    accomplishments = _rated(accomplishment_ratings)
    if max_rating <= 0:
        return {"percentage": 0.0, "contributions": []}

    weighted = 0.0
    contributions = []
    for item in included:
        contribution = (item.rating / max_rating * 100) * item.weight
        weighted += contribution
        contributions.append(ItemContribution(
            item_id=item.item_id, rating=item.rating, weight=item.weight, contribution=contribution,
        ))

    if accomplishments:
        remaining = max(0.0, 1 - sum(item.weight for item in included))
        share = remaining / len(accomplishments)
        for rating in accomplishments:
            weighted += (rating / max_rating * 100) * share
    return {"percentage": weighted, "contributions": contributions}


def actual_value_percentage(items: Iterable[ItemScore]) -> Dict[str, Any]:
    total = 0.0
    contributions = []
    for item in _included(items):
        if not item.actual_value or not item.target_value or item.target_value <= 0 or item.weight <= 0:
            continue
        achieved = item.actual_value / item.target_value * 100
        contribution = achieved * item.weight
        total += contribution
        contributions.append(ItemContribution(
            item_id=item.item_id, rating=item.rating, weight=item.weight, contribution=contribution,
        ))
    return {"percentage": total, "contributions": contributions}


def completion_percentage(items: Iterable[ItemScore]) -> int:
    required = [item for item in items if not item.is_qualitative]
    if not required:
        return 100
    rated = [item for item in required if item.rating > 0]
    return int(math.floor(len(rated) / len(required) * 100 + 0.5))


def aggregate(
    items: Sequence[ItemScore],
    accomplishment_ratings: Iterable[float] = (),
    max_rating: float = 1.5,
    policy: CalculationPolicy = CalculationPolicy.NORMAL,
) -> RatingSummary:
    accomplishments = _rated(accomplishment_ratings)
    average = average_rating(items, accomplishments)
    final = quantize(average) if average > 0 else 0.0

    total_score = total_possible = 0.0
    contributions: List[ItemContribution] = []
    if policy == CalculationPolicy.GOAL_WEIGHT:
        result = goal_weight_percentage(items, accomplishments, max_rating)
        contributions = result["contributions"]
    elif policy == CalculationPolicy.ACTUAL_VALUE:
        result = actual_value_percentage(items)
        contributions = result["contributions"]
    else:
        result = normal_percentage(items, accomplishments, max_rating)
        total_score = result["total_score"]
        total_possible = result["total_possible"]

    return RatingSummary(
        policy=policy,
        average_rating=average,
        final_rating=final,
        final_rating_label=rating_label(final),
        percentage=result["percentage"],
        max_rating=max_rating,
        total_score=total_score,
        total_possible=total_possible,
        completion=completion_percentage(items),
        rated_accomplishments=len(accomplishments),
        contributions=contributions,
    )


def resolve_policy(features: Any, period: str) -> CalculationPolicy:
    """Policy selected by department features for a KPI period."""
    if features is None:
        return CalculationPolicy.NORMAL
    suffix = "yearly" if period == "yearly" else "quarterly"
    if _attr(features, f"use_actual_values_{suffix}", False):
        return CalculationPolicy.ACTUAL_VALUE
    if _attr(features, f"use_goal_weight_{suffix}", False):
        return CalculationPolicy.GOAL_WEIGHT
    return CalculationPolicy.NORMAL


def self_rating_enabled(features: Any, period: str) -> bool:
    if features is None:
        return True
    suffix = "yearly" if period == "yearly" else "quarterly"
    return bool(_attr(features, f"enable_employee_self_rating_{suffix}", True))


def validate_self_rating(
    items: Sequence[ItemScore],
    accomplishments: AccomplishmentSet,
    signature: Optional[str],
    review_date: Optional[date],
) -> Optional[ReviewValidationError]:
    """First reason an employee self-rating cannot be submitted, or None."""
    error = accomplishments.validate()
    if error:
        return error

    missing = [item.item_id for item in items if not item.is_qualitative and item.rating <= 0]
    if missing:
        message = "Please provide a rating" if missing == [LEGACY_ITEM_ID] else \
            "Please provide ratings for all non-qualitative KPI items"
        return ReviewValidationError(message, field="ratings", details={"missing_items": missing})

    if not signature or not signature.strip():
        return ReviewValidationError("Please provide your signature", field="signature")

    if review_date is None:
        return ReviewValidationError("Please provide the review date", field="review_date")

    return None


def validate_manager_review(
    items: Sequence[ItemScore],
    qualitative_ratings: Mapping[int, Any],
    signature: Optional[str],
) -> Optional[ReviewValidationError]:
    """Every item needs a manager rating, excluded ones included, plus a signature."""
    missing = []
    for item in items:
        if item.is_qualitative:
            value = qualitative_ratings.get(item.item_id)
            if value is None or not str(value).strip():
                missing.append({"item_id": item.item_id, "title": item.title, "type": "qualitative"})
        elif item.rating <= 0:
            missing.append({"item_id": item.item_id, "title": item.title, "type": "quantitative"})
    if missing:
        return ReviewValidationError(
            "Please provide a rating for all KPI items",
            field="ratings",
            details={"missing_items": missing},
        )
    if not signature or not signature.strip():
        return ReviewValidationError("Please provide your digital signature", field="signature")
    return None
