"""
Item rating parser.

Reviews carry per-item ratings in one of two shapes:

* the structured ``item_ratings`` store, ``{role: {item_id: {rating, comment, type}}}``
* legacy rows where the rating form was serialized into ``employee_comment`` /
  ``manager_comment`` as ``{"items": [{"item_id", "rating", "comment"}], ...}``

Each role is read from exactly one source. Structured entries win; the legacy
comment is decoded only when the role has no structured entry, and anything
that does not decode is kept as a flat comment. Nothing here writes back and
nothing here raises.
"""
import json
import logging
import math
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

from kpi_portal.core.exceptions import RatingParseError

logger = logging.getLogger(__name__)

ROLES = ("employee", "manager")


class ItemRatingEntry(BaseModel):
    rating: float = 0.0
    comment: str = ""
    type: str = "quantitative"


class LegacyItem(BaseModel):
    item_id: int
    rating: float = 0.0
    comment: str = ""


class StructuredRatings(BaseModel):
    kind: Literal["structured"] = "structured"
    data: Dict[int, ItemRatingEntry]


class LegacyJsonRatings(BaseModel):
    kind: Literal["legacy_json"] = "legacy_json"
    items: List[LegacyItem] = []
    major_accomplishments: Optional[str] = None
    disappointments: Optional[str] = None


class FlatTextComment(BaseModel):
    kind: Literal["flat_text"] = "flat_text"
    text: str = ""


RatingSource = Annotated[
    Union[StructuredRatings, LegacyJsonRatings, FlatTextComment],
    Field(discriminator="kind"),
]


class ParsedItemRatings(BaseModel):
    employee_item_ratings: Dict[int, float] = {}
    employee_item_comments: Dict[int, str] = {}
    manager_item_ratings: Dict[int, float] = {}
    manager_item_comments: Dict[int, str] = {}
    employee_flat_comment: str = ""
    manager_flat_comment: str = ""
    employee_source: str = "flat_text"
    manager_source: str = "flat_text"


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def to_rating(value: Any) -> float:
    """Coerce a stored rating to float; anything unparseable counts as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _to_item_id(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _structured_entries(raw: Any) -> Dict[int, ItemRatingEntry]:
    entries: Dict[int, ItemRatingEntry] = {}
    if not isinstance(raw, dict):
        return entries
    for key, data in raw.items():
        item_id = _to_item_id(key)
        if item_id is None:
            logger.debug("Skipping structured rating with non-numeric item id %r", key)
            continue
        entries[item_id] = ItemRatingEntry(
            rating=to_rating(_get(data, "rating")),
            comment=str(_get(data, "comment") or ""),
            type=str(_get(data, "type") or "quantitative"),
        )
    return entries


def decode_legacy_comment(comment: Optional[str]) -> LegacyJsonRatings:
    """
    Decode a legacy JSON comment blob.

    Raises RatingParseError when the text is not a JSON object with an
    ``items`` list.
    """
    try:
        data = json.loads(comment or "")
    except (TypeError, ValueError) as e:
        raise RatingParseError(f"comment is not JSON: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        raise RatingParseError("comment JSON has no items list")

    items = []
    for raw in data["items"]:
        item_id = _to_item_id(_get(raw, "item_id")) if isinstance(raw, dict) else None
        if not item_id:
            continue
        items.append(LegacyItem(
            item_id=item_id,
            rating=to_rating(raw.get("rating")),
            comment=str(raw.get("comment") or ""),
        ))

    def _text(key):
        value = data.get(key)
        return value if isinstance(value, str) else None

    return LegacyJsonRatings(
        items=items,
        major_accomplishments=_text("major_accomplishments"),
        disappointments=_text("disappointments"),
    )


def classify_source(structured: Any, comment: Optional[str]) -> RatingSource:
    """Pick the single authoritative rating source for one role."""
    entries = _structured_entries(structured)
    if entries:
        return StructuredRatings(data=entries)
    if not comment:
        return FlatTextComment(text="")
    try:
        return decode_legacy_comment(comment)
    except RatingParseError as e:
        logger.debug("Legacy rating comment kept as flat text: %s", e)
        return FlatTextComment(text=str(comment))


def _role_source(review: Any, role: str) -> RatingSource:
    item_ratings = _get(review, "item_ratings") or {}
    structured = _get(item_ratings, role)
    return classify_source(structured, _get(review, f"{role}_comment"))


def _project(source: RatingSource) -> Tuple[Dict[int, float], Dict[int, str], str]:
    ratings: Dict[int, float] = {}
    comments: Dict[int, str] = {}
    flat = ""
    if isinstance(source, StructuredRatings):
        for item_id, entry in source.data.items():
            ratings[item_id] = entry.rating
            comments[item_id] = entry.comment
    elif isinstance(source, LegacyJsonRatings):
        for item in source.items:
            ratings[item.item_id] = item.rating
            comments[item.item_id] = item.comment
    else:
        flat = source.text
    return ratings, comments, flat


def parse_item_ratings(review: Any) -> ParsedItemRatings:
    """Project a review (ORM row, schema or plain dict) onto per-item rating maps."""
    result: Dict[str, Any] = {}
    for role in ROLES:
        try:
            source = _role_source(review, role)
        except Exception as e:  # the projection must never fail the caller
            logger.warning("Could not read %s ratings: %s", role, e)
            source = FlatTextComment(text=str(_get(review, f"{role}_comment") or ""))
        ratings, comments, flat = _project(source)
        result[f"{role}_item_ratings"] = ratings
        result[f"{role}_item_comments"] = comments
        result[f"{role}_flat_comment"] = flat
        result[f"{role}_source"] = source.kind
    return ParsedItemRatings(**result)


def parse_reflections(review: Any) -> Dict[str, str]:
    """Employee reflection text, from the review columns or the legacy blob."""
    major = _get(review, "major_accomplishments") or ""
    disappointments = _get(review, "disappointments") or ""
    if major and disappointments:
        return {"major_accomplishments": major, "disappointments": disappointments}

    source = _role_source(review, "employee")
    if isinstance(source, LegacyJsonRatings):
        major = major or source.major_accomplishments or ""
        disappointments = disappointments or source.disappointments or ""
    return {"major_accomplishments": major, "disappointments": disappointments}


def split_qualitative(ratings: Dict[int, float], items: Iterable[Any]) -> Tuple[Dict[int, float], Dict[int, float]]:
    """Split a role's ratings into (numeric, qualitative) by the item flag."""
    qualitative_ids = {_get(item, "id") for item in items if _get(item, "is_qualitative")}
    numeric = {k: v for k, v in ratings.items() if k not in qualitative_ids and v}
    qualitative = {k: v for k, v in ratings.items() if k in qualitative_ids and v}
    return numeric, qualitative
