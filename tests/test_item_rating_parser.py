import json

import pytest

from kpi_portal.core.exceptions import RatingParseError
from kpi_portal.services.item_rating_parser import (
    FlatTextComment,
    LegacyJsonRatings,
    StructuredRatings,
    classify_source,
    decode_legacy_comment,
    parse_item_ratings,
    parse_reflections,
    split_qualitative,
)

LEGACY = json.dumps({
    "items": [{"item_id": 7, "rating": 1.25, "comment": "ok"}],
    "major_accomplishments": "Shipped v2",
    "disappointments": "Late QA",
})

def test_legacy_json_comment_populates_maps():
    parsed = parse_item_ratings({"employee_comment": LEGACY})
    assert parsed.employee_item_ratings == {7: 1.25}
    assert parsed.employee_item_comments == {7: "ok"}
    assert parsed.employee_source == "legacy_json"
    assert parsed.employee_flat_comment == ""

def test_structured_wins_exclusively_over_legacy():
    review = {
        "item_ratings": {"employee": {"3": {"rating": "1.5", "comment": "great"}}},
        "employee_comment": LEGACY,
    }
    parsed = parse_item_ratings(review)
    assert parsed.employee_item_ratings == {3: 1.5}
    assert parsed.employee_item_comments == {3: "great"}
    assert 7 not in parsed.employee_item_ratings
    assert parsed.employee_source == "structured"

def test_roles_are_resolved_independently():
    review = {
        "item_ratings": {"employee": {1: {"rating": 1.0}}, "manager": {}},
        "manager_comment": json.dumps({"items": [{"item_id": 1, "rating": 1.5, "comment": ""}]}),
    }
    parsed = parse_item_ratings(review)
    assert parsed.employee_source == "structured"
    assert parsed.manager_source == "legacy_json"
    assert parsed.manager_item_ratings == {1: 1.5}

def test_malformed_json_is_kept_as_flat_comment():
    parsed = parse_item_ratings({"employee_comment": "{not json"})
    assert parsed.employee_item_ratings == {}
    assert parsed.employee_flat_comment == "{not json"
    assert parsed.employee_source == "flat_text"

def test_plain_text_comment_is_flat():
    parsed = parse_item_ratings({"manager_comment": "Solid quarter overall"})
    assert parsed.manager_flat_comment == "Solid quarter overall"
    assert parsed.manager_item_ratings == {}

def test_bad_rating_values_coerce_to_zero():
    review = {"item_ratings": {"employee": {"4": {"rating": "abc"}, "5": {"rating": None}}}}
    parsed = parse_item_ratings(review)
    assert parsed.employee_item_ratings == {4: 0.0, 5: 0.0}
    assert parsed.employee_item_comments == {4: "", 5: ""}

def test_empty_review_yields_empty_maps():
    parsed = parse_item_ratings({})
    assert parsed.employee_item_ratings == {}
    assert parsed.manager_item_ratings == {}

def test_classify_source_variants():
    assert isinstance(classify_source({"1": {"rating": 1.0}}, LEGACY), StructuredRatings)
    assert isinstance(classify_source(None, LEGACY), LegacyJsonRatings)
    assert isinstance(classify_source({}, "hello"), FlatTextComment)

def test_decode_legacy_comment_raises_on_missing_items():
    with pytest.raises(RatingParseError):
        decode_legacy_comment(json.dumps({"note": "no items"}))
    with pytest.raises(RatingParseError):
        decode_legacy_comment("[]")

def test_decode_legacy_comment_skips_items_without_id():
    decoded = decode_legacy_comment(json.dumps({"items": [{"rating": 1.0}, {"item_id": 2, "rating": 1.5}]}))
    assert [item.item_id for item in decoded.items] == [2]

def test_parse_reflections_falls_back_to_legacy_blob():
    reflections = parse_reflections({"employee_comment": LEGACY})
    assert reflections == {"major_accomplishments": "Shipped v2", "disappointments": "Late QA"}

def test_parse_reflections_prefers_columns():
    review = {"employee_comment": LEGACY, "major_accomplishments": "Column text", "disappointments": "None"}
    assert parse_reflections(review)["major_accomplishments"] == "Column text"

def test_split_qualitative():
    items = [{"id": 1, "is_qualitative": False}, {"id": 2, "is_qualitative": True}]
    numeric, qualitative = split_qualitative({1: 1.25, 2: 1.5}, items)
    assert numeric == {1: 1.25}
    assert qualitative == {2: 1.5}
