from datetime import date

import pytest

from kpi_portal.services.accomplishments import AccomplishmentSet
from kpi_portal.services.rating_aggregator import (
    CalculationPolicy,
    ItemScore,
    aggregate,
    average_rating,
    build_item_scores,
    completion_percentage,
    goal_weight_fraction,
    normalize_goal_weight,
    resolve_policy,
    self_rating_enabled,
    validate_manager_review,
    validate_self_rating,
)
from kpi_portal.services.rating_catalog import EXCEEDS, MEETS, NOT_RATED

def _items(*ratings, weights=None):
    weights = weights or [0.0] * len(ratings)
    return [ItemScore(item_id=i + 1, rating=r, weight=w) for i, (r, w) in enumerate(zip(ratings, weights))]

def _accomplishments(count=2, rating=1.25):
    return AccomplishmentSet(
        [{"title": f"Win {i}", "employee_rating": rating, "item_order": i} for i in range(1, count + 1)],
        minimum=2,
    )

def test_normal_policy_percentage():
    summary = aggregate(_items(1.00, 1.25, 1.50), [], max_rating=1.5, policy=CalculationPolicy.NORMAL)
    assert summary.percentage == pytest.approx(83.33, abs=0.01)
    assert summary.total_score == pytest.approx(3.75)
    assert summary.total_possible == pytest.approx(4.5)
    assert summary.average_rating == pytest.approx(1.25)
    assert summary.final_rating == 1.25
    assert summary.final_rating_label == MEETS

def test_goal_weight_policy_percentage():
    items = _items(1.50, 1.00, weights=[0.6, 0.4])
    summary = aggregate(items, [], max_rating=1.5, policy=CalculationPolicy.GOAL_WEIGHT)
    assert summary.percentage == pytest.approx(86.67, abs=0.01)
    assert [round(c.contribution, 2) for c in summary.contributions] == [60.0, 26.67]

def test_goal_weight_accomplishments_share_remaining_weight():
    items = _items(1.5, weights=[0.5])
    result = aggregate(items, [1.5, 0.75], max_rating=1.5, policy=CalculationPolicy.GOAL_WEIGHT)
    # item: 100 * 0.5; accomplishments: 0.25 each
    assert result.percentage == pytest.approx(50 + 25 + 12.5)

def test_goal_weight_with_zero_max_is_zero():
    summary = aggregate(_items(1.5, weights=[1.0]), [], max_rating=0, policy=CalculationPolicy.GOAL_WEIGHT)
    assert summary.percentage == 0.0

def test_normal_counts_accomplishments():
    summary = aggregate(_items(1.5), [1.0, 1.25], max_rating=1.5)
    assert summary.percentage == pytest.approx(3.75 / 4.5 * 100)
    assert summary.rated_accomplishments == 2

def test_normal_counts_unrated_included_items():
    summary = aggregate(_items(1.5, 0.0), [], max_rating=1.5)
    assert summary.percentage == pytest.approx(50.0)
    assert summary.average_rating == pytest.approx(1.5)

def test_actual_value_policy():
    items = [
        ItemScore(item_id=1, rating=1.25, weight=0.5, actual_value=30, target_value=40),
        ItemScore(item_id=2, rating=1.25, weight=0.5, actual_value=4, target_value=4),
        ItemScore(item_id=3, rating=1.25, weight=0.0, actual_value=9, target_value=3),
    ]
    summary = aggregate(items, [], max_rating=1.5, policy=CalculationPolicy.ACTUAL_VALUE)
    assert summary.percentage == pytest.approx(75 * 0.5 + 100 * 0.5)

def test_excluded_and_qualitative_items_do_not_count():
    items = [
        ItemScore(item_id=1, rating=1.5),
        ItemScore(item_id=2, rating=1.0, exclude_from_calculation=True),
        ItemScore(item_id=3, rating=1.0, is_qualitative=True),
    ]
    assert average_rating(items) == pytest.approx(1.5)
    assert aggregate(items, [], max_rating=1.5).percentage == pytest.approx(100.0)

def test_unrated_everything_is_zero():
    summary = aggregate(_items(0.0, 0.0), [], max_rating=1.5)
    assert summary.average_rating == 0.0
    assert summary.final_rating == 0.0
    assert summary.final_rating_label == NOT_RATED
    assert summary.percentage == 0.0

def test_final_rating_is_quantized():
    summary = aggregate(_items(1.5, 1.5, 1.25), [], max_rating=1.5)
    assert summary.final_rating == 1.5
    assert summary.final_rating_label == EXCEEDS

def test_completion_percentage():
    items = [
        ItemScore(item_id=1, rating=1.0),
        ItemScore(item_id=2, rating=0.0),
        ItemScore(item_id=3, rating=0.0),
        ItemScore(item_id=4, is_qualitative=True),
    ]
    assert completion_percentage(items) == 33
    assert completion_percentage([ItemScore(item_id=1, is_qualitative=True)]) == 100
    assert completion_percentage(_items(1.0, 0.0)) == 50

@pytest.mark.parametrize("raw, fraction", [
    ("40%", 0.4), ("40", 0.4), (40, 0.4), ("0.4", 0.4), (" 25 % ", 0.25), ("abc", 0.0), (None, 0.0), ("1", 1.0),
])
def test_goal_weight_fraction(raw, fraction):
    assert goal_weight_fraction(raw) == pytest.approx(fraction)

def test_normalize_goal_weight():
    assert normalize_goal_weight("40") == "40%"
    assert normalize_goal_weight(0.4) == "40%"
    assert normalize_goal_weight("12.5%") == "12.5%"
    assert normalize_goal_weight("") is None
    assert normalize_goal_weight(None) is None

@pytest.mark.parametrize("raw", ["forty", "abc", "-10", "-5%", True])
def test_normalize_goal_weight_rejects_bad_input(raw):
    with pytest.raises(ValueError):
        normalize_goal_weight(raw)

def test_build_item_scores_for_legacy_kpi():
    scores = build_item_scores([], {0: 1.25})
    assert len(scores) == 1
    assert scores[0].item_id == 0
    assert scores[0].rating == 1.25

def test_build_item_scores_joins_items():
    items = [
        {"id": 10, "title": "A", "goal_weight": "60%", "actual_value": "30", "target_value": "40"},
        {"id": 11, "title": "B", "goal_weight": "40%", "is_qualitative": True},
    ]
    scores = build_item_scores(items, {10: 1.5})
    assert scores[0].weight == pytest.approx(0.6)
    assert scores[0].actual_value == 30.0
    assert scores[1].rating == 0.0
    assert scores[1].is_qualitative

def test_resolve_policy():
    features = {"use_goal_weight_quarterly": True, "use_actual_values_yearly": True}
    assert resolve_policy(features, "quarterly") == CalculationPolicy.GOAL_WEIGHT
    assert resolve_policy(features, "yearly") == CalculationPolicy.ACTUAL_VALUE
    assert resolve_policy(None, "yearly") == CalculationPolicy.NORMAL

def test_self_rating_enabled():
    assert self_rating_enabled(None, "quarterly")
    assert not self_rating_enabled({"enable_employee_self_rating_yearly": False}, "yearly")

def test_self_rating_with_one_accomplishment_fails_on_count():
    error = validate_self_rating(_items(1.25), _accomplishments(1), "Jane", date(2026, 3, 31))
    assert error is not None
    assert error.field == "accomplishments"
    assert error.details["count"] == 1

def test_self_rating_requires_all_items_signature_and_date():
    error = validate_self_rating(_items(1.25, 0.0), _accomplishments(), "Jane", date(2026, 3, 31))
    assert error.field == "ratings"
    assert error.details["missing_items"] == [2]

    assert validate_self_rating(_items(1.25), _accomplishments(), " ", date(2026, 3, 31)).field == "signature"
    assert validate_self_rating(_items(1.25), _accomplishments(), "Jane", None).field == "review_date"
    assert validate_self_rating(_items(1.25), _accomplishments(), "Jane", date(2026, 3, 31)) is None

def test_self_rating_ignores_unrated_qualitative_items():
    items = [ItemScore(item_id=1, rating=1.0), ItemScore(item_id=2, is_qualitative=True)]
    assert validate_self_rating(items, _accomplishments(), "Jane", date(2026, 3, 31)) is None

def test_manager_review_validation():
    items = [
        ItemScore(item_id=1, title="Delivery", rating=1.25),
        ItemScore(item_id=2, title="Teamwork", is_qualitative=True),
        ItemScore(item_id=3, title="Side project", exclude_from_calculation=True),
    ]
    error = validate_manager_review(items, {}, "Boss")
    missing = {m["item_id"] for m in error.details["missing_items"]}
    assert missing == {2, 3}

    items[2] = ItemScore(item_id=3, rating=1.0, exclude_from_calculation=True)
    assert validate_manager_review(items, {2: "Exceeds"}, "").field == "signature"
    assert validate_manager_review(items, {2: "Exceeds"}, "Boss") is None
